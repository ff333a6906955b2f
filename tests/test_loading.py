"""
Tests for relation loading: pagination, generated loader bindings and
remove_<method>.
"""

import pytest

from keyrel.faults import AttributeNotFoundFault, UnsavedInstanceFault
from keyrel.models.relations import parse_load_args


class TestParseLoadArgs:
    @pytest.mark.parametrize("args, expected", [
        ((), ([], 10, 0)),
        (("title",), (["title"], 10, 0)),
        (("title", 5), (["title"], 5, 0)),
        (("title", "views", 5, 3), (["title", "views"], 5, 3)),
        ((5, 3), ([], 5, 3)),
        (("title", True), None),
    ])
    def test_trailing_numbers(self, args, expected):
        if expected is None:
            with pytest.raises(TypeError):
                parse_load_args(args)
        else:
            assert parse_load_args(args) == expected

    def test_negative_limit(self):
        with pytest.raises(ValueError):
            parse_load_args(("title", -1))


@pytest.fixture
def author_with_posts(blog):
    async def build(count=15):
        posts = []
        for i in range(count):
            posts.append(await blog.Post(title=f"post {i + 1}", body="...", views=i + 1).save())
        user = await blog.User(name="prolific", posts_ids=[p.id for p in reversed(posts)]).save()
        return user, posts
    return build


class TestPagination:
    @pytest.mark.asyncio
    async def test_limit_and_offset(self, blog, author_with_posts):
        user, posts = await author_with_posts()

        page = await user.posts("title", "views", 5, 3)

        assert [p.id for p in page] == [4, 5, 6, 7, 8]
        assert [p.title for p in page] == ["post 4", "post 5", "post 6", "post 7", "post 8"]
        assert [p.views for p in page] == [4, 5, 6, 7, 8]
        assert all(p.body is None for p in page)
        assert all(p.authors_ids == [] for p in page)
        assert all(isinstance(p, blog.Post) for p in page)

    @pytest.mark.asyncio
    async def test_default_limit(self, author_with_posts):
        user, _ = await author_with_posts()
        page = await user.posts("title")
        assert [p.id for p in page] == list(range(1, 11))

    @pytest.mark.asyncio
    async def test_related_matches_binding(self, author_with_posts):
        user, _ = await author_with_posts(4)
        page = await user.related("posts", "title", 2)
        assert [p.title for p in page] == ["post 1", "post 2"]

    @pytest.mark.asyncio
    async def test_without_attribute_names(self, store, author_with_posts):
        user, _ = await author_with_posts(3)
        reads = (await store.stats()).reads

        page = await user.posts(2, 0)

        assert [p.id for p in page] == [1, 2]
        assert all(p.title is None and p.views == 0 for p in page)
        assert all(p.authors_ids == [] for p in page)
        assert (await store.stats()).reads == reads

    @pytest.mark.asyncio
    async def test_offset_past_end(self, author_with_posts):
        user, _ = await author_with_posts(3)
        assert await user.posts("title", 5, 10) == []

    @pytest.mark.asyncio
    async def test_reads_relation_from_store(self, blog, author_with_posts):
        user, _ = await author_with_posts(3)
        stale = blog.User(id=user.id)
        page = await stale.posts()
        assert [p.id for p in page] == [1, 2, 3]
        assert stale.posts_ids == [1, 2, 3]

    @pytest.mark.asyncio
    async def test_unknown_target_attribute(self, author_with_posts):
        user, _ = await author_with_posts(1)
        with pytest.raises(AttributeNotFoundFault):
            await user.posts("nonexistent_attr")

    @pytest.mark.asyncio
    async def test_unsaved(self, blog):
        with pytest.raises(UnsavedInstanceFault):
            await blog.User().posts("title")


class TestSingleValuedLoaders:
    @pytest.mark.asyncio
    async def test_load_binding(self, blog):
        user = await blog.User(name="editor").save()
        post = await blog.Post(approver_id=user.id).save()

        approver = await post.load_approver("name")
        assert isinstance(approver, blog.User)
        assert approver.id == user.id
        assert approver.name == "editor"

    @pytest.mark.asyncio
    async def test_load_binding_without_attribute_names(self, blog):
        user = await blog.User(name="editor").save()
        post = await blog.Post(approver_id=user.id).save()

        approver = await post.load_approver()
        assert approver.id == user.id
        assert approver.name is None

    @pytest.mark.asyncio
    async def test_load_binding_when_unset(self, blog):
        post = await blog.Post().save()
        assert await post.load_featured_image("location") is None

    @pytest.mark.asyncio
    async def test_load_binding_rejects_pagination(self, blog):
        post = await blog.Post().save()
        with pytest.raises(TypeError):
            await post.load_approver("name", 5)

    @pytest.mark.asyncio
    async def test_remove_binding(self, blog, store):
        user = await blog.User().save()
        post = await blog.Post(approver_id=user.id).save()

        assert await post.remove_approver() is True
        assert post.approver_id is None
        assert await store.get(f"Post#{post.id}:approver_id") is None
        assert await store.set_members(f"User#{user.id}:approved_articles_ids") == []

        assert await post.remove_approver() is False

    @pytest.mark.asyncio
    async def test_remove_relation_by_name(self, blog, store):
        media = await blog.Media().save()
        post = await blog.Post(featured_image_id=media.id).save()

        assert await post.remove_relation("featured_image") is True
        assert await store.get(f"Media#{media.id}:post_featured_id") is None

    @pytest.mark.asyncio
    async def test_remove_relation_needs_single_valued(self, blog):
        post = await blog.Post().save()
        with pytest.raises(TypeError):
            await post.remove_relation("authors")
