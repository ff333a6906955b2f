"""
Tests for cascading delete: observer cleanup, own-forward cleanup,
key removal and failure reporting.
"""

from unittest.mock import AsyncMock

import pytest

from keyrel.faults import CascadeDeleteFault, UnsavedInstanceFault
from keyrel.models.signals import post_delete


async def ids(store, key):
    return sorted(int(m) for m in await store.set_members(key))


class TestCascade:
    @pytest.mark.asyncio
    async def test_removed_from_many_to_many_owners(self, blog, store):
        post = await blog.Post(title="x").save()
        post_id = post.id
        keep = await blog.Post(title="y").save()
        ann = await blog.User(posts_ids=[post_id, keep.id]).save()
        bob = await blog.User(posts_ids=[post_id]).save()

        await post.delete()

        assert await ids(store, f"User#{ann.id}:posts_ids") == [keep.id]
        assert await ids(store, f"User#{bob.id}:posts_ids") == []
        assert await store.set_members(f"Post#{post_id}:authors_ids") == []

    @pytest.mark.asyncio
    async def test_removed_from_one_to_many_owner(self, blog, store):
        post = await blog.Post().save()
        post_id = post.id
        user = await blog.User(approved_articles_ids=[post_id]).save()

        await post.delete()

        assert await ids(store, f"User#{user.id}:approved_articles_ids") == []
        assert await store.get(f"Post#{post_id}:approver_id") is None

    @pytest.mark.asyncio
    async def test_removed_from_many_to_one_holders(self, blog, store):
        user = await blog.User().save()
        user_id = user.id
        post = await blog.Post(approver_id=user_id).save()

        await user.delete()

        assert await store.get(f"Post#{post.id}:approver_id") is None
        assert await store.set_members(f"User#{user_id}:approved_articles_ids") == []

    @pytest.mark.asyncio
    async def test_removed_from_one_to_one_partner(self, blog, store):
        media = await blog.Media().save()
        media_id = media.id
        post = await blog.Post(featured_image_id=media_id).save()

        await media.delete()

        assert await store.get(f"Post#{post.id}:featured_image_id") is None
        assert await store.get(f"Media#{media_id}:post_featured_id") is None

    @pytest.mark.asyncio
    async def test_own_forward_cleanup_without_inverse(self, plain, store):
        editor = await plain.Person().save()
        picture = await plain.Picture().save()
        article = await plain.Article(editor_id=editor.id, cover_id=picture.id).save()

        await article.delete()

        assert await store.set_members(f"Person#{editor.id}:Article:editor_id") == []
        assert await store.get(f"Picture#{picture.id}:Article:cover_id") is None

    @pytest.mark.asyncio
    async def test_observer_cleanup_without_inverse(self, plain, store):
        article = await plain.Article().save()
        article_id = article.id
        person = await plain.Person(articles_ids=[article_id], drafts_ids=[article_id]).save()

        await article.delete()

        assert await store.set_members(f"Person#{person.id}:articles_ids") == []
        assert await store.set_members(f"Person#{person.id}:drafts_ids") == []
        assert await store.set_members(f"Article#{article_id}:Person:articles_ids") == []
        assert await store.get(f"Article#{article_id}:Person:drafts_ids") is None

    @pytest.mark.asyncio
    async def test_all_own_keys_removed(self, blog, store):
        user = await blog.User().save()
        media = await blog.Media().save()
        post = await blog.Post(
            title="t", body="b", views=3,
            authors_ids=[user.id], approver_id=user.id, featured_image_id=media.id,
        ).save()

        await post.delete()

        assert not [k for k in store.keys() if k.startswith("Post#")]
        assert store.keys() == ["Media:last_id", "Post:last_id", "User:last_id"]

    @pytest.mark.asyncio
    async def test_instance_reset(self, blog):
        post = await blog.Post(title="t", views=2, authors_ids=[1]).save()
        await post.delete()
        assert post.id is None
        assert post.title is None
        assert post.views == 0
        assert post.authors_ids == []
        assert not post.is_dirty()

    @pytest.mark.asyncio
    async def test_post_delete_signal(self, blog):
        seen = []

        def on_delete(sender, instance, instance_id, **kwargs):
            seen.append((sender, instance_id))

        post = await blog.Post().save()
        with post_delete.connected(on_delete):
            await post.delete()
        assert seen == [(blog.Post, 1)]

    @pytest.mark.asyncio
    async def test_delete_unsaved(self, blog):
        with pytest.raises(UnsavedInstanceFault):
            await blog.Post().delete()


class TestCascadeFailure:
    @pytest.mark.asyncio
    async def test_own_keys_deleted_and_errors_reported(self, blog, store, monkeypatch):
        post = await blog.Post(title="doomed").save()
        post_id = post.id
        user = await blog.User(posts_ids=[post_id]).save()

        failure = ConnectionError("store went away")
        monkeypatch.setattr(store, "set_remove", AsyncMock(side_effect=failure))

        with pytest.raises(CascadeDeleteFault) as exc:
            await post.delete()

        assert failure in exc.value.errors
        assert exc.value.retryable
        assert post.id is None
        assert await store.get(f"Post#{post_id}:title") is None
        assert await store.set_members(f"Post#{post_id}:authors_ids") == []
        # The failed backlink update is left behind
        assert await ids(store, f"User#{user.id}:posts_ids") == [post_id]
