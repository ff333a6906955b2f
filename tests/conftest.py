"""
Shared test fixtures and model declarations for the keyrel test suite.

Model classes are built fresh for every test so each test gets its own
Registry and MemoryStore.
"""

from types import SimpleNamespace

import pytest

from keyrel.models import Model, Registry
from keyrel.store import MemoryStore


# ============================================================================
# Model declarations
# ============================================================================


def blog_models():
    """User / Post / Media, with inverses declared on one side."""

    class User(Model):
        schema = {
            "name": "String",
            "habtm": [{"model": "Post", "method": "posts"}],
            "has_many": [{"model": "Post", "method": "approved_articles"}],
        }

    class Post(Model):
        schema = {
            "title": "String",
            "body": "String",
            "views": "Integer",
            "habtm": [{"model": "User", "method": "authors", "inverse_of": "posts"}],
            "belongs_to": [
                {"model": "User", "method": "approver", "inverse_of": "approved_articles"},
            ],
            "has_one": [{"model": "Media", "method": "featured_image"}],
        }

    class Media(Model):
        schema = {
            "location": "String",
            "attributes": "String",
            "has_one": [
                {"model": "Post", "method": "post_featured", "inverse_of": "featured_image"},
            ],
        }

    return User, Post, Media


def plain_models():
    """Person / Article / Picture, relationships without inverses."""

    class Person(Model):
        schema = {
            "name": "String",
            "many_to_many": [{"model": "Article", "method": "articles"}],
            "one_to_many": [{"model": "Article", "method": "drafts"}],
        }

    class Article(Model):
        schema = {
            "title": "String",
            "many_to_one": [{"model": "Person", "method": "editor"}],
            "one_to_one": [{"model": "Picture", "method": "cover"}],
        }

    class Picture(Model):
        schema = {"location": "String"}

    return Person, Article, Picture


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def store():
    """Fresh in-memory store."""
    return MemoryStore()


@pytest.fixture
def registry(store):
    return Registry(store)


@pytest.fixture
def blog(registry):
    """Finalized registry with the blog models."""
    User, Post, Media = blog_models()
    registry.register_all([User, Post, Media])
    registry.finalize()
    return SimpleNamespace(User=User, Post=Post, Media=Media, registry=registry)


@pytest.fixture
def plain(registry):
    """Finalized registry with the inverse-less models."""
    Person, Article, Picture = plain_models()
    registry.register_all([Person, Article, Picture])
    registry.finalize()
    return SimpleNamespace(Person=Person, Article=Article, Picture=Picture, registry=registry)
