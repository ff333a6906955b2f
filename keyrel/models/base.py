"""
keyrel Model base class — in-memory instance state and accessor dispatch.

Define models by subclassing and declaring a ``schema`` map, then
register them with a ``Registry``:

    class Post(Model):
        schema = {
            "title": "String",
            "views": "Integer",
            "habtm": [{"model": "User", "method": "authors", "inverse_of": "posts"}],
            "belongs_to": [{"model": "User", "method": "approver",
                            "inverse_of": "approved_articles"}],
            "has_one": [{"model": "Media", "method": "featured_image"}],
        }

    registry.register_all([User, Post, Media])
    registry.finalize()

API:
    post = Post()
    post.title = "Hello"
    post.authors_ids = [1, 2]
    await post.save()                      # assigns post.id

    post = await Post.find(1, "title")     # loads only title
    await post.load("views", "approver_id")
    await post.inc("views")

    authors = await post.authors("name", 5, 0)   # limit 5, offset 0
    approver = await post.load_approver("name")
    await post.remove_featured_image()

    await post.delete()                    # cleans up every backlink
"""

from __future__ import annotations

import types
from typing import TYPE_CHECKING, Any, ClassVar, Dict, FrozenSet, Optional, Set

from ..faults import (
    AttributeNotFoundFault,
    IdentifierReassignedFault,
    ModelRegistrationFault,
)
from . import persistence
from .fields import initial_value
from .relations import load_related, remove_relation

if TYPE_CHECKING:
    from .registry import ModelSchema, Registry

__all__ = ["Model"]


class Model:
    """
    keyrel Model base class.

    Attribute access (``post.title``, ``post.title = ...``) goes through
    the accessor table compiled at registration; setting an attribute
    marks it dirty for the next ``save()``.
    """

    schema: ClassVar[Dict[str, Any]] = {}
    model_name: ClassVar[Optional[str]] = None

    # Set by Registry.register
    _schema: ClassVar[Optional[ModelSchema]] = None
    _registry: ClassVar[Optional[Registry]] = None

    _id: Optional[int]
    _values: Dict[str, Any]
    _dirty: Set[str]

    def __init__(self, id: Optional[int] = None, **values: Any):
        schema = self._compiled_schema()
        object.__setattr__(self, "_id", None)
        object.__setattr__(self, "_values", {
            attr: initial_value(attr_type)
            for attr, attr_type in schema.types.items()
            if attr != "id"
        })
        object.__setattr__(self, "_dirty", set())
        if id is not None:
            self.id = id
        for attr, value in values.items():
            self.set(attr, value)

    @classmethod
    def _compiled_schema(cls) -> ModelSchema:
        schema = cls.__dict__.get("_schema")
        if schema is None:
            raise ModelRegistrationFault(cls.__name__, "model class is not registered with a Registry")
        return schema

    @classmethod
    def _get_registry(cls) -> Registry:
        cls._compiled_schema()
        return cls._registry

    # ── identity ─────────────────────────────────────────────────────

    @property
    def id(self) -> Optional[int]:
        return self._id

    @id.setter
    def id(self, value: Optional[int]) -> None:
        if value is not None:
            value = int(value)
        if self._id is not None and value != self._id:
            raise IdentifierReassignedFault(self._schema.name, self._id, value)
        object.__setattr__(self, "_id", value)

    # ── accessor dispatch ────────────────────────────────────────────

    def __getattr__(self, name: str) -> Any:
        # Only called when normal lookup fails
        if name.startswith("_"):
            raise AttributeError(name)
        schema = type(self)._compiled_schema()
        accessor = schema.accessors.get(name)
        if accessor is not None:
            return accessor.get(self)
        loader = schema.loaders.get(name)
        if loader is not None:
            return types.MethodType(loader, self)
        raise AttributeError(f"'{type(self).__name__}' object has no attribute '{name}'")

    def __setattr__(self, name: str, value: Any) -> None:
        if name.startswith("_") or hasattr(type(self), name):
            object.__setattr__(self, name, value)
            return
        accessor = self._schema.accessors.get(name)
        if accessor is None:
            raise AttributeError(f"'{type(self).__name__}' object has no attribute '{name}'")
        accessor.set(self, value)

    def get(self, attr: str) -> Any:
        """Current in-memory value of ``attr``."""
        if attr == "id":
            return self._id
        accessor = self._schema.accessors.get(attr)
        if accessor is None:
            raise AttributeNotFoundFault(self._schema.name, attr)
        return accessor.get(self)

    def set(self, attr: str, value: Any) -> None:
        """Set ``attr`` and mark it dirty."""
        if attr == "id":
            self.id = value
            return
        accessor = self._schema.accessors.get(attr)
        if accessor is None:
            raise AttributeNotFoundFault(self._schema.name, attr)
        accessor.set(self, value)

    def raw_get(self, attr: str) -> Any:
        """Read a value without going through the accessor table."""
        if attr == "id":
            return self._id
        return self._values[attr]

    def raw_set(self, attr: str, value: Any) -> None:
        """Write a value without conversion or dirty tracking."""
        if attr not in self._values:
            raise AttributeNotFoundFault(self._schema.name, attr)
        self._values[attr] = value

    @property
    def dirty_attributes(self) -> FrozenSet[str]:
        return frozenset(self._dirty)

    def is_dirty(self, attr: Optional[str] = None) -> bool:
        if attr is None:
            return bool(self._dirty)
        return attr in self._dirty

    # ── persistence ──────────────────────────────────────────────────

    async def save(self) -> Model:
        """Persist dirty attributes (assigning an id first if needed)."""
        return await persistence.save(self._get_registry(), self)

    async def load(self, *attrs: str) -> Model:
        """Load ``attrs`` (all when none are given) from the store."""
        return await persistence.load(self._get_registry(), self, *attrs)

    async def delete(self) -> None:
        """Delete this instance and remove it from every relation."""
        await persistence.delete(self._get_registry(), self)

    async def inc(self, attr: str, delta: int = 1) -> int:
        """Atomically increment an Integer attribute; returns the new value."""
        return await persistence.increment(self._get_registry(), self, attr, delta)

    @classmethod
    async def find(cls, id: int, *attrs: str) -> Model:
        return await persistence.find(cls._get_registry(), cls, id, *attrs)

    @classmethod
    async def last_id(cls) -> int:
        return await persistence.last_id(cls._get_registry(), cls)

    # ── relations ────────────────────────────────────────────────────

    def _relationship(self, method: str):
        rel = self._schema.relationships.get(method)
        if rel is None:
            raise AttributeNotFoundFault(self._schema.name, method)
        return rel

    async def related(self, method: str, *args: Any) -> Any:
        """
        Load the instances behind relation ``method``.

        Same as the generated ``<method>()`` / ``load_<method>()`` binding.
        """
        return await load_related(self._get_registry(), self, self._relationship(method), *args)

    async def remove_relation(self, method: str) -> bool:
        """Clear single-valued relation ``method`` and save."""
        rel = self._relationship(method)
        if rel.kind.multi_valued:
            raise TypeError(f"remove_relation() needs a single-valued relation; '{method}' is {rel.kind.value}")
        return await remove_relation(self._get_registry(), self, rel)

    # ── misc ─────────────────────────────────────────────────────────

    def to_dict(self) -> Dict[str, Any]:
        """In-memory values keyed by attribute name, ``id`` first."""
        result: Dict[str, Any] = {"id": self._id}
        for attr, value in self._values.items():
            result[attr] = list(value) if isinstance(value, list) else value
        return result

    def __repr__(self) -> str:
        return f"<{type(self).__name__} id={self._id}>"

    def __eq__(self, other: Any) -> bool:
        if not isinstance(other, self.__class__):
            return False
        if self._id is None:
            return self is other
        return self._id == other._id

    def __hash__(self) -> int:
        return hash((self.__class__.__name__, self._id))
