"""
keyrel Persistence — save, load, delete and counters for model instances.

Every function takes the ``Registry`` explicitly; ``Model`` methods are
thin wrappers that pass their class's registry.

Storage per attribute type:

    String            get / put / delete (absent -> None)
    Integer           counter_get / counter_set / counter_delete (absent -> 0)
    ManyToOne/OneToOne  get / put / delete, value is the related id
    ManyToMany/OneToMany  set_members / set_add / set_delete

Store failures propagate unmodified. Keys already written by a failed
save stay written; there are no cross-key transactions.

Signal receivers are the one exception to propagation: an error raised
by a pre/post save or delete receiver is logged by ``Signal.send`` and
left out of the operation's outcome.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any, List, Type

from ..faults import AttributeNotFoundFault, CascadeDeleteFault, UnsavedInstanceFault
from ..store.core import KVStore
from .fields import AttributeType, initial_value
from .relations import detach_forward, detach_observer, reconcile
from .signals import post_delete, post_save, pre_delete, pre_save

if TYPE_CHECKING:
    from .base import Model
    from .registry import Registry

logger = logging.getLogger("keyrel.models.persistence")

__all__ = [
    "save",
    "load",
    "delete",
    "increment",
    "find",
    "last_id",
    "read_attribute",
    "write_attribute",
]


async def read_attribute(store: KVStore, key: str, attr_type: AttributeType) -> Any:
    """Read one stored attribute, decoded to its in-memory form."""
    if attr_type is AttributeType.INTEGER:
        return await store.counter_get(key)
    if attr_type.is_multi_valued:
        return sorted(int(m) for m in await store.set_members(key))
    raw = await store.get(key)
    if attr_type.is_relationship and raw is not None:
        return int(raw)
    return raw


async def write_attribute(store: KVStore, key: str, attr_type: AttributeType, value: Any) -> None:
    """Replace one stored attribute with ``value``."""
    if attr_type is AttributeType.INTEGER:
        await store.counter_set(key, value or 0)
    elif attr_type.is_multi_valued:
        await store.set_delete(key)
        if value:
            await store.set_add(key, *value)
    elif value is None:
        await store.delete(key)
    else:
        await store.put(key, value)


async def _delete_attribute(store: KVStore, key: str, attr_type: AttributeType) -> None:
    if attr_type is AttributeType.INTEGER:
        await store.counter_delete(key)
    elif attr_type.is_multi_valued:
        await store.set_delete(key)
    else:
        await store.delete(key)


def _require_attrs(schema, attrs) -> List[str]:
    names = [a for a in attrs if a != "id"]
    for attr in names:
        if attr not in schema.types:
            raise AttributeNotFoundFault(schema.name, attr)
    return names


async def save(registry: Registry, instance: Model) -> Model:
    """
    Persist the instance's dirty attributes and reconcile backlinks.

    A new instance (no id) is first assigned the next id from the
    model's counter.
    """
    schema = instance._schema
    store = registry.store
    created = instance.id is None

    # Receiver errors are logged by Signal.send and returned, not raised;
    # a failing receiver does not abort the save
    await pre_save.send(type(instance), instance=instance, created=created)

    if created:
        new_id = await store.counter_increment(registry.keys.counter_key(schema.name))
        instance.id = new_id
        logger.debug(f"Assigned id {new_id} to new {schema.name}")

    instance_id = instance.id
    dirty = [a for a in schema.attributes if a in instance._dirty and a != "id"]
    keys = {a: registry.keys.attr_key(schema.name, instance_id, a) for a in dirty}

    # Stored values before this save, for backlink reconciliation
    snapshot = await asyncio.gather(*(
        read_attribute(store, keys[a], schema.types[a]) for a in dirty
    ))
    previous = dict(zip(dirty, snapshot))

    async def persist(attr: str) -> None:
        current = instance._values[attr]
        await write_attribute(store, keys[attr], schema.types[attr], current)
        rel = schema.relationship_for(attr)
        if rel is not None:
            await reconcile(registry, rel, instance_id, previous[attr], current)

    await asyncio.gather(*(persist(a) for a in dirty))
    instance._dirty.difference_update(dirty)

    logger.debug(f"Saved {schema.name}#{instance_id}: {dirty}")
    await post_save.send(type(instance), instance=instance, created=created, dirty=tuple(dirty))
    return instance


async def load(registry: Registry, instance: Model, *attrs: str) -> Model:
    """
    Load ``attrs`` (all attributes when none are named) from the store.

    Loaded attributes are no longer dirty. The id is never overwritten.
    """
    schema = instance._schema
    names = _require_attrs(schema, attrs) if attrs else schema.attributes[1:]
    if not names:
        return instance
    if instance.id is None:
        raise UnsavedInstanceFault(schema.name, "load")

    values = await asyncio.gather(*(
        read_attribute(
            registry.store,
            registry.keys.attr_key(schema.name, instance.id, attr),
            schema.types[attr],
        )
        for attr in names
    ))
    for attr, value in zip(names, values):
        instance._values[attr] = value
        instance._dirty.discard(attr)
    return instance


async def delete(registry: Registry, instance: Model) -> None:
    """
    Delete the instance and every reference to it.

    Backlink cleanup runs first and concurrently; its failures do not
    stop the instance's own keys from being deleted and are raised
    afterwards as one ``CascadeDeleteFault``.
    """
    schema = instance._schema
    store = registry.store
    instance_id = instance.id
    if instance_id is None:
        raise UnsavedInstanceFault(schema.name, "delete")

    # As in save(), receiver errors are logged and do not abort the delete
    await pre_delete.send(type(instance), instance=instance)

    cleanup = [
        detach_observer(registry, schema.name, instance_id, foreign_model, foreign_attr)
        for foreign_model, foreign_attr in sorted(registry.observed_by(schema.name))
    ]
    cleanup += [
        detach_forward(registry, rel, instance_id)
        for rel in schema.relationships.values()
    ]
    results = await asyncio.gather(*cleanup, return_exceptions=True)
    errors = [r for r in results if isinstance(r, BaseException)]

    await asyncio.gather(*(
        _delete_attribute(store, registry.keys.attr_key(schema.name, instance_id, attr), schema.types[attr])
        for attr in schema.attributes[1:]
    ))

    for attr, attr_type in schema.types.items():
        if attr != "id":
            instance._values[attr] = initial_value(attr_type)
    instance._dirty.clear()
    object.__setattr__(instance, "_id", None)

    await post_delete.send(type(instance), instance=instance, instance_id=instance_id)

    if errors:
        logger.warning(
            f"Deleted {schema.name}#{instance_id} with {len(errors)} failed backlink update(s)"
        )
        raise CascadeDeleteFault(schema.name, instance_id, errors) from errors[0]
    logger.debug(f"Deleted {schema.name}#{instance_id}")


async def increment(registry: Registry, instance: Model, attr: str, delta: int = 1) -> int:
    """Atomically add ``delta`` to a stored Integer attribute."""
    schema = instance._schema
    attr_type = schema.types.get(attr)
    if attr_type is None or attr == "id":
        raise AttributeNotFoundFault(schema.name, attr)
    if attr_type is not AttributeType.INTEGER:
        raise TypeError(f"inc() needs an Integer attribute; {schema.name}.{attr} is {attr_type.value}")
    if instance.id is None:
        raise UnsavedInstanceFault(schema.name, "increment")

    value = await registry.store.counter_increment(
        registry.keys.attr_key(schema.name, instance.id, attr), delta
    )
    instance._values[attr] = value
    instance._dirty.discard(attr)
    return value


async def find(registry: Registry, model_cls: Type[Model], instance_id: int, *attrs: str) -> Model:
    """New ``model_cls`` instance with ``instance_id``, ``attrs`` loaded."""
    instance = model_cls(id=instance_id)
    return await load(registry, instance, *attrs)


async def last_id(registry: Registry, model_cls: Type[Model]) -> int:
    """Last id handed out for ``model_cls`` (0 before the first save)."""
    return await registry.store.counter_get(registry.keys.counter_key(model_cls._schema.name))
