"""
keyrel Relationship Engine — backlink reconciliation and relation loading.

Every relationship is stored twice: the owner's forward attribute and a
backlink on each target. After ``save()`` persists a forward attribute,
``reconcile`` brings the backlinks in line with it, given the value the
store held before the write:

    ManyToMany   set  -> set      add/remove self.id in each target's set
    OneToMany    set  -> scalar   put/clear each target's owner id,
                                  taking the target away from its old owner
    ManyToOne    scalar -> set    move self.id between owners' sets
    OneToOne     scalar -> scalar mirror; a partner that was paired
                                  elsewhere is unpaired first

No step spans more than one key atomically.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any, Iterable, List, Optional, Sequence, Tuple

from ..faults import AttributeNotFoundFault, UnsavedInstanceFault
from .fields import Relationship, RelationshipKind

if TYPE_CHECKING:
    from .registry import Registry

logger = logging.getLogger("keyrel.models.relations")

__all__ = [
    "DEFAULT_LIMIT",
    "parse_load_args",
    "backlink_key",
    "reconcile",
    "detach_observer",
    "detach_forward",
    "load_related",
    "remove_relation",
    "make_loader",
    "make_remover",
]

DEFAULT_LIMIT = 10


def _is_number(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def parse_load_args(args: Sequence[Any]) -> Tuple[List[str], int, int]:
    """
    Split ``(*attrs, [limit, [offset]])`` into ``(attrs, limit, offset)``.

    Trailing integers are read right to left: two give ``limit, offset``,
    one gives ``limit``. Defaults are ``limit=10, offset=0``.
    """
    args = list(args)
    numbers: List[int] = []
    while args and len(numbers) < 2 and _is_number(args[-1]):
        numbers.insert(0, args.pop())

    limit, offset = DEFAULT_LIMIT, 0
    if len(numbers) == 2:
        limit, offset = numbers
    elif numbers:
        limit = numbers[0]

    if limit < 0 or offset < 0:
        raise ValueError(f"limit and offset must be non-negative, got {limit}, {offset}")
    for attr in args:
        if not isinstance(attr, str):
            raise TypeError(f"attribute names must be strings, got {attr!r}")
    return args, limit, offset


def backlink_key(registry: Registry, rel: Relationship, target_id: int) -> str:
    """Key of the backlink that ``rel`` keeps on ``target_id``."""
    return registry.keys.backlink_key(rel.target, target_id, rel.owner, rel.method, rel.attr)


def _as_id(raw: Optional[str]) -> Optional[int]:
    return int(raw) if raw is not None else None


async def _clear_if_holds(registry: Registry, key: str, instance_id: int) -> bool:
    """Delete scalar ``key`` only if it still names ``instance_id``."""
    store = registry.store
    if _as_id(await store.get(key)) == instance_id:
        await store.delete(key)
        return True
    return False


# ── reconciliation ───────────────────────────────────────────────────────────


async def reconcile(registry: Registry, rel: Relationship, instance_id: int, previous: Any, current: Any) -> None:
    """Update the backlinks of ``rel`` after its forward value changed."""
    handler = _RECONCILERS[rel.kind]
    await handler(registry, rel, instance_id, previous, current)


async def _reconcile_many_to_many(registry, rel, instance_id, previous, current) -> None:
    store = registry.store
    old, new = set(previous or ()), set(current or ())
    await asyncio.gather(
        *(store.set_remove(backlink_key(registry, rel, t), instance_id) for t in sorted(old - new)),
        *(store.set_add(backlink_key(registry, rel, t), instance_id) for t in sorted(new - old)),
    )


async def _reconcile_one_to_many(registry, rel, instance_id, previous, current) -> None:
    store = registry.store
    old, new = set(previous or ()), set(current or ())

    async def release(target_id: int) -> None:
        await _clear_if_holds(registry, backlink_key(registry, rel, target_id), instance_id)

    async def claim(target_id: int) -> None:
        key = backlink_key(registry, rel, target_id)
        owner_id = _as_id(await store.get(key))
        if owner_id is not None and owner_id != instance_id:
            logger.debug(f"{rel.target}#{target_id} moves from {rel.owner}#{owner_id} to #{instance_id}")
            await store.set_remove(registry.keys.attr_key(rel.owner, owner_id, rel.attr), target_id)
        await store.put(key, instance_id)

    await asyncio.gather(
        *(release(t) for t in sorted(old - new)),
        *(claim(t) for t in sorted(new - old)),
    )


async def _reconcile_many_to_one(registry, rel, instance_id, previous, current) -> None:
    if previous == current:
        return
    store = registry.store
    if previous is not None:
        await store.set_remove(backlink_key(registry, rel, previous), instance_id)
    if current is not None:
        await store.set_add(backlink_key(registry, rel, current), instance_id)


async def _reconcile_one_to_one(registry, rel, instance_id, previous, current) -> None:
    if previous == current:
        return
    store = registry.store
    if previous is not None:
        await _clear_if_holds(registry, backlink_key(registry, rel, previous), instance_id)
    if current is not None:
        key = backlink_key(registry, rel, current)
        partner_id = _as_id(await store.get(key))
        if partner_id is not None and partner_id != instance_id:
            # The new partner was paired with another instance: unpair it
            forward = registry.keys.attr_key(rel.owner, partner_id, rel.attr)
            await _clear_if_holds(registry, forward, current)
        await store.put(key, instance_id)


_RECONCILERS = {
    RelationshipKind.MANY_TO_MANY: _reconcile_many_to_many,
    RelationshipKind.ONE_TO_MANY: _reconcile_one_to_many,
    RelationshipKind.MANY_TO_ONE: _reconcile_many_to_one,
    RelationshipKind.ONE_TO_ONE: _reconcile_one_to_one,
}


# ── delete cleanup ───────────────────────────────────────────────────────────


async def _read_ids(registry: Registry, key: str, multi_valued: bool) -> List[int]:
    store = registry.store
    if multi_valued:
        return sorted(int(m) for m in await store.set_members(key))
    raw = await store.get(key)
    return [int(raw)] if raw is not None else []


async def _drop_id(registry: Registry, key: str, instance_id: int, multi_valued: bool) -> None:
    if multi_valued:
        await registry.store.set_remove(key, instance_id)
    else:
        await _clear_if_holds(registry, key, instance_id)


async def detach_observer(
    registry: Registry,
    model: str,
    instance_id: int,
    foreign_model: str,
    foreign_attr: str,
) -> None:
    """
    Remove ``model#instance_id`` from every ``foreign_model`` instance
    whose ``foreign_attr`` points at it, then drop the backlink key.
    """
    rel = registry.schema_for(foreign_model).relationship_for(foreign_attr)
    key = registry.keys.backlink_key(model, instance_id, foreign_model, rel.method, foreign_attr)
    holders = await _read_ids(registry, key, rel.backlink_multi_valued)

    await asyncio.gather(*(
        _drop_id(
            registry,
            registry.keys.attr_key(foreign_model, holder, foreign_attr),
            instance_id,
            rel.kind.multi_valued,
        )
        for holder in holders
    ))

    if rel.backlink_multi_valued:
        await registry.store.set_delete(key)
    else:
        await registry.store.delete(key)
    logger.debug(f"Detached {model}#{instance_id} from {len(holders)} {foreign_model}.{foreign_attr}")


async def detach_forward(registry: Registry, rel: Relationship, instance_id: int) -> None:
    """Remove ``instance_id`` from the backlinks of its own stored ``rel``."""
    forward = registry.keys.attr_key(rel.owner, instance_id, rel.attr)
    targets = await _read_ids(registry, forward, rel.kind.multi_valued)
    await asyncio.gather(*(
        _drop_id(registry, backlink_key(registry, rel, t), instance_id, rel.backlink_multi_valued)
        for t in targets
    ))


# ── loading ──────────────────────────────────────────────────────────────────


def _check_attrs(registry: Registry, model: str, attrs: Iterable[str]) -> None:
    types = registry.schema_for(model).types
    for attr in attrs:
        if attr not in types:
            raise AttributeNotFoundFault(model, attr)


async def load_related(registry: Registry, instance: Any, rel: Relationship, *args: Any) -> Any:
    """
    Load the instances ``rel`` points at, with ``attrs`` loaded on each.

    Multi-valued: ``(*attrs, [limit, [offset]])``, ids in ascending
    order, returns a list. Single-valued: ``(*attrs)``, returns an
    instance or None.
    """
    attrs, limit, offset = parse_load_args(args)
    if not rel.kind.multi_valued and len(attrs) != len(args):
        raise TypeError(f"load_{rel.method}() takes attribute names only")
    _check_attrs(registry, rel.target, attrs)
    if instance.id is None:
        raise UnsavedInstanceFault(rel.owner, f"load relation '{rel.method}' of")

    await instance.load(rel.attr)
    target_cls = registry.model(rel.target)
    value = instance.raw_get(rel.attr)

    async def fetch(target_id: int) -> Any:
        # Unrequested attributes keep their initial values
        if not attrs:
            return target_cls(id=target_id)
        return await target_cls.find(target_id, *attrs)

    if rel.kind.multi_valued:
        page = sorted(value)[offset:offset + limit]
        return list(await asyncio.gather(*(fetch(t) for t in page)))

    if value is None:
        return None
    return await fetch(value)


async def remove_relation(registry: Registry, instance: Any, rel: Relationship) -> bool:
    """
    Clear a single-valued relation and save.

    Returns False when nothing was stored, True otherwise.
    """
    if instance.id is None:
        raise UnsavedInstanceFault(rel.owner, f"remove relation '{rel.method}' of")

    await instance.load(rel.attr)
    if instance.raw_get(rel.attr) is None:
        return False
    instance.set(rel.attr, None)
    await instance.save()
    return True


def make_loader(registry: Registry, rel: Relationship):
    """Build the ``<method>`` / ``load_<method>`` binding for ``rel``."""
    async def loader(instance: Any, *args: Any) -> Any:
        return await load_related(registry, instance, rel, *args)

    loader.__name__ = rel.method if rel.kind.multi_valued else f"load_{rel.method}"
    loader.__qualname__ = f"{rel.owner}.{loader.__name__}"
    return loader


def make_remover(registry: Registry, rel: Relationship):
    """Build the ``remove_<method>`` binding for single-valued ``rel``."""
    async def remover(instance: Any) -> bool:
        return await remove_relation(registry, instance, rel)

    remover.__name__ = f"remove_{rel.method}"
    remover.__qualname__ = f"{rel.owner}.{remover.__name__}"
    return remover
