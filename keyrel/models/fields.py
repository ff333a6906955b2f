"""
keyrel Model Fields — attribute types, relationship descriptors, accessors.

A model's schema is compiled once, at registration, into:
- an ``AttributeType`` per attribute
- a ``Relationship`` per declared relation (kind, method, attribute
  name, target model and, after finalize, the resolved inverse)
- an ``Accessor`` per attribute (getter/setter closures that the
  instance dispatches through)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Optional

__all__ = [
    "AttributeType",
    "RelationshipKind",
    "InverseRef",
    "Relationship",
    "Accessor",
    "RELATIONSHIP_KEYS",
    "initial_value",
]


class AttributeType(str, Enum):
    """Storage type of a model attribute."""
    ID = "ID"
    STRING = "String"
    INTEGER = "Integer"
    MANY_TO_MANY = "ManyToMany"
    ONE_TO_MANY = "OneToMany"
    MANY_TO_ONE = "ManyToOne"
    ONE_TO_ONE = "OneToOne"

    @property
    def is_relationship(self) -> bool:
        return self in _RELATION_TYPES

    @property
    def is_multi_valued(self) -> bool:
        return self in (AttributeType.MANY_TO_MANY, AttributeType.ONE_TO_MANY)


_RELATION_TYPES = frozenset({
    AttributeType.MANY_TO_MANY,
    AttributeType.ONE_TO_MANY,
    AttributeType.MANY_TO_ONE,
    AttributeType.ONE_TO_ONE,
})


class RelationshipKind(str, Enum):
    """The four relationship shapes."""
    MANY_TO_MANY = "ManyToMany"
    ONE_TO_MANY = "OneToMany"
    MANY_TO_ONE = "ManyToOne"
    ONE_TO_ONE = "OneToOne"

    @property
    def multi_valued(self) -> bool:
        """Whether the owning side stores a set of ids."""
        return self in (RelationshipKind.MANY_TO_MANY, RelationshipKind.ONE_TO_MANY)

    @property
    def suffix(self) -> str:
        return "_ids" if self.multi_valued else "_id"

    @property
    def inverse_kind(self) -> RelationshipKind:
        """The only kind the other side of this relation may have."""
        return _INVERSE_KINDS[self]

    @property
    def attribute_type(self) -> AttributeType:
        return AttributeType(self.value)

    def attribute_name(self, method: str) -> str:
        return method + self.suffix


_INVERSE_KINDS = {
    RelationshipKind.MANY_TO_MANY: RelationshipKind.MANY_TO_MANY,
    RelationshipKind.ONE_TO_MANY: RelationshipKind.MANY_TO_ONE,
    RelationshipKind.MANY_TO_ONE: RelationshipKind.ONE_TO_MANY,
    RelationshipKind.ONE_TO_ONE: RelationshipKind.ONE_TO_ONE,
}


# Schema keys accepted for relationship declarations
RELATIONSHIP_KEYS: Dict[str, RelationshipKind] = {
    "many_to_many": RelationshipKind.MANY_TO_MANY,
    "habtm": RelationshipKind.MANY_TO_MANY,
    "one_to_many": RelationshipKind.ONE_TO_MANY,
    "has_many": RelationshipKind.ONE_TO_MANY,
    "many_to_one": RelationshipKind.MANY_TO_ONE,
    "belongs_to": RelationshipKind.MANY_TO_ONE,
    "one_to_one": RelationshipKind.ONE_TO_ONE,
    "has_one": RelationshipKind.ONE_TO_ONE,
}


def initial_value(attr_type: AttributeType) -> Any:
    """Value an attribute holds before it is set or loaded."""
    if attr_type is AttributeType.INTEGER:
        return 0
    if attr_type.is_multi_valued:
        return []
    return None


@dataclass(frozen=True)
class InverseRef:
    """The other side of a relationship: ``model.method`` of ``kind``."""
    model: str
    method: str
    kind: RelationshipKind

    @property
    def attr(self) -> str:
        return self.kind.attribute_name(self.method)


@dataclass
class Relationship:
    """
    Relationship descriptor.

    Attributes:
        kind: Relationship shape
        method: Declared relation name (e.g. ``"posts"``)
        attr: Own on-disk attribute (``posts_ids`` / ``approver_id``)
        owner: Name of the declaring model
        target: Name of the related model
        inverse_of: Inverse method name on the target, if declared
        inverse: Resolved inverse, set during ``Registry.finalize()``
    """
    kind: RelationshipKind
    method: str
    owner: str
    target: str
    inverse_of: Optional[str] = None
    inverse: Optional[InverseRef] = None
    attr: str = field(init=False)

    def __post_init__(self) -> None:
        self.attr = self.kind.attribute_name(self.method)

    @property
    def backlink_multi_valued(self) -> bool:
        """Whether the backlink on each target is a set (else a scalar)."""
        return self.kind.inverse_kind.multi_valued

    def __repr__(self) -> str:
        inverse = f" <-> {self.inverse.model}.{self.inverse.method}" if self.inverse else ""
        return f"<Relationship {self.owner}.{self.method} {self.kind.value} -> {self.target}{inverse}>"


@dataclass(frozen=True)
class Accessor:
    """Compiled getter/setter pair for one attribute."""
    name: str
    type: AttributeType
    get: Callable[[Any], Any]
    set: Callable[[Any, Any], None]
