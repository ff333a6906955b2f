"""
keyrel models — declared entities persisted into a key-value store.

Exports:
- Model: base class for declared entities
- Registry: schema registry (register_all + finalize)
- AttributeType / RelationshipKind: attribute and relation shapes
- signals: lifecycle signals
"""

from .fields import (
    Accessor,
    AttributeType,
    InverseRef,
    Relationship,
    RelationshipKind,
)
from .registry import ModelSchema, Registry
from .base import Model
from .signals import (
    Signal,
    class_prepared,
    post_delete,
    post_save,
    pre_delete,
    pre_save,
    receiver,
)

__all__ = [
    "Model",
    "Registry",
    "ModelSchema",
    "AttributeType",
    "RelationshipKind",
    "Relationship",
    "InverseRef",
    "Accessor",
    "Signal",
    "pre_save",
    "post_save",
    "pre_delete",
    "post_delete",
    "class_prepared",
    "receiver",
]
