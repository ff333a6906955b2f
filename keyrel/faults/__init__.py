"""
keyrel faults - typed fault signals.

Every error raised by keyrel itself is a Fault with a stable code,
a domain and a severity. Store client errors (e.g. from redis) are
propagated unmodified.

Core exports:
- Fault: Base fault class
- FaultDomain: Domain enumeration
- Severity: Severity levels
"""

from .core import (
    Fault,
    FaultDomain,
    Severity,
)

from .domains import (
    ConfigFault,
    ConfigInvalidFault,
    ModelFault,
    SchemaDeclarationFault,
    ModelRegistrationFault,
    RegistryFrozenFault,
    ModelNotFoundFault,
    AttributeNotFoundFault,
    UnsavedInstanceFault,
    IdentifierReassignedFault,
    InvalidRelationValueFault,
    CascadeDeleteFault,
    StoreFault,
    StoreTypeFault,
)

__all__ = [
    # Core types
    "Fault",
    "FaultDomain",
    "Severity",

    # Config
    "ConfigFault",
    "ConfigInvalidFault",

    # Model
    "ModelFault",
    "SchemaDeclarationFault",
    "ModelRegistrationFault",
    "RegistryFrozenFault",
    "ModelNotFoundFault",
    "AttributeNotFoundFault",
    "UnsavedInstanceFault",
    "IdentifierReassignedFault",
    "InvalidRelationValueFault",
    "CascadeDeleteFault",

    # Store
    "StoreFault",
    "StoreTypeFault",
]
