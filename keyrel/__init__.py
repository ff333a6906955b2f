"""
keyrel - object-to-key-value mapping for asyncio

Declared entity models persisted into a key-value store:
- Models: String / Integer attributes and four relationship kinds
- Backlinks: every relationship stored on both sides and kept consistent
- Stores: in-memory and Redis backends behind one primitive surface
- Faults: structured error handling with fault domains
- Config: layered YAML/JSON/environment configuration
"""

__version__ = "0.1.0"

# ============================================================================
# Models
# ============================================================================

from .models import (
    Model,
    Registry,
    ModelSchema,
    AttributeType,
    RelationshipKind,
    Relationship,
    InverseRef,
    pre_save,
    post_save,
    pre_delete,
    post_delete,
    class_prepared,
    receiver,
)
from .keys import KeyCodec

# ============================================================================
# Stores & Config
# ============================================================================

from .store import KVStore, StoreStats, MemoryStore, RedisStore
from .config import StoreConfig, ConfigLoader, create_store

# ============================================================================
# Faults
# ============================================================================

from .faults import (
    Fault,
    FaultDomain,
    Severity,
    ConfigInvalidFault,
    SchemaDeclarationFault,
    ModelRegistrationFault,
    RegistryFrozenFault,
    ModelNotFoundFault,
    AttributeNotFoundFault,
    UnsavedInstanceFault,
    IdentifierReassignedFault,
    InvalidRelationValueFault,
    CascadeDeleteFault,
    StoreTypeFault,
)

__all__ = [
    "__version__",
    # Models
    "Model",
    "Registry",
    "ModelSchema",
    "AttributeType",
    "RelationshipKind",
    "Relationship",
    "InverseRef",
    "KeyCodec",
    "pre_save",
    "post_save",
    "pre_delete",
    "post_delete",
    "class_prepared",
    "receiver",
    # Stores & config
    "KVStore",
    "StoreStats",
    "MemoryStore",
    "RedisStore",
    "StoreConfig",
    "ConfigLoader",
    "create_store",
    # Faults
    "Fault",
    "FaultDomain",
    "Severity",
    "ConfigInvalidFault",
    "SchemaDeclarationFault",
    "ModelRegistrationFault",
    "RegistryFrozenFault",
    "ModelNotFoundFault",
    "AttributeNotFoundFault",
    "UnsavedInstanceFault",
    "IdentifierReassignedFault",
    "InvalidRelationValueFault",
    "CascadeDeleteFault",
    "StoreTypeFault",
]
