"""
keyrel faults - Domain-specific fault types.

Provides concrete fault classes for each domain:
- CONFIG faults
- MODEL faults (schema registration, attribute lookup, cascade)
- STORE faults
"""

from typing import Any, Optional, Sequence

from .core import Fault, FaultDomain, Severity


# ============================================================================
# CONFIG Faults
# ============================================================================

class ConfigFault(Fault):
    """Base class for configuration faults."""

    def __init__(
        self,
        code: str,
        message: str,
        *,
        severity: Severity = Severity.FATAL,
        metadata: Optional[dict[str, Any]] = None,
    ):
        super().__init__(
            code=code,
            message=message,
            domain=FaultDomain.CONFIG,
            severity=severity,
            retryable=False,
            metadata=metadata,
        )


class ConfigInvalidFault(ConfigFault):
    """Configuration value is invalid."""

    def __init__(self, key: str, reason: str, **kwargs):
        super().__init__(
            code="CONFIG_INVALID",
            message=f"Configuration key '{key}' is invalid: {reason}",
            metadata={"key": key, "reason": reason, **kwargs.get("metadata", {})},
        )


# ============================================================================
# MODEL Faults
# ============================================================================

class ModelFault(Fault):
    """Base class for model schema and persistence faults."""

    def __init__(
        self,
        code: str,
        message: str,
        *,
        severity: Severity = Severity.ERROR,
        retryable: bool = False,
        metadata: Optional[dict[str, Any]] = None,
    ):
        super().__init__(
            code=code,
            message=message,
            domain=FaultDomain.MODEL,
            severity=severity,
            retryable=retryable,
            metadata=metadata,
        )


class SchemaDeclarationFault(ModelFault):
    """A model's schema map is malformed."""

    def __init__(self, model_name: str, reason: str, **kwargs):
        super().__init__(
            code="SCHEMA_DECLARATION_INVALID",
            message=f"Invalid schema for model '{model_name}': {reason}",
            severity=Severity.FATAL,
            metadata={"model": model_name, "reason": reason, **kwargs.get("metadata", {})},
        )


class ModelRegistrationFault(ModelFault):
    """Model registration failed."""

    def __init__(self, model_name: str, reason: str, **kwargs):
        super().__init__(
            code="MODEL_REGISTRATION_FAILED",
            message=f"Failed to register model '{model_name}': {reason}",
            severity=Severity.FATAL,
            metadata={"model": model_name, "reason": reason, **kwargs.get("metadata", {})},
        )


class RegistryFrozenFault(ModelFault):
    """Registration attempted after the registry was finalized."""

    def __init__(self, model_name: str, **kwargs):
        super().__init__(
            code="REGISTRY_FROZEN",
            message=f"Cannot register model '{model_name}': registry is already finalized",
            severity=Severity.FATAL,
            metadata={"model": model_name, **kwargs.get("metadata", {})},
        )


class ModelNotFoundFault(ModelFault):
    """Model not found in registry."""

    def __init__(self, model_name: str, referenced_by: Optional[str] = None, **kwargs):
        message = f"Model '{model_name}' not found in Registry"
        if referenced_by:
            message += f" (referenced by {referenced_by})"
        super().__init__(
            code="MODEL_NOT_FOUND",
            message=message,
            severity=Severity.FATAL,
            metadata={"model": model_name, "referenced_by": referenced_by, **kwargs.get("metadata", {})},
        )


class AttributeNotFoundFault(ModelFault):
    """An operation named an attribute that is not in the model's schema."""

    def __init__(self, model_name: str, attribute: str, **kwargs):
        super().__init__(
            code="ATTRIBUTE_NOT_FOUND",
            message=f"'{attribute}' is not an attribute of model '{model_name}'",
            metadata={"model": model_name, "attribute": attribute, **kwargs.get("metadata", {})},
        )
        self.attribute = attribute


class UnsavedInstanceFault(ModelFault):
    """The operation needs a persisted instance (one with an id)."""

    def __init__(self, model_name: str, operation: str, **kwargs):
        super().__init__(
            code="INSTANCE_NOT_PERSISTED",
            message=f"Cannot {operation} an unsaved '{model_name}' instance (id is not set)",
            metadata={"model": model_name, "operation": operation, **kwargs.get("metadata", {})},
        )


class IdentifierReassignedFault(ModelFault):
    """An instance id may be assigned at most once."""

    def __init__(self, model_name: str, current: int, requested: Any, **kwargs):
        super().__init__(
            code="IDENTIFIER_REASSIGNED",
            message=f"'{model_name}' instance already has id {current}; cannot reassign to {requested!r}",
            metadata={"model": model_name, "current": current, "requested": requested},
        )


class InvalidRelationValueFault(ModelFault):
    """A relationship attribute was given a value that is not an id."""

    def __init__(self, model_name: str, attribute: str, value: Any, **kwargs):
        super().__init__(
            code="INVALID_RELATION_VALUE",
            message=f"'{model_name}.{attribute}' holds related ids; got {value!r}",
            metadata={"model": model_name, "attribute": attribute, "value": repr(value)},
        )
        self.attribute = attribute


class CascadeDeleteFault(ModelFault):
    """One or more observer updates failed while deleting an instance."""

    def __init__(self, model_name: str, instance_id: int, errors: Sequence[BaseException], **kwargs):
        super().__init__(
            code="CASCADE_DELETE_INCOMPLETE",
            message=(
                f"Deleted {model_name}#{instance_id} but {len(errors)} backlink "
                f"update(s) failed: {'; '.join(str(e) for e in errors)}"
            ),
            retryable=True,
            metadata={"model": model_name, "id": instance_id, **kwargs.get("metadata", {})},
        )
        self.errors = list(errors)


# ============================================================================
# STORE Faults
# ============================================================================

class StoreFault(Fault):
    """Base class for key-value store faults."""

    def __init__(
        self,
        code: str,
        message: str,
        *,
        severity: Severity = Severity.ERROR,
        retryable: bool = False,
        metadata: Optional[dict[str, Any]] = None,
    ):
        super().__init__(
            code=code,
            message=message,
            domain=FaultDomain.STORE,
            severity=severity,
            retryable=retryable,
            metadata=metadata,
        )


class StoreTypeFault(StoreFault):
    """A primitive was applied to a key holding a value of another kind."""

    def __init__(self, key: str, operation: str, found: str, **kwargs):
        super().__init__(
            code="STORE_WRONG_TYPE",
            message=f"Store {operation} on key '{key}' which holds a {found} value",
            metadata={"key": key, "operation": operation, "found": found},
        )
