"""
keyrel Model Registry — schema compilation and cross-model wiring.

A ``Registry`` is an explicit value, built once at startup:

    registry = Registry(store)
    registry.register_all([User, Post, Media])
    registry.finalize()

``register`` compiles a model's ``schema`` map into typed accessors and
relationship descriptors. ``finalize`` resolves every target model and
inverse, fills the observed-by table used by cascading delete, and
builds the relationship loader bindings. The registry is read-only
afterwards.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, FrozenSet, Iterable, List, Mapping, Optional, Set, Tuple, Type

from ..faults import (
    InvalidRelationValueFault,
    ModelNotFoundFault,
    ModelRegistrationFault,
    RegistryFrozenFault,
    SchemaDeclarationFault,
    UnsavedInstanceFault,
)
from ..keys import KeyCodec
from ..store.core import KVStore
from .fields import (
    RELATIONSHIP_KEYS,
    Accessor,
    AttributeType,
    InverseRef,
    Relationship,
)
from . import relations
from .signals import class_prepared

logger = logging.getLogger("keyrel.models.registry")

__all__ = ["Registry", "ModelSchema"]

_SCALAR_TYPES = {
    AttributeType.STRING.value: AttributeType.STRING,
    AttributeType.INTEGER.value: AttributeType.INTEGER,
}


@dataclass
class ModelSchema:
    """
    Compiled schema of one registered model.

    Attributes:
        name: Model name (key namespace)
        model_cls: The Model class
        attributes: Attribute names in declaration order, ``id`` first
        types: Attribute name -> AttributeType
        relationships: Relation method -> Relationship
        accessors: Attribute name -> Accessor
        loaders: Generated binding name -> ``fn(instance, *args)``
    """
    name: str
    model_cls: type
    attributes: List[str] = field(default_factory=list)
    types: Dict[str, AttributeType] = field(default_factory=dict)
    relationships: Dict[str, Relationship] = field(default_factory=dict)
    accessors: Dict[str, Accessor] = field(default_factory=dict)
    loaders: Dict[str, Callable[..., Any]] = field(default_factory=dict)
    _by_attr: Dict[str, Relationship] = field(default_factory=dict, repr=False)

    def track(self, attr: str, attr_type: AttributeType) -> None:
        if attr in self.types:
            raise SchemaDeclarationFault(self.name, f"attribute '{attr}' is declared twice")
        if attr != "id" and hasattr(self.model_cls, attr):
            raise SchemaDeclarationFault(self.name, f"attribute '{attr}' shadows a Model method")
        self.attributes.append(attr)
        self.types[attr] = attr_type
        self.accessors[attr] = _build_accessor(self.name, attr, attr_type)

    def add_relationship(self, rel: Relationship) -> None:
        if rel.method in self.relationships:
            raise SchemaDeclarationFault(self.name, f"relation '{rel.method}' is declared twice")
        self.track(rel.attr, rel.kind.attribute_type)
        self.relationships[rel.method] = rel
        self._by_attr[rel.attr] = rel

    def relationship_for(self, attr: str) -> Optional[Relationship]:
        """Relationship stored under attribute ``attr``, if any."""
        return self._by_attr.get(attr)


def _coerce_id(model: str, attr: str, value: Any) -> Optional[int]:
    """Related id from a bare id, a numeric string or a saved instance."""
    if value is None:
        return None
    target_schema = getattr(value, "_schema", None)
    if target_schema is not None:
        if value._id is None:
            raise UnsavedInstanceFault(target_schema.name, f"relate {model}.{attr} to")
        return value._id
    if isinstance(value, bool):
        raise InvalidRelationValueFault(model, attr, value)
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise InvalidRelationValueFault(model, attr, value) from exc


def _build_accessor(model: str, attr: str, attr_type: AttributeType) -> Accessor:
    """Compile the getter/setter pair for one attribute."""

    def getter(instance: Any) -> Any:
        return instance._values[attr]

    if attr_type is AttributeType.INTEGER:
        def convert(value: Any) -> Any:
            return int(value) if value is not None else 0
    elif attr_type.is_multi_valued:
        def convert(value: Any) -> Any:
            if value is None:
                return []
            ids = []
            for member in value:
                if member is None:
                    raise InvalidRelationValueFault(model, attr, member)
                ids.append(_coerce_id(model, attr, member))
            return ids
    elif attr_type.is_relationship:
        def convert(value: Any) -> Any:
            return _coerce_id(model, attr, value)
    else:
        def convert(value: Any) -> Any:
            return value

    def setter(instance: Any, value: Any) -> None:
        instance._values[attr] = convert(value)
        instance._dirty.add(attr)

    return Accessor(name=attr, type=attr_type, get=getter, set=setter)


class Registry:
    """
    Registry of model schemas, bound to one store.

    Holds the inverse table ``(model, method) -> InverseRef`` and the
    observed-by table ``model -> {(foreign_model, foreign_attr)}``.
    """

    def __init__(self, store: KVStore):
        self.store = store
        self.keys = KeyCodec(self.inverse_of)
        self._schemas: Dict[str, ModelSchema] = {}
        # (model, method) -> (target model, target method), both directions
        self._inverse_decls: Dict[Tuple[str, str], Tuple[str, str]] = {}
        self._inverses: Dict[Tuple[str, str], InverseRef] = {}
        self._observed_by: Dict[str, Set[Tuple[str, str]]] = {}
        self._pending: List[Relationship] = []
        self._finalized = False

    @property
    def is_finalized(self) -> bool:
        return self._finalized

    # -- registration ----------------------------------------------------

    def register(self, model_cls: Type) -> Type:
        """
        Compile and register a model class.

        Returns the class, so this can be used as a decorator.

        Raises:
            RegistryFrozenFault: after ``finalize()``
            ModelRegistrationFault: duplicate model name
            SchemaDeclarationFault: malformed ``schema`` map
        """
        name = model_cls.__dict__.get("model_name") or model_cls.__name__
        if self._finalized:
            raise RegistryFrozenFault(name)
        if name in self._schemas:
            raise ModelRegistrationFault(name, "a model with this name is already registered")

        declared = getattr(model_cls, "schema", None)
        if declared is None:
            declared = {}
        if not isinstance(declared, Mapping):
            raise SchemaDeclarationFault(
                name, f"schema must be a mapping, got {type(declared).__name__}"
            )

        schema = ModelSchema(name=name, model_cls=model_cls)
        schema.track("id", AttributeType.ID)
        pending: List[Relationship] = []

        for key, value in declared.items():
            if key in RELATIONSHIP_KEYS:
                for rel in self._parse_relationships(name, key, value):
                    schema.add_relationship(rel)
                    pending.append(rel)
            elif key == "id":
                if value != AttributeType.ID.value:
                    raise SchemaDeclarationFault(name, "'id' is implicit and always of type ID")
            elif isinstance(value, str) and value in _SCALAR_TYPES:
                schema.track(key, _SCALAR_TYPES[value])
            else:
                raise SchemaDeclarationFault(
                    name,
                    f"attribute '{key}' has unsupported type {value!r} "
                    f"(expected one of {sorted(_SCALAR_TYPES)} or a relationship key)",
                )

        for rel in pending:
            if rel.inverse_of:
                self._declare_inverse(rel)

        self._schemas[name] = schema
        self._pending.extend(pending)
        model_cls.model_name = name
        model_cls._schema = schema
        model_cls._registry = self

        logger.debug(
            f"Registered model '{name}' with attributes {schema.attributes}"
        )
        class_prepared.send_sync(sender=model_cls, schema=schema)
        return model_cls

    def register_all(self, models: Iterable[Type]) -> None:
        """Register a cohort of models, in order."""
        for model_cls in models:
            self.register(model_cls)

    @staticmethod
    def _parse_relationships(owner: str, key: str, value: Any) -> List[Relationship]:
        kind = RELATIONSHIP_KEYS[key]
        if isinstance(value, (str, bytes, Mapping)) or not isinstance(value, (list, tuple)):
            raise SchemaDeclarationFault(
                owner, f"'{key}' must be a list of relationship declarations, got {type(value).__name__}"
            )

        result = []
        for decl in value:
            if not isinstance(decl, Mapping):
                raise SchemaDeclarationFault(owner, f"'{key}' entries must be mappings, got {decl!r}")
            target = decl.get("model")
            method = decl.get("method")
            if not isinstance(target, str) or not target:
                raise SchemaDeclarationFault(owner, f"'{key}' entry {dict(decl)!r} is missing 'model'")
            if not isinstance(method, str) or not method.isidentifier():
                raise SchemaDeclarationFault(owner, f"'{key}' entry {dict(decl)!r} has no valid 'method'")
            inverse_of = decl.get("inverse_of")
            if inverse_of is not None and not isinstance(inverse_of, str):
                raise SchemaDeclarationFault(owner, f"'inverse_of' of '{method}' must be a string")
            result.append(Relationship(
                kind=kind,
                method=method,
                owner=owner,
                target=target,
                inverse_of=inverse_of,
            ))
        return result

    def _declare_inverse(self, rel: Relationship) -> None:
        forward = (rel.owner, rel.method)
        backward = (rel.target, rel.inverse_of)
        for key, other in ((forward, backward), (backward, forward)):
            existing = self._inverse_decls.get(key)
            if existing is not None and existing != other:
                raise SchemaDeclarationFault(
                    rel.owner,
                    f"'{key[0]}.{key[1]}' is declared as the inverse of both "
                    f"'{existing[0]}.{existing[1]}' and '{other[0]}.{other[1]}'",
                )
            self._inverse_decls[key] = other

    # -- finalize --------------------------------------------------------

    def finalize(self) -> None:
        """
        Resolve all cross-model references. Idempotent.

        Raises:
            ModelNotFoundFault: a relationship targets an unregistered model
            SchemaDeclarationFault: inverse kinds do not pair, or a
                generated loader name clashes with an attribute
        """
        if self._finalized:
            return

        for rel in self._pending:
            if rel.target not in self._schemas:
                raise ModelNotFoundFault(rel.target, referenced_by=f"{rel.owner}.{rel.method}")

        self._resolve_inverses()

        for rel in self._pending:
            rel.inverse = self._inverses.get((rel.owner, rel.method))
            self._observed_by.setdefault(rel.target, set()).add((rel.owner, rel.attr))
            self._build_loaders(self._schemas[rel.owner], rel)

        self._pending.clear()
        self._finalized = True
        logger.info(
            f"Registry finalized: {len(self._schemas)} model(s), "
            f"{len(self._inverses)} inverse entr{'y' if len(self._inverses) == 1 else 'ies'}"
        )

    def _declared(self, model: str, method: str) -> Optional[Relationship]:
        schema = self._schemas.get(model)
        return schema.relationships.get(method) if schema else None

    def _resolve_inverses(self) -> None:
        for (model, method), (other_model, other_method) in self._inverse_decls.items():
            own = self._declared(model, method)
            other = self._declared(other_model, other_method)
            if other is not None:
                if own is not None and other.kind is not own.kind.inverse_kind:
                    raise SchemaDeclarationFault(
                        model,
                        f"'{model}.{method}' ({own.kind.value}) cannot be the inverse of "
                        f"'{other_model}.{other_method}' ({other.kind.value})",
                    )
                if other.target != model:
                    raise SchemaDeclarationFault(
                        model,
                        f"'{other_model}.{other_method}' targets '{other.target}', "
                        f"not '{model}'",
                    )
                kind = other.kind
            elif own is not None:
                kind = own.kind.inverse_kind
            else:
                continue
            self._inverses[(model, method)] = InverseRef(other_model, other_method, kind)

    def _build_loaders(self, schema: ModelSchema, rel: Relationship) -> None:
        if rel.kind.multi_valued:
            bindings = {rel.method: relations.make_loader(self, rel)}
        else:
            bindings = {
                f"load_{rel.method}": relations.make_loader(self, rel),
                f"remove_{rel.method}": relations.make_remover(self, rel),
            }
        for binding, fn in bindings.items():
            if binding in schema.types or binding in schema.loaders or hasattr(schema.model_cls, binding):
                raise SchemaDeclarationFault(
                    schema.name, f"generated method '{binding}' clashes with an existing name"
                )
            schema.loaders[binding] = fn

    # -- lookups ---------------------------------------------------------

    def schema_for(self, name: str) -> ModelSchema:
        try:
            return self._schemas[name]
        except KeyError:
            raise ModelNotFoundFault(name) from None

    def model(self, name: str) -> Type:
        return self.schema_for(name).model_cls

    def models(self) -> Dict[str, Type]:
        return {name: schema.model_cls for name, schema in self._schemas.items()}

    def inverse_of(self, model: str, method: str) -> Optional[InverseRef]:
        """Resolved inverse of ``model.method`` (None before finalize)."""
        return self._inverses.get((model, method))

    def observed_by(self, name: str) -> FrozenSet[Tuple[str, str]]:
        """``(foreign_model, foreign_attr)`` pairs pointing at ``name``."""
        return frozenset(self._observed_by.get(name, ()))

    def __repr__(self) -> str:
        state = "finalized" if self._finalized else "open"
        return f"<Registry {state} models={sorted(self._schemas)} store={self.store.name}>"
