"""Schema validation adapter bridging pydantic v2 and pydantic.v1.

Schemas are authored as pydantic v2 models. Some consumers (tool-calling
integrations that expect the older object shape and its JSON schema
export) still need a ``pydantic.v1`` model, so each v2 model is wrapped in
a CompatibleSchema that carries a structurally equivalent legacy model.

Acceptance and rejection are always decided by the v2 model. The legacy
model only describes the shape for outside consumers.
"""

from __future__ import annotations

import enum
import functools
import inspect
import logging
import types
import typing
import uuid
from dataclasses import dataclass, field
from typing import Annotated, Any, Generic, Literal, Optional, TypeVar, Union

from pydantic import AnyUrl, BaseModel, ConfigDict, EmailStr, Field, HttpUrl, create_model
from pydantic import v1 as pydantic_v1

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

# Constraint attribute names understood by the translator. annotated_types
# markers (MinLen, Ge, ...) and pydantic's own metadata objects all expose
# their bound under one of these names.
_STRING_BOUNDS = ("min_length", "max_length", "pattern")
_NUMBER_BOUNDS = ("gt", "ge", "lt", "le")


class _LegacyConfig:
    allow_population_by_field_name = True


class _PermissiveConfig:
    extra = pydantic_v1.Extra.allow


def _collect_bounds(metadata: list[Any], names: tuple[str, ...]) -> dict[str, Any]:
    bounds: dict[str, Any] = {}
    for item in metadata:
        for name in names:
            value = getattr(item, name, None)
            if value is not None:
                bounds[name] = value
    return bounds


def _is_subclass(annotation: Any, base: type) -> bool:
    return inspect.isclass(annotation) and issubclass(annotation, base)


class _LegacyTranslator:
    """Recursively rebuilds a v2 model as a pydantic.v1 model."""

    def __init__(self) -> None:
        self.diagnostics: list[str] = []
        self._models: dict[type[BaseModel], type[pydantic_v1.BaseModel]] = {}
        self._building: set[type[BaseModel]] = set()

    def model(self, model: type[BaseModel]) -> type[pydantic_v1.BaseModel]:
        if model in self._models:
            return self._models[model]
        self._building.add(model)

        definitions: dict[str, Any] = {}
        for name, info in model.model_fields.items():
            legacy_type = self.node(info.annotation, list(info.metadata), f"{model.__name__}.{name}")
            definitions[name] = (legacy_type, self._field(name, info))

        legacy = pydantic_v1.create_model(
            model.__name__, __config__=_LegacyConfig, **definitions,
        )
        legacy.__doc__ = model.__doc__
        self._building.discard(model)
        self._models[model] = legacy
        return legacy

    def node(self, annotation: Any, metadata: list[Any], path: str) -> Any:
        origin = typing.get_origin(annotation)

        if origin is Annotated:
            base, *extra = typing.get_args(annotation)
            return self.node(base, [*metadata, *extra], path)

        if annotation is Any or annotation is type(None):
            return annotation
        if annotation is EmailStr:
            return pydantic_v1.EmailStr
        if annotation is HttpUrl or _is_subclass(annotation, HttpUrl):
            return pydantic_v1.HttpUrl
        if annotation is AnyUrl or _is_subclass(annotation, AnyUrl):
            return pydantic_v1.AnyUrl
        if annotation is uuid.UUID:
            return uuid.UUID
        if _is_subclass(annotation, BaseModel):
            if annotation in self._building:
                return self._unsupported(annotation, path, "recursive model")
            return self.model(annotation)
        if _is_subclass(annotation, enum.Enum):
            return annotation
        if annotation is bool:
            return bool
        if annotation is str:
            return self._string(metadata)
        if annotation is int or annotation is float:
            return self._number(annotation, metadata)

        if origin is Literal:
            return annotation
        if origin is Union or origin is types.UnionType:
            members = tuple(self.node(arg, metadata, path) for arg in typing.get_args(annotation))
            return Union[members]
        if origin is list or annotation is list:
            args = typing.get_args(annotation)
            item = self.node(args[0], [], f"{path}[]") if args else Any
            bounds = _collect_bounds(metadata, ("min_length", "max_length"))
            if bounds:
                return pydantic_v1.conlist(
                    item,
                    min_items=bounds.get("min_length"),
                    max_items=bounds.get("max_length"),
                )
            return typing.List[item]
        if origin is dict or annotation is dict:
            args = typing.get_args(annotation)
            if args:
                return typing.Dict[self.node(args[0], [], path), self.node(args[1], [], path)]
            return typing.Dict[str, Any]

        return self._unsupported(annotation, path, "unsupported node kind")

    def _string(self, metadata: list[Any]) -> Any:
        bounds = _collect_bounds(metadata, _STRING_BOUNDS)
        if not bounds:
            return str
        return pydantic_v1.constr(
            min_length=bounds.get("min_length"),
            max_length=bounds.get("max_length"),
            regex=bounds.get("pattern"),
        )

    def _number(self, kind: type, metadata: list[Any]) -> Any:
        bounds = _collect_bounds(metadata, _NUMBER_BOUNDS)
        if not bounds:
            return kind
        builder = pydantic_v1.conint if kind is int else pydantic_v1.confloat
        return builder(**bounds)

    def _field(self, name: str, info: Any) -> Any:
        kwargs: dict[str, Any] = {}
        if info.description:
            kwargs["description"] = info.description
        if info.alias and info.alias != name:
            kwargs["alias"] = info.alias
        if info.is_required():
            return pydantic_v1.Field(..., **kwargs)
        if info.default_factory is not None:
            return pydantic_v1.Field(default_factory=info.default_factory, **kwargs)
        return pydantic_v1.Field(info.default, **kwargs)

    def _unsupported(self, annotation: Any, path: str, reason: str) -> Any:
        message = f"{path}: {reason} ({annotation!r}), accepting any value"
        logger.warning("Legacy schema translation: %s", message)
        self.diagnostics.append(message)
        return Any


def _partial_model(model: type[BaseModel]) -> type[BaseModel]:
    """Build a v2 model with every field optional, keeping field constraints."""
    definitions: dict[str, Any] = {}
    for name, info in model.model_fields.items():
        annotation = info.annotation
        if info.metadata:
            annotation = Annotated[(annotation, *info.metadata)]
        definitions[name] = (Optional[annotation], Field(default=None, alias=info.alias))
    return create_model(
        f"Partial{model.__name__}",
        __config__=ConfigDict(populate_by_name=True),
        **definitions,
    )


@dataclass(frozen=True)
class CompatibleSchema(Generic[ModelT]):
    """A v2 schema paired with its pydantic.v1 equivalent.

    Attributes:
        schema: The pydantic v2 model. Source of truth for validation.
        legacy_schema: Structurally equivalent pydantic.v1 model.
        partial_schema: v2 model with every field optional, used for
            streamed partial objects.
        diagnostics: Non-fatal translation warnings.
    """

    schema: type[ModelT]
    legacy_schema: type[pydantic_v1.BaseModel]
    partial_schema: type[BaseModel]
    diagnostics: tuple[str, ...] = field(default=())

    @property
    def name(self) -> str:
        return self.schema.__name__

    @property
    def infer_type(self) -> type[ModelT]:
        """The static type produced by validate()."""
        return self.schema

    def validate(self, payload: Any) -> ModelT:
        """Validate a complete payload with the v2 model.

        Raises:
            pydantic.ValidationError: If the payload does not match.
        """
        return self.schema.model_validate(payload)

    def validate_partial(self, payload: Any) -> dict[str, Any]:
        """Validate the fields present in a streamed partial object.

        Returns:
            Mapping of present, non-null field names to validated values.

        Raises:
            pydantic.ValidationError: If any present field is invalid.
        """
        partial = self.partial_schema.model_validate(payload)
        present: dict[str, Any] = {}
        for name in self.partial_schema.model_fields:
            value = getattr(partial, name)
            if name in partial.model_fields_set and value is not None:
                present[name] = value
        return present

    def tool_parameters(self, legacy: bool = True) -> dict[str, Any]:
        """JSON schema describing this contract for tool-calling integrations."""
        if legacy:
            return self.legacy_schema.schema()
        return self.schema.model_json_schema()


@functools.lru_cache(maxsize=None)
def create_streaming_schema(model: type[ModelT]) -> CompatibleSchema[ModelT]:
    """Wrap a pydantic v2 model in a CompatibleSchema.

    Translation failures never raise. They are logged and the legacy side
    degrades to a permissive model that accepts any object.
    """
    try:
        translator = _LegacyTranslator()
        legacy = translator.model(model)
        diagnostics = tuple(translator.diagnostics)
    except Exception:
        logger.exception(
            "Could not translate %s to a legacy schema, using permissive fallback",
            model.__name__,
        )
        legacy = pydantic_v1.create_model(model.__name__, __config__=_PermissiveConfig)
        diagnostics = (f"{model.__name__}: translation failed, permissive fallback",)

    return CompatibleSchema(
        schema=model,
        legacy_schema=legacy,
        partial_schema=_partial_model(model),
        diagnostics=diagnostics,
    )
