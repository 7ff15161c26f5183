"""Declarative attribute schema for resource configurations.

Each resource type declares its attributes as a pydantic model. Attribute
behaviour beyond type and validation is attached through ``attribute()``:

- force_new: changing the value requires replacing the resource
- computed: the server fills the value when the caller leaves it unset
- read_only: never supplied by the caller, only populated on read
- sensitive: write-only, never returned by the API
- nullable: an explicit null from the API clears the prior value

Validated models represent desired configuration. State read back from the
API is built with ``model_construct`` so remote values are never rejected by
input validation.
"""

from __future__ import annotations

import types
import typing
from dataclasses import dataclass, field
from typing import Annotated, Any, Literal

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, model_validator
from pydantic_core import PydanticUndefined

MAX_TAGS = 50
MAX_TAG_KEY_LENGTH = 512
MAX_TAG_VALUE_LENGTH = 256

ATTRIBUTE_FLAGS = ("force_new", "computed", "read_only", "sensitive", "nullable")


def attribute(
    default: Any = PydanticUndefined,
    *,
    force_new: bool = False,
    computed: bool = False,
    read_only: bool = False,
    sensitive: bool = False,
    nullable: bool = False,
    **kwargs: Any,
) -> Any:
    """Declare a model field with attribute behaviour flags."""
    flags = {
        "force_new": force_new,
        "computed": computed or read_only,
        "read_only": read_only,
        "sensitive": sensitive,
        "nullable": nullable,
    }
    extra = {k: v for k, v in flags.items() if v}
    return Field(default, json_schema_extra=extra or None, **kwargs)


def field_flags(model: type[BaseModel], name: str) -> dict[str, bool]:
    """Return the attribute flags declared for a field."""
    extra = model.model_fields[name].json_schema_extra
    if not isinstance(extra, dict):
        extra = {}
    return {flag: bool(extra.get(flag, False)) for flag in ATTRIBUTE_FLAGS}


def fields_with_flag(model: type[BaseModel], flag: str) -> list[str]:
    """Names of fields declaring a flag, in declaration order."""
    return [name for name in model.model_fields if field_flags(model, name)[flag]]


# =============================================================================
# Shared attribute types
# =============================================================================


def normalize_location(value: str) -> str:
    """Normalize an Azure region name ("West Europe" -> "westeurope")."""
    return value.replace(" ", "").lower()


def _validate_resource_group_name(value: str) -> str:
    if value.endswith("."):
        raise ValueError("resource group name cannot end with a period")
    return value


def _validate_tags(value: dict[str, str]) -> dict[str, str]:
    if len(value) > MAX_TAGS:
        raise ValueError(f"a maximum of {MAX_TAGS} tags can be applied to each resource")
    for key, tag_value in value.items():
        if len(key) > MAX_TAG_KEY_LENGTH:
            raise ValueError(f"the maximum length for a tag key is {MAX_TAG_KEY_LENGTH}: {key!r}")
        if len(tag_value) > MAX_TAG_VALUE_LENGTH:
            raise ValueError(
                f"the maximum length for a tag value is {MAX_TAG_VALUE_LENGTH}: {key!r}"
            )
    return value


Location = Annotated[str, Field(min_length=1), AfterValidator(normalize_location)]
ResourceGroupName = Annotated[
    str,
    Field(min_length=1, max_length=90, pattern=r"^[-\w._()]+$"),
    AfterValidator(_validate_resource_group_name),
]
Tags = Annotated[dict[str, str], AfterValidator(_validate_tags)]
NonEmptyStr = Annotated[str, Field(min_length=1)]


# =============================================================================
# Base models
# =============================================================================


class Block(BaseModel):
    """A group of attributes (a resource or a nested block)."""

    model_config = ConfigDict(extra="forbid")

    @model_validator(mode="before")
    @classmethod
    def _reject_read_only(cls, data: Any) -> Any:
        if isinstance(data, dict):
            supplied = [
                name
                for name in fields_with_flag(cls, "read_only")
                if data.get(name) is not None
            ]
            if supplied:
                raise ValueError(f"computed attributes cannot be set: {', '.join(supplied)}")
        return data


class ResourceConfig(Block):
    """Desired configuration of a managed resource.

    Every resource declares ``name``, ``resource_group_name`` and ``location``
    as force-new attributes; they form the resource identifier.
    """

    def desired_values(self, *, exclude_unset: bool = False) -> dict[str, Any]:
        """Dump the caller-settable attributes, recursing into blocks.

        ``exclude_unset`` applies to top-level attributes only: a supplied
        block is always dumped in full, defaults included.
        """
        values = strip_read_only(type(self), self.model_dump())
        if exclude_unset:
            values = {k: v for k, v in values.items() if k in self.model_fields_set}
        return values


def _block_model(annotation: Any) -> type[Block] | None:
    for candidate in _unwrap(annotation):
        if isinstance(candidate, type) and issubclass(candidate, Block):
            return candidate
    return None


def _unwrap(annotation: Any) -> list[Any]:
    """Flatten Optional/list/Annotated wrappers into the inner types."""
    origin = typing.get_origin(annotation)
    if origin is Annotated:
        return _unwrap(typing.get_args(annotation)[0])
    if origin in (typing.Union, types.UnionType, list):
        inner = []
        for arg in typing.get_args(annotation):
            if arg is not type(None):
                inner.extend(_unwrap(arg))
        return inner
    return [annotation]


def strip_read_only(model: type[Block], data: dict[str, Any]) -> dict[str, Any]:
    """Drop read-only attributes from a dumped model, recursively."""
    result = {}
    for name, value in data.items():
        if name not in model.model_fields:
            continue
        if field_flags(model, name)["read_only"]:
            continue
        nested = _block_model(model.model_fields[name].annotation)
        if nested is not None and isinstance(value, list):
            value = [strip_read_only(nested, v) if isinstance(v, dict) else v for v in value]
        elif nested is not None and isinstance(value, dict):
            value = strip_read_only(nested, value)
        result[name] = value
    return result


# =============================================================================
# Schema description
# =============================================================================


@dataclass
class AttributeSchema:
    """Description of one attribute, as exposed to an orchestrator."""

    name: str
    type: str
    required: bool = False
    optional: bool = False
    computed: bool = False
    force_new: bool = False
    sensitive: bool = False
    nullable: bool = False
    default: Any = None
    allowed_values: list[Any] | None = None
    max_items: int | None = None
    block: dict[str, AttributeSchema] | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"type": self.type}
        for flag in ("required", "optional", "computed", "force_new", "sensitive", "nullable"):
            if getattr(self, flag):
                data[flag] = True
        if self.default is not None:
            data["default"] = self.default
        if self.allowed_values is not None:
            data["allowed_values"] = self.allowed_values
        if self.max_items is not None:
            data["max_items"] = self.max_items
        if self.block is not None:
            data["block"] = {name: attr.to_dict() for name, attr in self.block.items()}
        return data


def _type_name(annotation: Any) -> tuple[str, list[Any] | None]:
    inner = _unwrap(annotation)
    origin = typing.get_origin(annotation)
    is_list = origin is list or any(
        typing.get_origin(arg) is list for arg in typing.get_args(annotation)
    )
    target = inner[0] if inner else annotation

    if typing.get_origin(target) is Literal:
        return "string", list(typing.get_args(target))
    if isinstance(target, type) and issubclass(target, Block):
        return ("list" if is_list else "block"), None
    if typing.get_origin(target) is dict or target is dict:
        return "map", None
    if target is bool:
        return "bool", None
    if target is int:
        return "int", None
    if is_list:
        return "list", None
    return "string", None


def describe_schema(model: type[Block]) -> dict[str, AttributeSchema]:
    """Build the attribute schema for a resource or block model."""
    schema: dict[str, AttributeSchema] = {}
    for name, info in model.model_fields.items():
        flags = field_flags(model, name)
        type_name, allowed = _type_name(info.annotation)
        required = info.is_required()
        default = None if required else info.get_default(call_default_factory=True)

        max_items = None
        for meta in info.metadata:
            max_length = getattr(meta, "max_length", None)
            if max_length is not None and type_name == "list":
                max_items = max_length
        if type_name == "block":
            max_items = 1

        nested = _block_model(info.annotation)
        schema[name] = AttributeSchema(
            name=name,
            type=type_name,
            required=required,
            optional=not required and not flags["read_only"],
            computed=flags["computed"],
            force_new=flags["force_new"],
            sensitive=flags["sensitive"],
            nullable=flags["nullable"],
            default=default if default not in ({}, []) else None,
            allowed_values=allowed,
            max_items=max_items,
            block=describe_schema(nested) if nested is not None else None,
        )
    return schema


def construct_state(model: type[Block], values: dict[str, Any]) -> Any:
    """Build a model instance from API values without input validation."""
    data = {}
    for name, value in values.items():
        if name not in model.model_fields:
            continue
        nested = _block_model(model.model_fields[name].annotation)
        if nested is not None and isinstance(value, list):
            value = [construct_state(nested, v) if isinstance(v, dict) else v for v in value]
        elif nested is not None and isinstance(value, dict):
            value = construct_state(nested, value)
        data[name] = value
    return model.model_construct(**data)
