"""
Validator abstraction over pydantic.

A *schema* is anything ``pydantic.TypeAdapter`` accepts: a ``BaseModel``
subclass, ``List[Model]``, ``Annotated[str, Field(min_length=1)]``, a plain
``int``. The rest of the package only talks to this module, which offers
validation into a ``ValidationOutcome``, serialization of decoded data and
reflection into JSON schema.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Type, Union

from pydantic import BaseModel, TypeAdapter, create_model
from pydantic import ValidationError as PydanticValidationError
from pydantic_core import PydanticSerializationError, to_jsonable_python

from .exceptions import RouteConfigurationError

logger = logging.getLogger(__name__)

REF_TEMPLATE = "#/components/schemas/{model}"


@dataclass(frozen=True)
class Issue:
    """One validation problem, addressed by its path inside the validated value."""

    path: List[str]
    code: str
    message: str
    input: Any = None


@dataclass(frozen=True)
class Success:
    data: Any


@dataclass(frozen=True)
class Failure:
    issues: List[Issue] = field(default_factory=list)


ValidationOutcome = Union[Success, Failure]

# TypeAdapter construction is the expensive part; keep one per schema object.
_adapters: Dict[int, Tuple[Any, TypeAdapter]] = {}


def adapter(schema: Any) -> TypeAdapter:
    cached = _adapters.get(id(schema))
    if cached is not None and cached[0] is schema:
        return cached[1]
    type_adapter = TypeAdapter(schema)
    _adapters[id(schema)] = (schema, type_adapter)
    return type_adapter


def jsonable(value: Any) -> Any:
    """Best-effort conversion of arbitrary input into something JSON can carry."""
    try:
        return to_jsonable_python(value, fallback=repr)
    except (PydanticSerializationError, ValueError):
        return repr(value)


def issues_from_error(error: PydanticValidationError) -> List[Issue]:
    return [
        Issue(
            path=[str(part) for part in detail["loc"]],
            code=detail["type"],
            message=detail["msg"],
            input=jsonable(detail.get("input")),
        )
        for detail in error.errors(include_url=False)
    ]


def validate(schema: Any, value: Any) -> ValidationOutcome:
    """Validate ``value`` against ``schema`` and return decoded data or issues."""
    try:
        return Success(adapter(schema).validate_python(value))
    except PydanticValidationError as error:
        return Failure(issues_from_error(error))


def dump(schema: Any, data: Any) -> Any:
    """Serialize decoded data into JSON-compatible primitives using the schema."""
    return adapter(schema).dump_python(data, mode="json", by_alias=True)


def to_mapping(data: Any) -> Dict[str, Any]:
    """Decoded object-group data as a plain dict keyed by wire names."""
    if isinstance(data, BaseModel):
        return data.model_dump(by_alias=True)
    return dict(data)


def is_model(schema: Any) -> bool:
    return isinstance(schema, type) and issubclass(schema, BaseModel)


def reflect(schema: Any, definitions: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Reflect a schema into JSON schema.

    Nested model definitions are moved into ``definitions`` and referenced
    through ``#/components/schemas/<Name>``. A name already bound to a
    different definition raises ``RouteConfigurationError``.
    """
    result = adapter(schema).json_schema(ref_template=REF_TEMPLATE)
    nested = result.pop("$defs", {})
    if definitions is not None:
        for name, definition in nested.items():
            if definitions.setdefault(name, definition) != definition:
                raise RouteConfigurationError(
                    f"Two different schemas are published as component '{name}'; rename one of the models"
                )
    return result


def is_binary(json_schema: Dict[str, Any]) -> bool:
    if json_schema.get("format") == "binary":
        return True
    items = json_schema.get("items")
    if isinstance(items, dict) and is_binary(items):
        return True
    return any(is_binary(option) for option in json_schema.get("anyOf", []))


def has_binary_property(schema: Any) -> bool:
    """True when an object schema carries a file upload in any property."""
    properties = reflect(schema).get("properties", {})
    return any(is_binary(prop) for prop in properties.values())


def merge_objects(local: Optional[Type[BaseModel]], shared: Optional[Type[BaseModel]]) -> Optional[Type[BaseModel]]:
    """Combine a route's object schema with an application-wide one.

    The route's fields win when both declare the same name.
    """
    if shared is None:
        return local
    if local is None:
        return shared
    if not (is_model(local) and is_model(shared)):
        raise TypeError("Only pydantic models can be merged with global request params")
    return create_model(local.__name__, __base__=(local, shared))
