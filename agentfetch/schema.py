"""Typed parsing of goal and query results.

Supports Pydantic models and dataclasses. Results are generic JSON; a schema
turns them into a concrete type and reports shape mismatches as
InvalidResponseError.
"""

import dataclasses
from typing import Any, Optional, Type

from pydantic import BaseModel, TypeAdapter, ValidationError

from .errors import InvalidResponseError


def is_pydantic_model(schema: Any) -> bool:
    """Check if schema is a Pydantic model class."""
    return isinstance(schema, type) and issubclass(schema, BaseModel)


def is_dataclass(schema: Any) -> bool:
    """Check if schema is a dataclass type (not an instance)."""
    return isinstance(schema, type) and dataclasses.is_dataclass(schema)


def validate_and_parse(data: Any, schema: Optional[Type], strict: bool = False) -> Any:
    """Validate *data* against *schema*.

    Args:
        data: Decoded JSON value
        schema: Pydantic model class, dataclass, or None (data returned as-is)
        strict: Disable type coercion

    Returns:
        Model/dataclass instance, or *data* when no schema is given

    Raises:
        InvalidResponseError: If validation fails
    """
    if schema is None:
        return data
    try:
        if is_pydantic_model(schema):
            return schema.model_validate(data, strict=strict)
        if is_dataclass(schema):
            return TypeAdapter(schema).validate_python(data, strict=strict)
    except ValidationError as e:
        raise InvalidResponseError(f"Result does not match {schema.__name__}: {e}") from e
    raise TypeError(f"Unsupported schema type: {schema!r}")
