"""Public constructors of the schema DSL.

    from opforge.schema.dsl import object_, string, integer

    user = object_({
        "id": string().uuid().required(),
        "name": string().min(1).max(100).required(),
        "age": integer().min(0).optional(),
    })
"""

from typing import Mapping

from opforge.schema.base import Example, Schema
from opforge.schema.composition import CompositionSchema, RefSchema
from opforge.schema.types import (
    ArraySchema,
    BooleanSchema,
    IntegerSchema,
    NullSchema,
    NumberSchema,
    ObjectSchema,
    StringSchema,
)

__all__ = [
    "Example",
    "Schema",
    "all_of",
    "any_of",
    "array",
    "boolean",
    "integer",
    "not_",
    "null",
    "number",
    "object_",
    "one_of",
    "ref",
    "string",
]


def string() -> StringSchema:
    return StringSchema()


def number() -> NumberSchema:
    return NumberSchema()


def integer() -> IntegerSchema:
    return IntegerSchema()


def boolean() -> BooleanSchema:
    return BooleanSchema()


def null() -> NullSchema:
    return NullSchema()


def array(item: Schema) -> ArraySchema:
    return ArraySchema(item)


def object_(properties: Mapping[str, Schema] | None = None) -> ObjectSchema:
    return ObjectSchema(properties)


def one_of(*schemas: Schema) -> CompositionSchema:
    """Value must match exactly one of ``schemas``."""
    return CompositionSchema("oneOf", schemas)


def all_of(*schemas: Schema) -> CompositionSchema:
    """Value must match every one of ``schemas``."""
    return CompositionSchema("allOf", schemas)


def any_of(*schemas: Schema) -> CompositionSchema:
    """Value must match at least one of ``schemas``."""
    return CompositionSchema("anyOf", schemas)


def not_(schema: Schema) -> CompositionSchema:
    """Value must not match ``schema``."""
    return CompositionSchema("not", (schema,))


def ref(name: str) -> RefSchema:
    """``$ref`` to ``#/components/schemas/<name>``."""
    return RefSchema(name)
