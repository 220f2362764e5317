"""Typed schema nodes: string, number, integer, boolean, null, array, object."""

import re
from typing import Any, Mapping

from opforge.errors import SchemaConstructionError
from opforge.schema.base import Schema

STRING_FORMATS = frozenset({
    "email", "idn-email", "uri", "uri-reference", "iri", "uuid",
    "date", "date-time", "time", "duration", "hostname", "idn-hostname",
    "ipv4", "ipv6", "byte", "binary", "password", "regex", "json-pointer",
})

NUMBER_FORMATS = frozenset({"float", "double"})
INTEGER_FORMATS = frozenset({"int32", "int64"})


def _check_count(name: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise SchemaConstructionError(f"{name} must be an integer, got {value!r}")
    if value < 0:
        raise SchemaConstructionError(f"{name} must not be negative, got {value}")
    return value


def _check_number(name: str, value: Any) -> float | int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise SchemaConstructionError(f"{name} must be a number, got {value!r}")
    return value


class StringSchema(Schema):
    type_name = "string"

    def _set_length(self, keyword: str, value: int) -> "StringSchema":
        value = _check_count(keyword, value)
        low = value if keyword == "minLength" else self._keywords.get("minLength")
        high = value if keyword == "maxLength" else self._keywords.get("maxLength")
        if low is not None and high is not None and low > high:
            raise SchemaConstructionError(f"minLength {low} is greater than maxLength {high}")
        return self._set(keyword, value)

    def min(self, length: int) -> "StringSchema":
        return self._set_length("minLength", length)

    def max(self, length: int) -> "StringSchema":
        return self._set_length("maxLength", length)

    def pattern(self, regex: str) -> "StringSchema":
        try:
            re.compile(regex)
        except (re.error, TypeError) as err:
            raise SchemaConstructionError(f"invalid regex pattern {regex!r}: {err}") from err
        return self._set("pattern", regex)

    def format(self, tag: str) -> "StringSchema":
        if tag not in STRING_FORMATS:
            raise SchemaConstructionError(f"unknown string format: {tag!r}")
        return self._set("format", tag)

    def email(self) -> "StringSchema":
        return self.format("email")

    def url(self) -> "StringSchema":
        return self.format("uri")

    def uuid(self) -> "StringSchema":
        return self.format("uuid")

    def date(self) -> "StringSchema":
        return self.format("date")

    def date_time(self) -> "StringSchema":
        return self.format("date-time")


class NumberSchema(Schema):
    type_name = "number"
    known_formats = NUMBER_FORMATS

    def _check_bounds(self, keyword: str, value: float | int) -> None:
        bounds = dict(self._keywords)
        bounds[keyword] = value
        if "minimum" in bounds and "exclusiveMinimum" in bounds:
            raise SchemaConstructionError("minimum and exclusiveMinimum cannot both be set")
        if "maximum" in bounds and "exclusiveMaximum" in bounds:
            raise SchemaConstructionError("maximum and exclusiveMaximum cannot both be set")

        low_key = "minimum" if "minimum" in bounds else "exclusiveMinimum"
        high_key = "maximum" if "maximum" in bounds else "exclusiveMaximum"
        if low_key not in bounds or high_key not in bounds:
            return
        low, high = bounds[low_key], bounds[high_key]
        exclusive = low_key.startswith("exclusive") or high_key.startswith("exclusive")
        if low > high or (exclusive and low == high):
            raise SchemaConstructionError(f"{low_key} {low} conflicts with {high_key} {high}")

    def _set_bound(self, keyword: str, value: Any) -> "NumberSchema":
        value = _check_number(keyword, value)
        self._check_bounds(keyword, value)
        return self._set(keyword, value)

    def min(self, value: float) -> "NumberSchema":
        return self._set_bound("minimum", value)

    def max(self, value: float) -> "NumberSchema":
        return self._set_bound("maximum", value)

    def exclusive_min(self, value: float) -> "NumberSchema":
        return self._set_bound("exclusiveMinimum", value)

    def exclusive_max(self, value: float) -> "NumberSchema":
        return self._set_bound("exclusiveMaximum", value)

    def positive(self) -> "NumberSchema":
        return self.exclusive_min(0)

    def negative(self) -> "NumberSchema":
        return self.exclusive_max(0)

    def multiple_of(self, value: float) -> "NumberSchema":
        value = _check_number("multipleOf", value)
        if value <= 0:
            raise SchemaConstructionError(f"multipleOf must be greater than 0, got {value}")
        return self._set("multipleOf", value)

    def format(self, tag: str) -> "NumberSchema":
        if tag not in self.known_formats:
            raise SchemaConstructionError(f"unknown {self.type_name} format: {tag!r}")
        return self._set("format", tag)


class IntegerSchema(NumberSchema):
    type_name = "integer"
    known_formats = INTEGER_FORMATS


class BooleanSchema(Schema):
    type_name = "boolean"


class NullSchema(Schema):
    type_name = "null"


class ArraySchema(Schema):
    type_name = "array"

    def __init__(self, item: Schema):
        super().__init__()
        if not isinstance(item, Schema):
            raise SchemaConstructionError(f"array item must be a Schema, got {type(item).__name__}")
        self.item = item

    def children(self) -> list[Schema]:
        nodes = [self.item]
        contains = self._keywords.get("contains")
        if contains is not None:
            nodes.append(contains)
        return nodes

    def _set_count(self, keyword: str, value: int) -> "ArraySchema":
        value = _check_count(keyword, value)
        low = value if keyword == "minItems" else self._keywords.get("minItems")
        high = value if keyword == "maxItems" else self._keywords.get("maxItems")
        if low is not None and high is not None and low > high:
            raise SchemaConstructionError(f"minItems {low} is greater than maxItems {high}")
        return self._set(keyword, value)

    def min_items(self, count: int) -> "ArraySchema":
        return self._set_count("minItems", count)

    def max_items(self, count: int) -> "ArraySchema":
        return self._set_count("maxItems", count)

    def unique_items(self) -> "ArraySchema":
        return self._set("uniqueItems", True)

    def contains(self, schema: Schema) -> "ArraySchema":
        if not isinstance(schema, Schema):
            raise SchemaConstructionError(f"contains must be a Schema, got {type(schema).__name__}")
        return self._set("contains", schema)


class ObjectSchema(Schema):
    """Object node with ordered properties.

    A property belongs to the required set only when the child schema was
    marked ``required()``.
    """

    type_name = "object"

    def __init__(self, properties: Mapping[str, Schema] | None = None):
        super().__init__()
        self.properties: dict[str, Schema] = {}
        for name, child in (properties or {}).items():
            self._add_property(name, child)

    def _add_property(self, name: str, child: Any) -> None:
        if not isinstance(name, str) or not name:
            raise SchemaConstructionError(f"property name must be a non-empty string, got {name!r}")
        if not isinstance(child, Schema):
            raise SchemaConstructionError(
                f"property {name!r} must be a Schema, got {type(child).__name__}"
            )
        self.properties[name] = child

    def add_property(self, name: str, child: Schema) -> "ObjectSchema":
        self._check_mutable()
        self._add_property(name, child)
        return self

    def children(self) -> list[Schema]:
        nodes = list(self.properties.values())
        extra = self._keywords.get("additionalProperties")
        if isinstance(extra, Schema):
            nodes.append(extra)
        return nodes

    @property
    def required_names(self) -> list[str]:
        return [name for name, child in self.properties.items() if child.is_required]

    def _set_count(self, keyword: str, value: int) -> "ObjectSchema":
        value = _check_count(keyword, value)
        low = value if keyword == "minProperties" else self._keywords.get("minProperties")
        high = value if keyword == "maxProperties" else self._keywords.get("maxProperties")
        if low is not None and high is not None and low > high:
            raise SchemaConstructionError(f"minProperties {low} is greater than maxProperties {high}")
        return self._set(keyword, value)

    def min_properties(self, count: int) -> "ObjectSchema":
        return self._set_count("minProperties", count)

    def max_properties(self, count: int) -> "ObjectSchema":
        return self._set_count("maxProperties", count)

    def additional_properties(self, allowed: bool | Schema) -> "ObjectSchema":
        if not isinstance(allowed, (bool, Schema)):
            raise SchemaConstructionError("additionalProperties must be a bool or a Schema")
        return self._set("additionalProperties", allowed)
