"""Schema node shared by every kind of the DSL.

A Schema is a small tree describing one JSON value. Each node keeps its
JSON-Schema keywords in an ordered mapping keyed by the OpenAPI 3.1 keyword
name, so the serializer can emit exactly what was set and nothing else.
Kind-specific refinements (string length, numeric bounds, ...) live in
``opforge.schema.types``; composition nodes in ``opforge.schema.composition``.
"""

import copy
import re
from types import MappingProxyType
from typing import Any, Mapping

from pydantic import BaseModel

from opforge.errors import SchemaConstructionError, SchemaValidationError

COMPONENT_KEY_PATTERN = re.compile(r"^[A-Za-z0-9._-]+$")

REQUIRED = "required"
OPTIONAL = "optional"

COMPOSITION_SLOTS = ("oneOf", "allOf", "anyOf", "not")


class Example(BaseModel):
    """A named example (OpenAPI Example Object)."""

    summary: str = ""
    description: str = ""
    value: Any = None
    external_value: str = ""

    def to_openapi(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        if self.summary:
            data["summary"] = self.summary
        if self.description:
            data["description"] = self.description
        if self.value is not None:
            data["value"] = copy.deepcopy(self.value)
        if self.external_value:
            data["externalValue"] = self.external_value
        return data


class Schema:
    """Base node. ``type_name`` is empty for composition and reference nodes."""

    type_name = ""

    def __init__(self):
        self._keywords: dict[str, Any] = {}
        self._examples: dict[str, Example] | None = None
        self._composition: dict[str, list["Schema"]] = {}
        self._presence: str | None = None
        self._nullable = False
        self._frozen = False

    def __repr__(self) -> str:
        kind = self.type_name or "composition"
        return f"<{type(self).__name__} {kind} {dict(self._keywords)!r}>"

    # -- state ------------------------------------------------------------

    def _check_mutable(self) -> None:
        if self._frozen:
            raise SchemaConstructionError(
                f"{type(self).__name__} is frozen and can no longer be modified"
            )

    def _set(self, keyword: str, value: Any) -> "Schema":
        self._check_mutable()
        self._keywords[keyword] = value
        return self

    def freeze(self) -> "Schema":
        """Make this node and all of its children immutable."""
        for child in self.children():
            child.freeze()
        self._frozen = True
        return self

    def copy(self) -> "Schema":
        """Deep copy that is mutable again, whatever the state of the original."""
        clone = copy.deepcopy(self)
        clone._thaw()
        return clone

    def _thaw(self) -> None:
        self._frozen = False
        for child in self.children():
            child._thaw()

    @property
    def frozen(self) -> bool:
        return self._frozen

    def children(self) -> list["Schema"]:
        nodes: list[Schema] = []
        for slot in COMPOSITION_SLOTS:
            nodes.extend(self._composition.get(slot, []))
        return nodes

    # -- read access --------------------------------------------------------

    @property
    def keywords(self) -> Mapping[str, Any]:
        return MappingProxyType(self._keywords)

    @property
    def named_examples(self) -> Mapping[str, Example] | None:
        if self._examples is None:
            return None
        return MappingProxyType(self._examples)

    @property
    def composition(self) -> Mapping[str, list["Schema"]]:
        return MappingProxyType(self._composition)

    @property
    def presence(self) -> str | None:
        return self._presence

    @property
    def is_required(self) -> bool:
        return self._presence == REQUIRED

    @property
    def is_optional(self) -> bool:
        return self._presence == OPTIONAL

    @property
    def is_nullable(self) -> bool:
        return self._nullable

    @property
    def has_example(self) -> bool:
        return "example" in self._keywords

    # -- common refinements -------------------------------------------------

    def required(self) -> "Schema":
        self._check_mutable()
        if self._presence == OPTIONAL:
            raise SchemaConstructionError("schema is already marked optional; cannot mark it required")
        self._presence = REQUIRED
        return self

    def optional(self) -> "Schema":
        self._check_mutable()
        if self._presence == REQUIRED:
            raise SchemaConstructionError("schema is already marked required; cannot mark it optional")
        self._presence = OPTIONAL
        return self

    def description(self, text: str) -> "Schema":
        return self._set("description", text)

    def title(self, text: str) -> "Schema":
        return self._set("title", text)

    def default(self, value: Any) -> "Schema":
        return self._set("default", value)

    def example(self, value: Any) -> "Schema":
        return self._set("example", value)

    def examples(self, mapping: Mapping[str, Any]) -> "Schema":
        """Set named examples; plain values are wrapped as ``Example(value=...)``."""
        self._check_mutable()
        named: dict[str, Example] = {}
        for name, item in mapping.items():
            if not isinstance(name, str) or not COMPONENT_KEY_PATTERN.match(name):
                raise SchemaConstructionError(f"invalid example name: {name!r}")
            if isinstance(item, Example):
                named[name] = item
            elif isinstance(item, Mapping) and set(item) <= {"summary", "description", "value", "external_value"}:
                named[name] = Example(**item)
            else:
                named[name] = Example(value=item)
        self._examples = named
        return self

    def const(self, value: Any) -> "Schema":
        return self._set("const", value)

    def enum(self, *values: Any) -> "Schema":
        if not values:
            raise SchemaConstructionError("enum requires at least one value")
        return self._set("enum", list(values))

    def nullable(self) -> "Schema":
        self._check_mutable()
        if not self.type_name:
            raise SchemaConstructionError("nullable() requires a typed schema")
        self._nullable = True
        return self

    def deprecated(self) -> "Schema":
        return self._set("deprecated", True)

    def read_only(self) -> "Schema":
        if self._keywords.get("writeOnly"):
            raise SchemaConstructionError("schema cannot be both readOnly and writeOnly")
        return self._set("readOnly", True)

    def write_only(self) -> "Schema":
        if self._keywords.get("readOnly"):
            raise SchemaConstructionError("schema cannot be both readOnly and writeOnly")
        return self._set("writeOnly", True)

    # -- composition ----------------------------------------------------------

    def _set_slot(self, slot: str, schemas: tuple) -> "Schema":
        self._check_mutable()
        if self.type_name:
            raise SchemaConstructionError(
                f"{slot} cannot be combined with explicit type {self.type_name!r}"
            )
        if not schemas:
            raise SchemaConstructionError(f"{slot} requires at least one schema")
        for index, item in enumerate(schemas):
            if not isinstance(item, Schema):
                raise SchemaConstructionError(
                    f"{slot} entry at index {index} is not a Schema: {type(item).__name__}"
                )
        if slot in self._composition:
            raise SchemaConstructionError(f"{slot} is already set")
        self._composition[slot] = list(schemas)
        return self

    def one_of(self, *schemas: "Schema") -> "Schema":
        return self._set_slot("oneOf", schemas)

    def all_of(self, *schemas: "Schema") -> "Schema":
        return self._set_slot("allOf", schemas)

    def any_of(self, *schemas: "Schema") -> "Schema":
        return self._set_slot("anyOf", schemas)

    def not_(self, schema: "Schema") -> "Schema":
        return self._set_slot("not", (schema,))

    # -- delegation -------------------------------------------------------------

    def to_openapi(self) -> dict[str, Any]:
        from opforge.schema.serialize import to_openapi

        return to_openapi(self)

    def validate(self, value: Any, components: Mapping[str, "Schema"] | None = None) -> None:
        from opforge.schema.validate import validate

        validate(self, value, components=components)

    def is_valid(self, value: Any) -> bool:
        try:
            self.validate(value)
        except SchemaValidationError:
            return False
        return True
