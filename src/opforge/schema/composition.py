"""Composition (oneOf / allOf / anyOf / not) and reference nodes."""

from opforge.errors import SchemaConstructionError
from opforge.schema.base import COMPONENT_KEY_PATTERN, Schema

COMPONENT_SCHEMA_PREFIX = "#/components/schemas/"


class CompositionSchema(Schema):
    """Untyped node carrying one or more composition slots.

    Slots can be chained, e.g. ``one_of(a, b).not_(c)``; each slot may be
    set once.
    """

    def __init__(self, slot: str, schemas: tuple):
        super().__init__()
        self._set_slot(slot, schemas)

    @property
    def slots(self) -> list[str]:
        return list(self._composition)


class RefSchema(Schema):
    """Reference to a schema registered under ``components.schemas``.

    Cyclic shapes are expressed through references so the in-memory tree
    stays acyclic.
    """

    def __init__(self, name: str):
        super().__init__()
        if not isinstance(name, str) or not COMPONENT_KEY_PATTERN.match(name):
            raise SchemaConstructionError(
                f"reference name {name!r} must match pattern ^[A-Za-z0-9._-]+$"
            )
        self.name = name

    @property
    def pointer(self) -> str:
        return COMPONENT_SCHEMA_PREFIX + self.name

    def _set_slot(self, slot: str, schemas: tuple) -> Schema:
        raise SchemaConstructionError(f"{slot} cannot be attached to a $ref node")

    def __repr__(self) -> str:
        return f"<RefSchema {self.pointer}>"
