"""Error taxonomy.

Every failure raised by opforge derives from OpforgeError so the CLI can
render any of them as a single line. Each subsystem raises its own kind at
its own boundary.
"""

from typing import Any


class OpforgeError(Exception):
    """Base class for all opforge errors."""


class SchemaConstructionError(OpforgeError):
    """Invalid use of the schema DSL (conflicting constraints, bad regex, ...)."""


class BuilderError(OpforgeError):
    """Invalid operation definition caught by the builder or its freeze step."""


class EmitError(OpforgeError):
    """The emitter cannot produce a valid OpenAPI document."""


class LoadError(OpforgeError):
    """An input document is missing, unreadable, or neither YAML nor JSON."""


class ValidationError(OpforgeError):
    """A combined document does not satisfy the structural invariants."""


class FormatError(OpforgeError):
    """Unsupported output format string."""


class ConfigError(OpforgeError):
    """Invalid services configuration or combiner settings."""


class CombineError(OpforgeError):
    """The combiner cannot merge the loaded documents."""


class SchemaValidationError(OpforgeError):
    """A value does not satisfy a schema at runtime.

    Nested failures (object properties, array items, composition branches)
    are collected in ``details``.
    """

    def __init__(
        self,
        field: str,
        message: str,
        value: Any = None,
        details: list["SchemaValidationError"] | None = None,
    ):
        self.field = field
        self.message = message
        self.value = value
        self.details = details or []
        super().__init__(self._format())

    def _format(self) -> str:
        if not self.details:
            return f"Field: {self.field}, Error: {self.message}"
        return "\n".join(f"{path}: {message}" for path, message in self._leaves(""))

    def _leaves(self, prefix: str):
        path = f"{prefix}.{self.field}" if prefix and self.field else (self.field or prefix)
        if not self.details:
            yield path, self.message
            return
        for detail in self.details:
            yield from detail._leaves(path)

    def errors(self) -> list[dict[str, str]]:
        """Flatten nested failures into ``[{"field": ..., "message": ...}]``."""
        return [{"field": path, "message": message} for path, message in self._leaves("")]

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"field": self.field, "message": self.message}
        if self.details:
            data["details"] = [d.to_dict() for d in self.details]
        return data
