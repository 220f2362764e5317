"""Immutable records produced by the operation builder."""

from types import MappingProxyType
from typing import Any, Iterable, Iterator, Mapping

from pydantic import BaseModel, ConfigDict, Field, field_validator

from opforge.errors import BuilderError
from opforge.schema.base import Schema
from opforge.security import SecurityRequirements

HTTP_METHODS = ("GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS", "TRACE")


class ResponseDefinition(BaseModel):
    """One documented response of an operation."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    code: int
    description: str
    content_schema: Schema | None = None
    headers: Mapping[str, Schema] = Field(default_factory=dict, validate_default=True)

    @field_validator("headers", mode="after")
    @classmethod
    def _read_only_headers(cls, value: Mapping[str, Schema]) -> Mapping[str, Schema]:
        return MappingProxyType(dict(value))


class CompiledOperation(BaseModel):
    """Frozen operation ready for emission and runtime binding.

    Every schema it holds is a private frozen copy. ``security`` is None when
    the operation inherits the document-level requirements.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    method: str
    path: str
    summary: str = ""
    description: str = ""
    operation_id: str = ""
    deprecated: bool = False
    tags: tuple[str, ...] = ()
    success_code: int = 200
    params_schema: Schema | None = None
    query_schema: Schema | None = None
    body_schema: Schema | None = None
    response_schema: Schema | None = None
    header_schema: Schema | None = None
    security: SecurityRequirements | None = None
    responses: Mapping[int, ResponseDefinition] = Field(default_factory=dict, validate_default=True)
    handler: Any = None

    @field_validator("responses", mode="after")
    @classmethod
    def _read_only_responses(cls, value: Mapping[int, ResponseDefinition]) -> Mapping[int, ResponseDefinition]:
        return MappingProxyType(dict(value))

    @property
    def key(self) -> tuple[str, str]:
        return self.method, self.path


class OperationSet:
    """Ordered collection of compiled operations, in registration order."""

    def __init__(self, operations: Iterable[CompiledOperation] = ()):
        self._operations: list[CompiledOperation] = []
        for op in operations:
            self.add(op)

    def add(self, op: CompiledOperation) -> "OperationSet":
        if not isinstance(op, CompiledOperation):
            raise BuilderError(f"expected a CompiledOperation, got {type(op).__name__}")
        if any(existing.key == op.key for existing in self._operations):
            raise BuilderError(f"duplicate operation {op.method} {op.path}")
        self._operations.append(op)
        return self

    def __iter__(self) -> Iterator[CompiledOperation]:
        return iter(self._operations)

    def __len__(self) -> int:
        return len(self._operations)

    def __contains__(self, op: object) -> bool:
        return op in self._operations
