"""Fluent operation builder.

    op = (
        operation()
        .get("/users/{id}")
        .summary("Get user")
        .tags("users")
        .with_params(object_({"id": string().required()}))
        .with_response(user_schema)
        .with_crud_errors()
        .require_auth("bearerAuth")
        .handler(get_user)
    )

Tags, responses and security accumulate; every other setter overwrites.
``handler()`` runs the freeze step and returns a CompiledOperation.
"""

import re
from http import HTTPStatus
from typing import Any, Mapping

from opforge.errors import BuilderError
from opforge.operations.compiled import HTTP_METHODS, CompiledOperation, ResponseDefinition
from opforge.operations.error_schemas import VALIDATION_ERROR_SCHEMA, standard_error
from opforge.schema.base import Schema
from opforge.schema.types import ObjectSchema
from opforge.security import SecurityRequirements, no_auth

LEGACY_RESPONSE_DESCRIPTION = "Successful response"

PLACEHOLDER_RE = re.compile(r"\{([^{}]*)\}")


def path_placeholders(path: str) -> list[str]:
    """Names of the ``{name}`` segments of ``path``, in order."""
    return PLACEHOLDER_RE.findall(path)


def check_path(path: str) -> list[str]:
    """Validate an OpenAPI-style path and return its placeholder names."""
    if not isinstance(path, str) or not path:
        raise BuilderError("path must be a non-empty string")
    if not path.startswith("/"):
        raise BuilderError(f"path {path!r} must start with '/'")

    depth = 0
    for char in path:
        if char == "{":
            depth += 1
            if depth > 1:
                raise BuilderError(f"path {path!r} has nested braces")
        elif char == "}":
            depth -= 1
            if depth < 0:
                raise BuilderError(f"path {path!r} has an unmatched '}}'")
    if depth != 0:
        raise BuilderError(f"path {path!r} has an unmatched '{{'")

    names = path_placeholders(path)
    for name in names:
        if not name.strip():
            raise BuilderError(f"path {path!r} has an empty placeholder")
    duplicates = {name for name in names if names.count(name) > 1}
    if duplicates:
        raise BuilderError(f"path {path!r} repeats placeholder(s): {', '.join(sorted(duplicates))}")
    return names


def _default_description(code: int) -> str:
    try:
        return HTTPStatus(code).phrase
    except ValueError:
        return f"Response {code}"


def _frozen_copy(schema: Schema | None) -> Schema | None:
    return None if schema is None else schema.copy().freeze()


class OperationBuilder:
    def __init__(self):
        self._method = ""
        self._path = ""
        self._summary = ""
        self._description = ""
        self._operation_id = ""
        self._deprecated = False
        self._tags: list[str] = []
        self._success_code = 200
        self._params: Schema | None = None
        self._query: Schema | None = None
        self._body: Schema | None = None
        self._headers: Schema | None = None
        self._response: Schema | None = None
        self._legacy_response = False
        self._security: SecurityRequirements | None = None
        self._responses: dict[int, ResponseDefinition] = {}

    # -- verb / path ----------------------------------------------------------

    def method(self, verb: str, path: str) -> "OperationBuilder":
        self._method = verb.upper()
        self._path = path
        return self

    def get(self, path: str) -> "OperationBuilder":
        return self.method("GET", path)

    def post(self, path: str) -> "OperationBuilder":
        return self.method("POST", path)

    def put(self, path: str) -> "OperationBuilder":
        return self.method("PUT", path)

    def patch(self, path: str) -> "OperationBuilder":
        return self.method("PATCH", path)

    def delete(self, path: str) -> "OperationBuilder":
        return self.method("DELETE", path)

    def head(self, path: str) -> "OperationBuilder":
        return self.method("HEAD", path)

    def options(self, path: str) -> "OperationBuilder":
        return self.method("OPTIONS", path)

    def trace(self, path: str) -> "OperationBuilder":
        return self.method("TRACE", path)

    # -- metadata ---------------------------------------------------------------

    def summary(self, text: str) -> "OperationBuilder":
        self._summary = text
        return self

    def description(self, text: str) -> "OperationBuilder":
        self._description = text
        return self

    def operation_id(self, value: str) -> "OperationBuilder":
        self._operation_id = value
        return self

    def deprecated(self) -> "OperationBuilder":
        self._deprecated = True
        return self

    def tags(self, *names: str) -> "OperationBuilder":
        self._tags.extend(names)
        return self

    def success_code(self, code: int) -> "OperationBuilder":
        self._success_code = code
        return self

    # -- schemas ------------------------------------------------------------------

    @staticmethod
    def _check_schema(kind: str, schema: Any) -> Schema:
        if not isinstance(schema, Schema):
            raise BuilderError(f"{kind} schema must be a Schema, got {type(schema).__name__}")
        return schema

    def with_params(self, schema: Schema) -> "OperationBuilder":
        self._params = self._check_schema("params", schema)
        return self

    def with_query(self, schema: Schema) -> "OperationBuilder":
        self._query = self._check_schema("query", schema)
        return self

    def with_body(self, schema: Schema) -> "OperationBuilder":
        self._body = self._check_schema("body", schema)
        return self

    def with_headers(self, schema: Schema) -> "OperationBuilder":
        self._headers = self._check_schema("headers", schema)
        return self

    # -- responses ------------------------------------------------------------------

    def with_response(self, schema: Schema) -> "OperationBuilder":
        """Legacy single response, registered at the success code on compile."""
        self._response = self._check_schema("response", schema)
        self._legacy_response = True
        return self

    def _register(
        self,
        code: int,
        schema: Schema | None,
        description: str | None,
        headers: Mapping[str, Schema] | None = None,
        skip_existing: bool = False,
    ) -> "OperationBuilder":
        if isinstance(code, bool) or not isinstance(code, int) or not 100 <= code <= 599:
            raise BuilderError(f"status code must be a 3-digit integer in [100, 599], got {code!r}")
        if code in self._responses:
            if skip_existing:
                return self
            raise BuilderError(f"response {code} is already registered")
        if schema is not None:
            self._check_schema(f"response {code}", schema)
        for name, header in (headers or {}).items():
            self._check_schema(f"response {code} header {name!r}", header)
        self._responses[code] = ResponseDefinition(
            code=code,
            description=description or _default_description(code),
            content_schema=schema,
            headers=dict(headers or {}),
        )
        return self

    def with_response_code(
        self,
        code: int,
        schema: Schema | None = None,
        description: str | None = None,
        headers: Mapping[str, Schema] | None = None,
    ) -> "OperationBuilder":
        return self._register(code, schema, description, headers)

    def with_success_response(
        self,
        code: int,
        schema: Schema | None = None,
        description: str | None = None,
        headers: Mapping[str, Schema] | None = None,
    ) -> "OperationBuilder":
        if isinstance(code, bool) or not isinstance(code, int) or not 200 <= code < 300:
            raise BuilderError(f"success response code must be in [200, 300), got {code!r}")
        return self._register(code, schema, description, headers)

    def with_error_response(
        self,
        code: int,
        schema: Schema | None = None,
        description: str | None = None,
        headers: Mapping[str, Schema] | None = None,
    ) -> "OperationBuilder":
        if isinstance(code, bool) or not isinstance(code, int) or code < 400:
            raise BuilderError(f"error response code must be >= 400, got {code!r}")
        return self._register(code, schema, description, headers)

    def with_created(self, schema: Schema | None = None, description: str = "Created") -> "OperationBuilder":
        return self.with_success_response(201, schema, description)

    def with_accepted(self, schema: Schema | None = None, description: str = "Accepted") -> "OperationBuilder":
        return self.with_success_response(202, schema, description)

    def with_no_content(self, description: str = "No Content") -> "OperationBuilder":
        return self.with_success_response(204, None, description)

    def _standard(self, code: int, schema: Schema | None, description: str | None) -> "OperationBuilder":
        default_schema, default_description = standard_error(code)
        return self.with_error_response(code, schema or default_schema, description or default_description)

    def with_bad_request(self, schema: Schema | None = None, description: str | None = None) -> "OperationBuilder":
        return self._standard(400, schema, description)

    def with_unauthorized(self, schema: Schema | None = None, description: str | None = None) -> "OperationBuilder":
        return self._standard(401, schema, description)

    def with_forbidden(self, schema: Schema | None = None, description: str | None = None) -> "OperationBuilder":
        return self._standard(403, schema, description)

    def with_not_found(self, schema: Schema | None = None, description: str | None = None) -> "OperationBuilder":
        return self._standard(404, schema, description)

    def with_conflict(self, schema: Schema | None = None, description: str | None = None) -> "OperationBuilder":
        return self._standard(409, schema, description)

    def with_unprocessable_entity(
        self, schema: Schema | None = None, description: str | None = None
    ) -> "OperationBuilder":
        return self._standard(422, schema, description)

    def with_too_many_requests(
        self, schema: Schema | None = None, description: str | None = None
    ) -> "OperationBuilder":
        return self._standard(429, schema, description)

    def with_internal_server_error(
        self, schema: Schema | None = None, description: str | None = None
    ) -> "OperationBuilder":
        return self._standard(500, schema, description)

    def with_bad_gateway(self, schema: Schema | None = None, description: str | None = None) -> "OperationBuilder":
        return self._standard(502, schema, description)

    def with_service_unavailable(
        self, schema: Schema | None = None, description: str | None = None
    ) -> "OperationBuilder":
        return self._standard(503, schema, description)

    # Group helpers leave already-registered codes untouched.

    def with_standard_errors_by_code(self, *codes: int) -> "OperationBuilder":
        for code in codes:
            if isinstance(code, bool) or not isinstance(code, int) or code < 400:
                raise BuilderError(f"error response code must be >= 400, got {code!r}")
            schema, description = standard_error(code)
            self._register(code, schema, description, skip_existing=True)
        return self

    def with_common_errors(self) -> "OperationBuilder":
        return self.with_standard_errors_by_code(400, 401, 403, 500)

    def with_auth_errors(self) -> "OperationBuilder":
        return self.with_standard_errors_by_code(401, 403)

    def with_validation_errors(self) -> "OperationBuilder":
        self._register(400, VALIDATION_ERROR_SCHEMA, "Validation Failed", skip_existing=True)
        return self.with_standard_errors_by_code(422)

    def with_crud_errors(self) -> "OperationBuilder":
        return self.with_standard_errors_by_code(400, 401, 403, 404, 500)

    def with_create_errors(self) -> "OperationBuilder":
        return self.with_standard_errors_by_code(400, 401, 403, 409, 422, 500)

    # -- security -------------------------------------------------------------------

    def _requirements(self) -> SecurityRequirements:
        return self._security if self._security is not None else SecurityRequirements()

    def with_security(self, requirements: SecurityRequirements) -> "OperationBuilder":
        if not isinstance(requirements, SecurityRequirements):
            requirements = SecurityRequirements(requirements)
        self._security = SecurityRequirements([*self._requirements().to_openapi(), *requirements.to_openapi()])
        return self

    def require_auth(self, scheme: str, *scopes: str) -> "OperationBuilder":
        self._security = self._requirements().require_scheme(scheme, *scopes)
        return self

    def require_any_of(self, *schemes: str) -> "OperationBuilder":
        self._security = self._requirements().require_any(*schemes)
        return self

    def require_api_key(self, scheme: str) -> "OperationBuilder":
        return self.require_auth(scheme)

    def require_bearer(self, scheme: str) -> "OperationBuilder":
        return self.require_auth(scheme)

    def require_oauth2(self, scheme: str, *scopes: str) -> "OperationBuilder":
        return self.require_auth(scheme, *scopes)

    def no_auth(self) -> "OperationBuilder":
        """Document the operation as public, overriding document-level security."""
        self._security = no_auth()
        return self

    # -- freeze ---------------------------------------------------------------------

    def _check(self) -> None:
        if not self._method:
            raise BuilderError("operation has no HTTP method")
        if self._method not in HTTP_METHODS:
            raise BuilderError(f"unsupported HTTP method: {self._method}")
        names = check_path(self._path)

        for kind, schema in (("params", self._params), ("query", self._query), ("headers", self._headers)):
            if schema is not None and not isinstance(schema, ObjectSchema):
                raise BuilderError(f"{kind} schema for {self._method} {self._path} must be an object schema")

        if self._params is not None:
            missing = [name for name in names if name not in self._params.properties]
            if missing:
                raise BuilderError(
                    f"path {self._path} placeholder(s) not in params schema: {', '.join(missing)}"
                )

        code = self._success_code
        if isinstance(code, bool) or not isinstance(code, int) or not 100 <= code <= 599:
            raise BuilderError(f"success code must be in [100, 599], got {code!r}")
        if self._legacy_response and code in self._responses:
            raise BuilderError(
                f"with_response() conflicts with an explicit response registered for {code}"
            )

    def _compiled_responses(self) -> dict[int, ResponseDefinition]:
        responses: dict[int, ResponseDefinition] = {}
        if self._legacy_response:
            responses[self._success_code] = ResponseDefinition(
                code=self._success_code,
                description=LEGACY_RESPONSE_DESCRIPTION,
                content_schema=self._response,
            )
        responses.update(self._responses)
        return {
            code: ResponseDefinition(
                code=code,
                description=definition.description,
                content_schema=_frozen_copy(definition.content_schema),
                headers={name: _frozen_copy(header) for name, header in definition.headers.items()},
            )
            for code, definition in responses.items()
        }

    def handler(self, fn: Any) -> CompiledOperation:
        """Validate the accumulated definition and compile it."""
        self._check()
        return CompiledOperation(
            method=self._method,
            path=self._path,
            summary=self._summary,
            description=self._description,
            operation_id=self._operation_id,
            deprecated=self._deprecated,
            tags=tuple(self._tags),
            success_code=self._success_code,
            params_schema=_frozen_copy(self._params),
            query_schema=_frozen_copy(self._query),
            body_schema=_frozen_copy(self._body),
            response_schema=_frozen_copy(self._response),
            header_schema=_frozen_copy(self._headers),
            security=self._security,
            responses=self._compiled_responses(),
            handler=fn,
        )


def operation() -> OperationBuilder:
    return OperationBuilder()
