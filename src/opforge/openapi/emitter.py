"""OpenAPI 3.1 document emitter.

Collects document-level metadata, component registrations and compiled
operations, then renders a plain ``dict`` ready for YAML/JSON output.
"""

import copy
import logging
from typing import Any, Iterable, Iterator, Mapping

from opforge.errors import EmitError
from opforge.openapi.models import Contact, ExternalDocs, License, Server, ServerVariable, Tag
from opforge.operations.compiled import CompiledOperation, ResponseDefinition
from opforge.schema.base import Schema
from opforge.schema.dsl import object_, string
from opforge.schema.serialize import collect_refs, find_example_conflicts, to_openapi
from opforge.schema.types import ObjectSchema
from opforge.security import SecurityRequirements, SecurityScheme, validate_component_key

logger = logging.getLogger(__name__)

OPENAPI_VERSION = "3.1.0"
JSON_CONTENT = "application/json"

COMPONENT_MAPS = (
    "schemas",
    "securitySchemes",
    "responses",
    "parameters",
    "examples",
    "requestBodies",
    "headers",
    "links",
    "callbacks",
    "pathItems",
)

METHOD_ORDER = ("get", "put", "post", "delete", "options", "head", "patch", "trace")


def _stub_error_schema() -> Schema:
    return object_({
        "error": string().required(),
        "details": string(),
    })


def _sorted_methods(methods: Iterable[str]) -> list[str]:
    return sorted(methods, key=METHOD_ORDER.index)


class OpenAPIEmitter:
    def __init__(self, title: str, version: str):
        self._title = title
        self._version = version
        self._description = ""
        self._summary = ""
        self._terms_of_service = ""
        self._contact: Contact | None = None
        self._license: License | None = None
        self._servers: list[Server] = []
        self._tags: list[Tag] = []
        self._external_docs: ExternalDocs | None = None
        self._webhooks: dict[str, dict[str, CompiledOperation]] = {}
        self._dialect = ""
        self._global_security: SecurityRequirements | None = None
        self._security_schemes: dict[str, SecurityScheme] = {}
        self._schemas: dict[str, Schema] = {}
        self._operations: list[CompiledOperation] = []

    # -- document metadata ---------------------------------------------------

    def set_description(self, text: str) -> "OpenAPIEmitter":
        self._description = text
        return self

    def set_summary(self, text: str) -> "OpenAPIEmitter":
        self._summary = text
        return self

    def set_terms_of_service(self, url: str) -> "OpenAPIEmitter":
        self._terms_of_service = url
        return self

    def set_contact(self, name: str = "", url: str = "", email: str = "") -> "OpenAPIEmitter":
        self._contact = Contact(name=name, url=url, email=email)
        return self

    def set_license(self, name: str, identifier: str = "", url: str = "") -> "OpenAPIEmitter":
        license_ = License(name=name, identifier=identifier, url=url)
        errors = license_.validation_errors()
        if errors:
            raise EmitError("; ".join(errors))
        self._license = license_
        return self

    def add_server(
        self,
        url: str,
        description: str = "",
        variables: Mapping[str, ServerVariable | Mapping[str, Any]] | None = None,
    ) -> "OpenAPIEmitter":
        parsed = {
            name: var if isinstance(var, ServerVariable) else ServerVariable(**var)
            for name, var in (variables or {}).items()
        }
        self._servers.append(Server(url=url, description=description, variables=parsed))
        return self

    def add_tag(self, name: str, description: str = "", external_docs: ExternalDocs | None = None) -> "OpenAPIEmitter":
        self._tags.append(Tag(name=name, description=description, external_docs=external_docs))
        return self

    def set_external_docs(self, url: str, description: str = "") -> "OpenAPIEmitter":
        self._external_docs = ExternalDocs(url=url, description=description)
        return self

    def add_webhook(self, name: str, operations: Mapping[str, CompiledOperation]) -> "OpenAPIEmitter":
        item: dict[str, CompiledOperation] = {}
        for method, op in operations.items():
            method = method.lower()
            if method not in METHOD_ORDER:
                raise EmitError(f"webhook {name!r} uses unsupported method {method!r}")
            item[method] = op
        self._webhooks[name] = item
        return self

    def set_json_schema_dialect(self, uri: str) -> "OpenAPIEmitter":
        self._dialect = uri
        return self

    # -- security ---------------------------------------------------------------

    def set_global_security(self, requirements: SecurityRequirements) -> "OpenAPIEmitter":
        if not isinstance(requirements, SecurityRequirements):
            requirements = SecurityRequirements(requirements)
        self._global_security = requirements
        return self

    def add_security_scheme(self, name: str, scheme: SecurityScheme) -> "OpenAPIEmitter":
        if not validate_component_key(name):
            raise EmitError(f"invalid security scheme name {name!r}: must match [A-Za-z0-9._-]+")
        if not isinstance(scheme, SecurityScheme):
            raise EmitError(f"security scheme {name!r} must be a SecurityScheme")
        errors = scheme.validation_errors()
        if errors:
            raise EmitError(f"invalid security scheme {name!r}: {'; '.join(errors)}")
        self._security_schemes[name] = scheme.model_copy(deep=True)
        return self

    def get_security_scheme(self, name: str) -> SecurityScheme | None:
        scheme = self._security_schemes.get(name)
        return None if scheme is None else scheme.model_copy(deep=True)

    def list_security_schemes(self) -> list[str]:
        return list(self._security_schemes)

    # -- components and operations ------------------------------------------------

    def add_schema_component(self, name: str, schema: Schema) -> "OpenAPIEmitter":
        if not validate_component_key(name):
            raise EmitError(f"invalid schema component name {name!r}: must match [A-Za-z0-9._-]+")
        if not isinstance(schema, Schema):
            raise EmitError(f"schema component {name!r} must be a Schema")
        existing = self._schemas.get(name)
        if existing is not None:
            if to_openapi(existing) != to_openapi(schema):
                raise EmitError(f"schema component {name!r} is already registered with different content")
            return self
        self._schemas[name] = schema.copy().freeze()
        return self

    def add_operation(self, op: CompiledOperation) -> "OpenAPIEmitter":
        if not isinstance(op, CompiledOperation):
            raise EmitError(f"expected a CompiledOperation, got {type(op).__name__}")
        if any(existing.key == op.key for existing in self._operations):
            raise EmitError(f"operation {op.method} {op.path} is already registered")
        self._operations.append(op)
        return self

    def add_operations(self, operations: Iterable[CompiledOperation]) -> "OpenAPIEmitter":
        for op in operations:
            self.add_operation(op)
        return self

    # -- emission -------------------------------------------------------------------

    def emit(self) -> dict[str, Any]:
        """Render the document. Raises EmitError before producing anything."""
        self._check()

        doc: dict[str, Any] = {"openapi": OPENAPI_VERSION, "info": self._info()}
        if self._dialect:
            doc["jsonSchemaDialect"] = self._dialect
        if self._servers:
            doc["servers"] = [server.to_openapi() for server in self._servers]

        paths: dict[str, dict[str, Any]] = {}
        for op in self._operations:
            paths.setdefault(op.path, {})[op.method.lower()] = self._operation(op)
        doc["paths"] = {
            path: {method: item[method] for method in _sorted_methods(item)}
            for path, item in paths.items()
        }

        if self._webhooks:
            doc["webhooks"] = {
                name: {method: self._operation(item[method]) for method in _sorted_methods(item)}
                for name, item in self._webhooks.items()
            }

        components = self._components()
        if components:
            doc["components"] = components
        if self._global_security is not None:
            doc["security"] = self._global_security.to_openapi()
        if self._tags:
            doc["tags"] = [tag.to_openapi() for tag in self._tags]
        if self._external_docs is not None:
            doc["externalDocs"] = self._external_docs.to_openapi()

        logger.debug("Emitted %d path(s) from %d operation(s)", len(doc["paths"]), len(self._operations))
        return doc

    def _info(self) -> dict[str, Any]:
        info: dict[str, Any] = {"title": self._title}
        if self._summary:
            info["summary"] = self._summary
        if self._description:
            info["description"] = self._description
        if self._terms_of_service:
            info["termsOfService"] = self._terms_of_service
        if self._contact is not None:
            info["contact"] = self._contact.to_openapi()
        if self._license is not None:
            info["license"] = self._license.to_openapi()
        info["version"] = self._version
        return info

    def _components(self) -> dict[str, Any]:
        components: dict[str, dict[str, Any]] = {name: {} for name in COMPONENT_MAPS}
        components["schemas"] = {name: to_openapi(schema) for name, schema in self._schemas.items()}
        components["securitySchemes"] = {
            name: scheme.to_openapi() for name, scheme in self._security_schemes.items()
        }
        return {name: entries for name, entries in components.items() if entries}

    # -- checks ---------------------------------------------------------------------

    def _all_operations(self) -> Iterator[tuple[str, CompiledOperation]]:
        for op in self._operations:
            yield f"{op.method} {op.path}", op
        for name, item in self._webhooks.items():
            for method, op in item.items():
                yield f"webhook {name} {method}", op

    @staticmethod
    def _operation_schemas(op: CompiledOperation) -> Iterator[tuple[str, Schema]]:
        for label, schema in (
            ("params", op.params_schema),
            ("query", op.query_schema),
            ("body", op.body_schema),
            ("headers", op.header_schema),
            ("response", op.response_schema),
        ):
            if schema is not None:
                yield label, schema
        for code, definition in op.responses.items():
            if definition.content_schema is not None:
                yield f"response {code}", definition.content_schema
            for name, header in definition.headers.items():
                yield f"response {code} header {name}", header

    def _check(self) -> None:
        sources: list[tuple[str, Schema]] = [
            (f"component {name}", schema) for name, schema in self._schemas.items()
        ]
        operation_ids: dict[str, str] = {}
        used_schemes: set[str] = set()

        for label, op in self._all_operations():
            sources.extend((f"{label} {kind}", schema) for kind, schema in self._operation_schemas(op))
            if op.operation_id:
                previous = operation_ids.get(op.operation_id)
                if previous is not None:
                    raise EmitError(
                        f"duplicate operationId {op.operation_id!r} on {previous} and {label}"
                    )
                operation_ids[op.operation_id] = label
            if op.security is not None:
                used_schemes |= op.security.scheme_names()

        for label, schema in sources:
            conflicts = find_example_conflicts(schema)
            if conflicts:
                raise EmitError(
                    f"{label}: 'example' and 'examples' are both set at {', '.join(conflicts)}"
                )
            missing = sorted(collect_refs(schema) - set(self._schemas))
            if missing:
                raise EmitError(f"{label}: reference to unregistered schema(s): {', '.join(missing)}")

        if self._global_security is not None:
            used_schemes |= self._global_security.scheme_names()
        for name in sorted(used_schemes - set(self._security_schemes)):
            logger.warning("Security requirement references unregistered scheme %r", name)

    # -- operation rendering ----------------------------------------------------------

    def _operation(self, op: CompiledOperation) -> dict[str, Any]:
        data: dict[str, Any] = {}
        if op.tags:
            data["tags"] = list(op.tags)
        if op.summary:
            data["summary"] = op.summary
        if op.description:
            data["description"] = op.description
        if op.operation_id:
            data["operationId"] = op.operation_id

        parameters = self._parameters(op)
        if parameters:
            data["parameters"] = parameters
        if op.body_schema is not None:
            data["requestBody"] = {
                "required": op.body_schema.is_required,
                "content": {JSON_CONTENT: {"schema": to_openapi(op.body_schema)}},
            }

        data["responses"] = self._responses(op)
        if op.deprecated:
            data["deprecated"] = True
        if op.security is not None:
            data["security"] = op.security.to_openapi()
        return data

    @staticmethod
    def _parameters(op: CompiledOperation) -> list[dict[str, Any]]:
        parameters: list[dict[str, Any]] = []

        params = op.params_schema
        if isinstance(params, ObjectSchema):
            for name, child in params.properties.items():
                if "{" + name + "}" in op.path:
                    parameters.append({"name": name, "in": "path", "required": True, "schema": to_openapi(child)})

        for location, schema in (("query", op.query_schema), ("header", op.header_schema)):
            if not isinstance(schema, ObjectSchema):
                continue
            required = set(schema.required_names)
            for name, child in schema.properties.items():
                parameters.append({
                    "name": name,
                    "in": location,
                    "required": name in required,
                    "schema": to_openapi(child),
                })
        return parameters

    def _responses(self, op: CompiledOperation) -> dict[str, Any]:
        if op.responses:
            return {str(code): self._response(definition) for code, definition in op.responses.items()}

        # no registered responses: success plus generic error stubs
        stub = _stub_error_schema()
        fallback = [
            ResponseDefinition(code=op.success_code, description="Successful response",
                               content_schema=op.response_schema),
            ResponseDefinition(code=400, description="Bad Request", content_schema=stub),
            ResponseDefinition(code=500, description="Internal Server Error", content_schema=stub),
        ]
        return {str(definition.code): self._response(definition) for definition in fallback}

    @staticmethod
    def _response(definition: ResponseDefinition) -> dict[str, Any]:
        data: dict[str, Any] = {"description": definition.description}
        if definition.headers:
            headers: dict[str, Any] = {}
            for name, header in definition.headers.items():
                headers[name] = {"schema": to_openapi(header)}
                if header.is_required:
                    headers[name]["required"] = True
            data["headers"] = headers
        schema = definition.content_schema
        if schema is not None:
            media: dict[str, Any] = {"schema": to_openapi(schema)}
            if schema.has_example:
                media["example"] = copy.deepcopy(schema.keywords["example"])
            if schema.named_examples is not None:
                media["examples"] = {
                    name: example.to_openapi() for name, example in schema.named_examples.items()
                }
            data["content"] = {JSON_CONTENT: media}
        return data
