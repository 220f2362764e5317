"""Runtime validation of decoded JSON values against a Schema.

The emitter never calls into this module; it exists so handlers can check
request data against the same tree that describes it. The tree is serialized
to its OpenAPI 3.1 form and checked with a JSON Schema 2020-12 validator.
"""

from typing import Any, Mapping

from jsonschema import Draft202012Validator
from jsonschema.exceptions import ValidationError as JsonSchemaError

from opforge.errors import SchemaValidationError
from opforge.schema.base import Schema
from opforge.schema.serialize import collect_refs, to_openapi

FORMAT_CHECKER = Draft202012Validator.FORMAT_CHECKER


def _document(schema: Schema, components: Mapping[str, Schema] | None) -> dict[str, Any]:
    """Root schema with ``#/components/schemas/*`` resolvable in place.

    References to components that were not supplied accept any value.
    """
    document = to_openapi(schema)
    components = dict(components or {})
    pending = collect_refs(schema)
    resolved: dict[str, Any] = {}
    while pending:
        name = pending.pop()
        if name in resolved:
            continue
        target = components.get(name)
        if target is None:
            resolved[name] = {}
            continue
        resolved[name] = to_openapi(target)
        pending |= collect_refs(target) - set(resolved)
    if resolved:
        document["components"] = {"schemas": resolved}
    return document


def _part(item: Any) -> str:
    return f"[{item}]" if isinstance(item, int) else str(item)


def _detail(error: JsonSchemaError) -> SchemaValidationError:
    parts = [_part(item) for item in error.absolute_path]
    message = error.message
    if error.validator == "required":
        missing = [name for name in error.validator_value if name not in error.instance]
        name = next((n for n in missing if repr(n) in error.message), missing[0] if missing else "")
        parts.append(name)
        message = "field is required"

    if not parts:
        return SchemaValidationError("", message, error.instance)
    node = SchemaValidationError(parts[-1], message, error.instance)
    for part in reversed(parts[:-1]):
        node = SchemaValidationError(part, "invalid value", details=[node])
    return node


def validate(
    schema: Schema,
    value: Any,
    field: str = "",
    components: Mapping[str, Schema] | None = None,
) -> None:
    """Raise SchemaValidationError when ``value`` does not satisfy ``schema``.

    Each failure reported by the validator becomes one nested detail, keyed
    by the path of the offending value.
    """
    if value is None and schema.is_nullable:
        return

    validator = Draft202012Validator(_document(schema, components), format_checker=FORMAT_CHECKER)
    errors = list(validator.iter_errors(value))
    if not errors:
        return

    details = [_detail(error) for error in errors]
    if len(details) == 1 and not details[0].field and not details[0].details:
        raise SchemaValidationError(field, details[0].message, value)
    raise SchemaValidationError(field, "value does not satisfy schema", value, details)
