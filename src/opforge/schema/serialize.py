"""Schema tree -> OpenAPI 3.1 Schema Object.

Only keywords that were set on a node are emitted. Composition nodes never
carry ``type``. The result is a fresh structure sharing nothing with the
source tree.
"""

import copy
from typing import Any

from opforge.schema.base import COMPOSITION_SLOTS, Schema
from opforge.schema.composition import RefSchema
from opforge.schema.types import ArraySchema, ObjectSchema


def to_openapi(schema: Schema) -> dict[str, Any]:
    if isinstance(schema, RefSchema):
        result: dict[str, Any] = {"$ref": schema.pointer}
        result.update(_keywords(schema))
        return result

    result = {}
    if schema.type_name and not schema.composition:
        result["type"] = [schema.type_name, "null"] if schema.is_nullable else schema.type_name
    result.update(_keywords(schema))

    if isinstance(schema, ObjectSchema):
        if schema.properties:
            result["properties"] = {
                name: to_openapi(child) for name, child in schema.properties.items()
            }
        required = schema.required_names
        if required:
            result["required"] = required
    elif isinstance(schema, ArraySchema):
        result["items"] = to_openapi(schema.item)

    if schema.named_examples is not None:
        result["examples"] = {
            name: example.to_openapi() for name, example in schema.named_examples.items()
        }

    for slot in COMPOSITION_SLOTS:
        members = schema.composition.get(slot)
        if not members:
            continue
        if slot == "not":
            result["not"] = to_openapi(members[0])
        else:
            result[slot] = [to_openapi(member) for member in members]
    return result


def _keywords(schema: Schema) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for keyword, value in schema.keywords.items():
        if isinstance(value, Schema):
            out[keyword] = to_openapi(value)
        else:
            out[keyword] = copy.deepcopy(value)
    return out


def collect_refs(schema: Schema) -> set[str]:
    """Names of every component referenced anywhere in the tree."""
    names: set[str] = set()
    stack = [schema]
    while stack:
        node = stack.pop()
        if isinstance(node, RefSchema):
            names.add(node.name)
        stack.extend(node.children())
    return names


def find_example_conflicts(schema: Schema, path: str = "#") -> list[str]:
    """JSON-pointer-ish paths of nodes that set both ``example`` and ``examples``."""
    conflicts = []
    if schema.has_example and schema.named_examples is not None:
        conflicts.append(path)
    if isinstance(schema, ObjectSchema):
        for name, child in schema.properties.items():
            conflicts.extend(find_example_conflicts(child, f"{path}/properties/{name}"))
    elif isinstance(schema, ArraySchema):
        conflicts.extend(find_example_conflicts(schema.item, f"{path}/items"))
    for slot in COMPOSITION_SLOTS:
        for index, member in enumerate(schema.composition.get(slot, [])):
            conflicts.extend(find_example_conflicts(member, f"{path}/{slot}/{index}"))
    return conflicts
