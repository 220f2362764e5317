"""Merge several OpenAPI documents into one.

Pipeline: load -> path transform -> tag filter -> service-tag injection ->
union (later source wins on collision) -> optional validation -> write.
"""

import copy
import json
import logging
import re
from pathlib import Path
from typing import Any, Iterable

import yaml
from pydantic import BaseModel

from opforge.combiner.config import (
    CombinationStats,
    CombinerConfig,
    ServiceConfig,
    check_conflict_strategy,
    load_services_config,
)
from opforge.errors import CombineError, ConfigError, LoadError, ValidationError
from opforge.openapi.emitter import METHOD_ORDER, OPENAPI_VERSION
from opforge.openapi.writer import write_document
from opforge.schema.composition import COMPONENT_SCHEMA_PREFIX

logger = logging.getLogger(__name__)

SERVICE_SUFFIXES = ("-service", ".service", "-api", ".api")
SERVICE_TAG_PREFIX = "service:"
UNION_COMPONENTS = (
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

_SLASHES = re.compile(r"/+")
_UNSAFE_KEY_CHARS = re.compile(r"[^A-Za-z0-9._-]")


# -- helpers -------------------------------------------------------------------


def extract_service_name(path: str | Path) -> str:
    """Filename stem minus the first matching service suffix."""
    stem = Path(path).stem
    for suffix in SERVICE_SUFFIXES:
        if stem.endswith(suffix):
            return stem[: -len(suffix)]
    return stem


def normalize_path(path: str) -> str:
    return _SLASHES.sub("/", path) or "/"


def parse_service_prefixes(items: Iterable[str]) -> dict[str, str]:
    """Parse ``service:/prefix`` items, splitting on the first colon."""
    prefixes: dict[str, str] = {}
    for item in items:
        name, sep, prefix = item.partition(":")
        if not sep or not name:
            raise ConfigError(f"invalid prefix {item!r}: expected service:/prefix")
        prefixes[name] = prefix
    return prefixes


def load_spec_file(path: str | Path) -> dict[str, Any]:
    """Load an OpenAPI document, by extension or YAML-then-JSON."""
    path = Path(path)
    if not path.is_file():
        raise LoadError(f"spec file not found: {path}")
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as err:
        raise LoadError(f"cannot read {path}: {err}") from err

    suffix = path.suffix.lower()
    try:
        if suffix in (".yaml", ".yml"):
            data = yaml.safe_load(text)
        elif suffix == ".json":
            data = json.loads(text)
        else:
            data = _parse_unknown(text)
    except (yaml.YAMLError, ValueError) as err:
        raise LoadError(f"cannot parse {path}: {err}") from err

    if not isinstance(data, dict):
        raise LoadError(f"{path} does not contain an OpenAPI document")
    return data


def _parse_unknown(text: str) -> Any:
    try:
        return yaml.safe_load(text)
    except yaml.YAMLError:
        return json.loads(text)


def _service_of(operation: dict[str, Any]) -> str:
    for tag in operation.get("tags") or []:
        if isinstance(tag, str) and tag.startswith(SERVICE_TAG_PREFIX):
            return tag[len(SERVICE_TAG_PREFIX):]
    return "unknown"


def _rewrite_refs(node: Any, renames: dict[str, str]) -> Any:
    if isinstance(node, dict):
        out = {}
        for key, value in node.items():
            if key == "$ref" and isinstance(value, str) and value.startswith(COMPONENT_SCHEMA_PREFIX):
                name = value[len(COMPONENT_SCHEMA_PREFIX):]
                out[key] = COMPONENT_SCHEMA_PREFIX + renames.get(name, name)
            else:
                out[key] = _rewrite_refs(value, renames)
        return out
    if isinstance(node, list):
        return [_rewrite_refs(item, renames) for item in node]
    return node


class LoadedSpec(BaseModel):
    path: str
    service: str
    document: dict[str, Any]


# -- combiner ------------------------------------------------------------------


class SpecCombiner:
    def __init__(self, config: CombinerConfig | None = None):
        self.config = (config or CombinerConfig()).model_copy(deep=True)
        check_conflict_strategy(self.config.conflict_strategy)
        self.stats = CombinationStats()
        self.combined: dict[str, Any] | None = None
        self._input_files: list[str] = list(self.config.input_files)
        self._services: dict[str, ServiceConfig] = {}
        self._specs: list[LoadedSpec] = []

    @property
    def input_files(self) -> list[str]:
        return list(self._input_files)

    def add_input_file(self, path: str | Path) -> None:
        self._input_files.append(str(path))

    def load_from_config(self) -> None:
        """Apply the services config file, if one is configured."""
        if not self.config.config_file:
            return
        config_path = Path(self.config.config_file)
        services = load_services_config(config_path)
        defaults = CombinerConfig()

        for field in ("title", "version", "description", "base_url"):
            value = getattr(services, field)
            if value and getattr(self.config, field) == getattr(defaults, field):
                setattr(self.config, field, value)

        settings = services.settings
        if self.config.merge_schemas == defaults.merge_schemas:
            self.config.merge_schemas = settings.merge_schemas
        if self.config.validate_output == defaults.validate_output:
            self.config.validate_output = settings.validate_output
        if not self.config.include_tags:
            self.config.include_tags = list(settings.include_tags)
        if not self.config.exclude_tags:
            self.config.exclude_tags = list(settings.exclude_tags)
        if self.config.conflict_strategy == defaults.conflict_strategy:
            self.config.conflict_strategy = settings.conflict_strategy

        base_dir = config_path.parent
        for service in services.services:
            if not service.enabled:
                logger.info("Skipping disabled service %s", service.name)
                continue
            spec_path = Path(service.spec_file)
            if not spec_path.is_absolute():
                spec_path = base_dir / spec_path
            self.add_input_file(spec_path)

            derived = extract_service_name(spec_path)
            for name in dict.fromkeys((service.name, derived)):
                self._services.setdefault(name, service)
                if service.path_prefix:
                    self.config.service_prefix.setdefault(name, service.path_prefix)
            logger.debug("Added service %s from %s", service.name, spec_path)

    def load_specs(self) -> list[LoadedSpec]:
        if not self._input_files:
            raise CombineError("no input files to combine")
        self._specs = []
        for path in self._input_files:
            document = load_spec_file(path)
            service = extract_service_name(path)
            self._specs.append(LoadedSpec(path=path, service=service, document=document))
            logger.debug("Loaded %s as service %s", path, service)
        self.stats.input_files = len(self._specs)
        return self._specs

    # -- combination -------------------------------------------------------------

    def _tag_allowed(self, tags: list[str]) -> bool:
        include = set(self.config.include_tags)
        exclude = set(self.config.exclude_tags)
        tag_set = set(tags)
        if include and not tag_set & include:
            return False
        if exclude and tag_set & exclude:
            return False
        return True

    def _merge_schemas(
        self,
        spec: LoadedSpec,
        document: dict[str, Any],
        schemas: dict[str, Any],
    ) -> dict[str, Any]:
        """Fold the source's component schemas into ``schemas``; return the rewritten document."""
        source = (document.get("components") or {}).get("schemas") or {}
        if not self.config.merge_schemas:
            schemas.update(copy.deepcopy(source))
            return document

        renames: dict[str, str] = {}
        for name, content in source.items():
            if name not in schemas:
                continue
            if schemas[name] == content:
                self.stats.merged_schemas += 1
                logger.debug("Deduplicated schema %s from %s", name, spec.service)
            else:
                renamed = _UNSAFE_KEY_CHARS.sub("_", f"{spec.service}.{name}")
                taken = schemas.get(renamed, source.get(renamed))
                if taken is not None and taken != content:
                    raise CombineError(
                        f"schema {name} from {spec.service} conflicts and {renamed} is already taken"
                    )
                renames[name] = renamed
                self.stats.conflicts += 1
                logger.warning("Schema %s from %s conflicts; renamed to %s", name, spec.service, renamed)

        if renames:
            document = _rewrite_refs(document, renames)
            source = (document.get("components") or {}).get("schemas") or {}
        for name, content in source.items():
            key = renames.get(name, name)
            schemas.setdefault(key, copy.deepcopy(content))
        return document

    def _merge_paths(self, spec: LoadedSpec, document: dict[str, Any], paths: dict[str, Any]) -> None:
        prefix = self.config.service_prefix.get(spec.service, "")
        service_tag = SERVICE_TAG_PREFIX + spec.service

        for raw_path, item in (document.get("paths") or {}).items():
            if not isinstance(item, dict):
                continue
            final = normalize_path(self.config.base_url + prefix + raw_path)

            operations: dict[str, dict[str, Any]] = {}
            extras: dict[str, Any] = {}
            for key, value in item.items():
                method = key.lower()
                if method not in METHOD_ORDER:
                    extras[key] = value
                    continue
                if not isinstance(value, dict):
                    continue
                tags = list(value.get("tags") or [])
                if not self._tag_allowed(tags):
                    logger.debug("Filtered out %s %s from %s", method, final, spec.service)
                    continue
                if service_tag not in tags:
                    tags.insert(0, service_tag)
                operation = copy.deepcopy(value)
                operation["tags"] = tags
                operations[method] = operation

            if not operations:
                continue
            target = paths.setdefault(final, {})
            target.update(copy.deepcopy(extras))
            for method, operation in operations.items():
                existing = target.get(method)
                if existing is not None:
                    previous = _service_of(existing)
                    if self.config.conflict_strategy == "error":
                        raise CombineError(
                            f"{method} {final} is defined by both {previous} and {spec.service}"
                        )
                    logger.warning(
                        "Overriding %s %s (was from %s, now from %s)",
                        method, final, previous, spec.service,
                    )
                    self.stats.conflicts += 1
                target[method] = operation

    def combine_specs(self) -> dict[str, Any]:
        if not self._specs:
            self.load_specs()
        check_conflict_strategy(self.config.conflict_strategy)
        self.stats.merged_schemas = 0
        self.stats.conflicts = 0

        paths: dict[str, Any] = {}
        schemas: dict[str, Any] = {}
        components: dict[str, dict[str, Any]] = {name: {} for name in UNION_COMPONENTS}
        tags: dict[str, dict[str, Any]] = {}
        services: list[str] = []

        for spec in self._specs:
            if spec.service not in services:
                services.append(spec.service)
            document = self._merge_schemas(spec, spec.document, schemas)
            self._merge_paths(spec, document, paths)

            source_components = document.get("components") or {}
            for name in UNION_COMPONENTS:
                components[name].update(copy.deepcopy(source_components.get(name) or {}))
            for tag in document.get("tags") or []:
                if isinstance(tag, dict) and tag.get("name"):
                    tags.setdefault(tag["name"], copy.deepcopy(tag))

        for service in services:
            name = SERVICE_TAG_PREFIX + service
            meta = self._services.get(service)
            description = meta.description if meta and meta.description else f"Operations from the {service} service"
            tags.setdefault(name, {"name": name, "description": description})

        info: dict[str, Any] = {"title": self.config.title}
        if self.config.description:
            info["description"] = self.config.description
        info["version"] = self.config.version

        combined: dict[str, Any] = {"openapi": OPENAPI_VERSION, "info": info, "paths": paths}
        merged_components = {"schemas": schemas, **components}
        merged_components = {name: entries for name, entries in merged_components.items() if entries}
        if merged_components:
            combined["components"] = merged_components
        if tags:
            combined["tags"] = list(tags.values())

        self.stats.services_combined = len(services)
        self.stats.total_paths = len(paths)
        self.stats.total_operations = sum(
            1 for item in paths.values() for key in item if key in METHOD_ORDER
        )
        self.combined = combined
        logger.info(
            "Combined %d service(s) into %d path(s)", self.stats.services_combined, self.stats.total_paths
        )
        return combined

    # -- validation and output -------------------------------------------------------

    def validate_output(self, document: dict[str, Any] | None = None) -> None:
        doc = document if document is not None else self.combined
        if doc is None:
            raise ValidationError("nothing to validate: combine_specs() has not run")
        if not doc.get("openapi"):
            raise ValidationError("document is missing 'openapi'")
        info = doc.get("info") or {}
        if not info.get("title"):
            raise ValidationError("document is missing info.title")
        if not info.get("version"):
            raise ValidationError("document is missing info.version")
        paths = doc.get("paths") or {}
        if not paths:
            raise ValidationError("document has no paths")
        for path, item in paths.items():
            methods = [key for key in (item or {}) if key in METHOD_ORDER]
            if not methods:
                raise ValidationError(f"path {path} has no operations")
            for method in methods:
                if not (item[method] or {}).get("responses"):
                    raise ValidationError(f"{method} {path} has no responses")

    def write_output(self) -> Path:
        if self.combined is None:
            raise CombineError("nothing to write: combine_specs() has not run")
        target = write_document(self.combined, self.config.output_file, self.config.format)
        logger.info("Wrote combined spec to %s", target)
        return target

    def run(self) -> dict[str, Any]:
        """Full pipeline: config, load, combine, validate, write."""
        self.load_from_config()
        self.load_specs()
        combined = self.combine_specs()
        if self.config.validate_output:
            self.validate_output()
        self.write_output()
        return combined
