"""Build an OpenAPI document from operations defined in Python modules.

Every ``*.py`` file under the input directory is imported and its
module-level ``CompiledOperation`` and ``OperationSet`` objects are
collected. A module may also expose ``SCHEMAS`` (name -> Schema) and
``SECURITY_SCHEMES`` (name -> SecurityScheme) to register components.
"""

import importlib.util
import logging
import os
import re
import sys
from pathlib import Path
from typing import Any

from pydantic import BaseModel

from opforge.errors import LoadError
from opforge.openapi.emitter import OpenAPIEmitter
from opforge.openapi.writer import write_document
from opforge.operations.compiled import CompiledOperation, OperationSet
from opforge.schema.base import Schema
from opforge.security import SecurityScheme

logger = logging.getLogger(__name__)

SKIP_DIRS = {"venv", ".venv", "env", "__pycache__", "node_modules", "site-packages"}
DEFAULT_TITLE = "Generated API"


def detect_title(input_dir: str | Path) -> str:
    """``user-service`` -> ``User Service API``."""
    base = os.path.basename(os.path.normpath(str(input_dir)))
    if base in ("", ".", "/"):
        return DEFAULT_TITLE
    tokens = [token for token in re.split(r"[-_ ]+", base) if token]
    if not tokens:
        return DEFAULT_TITLE
    return " ".join(token.capitalize() for token in tokens) + " API"


def _skip_file(path: Path) -> bool:
    name = path.name
    return name.startswith("test_") or name.endswith("_test.py") or name.startswith(".")


def _skip_dir(name: str) -> bool:
    return name.startswith(".") or name in SKIP_DIRS


def _module_name(root: Path, path: Path) -> str:
    """``<root>/sub/orders.py`` -> ``sub.orders``, the name sibling imports use."""
    return ".".join(path.resolve().relative_to(root).with_suffix("").parts)


def _loaded_from(module: Any, root: Path) -> bool:
    locations = [module.__file__] if getattr(module, "__file__", None) else list(getattr(module, "__path__", []))
    return any(Path(location).resolve().is_relative_to(root) for location in locations)


def _restore_modules(saved: dict[str, Any], root: Path) -> None:
    """Drop modules loaded from ``root`` during a scan and put back what they shadowed."""
    for name, module in list(sys.modules.items()):
        if saved.get(name) is module or not _loaded_from(module, root):
            continue
        if name in saved:
            sys.modules[name] = saved[name]
        else:
            del sys.modules[name]


class GeneratorConfig(BaseModel):
    input_dir: str = "."
    output_file: str = "openapi.yaml"
    format: str = "yaml"
    title: str = ""
    version: str = "1.0.0"
    description: str = ""
    servers: list[str] = []


class GenerationStats(BaseModel):
    file_count: int = 0
    operation_count: int = 0
    schema_count: int = 0
    path_count: int = 0


class OperationGenerator:
    def __init__(self, config: GeneratorConfig | None = None):
        self.config = config or GeneratorConfig()
        self.stats = GenerationStats()
        self.operations: list[CompiledOperation] = []
        self.schemas: dict[str, Schema] = {}
        self.security_schemes: dict[str, SecurityScheme] = {}

    @property
    def title(self) -> str:
        return self.config.title or detect_title(self.config.input_dir)

    def source_files(self) -> list[Path]:
        root = Path(self.config.input_dir)
        if not root.is_dir():
            raise LoadError(f"input directory not found: {root}")
        files = []
        for dirpath, dirnames, filenames in os.walk(root):
            dirnames[:] = sorted(name for name in dirnames if not _skip_dir(name))
            for filename in sorted(filenames):
                path = Path(dirpath) / filename
                if path.suffix == ".py" and not _skip_file(path):
                    files.append(path)
        return files

    def _import(self, path: Path, module_name: str) -> Any:
        """Load ``path`` as ``module_name``, reusing it if a sibling already imported it."""
        existing = sys.modules.get(module_name)
        if existing is not None and getattr(existing, "__file__", None):
            if Path(existing.__file__).resolve() == path.resolve():
                return existing

        spec = importlib.util.spec_from_file_location(module_name, path)
        if spec is None or spec.loader is None:
            raise LoadError(f"cannot import {path}")
        module = importlib.util.module_from_spec(spec)
        sys.modules[module_name] = module
        try:
            spec.loader.exec_module(module)
        except Exception as err:
            sys.modules.pop(module_name, None)
            raise LoadError(f"failed to import {path}: {err}") from err
        return module

    def _collect(self, module: Any) -> None:
        seen = {id(op) for op in self.operations}
        for value in vars(module).values():
            if isinstance(value, CompiledOperation):
                candidates = [value]
            elif isinstance(value, OperationSet):
                candidates = list(value)
            else:
                continue
            for op in candidates:
                if id(op) not in seen:
                    seen.add(id(op))
                    self.operations.append(op)

        for name, schema in (getattr(module, "SCHEMAS", None) or {}).items():
            if isinstance(schema, Schema):
                self.schemas.setdefault(name, schema)
        for name, scheme in (getattr(module, "SECURITY_SCHEMES", None) or {}).items():
            if isinstance(scheme, SecurityScheme):
                self.security_schemes.setdefault(name, scheme)

    def scan_operations(self) -> list[CompiledOperation]:
        files = self.source_files()
        root = Path(self.config.input_dir).resolve()
        saved = dict(sys.modules)
        sys.path.insert(0, str(root))
        try:
            for path in files:
                logger.debug("Scanning %s", path)
                self._collect(self._import(path, _module_name(root, path)))
        finally:
            sys.path.remove(str(root))
            _restore_modules(saved, root)

        self.stats.file_count = len(files)
        self.stats.operation_count = len(self.operations)
        logger.info("Found %d operation(s) in %d file(s)", len(self.operations), len(files))
        return self.operations

    def generate_spec(self) -> dict[str, Any]:
        emitter = OpenAPIEmitter(self.title, self.config.version)
        if self.config.description:
            emitter.set_description(self.config.description)
        for url in self.config.servers:
            emitter.add_server(url)
        for name, scheme in self.security_schemes.items():
            emitter.add_security_scheme(name, scheme)
        for name, schema in self.schemas.items():
            emitter.add_schema_component(name, schema)
        emitter.add_operations(self.operations)

        doc = emitter.emit()
        self.stats.path_count = len(doc["paths"])
        self.stats.schema_count = len(self.schemas) + sum(
            1
            for op in self.operations
            for schema in (op.params_schema, op.query_schema, op.body_schema, op.header_schema, op.response_schema)
            if schema is not None
        )
        return doc

    def write_spec(self, doc: dict[str, Any] | None = None) -> Path:
        if doc is None:
            doc = self.generate_spec()
        target = write_document(doc, self.config.output_file, self.config.format)
        logger.info("Wrote OpenAPI spec to %s", target)
        return target
