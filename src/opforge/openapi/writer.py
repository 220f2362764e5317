"""Serialize emitted documents to YAML or JSON and write them to disk."""

import json
import os
import stat
import tempfile
from pathlib import Path
from typing import Any

import yaml

from opforge.errors import FormatError

FORMATS = ("yaml", "json")

_EXTENSIONS = {
    ".yaml": "yaml",
    ".yml": "yaml",
    ".json": "json",
}


def check_format(fmt: str) -> str:
    normalized = (fmt or "").lower()
    if normalized == "yml":
        normalized = "yaml"
    if normalized not in FORMATS:
        raise FormatError(f"unsupported output format: {fmt!r} (expected yaml or json)")
    return normalized


def format_for_path(path: str | Path, default: str = "yaml") -> str:
    """Infer the output format from a file extension."""
    return _EXTENSIONS.get(Path(path).suffix.lower(), check_format(default))


def dump_document(doc: dict[str, Any], fmt: str = "yaml") -> str:
    fmt = check_format(fmt)
    if fmt == "json":
        return json.dumps(doc, indent=2, ensure_ascii=False) + "\n"
    return yaml.safe_dump(
        doc,
        sort_keys=False,
        indent=2,
        default_flow_style=False,
        allow_unicode=True,
    )


def _target_mode(target: Path) -> int:
    """Keep an existing file's mode; new files get 0o666 minus the umask."""
    if target.exists():
        return stat.S_IMODE(target.stat().st_mode)
    umask = os.umask(0)
    os.umask(umask)
    return 0o666 & ~umask


def write_document(doc: dict[str, Any], path: str | Path, fmt: str = "yaml") -> Path:
    """Write ``doc`` atomically, creating parent directories as needed."""
    text = dump_document(doc, fmt)
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)

    fd, tmp_name = tempfile.mkstemp(dir=target.parent, prefix=f".{target.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(text)
        os.chmod(tmp_name, _target_mode(target))
        os.replace(tmp_name, target)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise
    return target
