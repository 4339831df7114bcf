"""
Line-based editing of catalog entries in ``pnpm-workspace.yaml``.

Only the value of each targeted entry is replaced; indentation, key quoting,
comments and every other line are left as they were.
"""

from __future__ import annotations

import re
from typing import Dict, List, Optional, Set, Tuple

import yaml

from .errors import ConfigurationError
from .workspace import DEFAULT_CATALOG


EntryKey = Tuple[str, str]

_ENTRY_RE = re.compile(
    r"""^(?P<indent>\s+)(?P<kq>['"]?)(?P<key>[^'"\s#][^'"]*?)(?P=kq)(?P<sep>\s*:[ \t]+)"""
    r"""(?P<vq>['"]?)(?P<value>[^'"#]*?)(?P=vq)(?P<trail>[ \t]*(?:#.*)?)$"""
)
_INDICATORS = set(">|*&!%@`{}[],#?-:'\"")


def _header_name(stripped: str) -> str:
    return stripped.split(":", 1)[0].strip().strip("'\"")


def format_yaml_value(value: str, quote: str = "") -> str:
    """Render ``value`` as a YAML scalar, quoting when a plain scalar would misparse."""
    if quote:
        return f"{quote}{value}{quote}"
    if not value or value[0] in _INDICATORS or ": " in value or " #" in value:
        return f"'{value}'"
    return value


def rewrite_catalog_entries(text: str, changes: Dict[EntryKey, str]) -> Tuple[str, List[EntryKey]]:
    """Replace catalog entry values in ``text``.

    Args:
        text: Original YAML document.
        changes: Mapping of ``(catalog_name, package_name)`` to the new range text.

    Returns:
        The rewritten document and the change keys that were not found.
    """
    lines = text.splitlines(keepends=True)
    applied: Set[EntryKey] = set()
    section: Optional[str] = None
    current: Optional[str] = None
    named_indent: Optional[int] = None

    for i, line in enumerate(lines):
        body = line.rstrip("\r\n")
        stripped = body.strip()
        if not stripped or stripped.startswith("#"):
            continue
        indent = len(body) - len(body.lstrip())

        if indent == 0:
            key = _header_name(stripped)
            if key == "catalog":
                section, current = "catalog", DEFAULT_CATALOG
            elif key == "catalogs":
                section, current, named_indent = "catalogs", None, None
            else:
                section = current = None
            continue

        if section is None:
            continue
        if section == "catalogs" and (named_indent is None or indent <= named_indent):
            named_indent = indent
            current = _header_name(stripped)
            continue

        match = _ENTRY_RE.match(body)
        if not match or not match.group("value") or current is None:
            continue
        entry = (current, match.group("key"))
        if entry not in changes:
            continue

        new_value = format_yaml_value(changes[entry], match.group("vq"))
        ending = line[len(body):]
        lines[i] = (
            f"{match.group('indent')}{match.group('kq')}{match.group('key')}{match.group('kq')}"
            f"{match.group('sep')}{new_value}{match.group('trail')}{ending}"
        )
        applied.add(entry)

    missing = [key for key in changes if key not in applied]
    return "".join(lines), missing


def read_catalog_values(text: str) -> Dict[EntryKey, str]:
    """Parse ``text`` and return every catalog entry as ``(catalog, package) -> range``."""
    try:
        data = yaml.safe_load(text) or {}
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Invalid workspace YAML: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigurationError("Workspace YAML must be a mapping")

    values: Dict[EntryKey, str] = {}
    for package, value in (data.get("catalog") or {}).items():
        values[(DEFAULT_CATALOG, str(package))] = str(value)
    for catalog, entries in (data.get("catalogs") or {}).items():
        for package, value in (entries or {}).items():
            values[(str(catalog), str(package))] = str(value)
    return values
