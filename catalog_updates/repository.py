"""
Filesystem-backed workspace repository.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Dict, Iterable, List, Optional

import yaml

from .catalog_file import EntryKey, read_catalog_values, rewrite_catalog_entries
from .errors import ConfigurationError, InvalidVersionRangeError, WorkspaceNotFoundError
from .interfaces import PathLike
from .versions import VersionRange
from .workspace import (
    DEPENDENCY_TYPES,
    Catalog,
    DependencyReference,
    Package,
    Workspace,
    WorkspaceConfig,
)


logger = logging.getLogger(__name__)

WORKSPACE_FILE = "pnpm-workspace.yaml"
PACKAGE_FILE = "package.json"


def _read_json(path: Path) -> Dict:
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def _string_mapping(value, context: str) -> Dict[str, str]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigurationError(f"'{context}' in {WORKSPACE_FILE} must be a mapping")
    return {str(key): str(item) for key, item in value.items()}


class FileWorkspaceRepository:
    """Load pnpm workspaces from disk and write catalog changes back."""

    def __init__(self, workspace_file: str = WORKSPACE_FILE) -> None:
        self.workspace_file = workspace_file

    def catalog_file_path(self, path: PathLike) -> Path:
        return Path(path) / self.workspace_file

    def is_valid_workspace(self, path: PathLike) -> bool:
        root = Path(path)
        return self.catalog_file_path(root).is_file() and (root / PACKAGE_FILE).is_file()

    def discover_workspace(self, start: Optional[PathLike] = None) -> Optional[Workspace]:
        current = Path(start or Path.cwd()).resolve()
        for candidate in (current, *current.parents):
            if self.is_valid_workspace(candidate):
                logger.debug("Discovered workspace at %s", candidate)
                return self.find_by_path(candidate)
        return None

    def load_configuration(self, path: PathLike) -> WorkspaceConfig:
        config_file = self.catalog_file_path(path)
        try:
            with open(config_file, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ConfigurationError(f"Invalid YAML in {config_file}: {exc}") from exc
        except FileNotFoundError as exc:
            raise WorkspaceNotFoundError(path) from exc
        if not isinstance(data, dict):
            raise ConfigurationError(f"{config_file} must contain a mapping")

        packages = data.get("packages") or []
        if not isinstance(packages, list):
            raise ConfigurationError(f"'packages' in {config_file} must be a list")

        raw_catalogs = data.get("catalogs") or {}
        if not isinstance(raw_catalogs, dict):
            raise ConfigurationError(f"'catalogs' in {config_file} must be a mapping")

        return WorkspaceConfig(
            packages=tuple(str(pattern) for pattern in packages),
            catalog=_string_mapping(data.get("catalog"), "catalog"),
            catalogs={
                str(name): _string_mapping(entries, f"catalogs.{name}")
                for name, entries in raw_catalogs.items()
            },
        )

    def find_by_path(self, path: PathLike) -> Optional[Workspace]:
        root = Path(path).resolve()
        if not self.is_valid_workspace(root):
            return None

        config = self.load_configuration(root)
        try:
            manifest = _read_json(root / PACKAGE_FILE)
        except json.JSONDecodeError as exc:
            raise ConfigurationError(f"Invalid JSON in {root / PACKAGE_FILE}: {exc}") from exc

        catalogs = {
            name: self._build_catalog(name, entries)
            for name, entries in config.catalog_definitions().items()
        }
        return Workspace(
            path=root,
            name=str(manifest.get("name") or root.name),
            catalogs=catalogs,
            packages=self._load_packages(root, config.packages),
        )

    def get_by_path(self, path: PathLike) -> Workspace:
        workspace = self.find_by_path(path)
        if workspace is None:
            raise WorkspaceNotFoundError(path)
        return workspace

    def _build_catalog(self, name: str, entries: Dict[str, str]) -> Catalog:
        catalog = Catalog(name)
        for package, range_text in entries.items():
            try:
                catalog.set_range(package, VersionRange.parse(range_text))
            except InvalidVersionRangeError:
                logger.warning(
                    "Ignoring %s in catalog %s: unsupported range %r", package, name, range_text
                )
        return catalog

    def _load_packages(self, root: Path, patterns: Iterable[str]) -> List[Package]:
        included: Dict[Path, None] = {}
        excluded = set()
        for pattern in patterns:
            if pattern.startswith("!"):
                excluded.update(self._match_package_dirs(root, pattern[1:]))
            else:
                for directory in self._match_package_dirs(root, pattern):
                    included.setdefault(directory, None)

        packages = []
        for directory in included:
            if directory in excluded:
                continue
            package = self._load_package(directory)
            if package is not None:
                packages.append(package)
        return packages

    @staticmethod
    def _match_package_dirs(root: Path, pattern: str) -> List[Path]:
        pattern = pattern.strip().rstrip("/")
        if not pattern:
            return []
        matches = [root] if pattern == "." else sorted(root.glob(pattern))
        return [
            path.resolve()
            for path in matches
            if path.is_dir() and "node_modules" not in path.parts and (path / PACKAGE_FILE).is_file()
        ]

    @staticmethod
    def _load_package(directory: Path) -> Optional[Package]:
        try:
            manifest = _read_json(directory / PACKAGE_FILE)
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("Skipping package at %s: %s", directory, exc)
            return None

        references = []
        for dependency_type in DEPENDENCY_TYPES:
            for name, range_text in (manifest.get(dependency_type) or {}).items():
                references.append(DependencyReference(name, str(range_text), dependency_type))
        return Package(
            name=str(manifest.get("name") or directory.name),
            path=directory,
            dependencies=tuple(references),
        )

    def update_catalog_entries(
        self, path: PathLike, changes: Dict[EntryKey, str], dry_run: bool = False
    ) -> List[EntryKey]:
        """Rewrite catalog entries in place.

        The new document is validated before it is written, so a failure
        leaves the file untouched.

        Args:
            path: Workspace root.
            changes: ``(catalog, package)`` to new range text.
            dry_run: Compute the result without writing.

        Returns:
            Change keys that were not present in the file.
        """
        catalog_file = self.catalog_file_path(path)
        original = catalog_file.read_text(encoding="utf-8")
        rewritten, missing = rewrite_catalog_entries(original, changes)

        values = read_catalog_values(rewritten)
        for key, expected in changes.items():
            if key in missing:
                continue
            if values.get(key) != expected:
                raise ConfigurationError(
                    f"Rewriting {key[1]} in catalog {key[0]} produced {values.get(key)!r}, "
                    f"expected {expected!r}"
                )

        if not dry_run and rewritten != original:
            catalog_file.write_text(rewritten, encoding="utf-8")
            logger.info("Wrote %s catalog change(s) to %s", len(changes) - len(missing), catalog_file)
        return missing
