"""
Workspace entities: catalogs, packages and their catalog references.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from .errors import CatalogNotFoundError
from .versions import VersionRange


DEFAULT_CATALOG = "default"
DEPENDENCY_TYPES = (
    "dependencies",
    "devDependencies",
    "peerDependencies",
    "optionalDependencies",
)
CATALOG_PROTOCOL = "catalog:"


@dataclass(frozen=True)
class WorkspaceConfig:
    """Contents of ``pnpm-workspace.yaml`` relevant to catalogs."""

    packages: Tuple[str, ...] = ()
    catalog: Dict[str, str] = field(default_factory=dict)
    catalogs: Dict[str, Dict[str, str]] = field(default_factory=dict)

    def catalog_definitions(self) -> Dict[str, Dict[str, str]]:
        definitions: Dict[str, Dict[str, str]] = {}
        if self.catalog:
            definitions[DEFAULT_CATALOG] = dict(self.catalog)
        for name, entries in self.catalogs.items():
            # An explicit `catalogs.default` is the same catalog as `catalog`.
            definitions.setdefault(name, {}).update(entries)
        return definitions


@dataclass
class Catalog:
    """A named mapping of package name to declared version range."""

    name: str
    entries: Dict[str, VersionRange] = field(default_factory=dict)

    def has_package(self, package: str) -> bool:
        return package in self.entries

    def get_range(self, package: str) -> Optional[VersionRange]:
        return self.entries.get(package)

    def package_names(self) -> List[str]:
        return sorted(self.entries)

    def set_range(self, package: str, version_range: VersionRange) -> None:
        self.entries[package] = version_range


@dataclass(frozen=True)
class DependencyReference:
    """A dependency declared in a workspace package's ``package.json``."""

    name: str
    range_text: str
    dependency_type: str

    @property
    def is_catalog_reference(self) -> bool:
        return self.range_text.startswith(CATALOG_PROTOCOL)

    @property
    def catalog_name(self) -> Optional[str]:
        if not self.is_catalog_reference:
            return None
        return self.range_text[len(CATALOG_PROTOCOL):].strip() or DEFAULT_CATALOG


@dataclass(frozen=True)
class Package:
    """A workspace member package."""

    name: str
    path: Path
    dependencies: Tuple[DependencyReference, ...] = ()

    def catalog_references(self) -> List[DependencyReference]:
        return [dep for dep in self.dependencies if dep.is_catalog_reference]

    def uses_catalog_dependency(self, catalog_name: str, package: str) -> bool:
        return any(
            ref.name == package and ref.catalog_name == catalog_name
            for ref in self.catalog_references()
        )


@dataclass
class Workspace:
    """A pnpm workspace with its catalogs and member packages."""

    path: Path
    name: str
    catalogs: Dict[str, Catalog] = field(default_factory=dict)
    packages: List[Package] = field(default_factory=list)

    def catalog_names(self) -> List[str]:
        return sorted(self.catalogs)

    def get_catalog(self, name: str) -> Catalog:
        try:
            return self.catalogs[name]
        except KeyError:
            raise CatalogNotFoundError(name, self.catalogs) from None

    def select_catalogs(self, name: Optional[str] = None) -> List[Catalog]:
        if name is not None:
            return [self.get_catalog(name)]
        return [self.catalogs[key] for key in self.catalog_names()]

    def packages_using(self, catalog_name: str, package: str) -> List[str]:
        return [
            member.name
            for member in self.packages
            if member.uses_catalog_dependency(catalog_name, package)
        ]

    def catalogs_declaring(self, package: str) -> List[Catalog]:
        return [catalog for catalog in self.select_catalogs() if catalog.has_package(package)]
