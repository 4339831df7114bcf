"""
Exception hierarchy for catalog checks and updates.
"""

from __future__ import annotations

from typing import Iterable, List


class CatalogUpdateError(Exception):
    """Base class for all errors raised by this package."""


class InvalidVersionError(CatalogUpdateError):
    """A string is not a valid semantic version."""

    def __init__(self, value: str, message: str = "") -> None:
        self.value = value
        super().__init__(message or f"Invalid version: {value!r}")


class EmptyVersionError(InvalidVersionError):
    """An empty version string was supplied."""

    def __init__(self) -> None:
        super().__init__("", "Version string cannot be empty")


class InvalidVersionRangeError(CatalogUpdateError):
    """A string is not a valid version range."""

    def __init__(self, value: str) -> None:
        self.value = value
        super().__init__(f"Invalid version range: {value!r}")


class CatalogNotFoundError(CatalogUpdateError):
    """A named catalog does not exist in the workspace."""

    def __init__(self, catalog_name: str, available: Iterable[str]) -> None:
        self.catalog_name = catalog_name
        self.available: List[str] = sorted(available)
        listing = ", ".join(self.available) if self.available else "none"
        super().__init__(
            f'Catalog "{catalog_name}" not found. Available catalogs: {listing}'
        )


class WorkspaceNotFoundError(CatalogUpdateError):
    """No pnpm workspace exists at the given path."""

    def __init__(self, path) -> None:
        self.path = path
        super().__init__(f"No pnpm workspace found at {path}")


class ConfigurationError(CatalogUpdateError):
    """Configuration or workspace files could not be read."""


class RegistryError(CatalogUpdateError):
    """A registry request failed."""

    retryable = False

    def __init__(self, message: str, package: str = "", status: int = 0) -> None:
        self.package = package
        self.status = status
        super().__init__(message)


class PackageNotFoundError(RegistryError):
    """The registry does not know the package."""

    def __init__(self, package: str) -> None:
        super().__init__(f"Package not found: {package}", package=package, status=404)


class NetworkError(RegistryError):
    """Transport failure or timeout talking to the registry."""

    retryable = True


class SecurityCheckError(CatalogUpdateError):
    """Vulnerability data could not be retrieved."""

    def __init__(self, package: str, message: str) -> None:
        self.package = package
        super().__init__(f"Security check failed for {package}: {message}")


class BackupError(CatalogUpdateError):
    """A backup could not be created, listed or restored."""


class CircuitOpenError(CatalogUpdateError):
    """The circuit breaker is open and rejected the call."""

    def __init__(self, message: str = "Circuit breaker is OPEN") -> None:
        super().__init__(message)
