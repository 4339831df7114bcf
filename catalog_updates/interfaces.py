"""
Interfaces for the registry, workspace storage, progress and analysis collaborators.
"""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional, Protocol, Union

from .models import AnalysisContext, AnalysisResult, PackageVersions, SecurityReport
from .versions import Version
from .workspace import Workspace, WorkspaceConfig


PathLike = Union[str, Path]


class RegistryService(Protocol):
    """Query published package versions and advisories."""

    async def get_package_versions(self, name: str) -> PackageVersions:
        ...

    async def get_greatest_version(self, name: str, include_prerelease: bool = False) -> Version:
        ...

    async def get_newest_versions(self, name: str, count: int = 10) -> List[Version]:
        ...

    async def check_security_vulnerabilities(
        self, name: str, from_version: str, to_version: Optional[str] = None
    ) -> SecurityReport:
        ...


class WorkspaceRepository(Protocol):
    """Load workspaces and persist catalog changes."""

    def find_by_path(self, path: PathLike) -> Optional[Workspace]:
        ...

    def load_configuration(self, path: PathLike) -> WorkspaceConfig:
        ...

    def is_valid_workspace(self, path: PathLike) -> bool:
        ...

    def discover_workspace(self, start: Optional[PathLike] = None) -> Optional[Workspace]:
        ...

    def catalog_file_path(self, path: PathLike) -> Path:
        ...


class ProgressReporter(Protocol):
    """Receive progress notifications from long-running checks."""

    def start(self, total: int, description: str = "") -> None:
        ...

    def advance(self, description: str = "") -> None:
        ...

    def finish(self) -> None:
        ...


class AnalysisProvider(Protocol):
    """Judge a set of planned updates."""

    name: str

    async def analyze(self, context: AnalysisContext) -> AnalysisResult:
        ...
