"""
Core data models for catalog checks, plans and updates.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Dict, Optional, Tuple

from .time_utils import format_display_time, utc_now
from .versions import Version, VersionRange

if TYPE_CHECKING:
    from .interfaces import ProgressReporter


TARGETS = ("latest", "greatest", "minor", "patch", "newest")


@dataclass(frozen=True)
class CheckOptions:
    """Options for checking catalogs against the registry."""

    workspace_path: Optional[str] = None
    catalog_name: Optional[str] = None
    target: Optional[str] = None
    include_prerelease: Optional[bool] = None
    include: Tuple[str, ...] = ()
    exclude: Tuple[str, ...] = ()
    skip_security_check: bool = False
    concurrency: Optional[int] = None
    progress: Optional["ProgressReporter"] = field(default=None, compare=False, repr=False)


@dataclass(frozen=True)
class UpdateOptions(CheckOptions):
    """Options for planning and applying catalog updates."""

    dry_run: Optional[bool] = None
    force: bool = False
    create_backup: Optional[bool] = None
    packages: Tuple[str, ...] = ()


@dataclass(frozen=True)
class Vulnerability:
    """A published advisory affecting a package."""

    id: str
    title: str
    severity: str
    vulnerable_versions: str
    url: Optional[str] = None


@dataclass(frozen=True)
class SecurityReport:
    """Vulnerability status of a package at its current and candidate versions."""

    package_name: str
    from_version: str
    to_version: Optional[str]
    vulnerabilities: Tuple[Vulnerability, ...] = ()
    target_vulnerabilities: Tuple[Vulnerability, ...] = ()

    @property
    def has_vulnerabilities(self) -> bool:
        return bool(self.vulnerabilities)

    @property
    def fixed_ids(self) -> Tuple[str, ...]:
        remaining = {v.id for v in self.target_vulnerabilities}
        return tuple(v.id for v in self.vulnerabilities if v.id not in remaining)


@dataclass(frozen=True)
class PackageVersions:
    """Registry metadata about the published versions of one package."""

    name: str
    versions: Tuple[Version, ...]
    latest_version: Optional[Version]
    tags: Dict[str, str] = field(default_factory=dict)
    time: Dict[str, datetime] = field(default_factory=dict)
    repository_url: Optional[str] = None
    homepage: Optional[str] = None


@dataclass(frozen=True)
class OutdatedDependencyInfo:
    """One catalog entry with a newer acceptable version available."""

    package_name: str
    catalog_name: str
    current_range: VersionRange
    current_version: Version
    latest_version: Version
    update_type: str
    is_security_update: bool = False
    security_fixes: Tuple[str, ...] = ()
    affected_packages: Tuple[str, ...] = ()
    changelog_url: Optional[str] = None


@dataclass(frozen=True)
class CatalogUpdateInfo:
    """Check results for a single catalog."""

    catalog_name: str
    total_packages: int
    outdated: Tuple[OutdatedDependencyInfo, ...] = ()

    @property
    def outdated_count(self) -> int:
        return len(self.outdated)


@dataclass(frozen=True)
class OutdatedReport:
    """Result of checking every selected catalog of a workspace."""

    workspace_path: str
    catalogs: Tuple[CatalogUpdateInfo, ...]
    options: CheckOptions
    timestamp: datetime = field(default_factory=utc_now)
    skipped: Dict[str, Tuple[str, ...]] = field(default_factory=dict)
    security_failures: Tuple[str, ...] = ()

    @property
    def total_outdated(self) -> int:
        return sum(info.outdated_count for info in self.catalogs)

    @property
    def total_packages(self) -> int:
        return sum(info.total_packages for info in self.catalogs)

    @property
    def has_updates(self) -> bool:
        return self.total_outdated > 0

    def all_outdated(self) -> Tuple[OutdatedDependencyInfo, ...]:
        return tuple(dep for info in self.catalogs for dep in info.outdated)


@dataclass(frozen=True)
class PlannedUpdate:
    """A single catalog entry scheduled for rewriting."""

    package_name: str
    catalog_name: str
    current_range: VersionRange
    current_version: Version
    new_version: Version
    update_type: str
    reason: str
    is_security_update: bool = False
    group: Optional[str] = None

    @property
    def new_range(self) -> VersionRange:
        return self.current_range.with_version(self.new_version)


@dataclass(frozen=True)
class VersionConflict:
    """The same package would end up at different versions across catalogs."""

    package_name: str
    proposals: Dict[str, Version]
    recommended_version: Version
    recommended_catalog: str


@dataclass(frozen=True)
class PackageUpdateSummary:
    """Package information handed to an analysis provider."""

    name: str
    current_version: str
    target_version: str
    update_type: str
    catalog_name: Optional[str] = None


@dataclass(frozen=True)
class AnalysisContext:
    """Input for an analysis provider."""

    packages: Tuple[PackageUpdateSummary, ...]
    workspace_name: str
    workspace_path: str
    catalog_count: int
    analysis_type: str = "impact"


@dataclass(frozen=True)
class Recommendation:
    """Advice for one package update."""

    package_name: str
    current_version: str
    target_version: str
    action: str
    reason: str
    risk_level: str
    breaking_changes: Tuple[str, ...] = ()
    security_notes: Tuple[str, ...] = ()
    estimated_effort: str = "low"


@dataclass(frozen=True)
class AnalysisResult:
    """Output of an analysis provider."""

    provider: str
    analysis_type: str
    recommendations: Tuple[Recommendation, ...]
    summary: str
    confidence: float
    warnings: Tuple[str, ...] = ()
    timestamp: datetime = field(default_factory=utc_now)


@dataclass(frozen=True)
class UpdatePlan:
    """Ordered set of updates derived from an outdated report."""

    workspace_path: str
    updates: Tuple[PlannedUpdate, ...]
    conflicts: Tuple[VersionConflict, ...] = ()
    awaiting_confirmation: Tuple[str, ...] = ()
    timestamp: datetime = field(default_factory=utc_now)
    analysis: Optional[AnalysisResult] = None

    @property
    def total_updates(self) -> int:
        return len(self.updates)

    @property
    def conflicting_packages(self) -> Tuple[str, ...]:
        return tuple(conflict.package_name for conflict in self.conflicts)

    @property
    def catalog_names(self) -> Tuple[str, ...]:
        seen: Dict[str, None] = {}
        for update in self.updates:
            seen.setdefault(update.catalog_name, None)
        return tuple(seen)


@dataclass(frozen=True)
class UpdatedDependency:
    """A catalog entry that was rewritten."""

    package_name: str
    catalog_name: str
    from_range: str
    to_range: str
    update_type: str


@dataclass(frozen=True)
class SkippedDependency:
    """A planned update that was not applied."""

    package_name: str
    catalog_name: str
    reason: str


@dataclass(frozen=True)
class UpdateError:
    """A planned update that failed."""

    package_name: str
    catalog_name: str
    message: str
    fatal: bool = False


@dataclass(frozen=True)
class UpdateResult:
    """Outcome of executing an update plan."""

    success: bool
    updated: Tuple[UpdatedDependency, ...] = ()
    skipped: Tuple[SkippedDependency, ...] = ()
    errors: Tuple[UpdateError, ...] = ()
    dry_run: bool = False
    backup_path: Optional[Path] = None
    timestamp: datetime = field(default_factory=utc_now)

    @property
    def total_updated(self) -> int:
        return len(self.updated)


@dataclass(frozen=True)
class BackupInfo:
    """A timestamped snapshot of a catalog file."""

    path: Path
    created_at: datetime
    size: int

    @property
    def formatted_time(self) -> str:
        return format_display_time(self.created_at)


@dataclass(frozen=True)
class RestoreResult:
    """Paths involved in restoring a backup."""

    restored_from: Path
    pre_restore_backup: Optional[Path]
