"""
Check workspace catalogs for outdated dependencies.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from .concurrency import RateLimiter, parallel_limit
from .config import PackageFilterConfig, get_package_config, load_config, with_cli_filters
from .error_tracking import ErrorTracker
from .errors import (
    CatalogNotFoundError,
    CatalogUpdateError,
    ConfigurationError,
    EmptyVersionError,
    InvalidVersionRangeError,
    WorkspaceNotFoundError,
)
from .interfaces import RegistryService, WorkspaceRepository
from .models import (
    TARGETS,
    CatalogUpdateInfo,
    CheckOptions,
    OutdatedDependencyInfo,
    OutdatedReport,
    PackageVersions,
)
from .progress import NullProgressReporter
from .versions import UPDATE_TYPE_RANK, Version, VersionRange
from .workspace import DEFAULT_CATALOG, Catalog, Workspace


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _Entry:
    catalog: Catalog
    package: str
    version_range: VersionRange
    target: str


class CatalogCheckService:
    """Resolve the best available version for every selected catalog entry."""

    def __init__(
        self,
        workspace_repository: WorkspaceRepository,
        registry: RegistryService,
        config: Optional[PackageFilterConfig] = None,
    ) -> None:
        self.workspace_repository = workspace_repository
        self.registry = registry
        self.config = config

    def load_workspace(self, workspace_path: Optional[str]) -> Workspace:
        path = Path(workspace_path) if workspace_path else Path.cwd()
        workspace = self.workspace_repository.find_by_path(path)
        if workspace is None:
            raise WorkspaceNotFoundError(path)
        return workspace

    def resolve_config(self, workspace_path: Path, options: CheckOptions) -> PackageFilterConfig:
        config = self.config if self.config is not None else load_config(workspace_path)
        config = with_cli_filters(config, options.include, options.exclude)
        if options.target is not None and options.target not in TARGETS:
            raise ConfigurationError(
                f"Invalid target '{options.target}'. Expected one of: {', '.join(TARGETS)}"
            )
        if options.concurrency is not None and options.concurrency < 1:
            raise ConfigurationError("Concurrency must be at least 1")
        return config

    def select_entries(
        self, catalogs: List[Catalog], config: PackageFilterConfig, options: CheckOptions
    ) -> List[_Entry]:
        """Drop excluded, non-included and disabled packages before any registry call."""
        entries = []
        for catalog in catalogs:
            for package in catalog.package_names():
                settings = get_package_config(package, config)
                if not settings.should_update:
                    logger.debug("Filtered out %s from catalog %s", package, catalog.name)
                    continue
                entries.append(
                    _Entry(catalog, package, catalog.entries[package], options.target or settings.target)
                )
        return entries

    async def check_outdated(self, options: Optional[CheckOptions] = None) -> OutdatedReport:
        options = options or CheckOptions()
        workspace = self.load_workspace(options.workspace_path)
        config = self.resolve_config(workspace.path, options)

        catalogs = workspace.select_catalogs(options.catalog_name)
        if not catalogs:
            raise CatalogNotFoundError(DEFAULT_CATALOG, [])

        include_prerelease = (
            options.include_prerelease
            if options.include_prerelease is not None
            else config.defaults.include_prerelease
        )
        check_security = not options.skip_security_check and config.security.enable_check
        entries = self.select_entries(catalogs, config, options)
        tracker = ErrorTracker()
        progress = options.progress or NullProgressReporter()

        limit = options.concurrency or config.advanced.concurrency
        rate_limiter = RateLimiter(config.advanced.rate_limit) if config.advanced.rate_limit > 0 else None
        logger.info(
            "Checking %s package(s) in %s catalog(s) (concurrency %s)",
            len(entries), len(catalogs), limit,
        )

        async def check_entry(entry: _Entry, _index: int) -> Optional[OutdatedDependencyInfo]:
            try:
                return await self._check_entry(
                    entry, workspace, config, include_prerelease, check_security, tracker
                )
            except Exception as exc:
                tracker.track_skipped(entry.package, exc)
                return None
            finally:
                progress.advance(entry.package)

        progress.start(len(entries), "Checking packages")
        try:
            results = await parallel_limit(entries, check_entry, limit=limit, rate_limiter=rate_limiter)
        finally:
            progress.finish()

        by_catalog: Dict[str, List[OutdatedDependencyInfo]] = {c.name: [] for c in catalogs}
        for info in results:
            if info is not None:
                by_catalog[info.catalog_name].append(info)

        report = OutdatedReport(
            workspace_path=str(workspace.path),
            catalogs=tuple(
                CatalogUpdateInfo(
                    catalog_name=catalog.name,
                    total_packages=len(catalog.entries),
                    outdated=tuple(by_catalog[catalog.name]),
                )
                for catalog in catalogs
            ),
            options=options,
            skipped=tracker.skipped_by_reason(),
            security_failures=tracker.security_failure_packages(),
        )
        tracker.log_summary()
        logger.info("Found %s outdated dependencies", report.total_outdated)
        return report

    async def _check_entry(
        self,
        entry: _Entry,
        workspace: Workspace,
        config: PackageFilterConfig,
        include_prerelease: bool,
        check_security: bool,
        tracker: ErrorTracker,
    ) -> Optional[OutdatedDependencyInfo]:
        name = entry.package
        current = entry.version_range.get_min_version()
        if current is None:
            raise InvalidVersionRangeError(entry.version_range.raw)

        info = await self.registry.get_package_versions(name)
        candidate = await self.resolve_candidate(name, current, entry.target, include_prerelease, info)
        if candidate is None or not candidate.is_newer_than(current):
            return None

        is_security_update = False
        security_fixes: Tuple[str, ...] = ()
        if check_security:
            try:
                report = await self.registry.check_security_vulnerabilities(
                    name, str(current), str(candidate)
                )
                if report.has_vulnerabilities:
                    is_security_update = True
                    security_fixes = report.fixed_ids
                    if (
                        config.security.auto_fix_vulnerabilities
                        and config.security.allow_major_for_security
                        and entry.target in ("minor", "patch")
                    ):
                        latest = await self.resolve_candidate(
                            name, current, "latest", include_prerelease, info
                        )
                        if latest is not None and latest.is_newer_than(candidate):
                            logger.info(
                                "Allowing %s %s -> %s to fix vulnerabilities", name, current, latest
                            )
                            candidate = latest
                            report = await self.registry.check_security_vulnerabilities(
                                name, str(current), str(candidate)
                            )
                            security_fixes = report.fixed_ids
                    if config.security.notify_on_security_update:
                        logger.warning("Security vulnerability detected in %s@%s", name, current)
            except CatalogUpdateError as exc:
                tracker.track_security_failure(name, exc)

        return OutdatedDependencyInfo(
            package_name=name,
            catalog_name=entry.catalog.name,
            current_range=entry.version_range,
            current_version=current,
            latest_version=candidate,
            update_type=current.difference_type(candidate),
            is_security_update=is_security_update,
            security_fixes=security_fixes,
            affected_packages=tuple(workspace.packages_using(entry.catalog.name, name)),
            changelog_url=info.repository_url or info.homepage,
        )

    async def resolve_candidate(
        self,
        name: str,
        current: Version,
        target: str,
        include_prerelease: bool,
        info: Optional[PackageVersions] = None,
    ) -> Optional[Version]:
        """Pick the version ``target`` would move ``name`` to, or ``None``.

        ``greatest`` and ``newest`` look at every published version; when the
        pick is a prerelease and ``include_prerelease`` is not set there is no
        update rather than a fallback to an older stable release.
        """
        if info is None:
            info = await self.registry.get_package_versions(name)

        if target == "latest":
            if info.latest_version is None:
                raise EmptyVersionError()
            candidate = info.latest_version
        elif target == "greatest":
            candidate = await self.registry.get_greatest_version(name, include_prerelease=True)
        elif target == "newest":
            newest = await self.registry.get_newest_versions(name, 1)
            candidate = newest[0] if newest else None
        elif target in ("minor", "patch"):
            ceiling = UPDATE_TYPE_RANK[target]
            allowed = [
                v
                for v in info.versions
                if (include_prerelease or not v.is_prerelease)
                and UPDATE_TYPE_RANK[current.difference_type(v)] <= ceiling
            ]
            candidate = max(allowed) if allowed else None
        else:
            raise ConfigurationError(f"Unknown update target: {target}")

        if candidate is not None and candidate.is_prerelease and not include_prerelease:
            logger.debug("Ignoring prerelease %s@%s", name, candidate)
            return None
        return candidate
