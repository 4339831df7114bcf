"""
Turn an outdated report into an update plan.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Dict, Iterable, List, Optional, Sequence

from .analysis import analyze_safely, build_analysis_context
from .check import CatalogCheckService
from .concurrency import parallel_limit
from .config import PackageFilterConfig, get_package_config, rule_group_name
from .errors import CatalogUpdateError
from .interfaces import AnalysisProvider
from .models import (
    OutdatedDependencyInfo,
    OutdatedReport,
    PlannedUpdate,
    UpdateOptions,
    UpdatePlan,
    VersionConflict,
)
from .versions import Version
from .workspace import Workspace


logger = logging.getLogger(__name__)

SYNC_REASON = "sync"


def update_reason(dep: OutdatedDependencyInfo) -> str:
    if dep.is_security_update:
        return "security"
    return dep.update_type


def detect_conflicts(
    updates: Iterable[PlannedUpdate], catalog_priority: Sequence[str] = ("default",)
) -> List[VersionConflict]:
    """Find packages whose planned versions diverge between catalogs."""
    by_package: Dict[str, List[PlannedUpdate]] = {}
    for update in updates:
        by_package.setdefault(update.package_name, []).append(update)

    conflicts = []
    for package, package_updates in by_package.items():
        if len({u.new_version for u in package_updates}) < 2:
            continue
        proposals = {u.catalog_name: u.new_version for u in package_updates}
        chosen = next((name for name in catalog_priority if name in proposals), None)
        if chosen is None:
            chosen = max(proposals, key=lambda name: proposals[name])
        conflicts.append(
            VersionConflict(
                package_name=package,
                proposals=proposals,
                recommended_version=proposals[chosen],
                recommended_catalog=chosen,
            )
        )
        logger.warning(
            "Version conflict for %s: %s (recommended %s from catalog %s)",
            package,
            ", ".join(f"{name}={version}" for name, version in proposals.items()),
            proposals[chosen],
            chosen,
        )
    return conflicts


class UpdatePlanService:
    """Build update plans from check results."""

    def __init__(
        self,
        check_service: CatalogCheckService,
        analyzer: Optional[AnalysisProvider] = None,
        analysis_timeout: Optional[float] = 60.0,
    ) -> None:
        self.check_service = check_service
        self.analyzer = analyzer
        self.analysis_timeout = analysis_timeout

    async def plan_updates(self, options: Optional[UpdateOptions] = None) -> UpdatePlan:
        options = options or UpdateOptions()
        report = await self.check_service.check_outdated(options)
        workspace = self.check_service.load_workspace(options.workspace_path)
        config = self.check_service.resolve_config(workspace.path, options)

        sync_targets = await self._fetch_sync_targets(report, config, workspace)
        plan = self.build_plan(
            report,
            config,
            selection=options.packages or None,
            workspace=workspace,
            sync_targets=sync_targets,
        )

        if self.analyzer is not None and plan.updates:
            context = build_analysis_context(plan.updates, workspace)
            analysis = await analyze_safely(self.analyzer, context, self.analysis_timeout)
            plan = replace(plan, analysis=analysis)
        logger.info(
            "Planned %s update(s) with %s conflict(s)", plan.total_updates, len(plan.conflicts)
        )
        return plan

    def build_plan(
        self,
        report: OutdatedReport,
        config: PackageFilterConfig,
        selection: Optional[Iterable[str]] = None,
        workspace: Optional[Workspace] = None,
        sync_targets: Optional[Dict[str, Version]] = None,
    ) -> UpdatePlan:
        """Convert report entries into planned updates without touching the report.

        Args:
            report: Result of a catalog check.
            config: Workspace configuration (package rules and monorepo settings).
            selection: Optional package names to keep. Packages outside it are
                dropped unless their rule sets ``autoUpdate``.
            workspace: Needed for version synchronization across catalogs.
            sync_targets: Registry versions for synced packages that have no update yet.

        Returns:
            The plan, including any version conflicts that were detected.
        """
        selected = set(selection) if selection else None
        updates: List[PlannedUpdate] = []
        held: Dict[str, None] = {}
        for dep in report.all_outdated():
            settings = get_package_config(dep.package_name, config)
            chosen = selected is not None and dep.package_name in selected
            if selected is not None and not chosen and not settings.auto_update:
                continue
            # Naming a package in the selection confirms it.
            if settings.require_confirmation and not chosen:
                held.setdefault(dep.package_name, None)
                continue
            group = rule_group_name(settings.rule) if settings.rule and settings.group_update else None
            updates.append(
                PlannedUpdate(
                    package_name=dep.package_name,
                    catalog_name=dep.catalog_name,
                    current_range=dep.current_range,
                    current_version=dep.current_version,
                    new_version=dep.latest_version,
                    update_type=dep.update_type,
                    reason=update_reason(dep),
                    is_security_update=dep.is_security_update,
                    group=group,
                )
            )

        if workspace is not None and config.monorepo.sync_versions:
            updates = self.sync_versions(
                updates,
                [
                    name
                    for name in config.monorepo.sync_versions
                    if (selected is not None and name in selected)
                    or (selected is None and not get_package_config(name, config).require_confirmation)
                ],
                workspace,
                sync_targets or {},
            )

        return UpdatePlan(
            workspace_path=report.workspace_path,
            updates=tuple(updates),
            conflicts=tuple(detect_conflicts(updates, config.monorepo.catalog_priority)),
            awaiting_confirmation=tuple(held),
        )

    @staticmethod
    def sync_versions(
        updates: List[PlannedUpdate],
        packages: Iterable[str],
        workspace: Workspace,
        sync_targets: Dict[str, Version],
    ) -> List[PlannedUpdate]:
        """Bring every catalog that declares a synced package to the same version."""
        result = list(updates)
        for package in packages:
            catalogs = workspace.catalogs_declaring(package)
            if len(catalogs) < 2:
                continue
            proposed = [u.new_version for u in result if u.package_name == package]
            target = max(proposed) if proposed else sync_targets.get(package)
            if target is None:
                continue

            for catalog in catalogs:
                version_range = catalog.entries[package]
                current = version_range.get_min_version()
                if current is None or not target.is_newer_than(current):
                    continue
                index = next(
                    (
                        i
                        for i, u in enumerate(result)
                        if u.package_name == package and u.catalog_name == catalog.name
                    ),
                    None,
                )
                if index is not None:
                    if result[index].new_version != target:
                        result[index] = replace(
                            result[index],
                            new_version=target,
                            update_type=current.difference_type(target),
                            reason=SYNC_REASON,
                        )
                    continue
                result.append(
                    PlannedUpdate(
                        package_name=package,
                        catalog_name=catalog.name,
                        current_range=version_range,
                        current_version=current,
                        new_version=target,
                        update_type=current.difference_type(target),
                        reason=SYNC_REASON,
                        group=f"sync:{package}",
                    )
                )
        return result

    async def _fetch_sync_targets(
        self, report: OutdatedReport, config: PackageFilterConfig, workspace: Workspace
    ) -> Dict[str, Version]:
        outdated = {dep.package_name for dep in report.all_outdated()}
        missing = [
            name
            for name in config.monorepo.sync_versions
            if name not in outdated and len(workspace.catalogs_declaring(name)) > 1
        ]
        if not missing:
            return {}

        registry = self.check_service.registry

        async def latest(name: str, _index: int) -> Optional[Version]:
            try:
                info = await registry.get_package_versions(name)
            except CatalogUpdateError as exc:
                logger.warning("Cannot sync %s: %s", name, exc)
                return None
            return info.latest_version

        versions = await parallel_limit(missing, latest, limit=config.advanced.concurrency)
        return {
            name: version
            for name, version in zip(missing, versions)
            if version is not None and not version.is_prerelease
        }
