"""
Apply an update plan to the catalog file.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from .backup import BackupService
from .catalog_file import EntryKey
from .config import PackageFilterConfig, load_config
from .errors import CatalogUpdateError, WorkspaceNotFoundError
from .models import (
    PlannedUpdate,
    SkippedDependency,
    UpdatedDependency,
    UpdateError,
    UpdateOptions,
    UpdatePlan,
    UpdateResult,
)
from .planning import SYNC_REASON
from .repository import FileWorkspaceRepository


logger = logging.getLogger(__name__)

CONFLICT_REASON = "Version conflict - use --force to override"
DUPLICATE_REASON = "Duplicate update for the same catalog entry"
MISSING_ENTRY_MESSAGE = "Package not found in catalog file"


class UpdateExecutorService:
    """Rewrite catalog entries according to a plan, with a backup taken first."""

    def __init__(
        self,
        workspace_repository: FileWorkspaceRepository,
        backup_service: BackupService,
        config: Optional[PackageFilterConfig] = None,
    ) -> None:
        self.workspace_repository = workspace_repository
        self.backup_service = backup_service
        self.config = config

    async def execute(self, plan: UpdatePlan, options: Optional[UpdateOptions] = None) -> UpdateResult:
        options = options or UpdateOptions(workspace_path=plan.workspace_path)
        workspace_path = Path(plan.workspace_path)
        if not self.workspace_repository.is_valid_workspace(workspace_path):
            raise WorkspaceNotFoundError(workspace_path)
        catalog_file = self.workspace_repository.catalog_file_path(workspace_path)

        config = self.config if self.config is not None else load_config(workspace_path)
        create_backup = (
            options.create_backup if options.create_backup is not None else config.defaults.create_backup
        )
        dry_run = options.dry_run if options.dry_run is not None else config.defaults.dry_run

        applicable, skipped = self._partition(plan, options.force)
        errors: List[UpdateError] = []
        changes: Dict[EntryKey, str] = {}
        planned: Dict[EntryKey, Tuple[PlannedUpdate, str]] = {}
        for update in applicable:
            key = (update.catalog_name, update.package_name)
            try:
                new_range = str(update.new_range)
            except CatalogUpdateError as exc:
                errors.append(UpdateError(update.package_name, update.catalog_name, str(exc)))
                continue
            changes[key] = new_range
            planned[key] = (update, new_range)

        if not changes:
            logger.info("Nothing to update")
            return UpdateResult(
                success=not errors,
                skipped=tuple(skipped),
                errors=tuple(errors),
                dry_run=dry_run,
            )

        backup_path = None
        if create_backup and not dry_run:
            # A failed backup raises and nothing is written.
            backup_path = await self.backup_service.create_backup(catalog_file, rotate=False)

        try:
            missing = await asyncio.to_thread(
                self.workspace_repository.update_catalog_entries,
                workspace_path,
                changes,
                dry_run,
            )
        except FileNotFoundError as exc:
            raise WorkspaceNotFoundError(workspace_path) from exc

        for catalog_name, package in missing:
            errors.append(UpdateError(package, catalog_name, MISSING_ENTRY_MESSAGE))

        updated = [
            UpdatedDependency(
                package_name=update.package_name,
                catalog_name=update.catalog_name,
                from_range=update.current_range.raw,
                to_range=new_range,
                update_type=update.update_type,
            )
            for key, (update, new_range) in planned.items()
            if key not in missing
        ]

        if backup_path is not None:
            await self.backup_service.rotate_backups(catalog_file)

        self._log_summary(updated, applicable, dry_run)
        return UpdateResult(
            success=not errors,
            updated=tuple(updated),
            skipped=tuple(skipped),
            errors=tuple(errors),
            dry_run=dry_run,
            backup_path=backup_path,
        )

    @staticmethod
    def _partition(plan: UpdatePlan, force: bool) -> Tuple[List[PlannedUpdate], List[SkippedDependency]]:
        conflicting = set(plan.conflicting_packages)
        seen = set()
        applicable, skipped = [], []
        for update in plan.updates:
            key = (update.catalog_name, update.package_name)
            if update.package_name in conflicting and not force:
                skipped.append(SkippedDependency(update.package_name, update.catalog_name, CONFLICT_REASON))
                continue
            if key in seen:
                skipped.append(SkippedDependency(update.package_name, update.catalog_name, DUPLICATE_REASON))
                continue
            seen.add(key)
            applicable.append(update)
        return applicable, skipped

    @staticmethod
    def _log_summary(updated: List[UpdatedDependency], applied: List[PlannedUpdate], dry_run: bool) -> None:
        verb = "Would update" if dry_run else "Updated"
        logger.info("%s %s catalog entr%s", verb, len(updated), "y" if len(updated) == 1 else "ies")
        security = [u for u in applied if u.is_security_update]
        if security:
            logger.info(
                "%s security update(s): %s",
                len(security),
                ", ".join(f"{u.package_name}@{u.new_version}" for u in security),
            )
        synced = [u for u in applied if u.reason == SYNC_REASON]
        if synced:
            logger.info(
                "%s version sync update(s): %s",
                len(synced),
                ", ".join(f"{u.catalog_name}:{u.package_name}" for u in synced),
            )
