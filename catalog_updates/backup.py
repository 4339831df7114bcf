"""
Timestamped backups of the catalog file.

A backup of ``pnpm-workspace.yaml`` is stored next to it (or in a configured
directory) as ``pnpm-workspace.yaml.backup.2023-01-15T10-30-45-123Z``.
"""

from __future__ import annotations

import asyncio
import logging
import shutil
from datetime import datetime, timedelta
from pathlib import Path
from typing import Callable, List, Optional, Union

import yaml

from .errors import BackupError
from .models import BackupInfo, RestoreResult
from .time_utils import format_backup_timestamp, parse_backup_timestamp, utc_now


logger = logging.getLogger(__name__)

BACKUP_MARKER = ".backup."

PathLike = Union[str, Path]


class BackupService:
    """Create, rotate and restore catalog file backups."""

    def __init__(
        self,
        max_backups: int = 10,
        backup_dir: Optional[PathLike] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        if max_backups < 1:
            raise ValueError("max_backups must be at least 1")
        self.max_backups = max_backups
        self.backup_dir = Path(backup_dir) if backup_dir is not None else None
        self._clock = clock

    def _directory_for(self, path: Path) -> Path:
        return self.backup_dir if self.backup_dir is not None else path.parent

    def backup_path_for(self, path: PathLike, when: datetime) -> Path:
        path = Path(path)
        return self._directory_for(path) / f"{path.name}{BACKUP_MARKER}{format_backup_timestamp(when)}"

    async def create_backup(self, path: PathLike, rotate: bool = True) -> Path:
        return await asyncio.to_thread(self._create_backup, Path(path), rotate)

    async def list_backups(self, path: PathLike) -> List[BackupInfo]:
        return await asyncio.to_thread(self._list_backups, Path(path))

    async def rotate_backups(self, path: PathLike) -> int:
        return await asyncio.to_thread(self._rotate_backups, Path(path))

    async def restore_from_backup(self, target: PathLike, backup: PathLike) -> RestoreResult:
        return await asyncio.to_thread(self._restore, Path(target), Path(backup))

    async def restore_latest(self, path: PathLike) -> Optional[RestoreResult]:
        backups = await self.list_backups(path)
        if not backups:
            logger.info("No backups found for %s", path)
            return None
        return await self.restore_from_backup(path, backups[0].path)

    async def delete_backup(self, backup: PathLike) -> None:
        await asyncio.to_thread(self._delete, Path(backup))

    async def delete_all_backups(self, path: PathLike) -> int:
        return await asyncio.to_thread(self._delete_all, Path(path))

    async def verify_backup(self, backup: PathLike) -> bool:
        return await asyncio.to_thread(self._verify, Path(backup))

    def _create_backup(self, path: Path, rotate: bool) -> Path:
        if not path.is_file():
            raise BackupError(f"Cannot back up {path}: file does not exist")

        directory = self._directory_for(path)
        when = self._clock()
        target = self.backup_path_for(path, when)
        while target.exists():
            when += timedelta(milliseconds=1)
            target = self.backup_path_for(path, when)

        try:
            directory.mkdir(parents=True, exist_ok=True)
            shutil.copy2(path, target)
        except OSError as exc:
            raise BackupError(f"Failed to back up {path}: {exc}") from exc

        logger.info("Created backup %s", target)
        if rotate:
            self._rotate_backups(path)
        return target

    def _list_backups(self, path: Path) -> List[BackupInfo]:
        directory = self._directory_for(path)
        prefix = f"{path.name}{BACKUP_MARKER}"
        backups = []
        try:
            if not directory.is_dir():
                return []
            for entry in directory.iterdir():
                if not entry.name.startswith(prefix) or not entry.is_file():
                    continue
                created = parse_backup_timestamp(entry.name[len(prefix):])
                if created is None:
                    logger.debug("Unparsable backup timestamp in %s", entry.name)
                    created = self._clock()
                backups.append(BackupInfo(path=entry, created_at=created, size=entry.stat().st_size))
        except OSError as exc:
            logger.warning("Failed to list backups for %s: %s", path, exc)
            return []

        backups.sort(key=lambda info: info.created_at, reverse=True)
        return backups

    def _rotate_backups(self, path: Path) -> int:
        removed = 0
        for info in self._list_backups(path)[self.max_backups:]:
            try:
                info.path.unlink()
            except OSError as exc:
                logger.warning("Failed to remove old backup %s: %s", info.path, exc)
                continue
            logger.debug("Removed old backup %s", info.path)
            removed += 1
        return removed

    def _restore(self, target: Path, backup: Path) -> RestoreResult:
        pre_restore = None
        if target.exists():
            pre_restore = self._create_backup(target, rotate=False)
            logger.info("Saved current %s as %s before restoring", target.name, pre_restore)

        shutil.copy2(backup, target)
        logger.info("Restored %s from %s", target, backup)
        self._rotate_backups(target)
        return RestoreResult(restored_from=backup, pre_restore_backup=pre_restore)

    def _delete(self, backup: Path) -> None:
        try:
            backup.unlink()
        except OSError as exc:
            raise BackupError(f"Failed to delete backup {backup}: {exc}") from exc
        logger.info("Deleted backup %s", backup)

    def _delete_all(self, path: Path) -> int:
        deleted = 0
        for info in self._list_backups(path):
            try:
                info.path.unlink()
            except OSError as exc:
                logger.warning("Failed to delete backup %s: %s", info.path, exc)
                continue
            deleted += 1
        logger.info("Deleted %s backup(s) of %s", deleted, path)
        return deleted

    def _verify(self, backup: Path) -> bool:
        try:
            with open(backup, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as exc:
            logger.warning("Backup %s is not readable: %s", backup, exc)
            return False
        return isinstance(data, dict)
