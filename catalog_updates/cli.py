"""
Command-line interface for the catalog update tool.
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import List, Optional

from .analysis import RuleBasedAnalyzer
from .backup import BackupService
from .check import CatalogCheckService
from .config import load_config
from .errors import CatalogUpdateError, WorkspaceNotFoundError
from .executor import UpdateExecutorService
from .models import TARGETS, CheckOptions, UpdateOptions
from .planning import UpdatePlanService
from .progress import TqdmProgressReporter
from .registry import NpmRegistryService
from .reporting import (
    export_report_csv,
    log_backups,
    log_plan_summary,
    log_report_summary,
    log_result_summary,
    save_report_json,
)
from .repository import FileWorkspaceRepository


logger = logging.getLogger(__name__)


def _add_check_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--catalog",
        default=None,
        help="Only check the named catalog"
    )
    parser.add_argument(
        "--target",
        choices=TARGETS,
        default=None,
        help="Update target. Default: from .pcurc.json, else latest"
    )
    parser.add_argument(
        "--prerelease",
        action="store_true",
        default=None,
        help="Allow prerelease versions"
    )
    parser.add_argument(
        "--include",
        action="append",
        default=[],
        help="Only check packages matching this glob (repeatable)"
    )
    parser.add_argument(
        "--exclude",
        action="append",
        default=[],
        help="Skip packages matching this glob (repeatable)"
    )
    parser.add_argument(
        "--skip-security",
        action="store_true",
        help="Do not query security advisories"
    )
    parser.add_argument(
        "--concurrency",
        type=int,
        default=None,
        help="Maximum concurrent registry requests. Default: advanced.concurrency"
    )
    parser.add_argument(
        "--no-progress",
        action="store_true",
        help="Hide the progress bar"
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pcu",
        description="Check and update pnpm workspace catalog dependencies"
    )
    parser.add_argument(
        "--workspace",
        default=None,
        help="Workspace root. Default: discovered from the current directory"
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable debug logging"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    check = subparsers.add_parser("check", help="Report outdated catalog dependencies")
    _add_check_arguments(check)
    check.add_argument("--json", dest="json_dir", default=None, help="Write a JSON report to this directory")
    check.add_argument("--csv", dest="csv_dir", default=None, help="Write a CSV report to this directory")
    check.set_defaults(handler=run_check)

    update = subparsers.add_parser("update", help="Update catalog dependencies")
    _add_check_arguments(update)
    update.add_argument("--dry-run", action="store_true", default=None,
                        help="Show what would change without writing")
    update.add_argument("--force", action="store_true", help="Apply updates even when versions conflict")
    update.add_argument("--no-backup", action="store_true", help="Do not back up the catalog file first")
    update.add_argument("--package", action="append", default=[], help="Only update this package (repeatable)")
    update.add_argument("--analyze", action="store_true", help="Attach a rule-based risk analysis to the plan")
    update.set_defaults(handler=run_update)

    backups = subparsers.add_parser("backups", help="List catalog file backups")
    backups.set_defaults(handler=run_backups)

    rollback = subparsers.add_parser("rollback", help="Restore the catalog file from a backup")
    rollback.add_argument("--backup", default=None, help="Backup file to restore. Default: the newest")
    rollback.add_argument("--delete-all", action="store_true", help="Delete every backup instead of restoring")
    rollback.set_defaults(handler=run_rollback)

    return parser


def resolve_workspace(args: argparse.Namespace, repository: FileWorkspaceRepository) -> Path:
    if args.workspace:
        return Path(args.workspace).resolve()
    workspace = repository.discover_workspace()
    if workspace is None:
        raise WorkspaceNotFoundError(Path.cwd())
    return workspace.path


def _check_options(args: argparse.Namespace, workspace_path: Path, cls=CheckOptions, **extra):
    return cls(
        workspace_path=str(workspace_path),
        catalog_name=args.catalog,
        target=args.target,
        include_prerelease=args.prerelease,
        include=tuple(args.include),
        exclude=tuple(args.exclude),
        skip_security_check=args.skip_security,
        concurrency=args.concurrency,
        progress=TqdmProgressReporter(disable=args.no_progress),
        **extra,
    )


def run_check(args: argparse.Namespace) -> int:
    repository = FileWorkspaceRepository()
    workspace_path = resolve_workspace(args, repository)
    config = load_config(workspace_path)
    registry = NpmRegistryService.from_config(config)
    service = CatalogCheckService(repository, registry, config)
    try:
        report = asyncio.run(service.check_outdated(_check_options(args, workspace_path)))
    finally:
        registry.close()

    log_report_summary(report)
    if args.json_dir:
        logger.info("Report saved to: %s", save_report_json(report, Path(args.json_dir)))
    if args.csv_dir:
        csv_file = export_report_csv(report, Path(args.csv_dir))
        if csv_file is not None:
            logger.info("CSV saved to: %s", csv_file)
    return 0


async def _plan_and_execute(plan_service, executor, options: UpdateOptions):
    plan = await plan_service.plan_updates(options)
    log_plan_summary(plan)
    return await executor.execute(plan, options)


def run_update(args: argparse.Namespace) -> int:
    repository = FileWorkspaceRepository()
    workspace_path = resolve_workspace(args, repository)
    config = load_config(workspace_path)
    registry = NpmRegistryService.from_config(config)
    check_service = CatalogCheckService(repository, registry, config)
    plan_service = UpdatePlanService(
        check_service, analyzer=RuleBasedAnalyzer() if args.analyze else None
    )
    executor = UpdateExecutorService(
        repository, BackupService(max_backups=config.advanced.max_backups), config
    )
    options = _check_options(
        args,
        workspace_path,
        cls=UpdateOptions,
        dry_run=args.dry_run,
        force=args.force,
        create_backup=False if args.no_backup else None,
        packages=tuple(args.package),
    )
    try:
        result = asyncio.run(_plan_and_execute(plan_service, executor, options))
    finally:
        registry.close()

    log_result_summary(result)
    return 0


def run_backups(args: argparse.Namespace) -> int:
    repository = FileWorkspaceRepository()
    workspace_path = resolve_workspace(args, repository)
    config = load_config(workspace_path)
    service = BackupService(max_backups=config.advanced.max_backups)
    log_backups(asyncio.run(service.list_backups(repository.catalog_file_path(workspace_path))))
    return 0


def run_rollback(args: argparse.Namespace) -> int:
    repository = FileWorkspaceRepository()
    workspace_path = resolve_workspace(args, repository)
    config = load_config(workspace_path)
    service = BackupService(max_backups=config.advanced.max_backups)
    catalog_file = repository.catalog_file_path(workspace_path)

    if args.delete_all:
        deleted = asyncio.run(service.delete_all_backups(catalog_file))
        logger.info("Deleted %s backup(s)", deleted)
        return 0

    if args.backup:
        result = asyncio.run(service.restore_from_backup(catalog_file, Path(args.backup)))
    else:
        result = asyncio.run(service.restore_latest(catalog_file))
        if result is None:
            logger.info("No backups available for %s", catalog_file)
            return 1

    logger.info("Restored %s from %s", catalog_file, result.restored_from)
    if result.pre_restore_backup is not None:
        logger.info("Previous contents saved to %s", result.pre_restore_backup)
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(message)s",
    )

    try:
        return args.handler(args)
    except CatalogUpdateError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
