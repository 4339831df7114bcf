"""
Reporting and export utilities.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Dict, List, Optional

import pandas as pd

from .error_tracking import REASON_LABELS
from .models import BackupInfo, OutdatedReport, UpdatePlan, UpdateResult


logger = logging.getLogger(__name__)

REPORT_COLUMNS = [
    "catalog",
    "package",
    "current_range",
    "current_version",
    "latest_version",
    "update_type",
    "security_update",
    "affected_packages",
    "changelog_url",
]


def report_to_frame(report: OutdatedReport) -> pd.DataFrame:
    rows = [
        {
            "catalog": dep.catalog_name,
            "package": dep.package_name,
            "current_range": dep.current_range.raw,
            "current_version": str(dep.current_version),
            "latest_version": str(dep.latest_version),
            "update_type": dep.update_type,
            "security_update": dep.is_security_update,
            "affected_packages": ", ".join(dep.affected_packages),
            "changelog_url": dep.changelog_url,
        }
        for dep in report.all_outdated()
    ]
    return pd.DataFrame(rows, columns=REPORT_COLUMNS)


def result_to_frame(result: UpdateResult) -> pd.DataFrame:
    rows: List[Dict] = []
    for dep in result.updated:
        rows.append({
            "catalog": dep.catalog_name,
            "package": dep.package_name,
            "status": "updated",
            "detail": f"{dep.from_range} -> {dep.to_range}",
        })
    for dep in result.skipped:
        rows.append({
            "catalog": dep.catalog_name,
            "package": dep.package_name,
            "status": "skipped",
            "detail": dep.reason,
        })
    for error in result.errors:
        rows.append({
            "catalog": error.catalog_name,
            "package": error.package_name,
            "status": "error",
            "detail": error.message,
        })
    return pd.DataFrame(rows, columns=["catalog", "package", "status", "detail"])


def report_to_dict(report: OutdatedReport) -> Dict:
    return {
        "workspace": report.workspace_path,
        "timestamp": report.timestamp.isoformat(),
        "total_outdated": report.total_outdated,
        "has_updates": report.has_updates,
        "catalogs": [
            {
                "name": info.catalog_name,
                "total_packages": info.total_packages,
                "outdated_count": info.outdated_count,
            }
            for info in report.catalogs
        ],
        "outdated": report_to_frame(report).to_dict(orient="records"),
        "skipped": {reason: list(names) for reason, names in report.skipped.items()},
        "security_failures": list(report.security_failures),
    }


def save_report_json(report: OutdatedReport, output_dir: Path) -> Path:
    output_dir.mkdir(parents=True, exist_ok=True)
    report_file = output_dir / "catalog_report.json"
    with open(report_file, 'w') as f:
        json.dump(report_to_dict(report), f, indent=2, default=str)
    return report_file


def export_report_csv(report: OutdatedReport, output_dir: Path) -> Optional[Path]:
    if not report.has_updates:
        return None
    output_dir.mkdir(parents=True, exist_ok=True)
    csv_file = output_dir / "catalog_outdated.csv"
    report_to_frame(report).to_csv(csv_file, index=False)
    return csv_file


def log_report_summary(report: OutdatedReport) -> None:
    logger.info("=" * 60)
    logger.info("CATALOG CHECK")
    logger.info("=" * 60)
    logger.info("Workspace: %s", report.workspace_path)
    for info in report.catalogs:
        logger.info("Catalog %s: %s of %s outdated", info.catalog_name, info.outdated_count, info.total_packages)
        for dep in info.outdated:
            marker = " [security]" if dep.is_security_update else ""
            logger.info(
                "  %s %s -> %s (%s)%s",
                dep.package_name, dep.current_range.raw, dep.latest_version, dep.update_type, marker,
            )
    for reason, names in report.skipped.items():
        logger.info("Skipped (%s): %s", REASON_LABELS.get(reason, reason), ", ".join(names))
    logger.info("-" * 60)
    logger.info("Total outdated: %s", report.total_outdated)


def log_plan_summary(plan: UpdatePlan) -> None:
    logger.info("Planned updates: %s", plan.total_updates)
    for update in plan.updates:
        logger.info(
            "  %s:%s %s -> %s (%s)",
            update.catalog_name, update.package_name, update.current_range.raw,
            update.new_range.raw, update.reason,
        )
    for conflict in plan.conflicts:
        logger.warning(
            "  Conflict %s, recommended %s from %s",
            conflict.package_name, conflict.recommended_version, conflict.recommended_catalog,
        )
    if plan.awaiting_confirmation:
        logger.info(
            "Awaiting confirmation (select with --package): %s", ", ".join(plan.awaiting_confirmation)
        )
    if plan.analysis is not None:
        logger.info("Analysis (%s): %s", plan.analysis.provider, plan.analysis.summary)


def log_result_summary(result: UpdateResult) -> None:
    prefix = "[dry run] " if result.dry_run else ""
    logger.info("%sUpdated: %s, skipped: %s, errors: %s",
                prefix, len(result.updated), len(result.skipped), len(result.errors))
    for dep in result.skipped:
        logger.info("  skipped %s:%s (%s)", dep.catalog_name, dep.package_name, dep.reason)
    for error in result.errors:
        logger.warning("  failed %s:%s (%s)", error.catalog_name, error.package_name, error.message)
    if result.backup_path is not None:
        logger.info("Backup saved to %s", result.backup_path)


def log_backups(backups: List[BackupInfo]) -> None:
    if not backups:
        logger.info("No backups found")
        return
    for index, info in enumerate(backups):
        logger.info("%2d. %s  %s  (%s bytes)", index + 1, info.formatted_time, info.path.name, info.size)
