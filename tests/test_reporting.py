import asyncio
import json
from pathlib import Path

import pandas as pd

from catalog_updates.check import CatalogCheckService
from catalog_updates.config import merge_config
from catalog_updates.error_tracking import NOT_FOUND
from catalog_updates.models import CheckOptions, SkippedDependency, UpdatedDependency, UpdateError, UpdateResult
from catalog_updates.reporting import (
    REPORT_COLUMNS,
    export_report_csv,
    report_to_dict,
    report_to_frame,
    result_to_frame,
    save_report_json,
)
from catalog_updates.repository import FileWorkspaceRepository


def _report(registry, root, **options):
    service = CatalogCheckService(FileWorkspaceRepository(), registry, merge_config({}))
    return asyncio.run(service.check_outdated(CheckOptions(workspace_path=str(root), **options)))


def test_report_exports(tmp_path: Path, fake_registry, workspace_root):
    fake_registry.add("lodash", ["4.17.20", "4.17.21"], latest="4.17.21")
    report = _report(fake_registry, workspace_root, catalog_name="default")
    output_dir = tmp_path / "out"

    json_file = save_report_json(report, output_dir)
    csv_file = export_report_csv(report, output_dir)

    data = json.loads(json_file.read_text())
    assert data["total_outdated"] == 1
    assert data["outdated"][0]["package"] == "lodash"
    assert data["skipped"] == {NOT_FOUND: ["react"]}
    frame = pd.read_csv(csv_file)
    assert list(frame.columns) == REPORT_COLUMNS
    assert frame.loc[0, "latest_version"] == "4.17.21"
    assert frame.loc[0, "affected_packages"] == "web"


def test_report_without_updates(tmp_path: Path, fake_registry, workspace_root):
    fake_registry.add("lodash", ["4.17.20"], latest="4.17.20")
    fake_registry.add("react", ["18.2.0"], latest="18.2.0")
    report = _report(fake_registry, workspace_root, catalog_name="default")

    assert report_to_frame(report).empty
    assert export_report_csv(report, tmp_path / "out") is None
    assert report_to_dict(report)["catalogs"] == [
        {"name": "default", "total_packages": 2, "outdated_count": 0}
    ]


def test_result_frame():
    result = UpdateResult(
        success=False,
        updated=(UpdatedDependency("lodash", "default", "^4.17.20", "^4.17.21", "patch"),),
        skipped=(SkippedDependency("react", "legacy", "conflict"),),
        errors=(UpdateError("vue", "default", "missing"),),
    )

    frame = result_to_frame(result)

    assert frame["status"].tolist() == ["updated", "skipped", "error"]
    assert frame.loc[0, "detail"] == "^4.17.20 -> ^4.17.21"
