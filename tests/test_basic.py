"""Tests for the catalog_updates package and its command line."""

import logging

import pytest

from conftest import write_workspace


def test_package_import():
    """Test that the package can be imported."""
    import catalog_updates
    assert catalog_updates.__version__ == "0.1.0"


def test_cli_import():
    """Test that CLI module can be imported."""
    from catalog_updates.cli import main
    assert callable(main)


def test_parser_check_arguments():
    from catalog_updates.cli import build_parser

    args = build_parser().parse_args(
        ["--workspace", "/repo", "check", "--target", "minor", "--exclude", "react", "--exclude", "vue"]
    )

    assert args.command == "check"
    assert args.workspace == "/repo"
    assert args.target == "minor"
    assert args.exclude == ["react", "vue"]
    assert args.prerelease is None


def test_parser_rejects_unknown_target():
    from catalog_updates.cli import build_parser

    with pytest.raises(SystemExit):
        build_parser().parse_args(["check", "--target", "sideways"])


def test_parser_update_arguments():
    from catalog_updates.cli import build_parser

    args = build_parser().parse_args(["update", "--dry-run", "--force", "--package", "lodash"])

    assert args.dry_run and args.force
    assert args.package == ["lodash"]
    assert args.no_backup is False


def test_main_reports_missing_workspace(tmp_path, capsys):
    from catalog_updates.cli import main

    assert main(["--workspace", str(tmp_path), "check"]) == 1
    assert "No pnpm workspace found" in capsys.readouterr().err


def test_main_rollback_without_backups(tmp_path):
    from catalog_updates.cli import main

    root = write_workspace(tmp_path / "repo")

    assert main(["--workspace", str(root), "rollback"]) == 1


def test_main_rollback_restores_latest(tmp_path, caplog):
    from catalog_updates.cli import main

    root = write_workspace(tmp_path / "repo")
    catalog_file = root / "pnpm-workspace.yaml"
    original = catalog_file.read_text(encoding="utf-8")
    backup = root / "pnpm-workspace.yaml.backup.2023-01-15T10-30-45-123Z"
    backup.write_text(original, encoding="utf-8")
    catalog_file.write_text("catalog: {}\n", encoding="utf-8")

    with caplog.at_level(logging.INFO):
        assert main(["--workspace", str(root), "backups"]) == 0
        assert main(["--workspace", str(root), "rollback"]) == 0

    assert catalog_file.read_text(encoding="utf-8") == original
    assert "2023-01-15 10:30:45" in caplog.text


def test_parser_update_defers_dry_run_to_config():
    from catalog_updates.cli import build_parser

    args = build_parser().parse_args(["update"])

    assert args.dry_run is None
