"""Tests for loading workspaces and rewriting catalog entries."""

import pytest

from catalog_updates.catalog_file import format_yaml_value, read_catalog_values, rewrite_catalog_entries
from catalog_updates.errors import CatalogNotFoundError, ConfigurationError, WorkspaceNotFoundError
from catalog_updates.repository import FileWorkspaceRepository
from catalog_updates.workspace import DependencyReference

from conftest import write_workspace


def test_workspace_loaded(workspace_root):
    workspace = FileWorkspaceRepository().get_by_path(workspace_root)

    assert workspace.name == "demo-monorepo"
    assert workspace.catalog_names() == ["default", "legacy"]
    assert workspace.get_catalog("default").get_range("react").raw == "^18.2.0"
    assert sorted(p.name for p in workspace.packages) == ["old", "web"]
    assert workspace.packages_using("legacy", "react") == ["old"]
    assert [c.name for c in workspace.catalogs_declaring("react")] == ["default", "legacy"]


def test_get_catalog_unknown(workspace_root):
    workspace = FileWorkspaceRepository().get_by_path(workspace_root)
    with pytest.raises(CatalogNotFoundError, match="Available catalogs: default, legacy"):
        workspace.get_catalog("react17")


def test_unsupported_ranges_are_ignored(tmp_path):
    root = write_workspace(
        tmp_path / "repo",
        "catalog:\n  lodash: ^4.17.20\n  local: workspace:*\n",
    )

    catalog = FileWorkspaceRepository().get_by_path(root).get_catalog("default")

    assert catalog.package_names() == ["lodash"]


def test_explicit_default_catalog_is_merged(tmp_path):
    root = write_workspace(
        tmp_path / "repo",
        "catalog:\n  lodash: ^4.17.20\ncatalogs:\n  default:\n    react: ^18.2.0\n",
    )

    workspace = FileWorkspaceRepository().get_by_path(root)

    assert workspace.catalog_names() == ["default"]
    assert workspace.get_catalog("default").package_names() == ["lodash", "react"]


def test_negated_package_patterns(tmp_path):
    root = write_workspace(
        tmp_path / "repo",
        "packages:\n  - packages/*\n  - '!packages/skip'\ncatalog:\n  lodash: ^4.17.20\n",
        packages={
            "packages/keep": {"name": "keep"},
            "packages/skip": {"name": "skip"},
        },
    )

    workspace = FileWorkspaceRepository().get_by_path(root)

    assert [p.name for p in workspace.packages] == ["keep"]


def test_invalid_yaml(tmp_path):
    root = write_workspace(tmp_path / "repo", "catalog: [unclosed\n")
    with pytest.raises(ConfigurationError, match="Invalid YAML"):
        FileWorkspaceRepository().get_by_path(root)


def test_missing_workspace(tmp_path):
    repository = FileWorkspaceRepository()
    assert repository.find_by_path(tmp_path) is None
    with pytest.raises(WorkspaceNotFoundError):
        repository.get_by_path(tmp_path)


def test_discover_walks_up(workspace_root):
    workspace = FileWorkspaceRepository().discover_workspace(workspace_root / "packages" / "web")
    assert workspace.path == workspace_root.resolve()


def test_dependency_reference_catalog_name():
    assert DependencyReference("react", "catalog:", "dependencies").catalog_name == "default"
    assert DependencyReference("react", "catalog:legacy", "dependencies").catalog_name == "legacy"
    assert DependencyReference("react", "^18.2.0", "dependencies").catalog_name is None


CATALOG_TEXT = """\
# shared versions
packages:
  - packages/*

catalog:
  lodash: ^4.17.20
  react: ^18.2.0 # ui
  '@types/node': "^20.1.0"

catalogs:
  legacy:
    react: ^17.0.2
  next:
    react: ^19.0.0-rc.0
"""


def test_rewrite_preserves_layout():
    text, missing = rewrite_catalog_entries(
        CATALOG_TEXT,
        {
            ("default", "react"): "^18.3.1",
            ("default", "@types/node"): "^20.11.0",
            ("legacy", "react"): "^17.0.9",
        },
    )

    assert missing == []
    assert text == CATALOG_TEXT.replace("^18.2.0 # ui", "^18.3.1 # ui").replace(
        '"^20.1.0"', '"^20.11.0"'
    ).replace("^17.0.2", "^17.0.9")


def test_rewrite_reports_missing_entries():
    text, missing = rewrite_catalog_entries(CATALOG_TEXT, {("legacy", "vue"): "^3.4.0"})

    assert text == CATALOG_TEXT
    assert missing == [("legacy", "vue")]


def test_rewrite_result_reads_back():
    text, _ = rewrite_catalog_entries(CATALOG_TEXT, {("next", "react"): "^19.0.0"})
    values = read_catalog_values(text)

    assert values[("next", "react")] == "^19.0.0"
    assert values[("default", "@types/node")] == "^20.1.0"


def test_format_yaml_value():
    assert format_yaml_value("^1.0.0") == "^1.0.0"
    assert format_yaml_value(">=1.0.0 <2.0.0") == "'>=1.0.0 <2.0.0'"
    assert format_yaml_value("*") == "'*'"
    assert format_yaml_value("1.0.0", '"') == '"1.0.0"'


def test_update_catalog_entries_dry_run(workspace_root):
    repository = FileWorkspaceRepository()
    path = repository.catalog_file_path(workspace_root)
    before = path.read_text(encoding="utf-8")

    missing = repository.update_catalog_entries(workspace_root, {("default", "lodash"): "^4.17.21"}, dry_run=True)

    assert missing == []
    assert path.read_text(encoding="utf-8") == before

    repository.update_catalog_entries(workspace_root, {("default", "lodash"): "^4.17.21"})
    assert "lodash: ^4.17.21" in path.read_text(encoding="utf-8")
