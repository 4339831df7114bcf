"""Tests for .pcurc.json loading and package rule matching."""

import json

import pytest

from catalog_updates.config import (
    PackageFilterConfig,
    find_package_rule,
    get_package_config,
    load_config,
    matches_pattern,
    merge_config,
    should_check_package,
    with_cli_filters,
)
from catalog_updates.errors import ConfigurationError


def test_defaults_without_file(tmp_path):
    config = load_config(tmp_path)

    assert config == PackageFilterConfig()
    assert config.defaults.target == "latest"
    assert config.defaults.include_prerelease is False
    assert config.defaults.create_backup is True
    assert config.advanced.concurrency == 8
    assert config.advanced.max_backups == 10
    assert config.monorepo.catalog_priority == ("default",)


def test_file_values_merged_field_by_field(tmp_path):
    (tmp_path / ".pcurc.json").write_text(
        json.dumps(
            {
                "exclude": ["@internal/*"],
                "defaults": {"target": "minor"},
                "security": {"allowMajorForSecurity": False},
                "advanced": {"concurrency": 2, "registry": "https://npm.internal"},
                "monorepo": {"syncVersions": ["react", "react-dom"]},
                "unknownSection": {"ignored": True},
            }
        ),
        encoding="utf-8",
    )

    config = load_config(tmp_path)

    assert config.exclude == ("@internal/*",)
    assert config.defaults.target == "minor"
    assert config.defaults.create_backup is True
    assert config.security.allow_major_for_security is False
    assert config.security.enable_check is True
    assert config.advanced.concurrency == 2
    assert config.advanced.timeout == 30.0
    assert config.advanced.registry == "https://npm.internal"
    assert config.monorepo.sync_versions == ("react", "react-dom")


def test_invalid_json_raises(tmp_path):
    (tmp_path / ".pcurc.json").write_text("{not json", encoding="utf-8")
    with pytest.raises(ConfigurationError, match="Invalid JSON"):
        load_config(tmp_path)


@pytest.mark.parametrize(
    "data",
    [
        {"defaults": {"target": "sideways"}},
        {"defaults": {"includePrerelease": "yes"}},
        {"advanced": {"concurrency": 0}},
        {"advanced": {"concurrency": True}},
        {"exclude": "react"},
        {"packageRules": [{"target": "minor"}]},
        {"__proto__": {"polluted": True}, "security": []},
    ],
)
def test_invalid_values_rejected(data):
    with pytest.raises(ConfigurationError):
        merge_config(data)


def test_unknown_keys_do_not_leak_into_config():
    config = merge_config({"__proto__": {"polluted": True}, "constructor": {"prototype": 1}})
    assert config == PackageFilterConfig()


@pytest.mark.parametrize(
    "name, pattern, expected",
    [
        ("react", "react", True),
        ("react-dom", "react*", True),
        ("@types/node", "@types/*", True),
        ("@Types/Node", "@types/*", True),
        ("vue", "v?e", True),
        ("preact", "react*", False),
        ("lodash.merge", "lodash", False),
    ],
)
def test_matches_pattern(name, pattern, expected):
    assert matches_pattern(name, pattern) is expected


def test_exclude_wins_over_include():
    config = merge_config({"include": ["react*"], "exclude": ["react-native"]})

    assert should_check_package("react-dom", config)
    assert not should_check_package("react-native", config)
    assert not should_check_package("lodash", config)


def test_package_rules():
    config = merge_config(
        {
            "defaults": {"target": "minor"},
            "packageRules": [
                {"patterns": ["typescript"], "target": "patch", "requireConfirmation": True},
                {"patterns": ["react"], "relatedPackages": ["react-dom", "@types/react"], "groupUpdate": True},
                {"patterns": ["legacy-*"], "enabled": False},
            ],
        }
    )

    assert get_package_config("typescript", config).target == "patch"
    assert get_package_config("typescript", config).require_confirmation
    assert get_package_config("lodash", config).target == "minor"
    assert get_package_config("@types/react", config).group_update
    assert find_package_rule("react-dom", config).patterns == ("react",)
    assert not should_check_package("legacy-utils", config)


def test_related_packages_take_priority():
    config = merge_config(
        {
            "packageRules": [
                {"patterns": ["react-dom"], "target": "patch"},
                {"patterns": ["react"], "relatedPackages": ["react-dom"], "target": "latest"},
            ]
        }
    )

    assert get_package_config("react-dom", config).target == "latest"


def test_cli_filters_appended():
    base = merge_config({"exclude": ["a"]})
    config = with_cli_filters(base, include=("b*",), exclude=("c",))

    assert config.exclude == ("a", "c")
    assert config.include == ("b*",)
    assert with_cli_filters(base) is base
