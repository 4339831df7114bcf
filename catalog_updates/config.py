"""
Project configuration loaded from ``.pcurc.json``.

Values from the file are merged onto the defaults one field at a time; keys
the loader does not know about are ignored.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field, replace
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

from .errors import ConfigurationError
from .models import TARGETS


logger = logging.getLogger(__name__)

CONFIG_FILENAME = ".pcurc.json"
DEFAULT_REGISTRY = "https://registry.npmjs.org"


@dataclass(frozen=True)
class PackageRule:
    """Per-package overrides selected by glob patterns."""

    patterns: Tuple[str, ...]
    target: Optional[str] = None
    auto_update: bool = False
    require_confirmation: bool = False
    group_update: bool = False
    related_packages: Tuple[str, ...] = ()
    enabled: bool = True


@dataclass(frozen=True)
class DefaultsConfig:
    target: str = "latest"
    include_prerelease: bool = False
    create_backup: bool = True
    dry_run: bool = False


@dataclass(frozen=True)
class SecurityConfig:
    auto_fix_vulnerabilities: bool = True
    allow_major_for_security: bool = True
    notify_on_security_update: bool = True
    enable_check: bool = True


@dataclass(frozen=True)
class AdvancedConfig:
    concurrency: int = 8
    timeout: float = 30.0
    retries: int = 3
    cache_validity_minutes: int = 60
    rate_limit: float = 15.0
    registry: str = DEFAULT_REGISTRY
    max_backups: int = 10


@dataclass(frozen=True)
class MonorepoConfig:
    sync_versions: Tuple[str, ...] = ()
    catalog_priority: Tuple[str, ...] = ("default",)


@dataclass(frozen=True)
class PackageFilterConfig:
    """Complete configuration for one workspace."""

    exclude: Tuple[str, ...] = ()
    include: Tuple[str, ...] = ()
    defaults: DefaultsConfig = field(default_factory=DefaultsConfig)
    package_rules: Tuple[PackageRule, ...] = ()
    security: SecurityConfig = field(default_factory=SecurityConfig)
    advanced: AdvancedConfig = field(default_factory=AdvancedConfig)
    monorepo: MonorepoConfig = field(default_factory=MonorepoConfig)


@dataclass(frozen=True)
class PackageSettings:
    """Effective settings for one package after applying rules."""

    should_update: bool
    target: str
    require_confirmation: bool = False
    auto_update: bool = False
    group_update: bool = False
    rule: Optional[PackageRule] = None


def _expect(value: Any, kind, key: str):
    if not isinstance(value, kind) or (kind is not bool and isinstance(value, bool)):
        raise ConfigurationError(f"Invalid value for '{key}' in {CONFIG_FILENAME}: {value!r}")
    return value


def _string_list(value: Any, key: str) -> Tuple[str, ...]:
    _expect(value, list, key)
    return tuple(_expect(item, str, key) for item in value)


def _target(value: Any, key: str) -> str:
    _expect(value, str, key)
    if value not in TARGETS:
        raise ConfigurationError(
            f"Invalid target '{value}' for '{key}'. Expected one of: {', '.join(TARGETS)}"
        )
    return value


def _merge_section(current, data: Any, section: str, converters: Dict[str, Tuple[str, Any]]):
    """Apply known keys from ``data`` onto the dataclass ``current``."""
    if data is None:
        return current
    _expect(data, dict, section)
    updates = {}
    for json_key, (attr, convert) in converters.items():
        if json_key in data:
            updates[attr] = convert(data[json_key], f"{section}.{json_key}")
    return replace(current, **updates)


def _bool(value: Any, key: str) -> bool:
    return _expect(value, bool, key)


def _int(value: Any, key: str) -> int:
    return _expect(value, int, key)


def _number(value: Any, key: str) -> float:
    return float(_expect(value, (int, float), key))


def _str(value: Any, key: str) -> str:
    return _expect(value, str, key)


def _parse_rule(data: Any, index: int) -> PackageRule:
    key = f"packageRules[{index}]"
    _expect(data, dict, key)
    if "patterns" not in data:
        raise ConfigurationError(f"'{key}' is missing 'patterns'")
    return PackageRule(
        patterns=_string_list(data["patterns"], f"{key}.patterns"),
        target=_target(data["target"], f"{key}.target") if "target" in data else None,
        auto_update=_bool(data.get("autoUpdate", False), f"{key}.autoUpdate"),
        require_confirmation=_bool(
            data.get("requireConfirmation", False), f"{key}.requireConfirmation"
        ),
        group_update=_bool(data.get("groupUpdate", False), f"{key}.groupUpdate"),
        related_packages=_string_list(data.get("relatedPackages", []), f"{key}.relatedPackages"),
        enabled=_bool(data.get("enabled", True), f"{key}.enabled"),
    )


def merge_config(data: Dict[str, Any], base: Optional[PackageFilterConfig] = None) -> PackageFilterConfig:
    """Merge a user configuration mapping onto ``base`` (defaults if omitted)."""
    config = base or PackageFilterConfig()
    _expect(data, dict, "<root>")

    exclude = config.exclude + _string_list(data.get("exclude", []), "exclude")
    include = config.include + _string_list(data.get("include", []), "include")

    defaults = _merge_section(config.defaults, data.get("defaults"), "defaults", {
        "target": ("target", _target),
        "includePrerelease": ("include_prerelease", _bool),
        "createBackup": ("create_backup", _bool),
        "dryRun": ("dry_run", _bool),
    })
    security = _merge_section(config.security, data.get("security"), "security", {
        "autoFixVulnerabilities": ("auto_fix_vulnerabilities", _bool),
        "allowMajorForSecurity": ("allow_major_for_security", _bool),
        "notifyOnSecurityUpdate": ("notify_on_security_update", _bool),
        "enableCheck": ("enable_check", _bool),
    })
    advanced = _merge_section(config.advanced, data.get("advanced"), "advanced", {
        "concurrency": ("concurrency", _int),
        "timeout": ("timeout", _number),
        "retries": ("retries", _int),
        "cacheValidityMinutes": ("cache_validity_minutes", _int),
        "rateLimit": ("rate_limit", _number),
        "registry": ("registry", _str),
        "maxBackups": ("max_backups", _int),
    })
    monorepo = _merge_section(config.monorepo, data.get("monorepo"), "monorepo", {
        "syncVersions": ("sync_versions", _string_list),
        "catalogPriority": ("catalog_priority", _string_list),
    })
    if advanced.concurrency < 1:
        raise ConfigurationError("'advanced.concurrency' must be at least 1")

    rules = config.package_rules
    if "packageRules" in data:
        raw_rules = _expect(data["packageRules"], list, "packageRules")
        rules = rules + tuple(_parse_rule(rule, i) for i, rule in enumerate(raw_rules))

    return PackageFilterConfig(
        exclude=exclude,
        include=include,
        defaults=defaults,
        package_rules=rules,
        security=security,
        advanced=advanced,
        monorepo=monorepo,
    )


def load_config(workspace_path: Union[str, Path, None] = None) -> PackageFilterConfig:
    """Load ``.pcurc.json`` from the workspace root, falling back to defaults."""
    if workspace_path is None:
        return PackageFilterConfig()
    config_file = Path(workspace_path) / CONFIG_FILENAME
    if not config_file.is_file():
        logger.debug("No %s found in %s, using defaults", CONFIG_FILENAME, workspace_path)
        return PackageFilterConfig()

    try:
        with open(config_file, "r", encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"Invalid JSON in {config_file}: {exc}") from exc
    except OSError as exc:
        raise ConfigurationError(f"Cannot read {config_file}: {exc}") from exc

    logger.debug("Loaded configuration from %s", config_file)
    return merge_config(data)


@lru_cache(maxsize=256)
def _pattern_regex(pattern: str):
    escaped = re.escape(pattern).replace(r"\*", ".*").replace(r"\?", ".")
    return re.compile(f"^{escaped}$", re.IGNORECASE)


def matches_pattern(name: str, pattern: str) -> bool:
    """Glob match where ``*`` is any run of characters and ``?`` one character."""
    return _pattern_regex(pattern).match(name) is not None


def _matches_any(name: str, patterns) -> bool:
    return any(matches_pattern(name, pattern) for pattern in patterns)


def find_package_rule(name: str, config: PackageFilterConfig) -> Optional[PackageRule]:
    # Related-package membership takes priority over a direct pattern match.
    for rule in config.package_rules:
        if _matches_any(name, rule.related_packages):
            return rule
    for rule in config.package_rules:
        if _matches_any(name, rule.patterns):
            return rule
    return None


def get_package_config(name: str, config: PackageFilterConfig) -> PackageSettings:
    default_target = config.defaults.target
    if _matches_any(name, config.exclude):
        return PackageSettings(should_update=False, target=default_target)
    if config.include and not _matches_any(name, config.include):
        return PackageSettings(should_update=False, target=default_target)

    rule = find_package_rule(name, config)
    if rule is None:
        return PackageSettings(should_update=True, target=default_target)
    return PackageSettings(
        should_update=rule.enabled,
        target=rule.target or default_target,
        require_confirmation=rule.require_confirmation,
        auto_update=rule.auto_update,
        group_update=rule.group_update,
        rule=rule,
    )


def should_check_package(name: str, config: PackageFilterConfig) -> bool:
    return get_package_config(name, config).should_update


def with_cli_filters(
    config: PackageFilterConfig,
    include: Tuple[str, ...] = (),
    exclude: Tuple[str, ...] = (),
) -> PackageFilterConfig:
    """Return ``config`` with command-line include/exclude globs appended."""
    if not include and not exclude:
        return config
    return replace(
        config,
        include=config.include + tuple(include),
        exclude=config.exclude + tuple(exclude),
    )


def rule_group_name(rule: PackageRule) -> str:
    return ",".join(rule.patterns)
