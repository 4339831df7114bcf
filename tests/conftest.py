"""Shared fixtures for catalog update tests."""

import json
from pathlib import Path
from typing import Dict, List, Optional

import pytest

from catalog_updates.errors import PackageNotFoundError
from catalog_updates.models import PackageVersions, SecurityReport, Vulnerability
from catalog_updates.time_utils import parse_timestamp
from catalog_updates.versions import Version, VersionRange, sort_versions


WORKSPACE_YAML = """\
packages:
  - packages/*

catalog:
  lodash: ^4.17.20
  react: ^18.2.0 # ui

catalogs:
  legacy:
    react: ^17.0.2
"""


class FakeRegistry:
    """In-memory registry keyed by package name."""

    def __init__(self, packages: Optional[Dict[str, Dict]] = None) -> None:
        self.packages = packages or {}
        self.failures: Dict[str, Exception] = {}
        self.advisories: Dict[str, List[Dict]] = {}
        self.security_error: Optional[Exception] = None
        self.calls: List[str] = []
        self.security_calls: List[tuple] = []

    def add(self, name, versions, latest=None, time=None, repository=None):
        self.packages[name] = {
            "versions": versions,
            "latest": latest,
            "time": time or {},
            "repository": repository,
        }

    async def get_package_versions(self, name: str) -> PackageVersions:
        self.calls.append(name)
        if name in self.failures:
            raise self.failures[name]
        if name not in self.packages:
            raise PackageNotFoundError(name)
        data = self.packages[name]
        latest = data.get("latest")
        return PackageVersions(
            name=name,
            versions=tuple(sort_versions((Version.parse(v) for v in data["versions"]), descending=True)),
            latest_version=Version.parse(latest) if latest else None,
            tags={"latest": latest} if latest else {},
            time={k: parse_timestamp(v) for k, v in data.get("time", {}).items()},
            repository_url=data.get("repository"),
        )

    async def get_greatest_version(self, name: str, include_prerelease: bool = False) -> Version:
        info = await self.get_package_versions(name)
        return max(v for v in info.versions if include_prerelease or not v.is_prerelease)

    async def get_newest_versions(self, name: str, count: int = 10) -> List[Version]:
        info = await self.get_package_versions(name)
        dated = sorted(
            ((info.time[str(v)], v) for v in info.versions if str(v) in info.time),
            key=lambda item: item[0],
            reverse=True,
        )
        return [v for _, v in dated[:count]]

    async def check_security_vulnerabilities(self, name, from_version, to_version=None) -> SecurityReport:
        self.security_calls.append((name, from_version, to_version))
        if self.security_error is not None:
            raise self.security_error
        current, target = [], []
        for advisory in self.advisories.get(name, []):
            vulnerable = VersionRange.parse(advisory["vulnerable_versions"])
            vuln = Vulnerability(
                id=advisory["id"],
                title=advisory.get("title", ""),
                severity=advisory.get("severity", "high"),
                vulnerable_versions=advisory["vulnerable_versions"],
            )
            if vulnerable.satisfies(Version.parse(from_version)):
                current.append(vuln)
            if to_version and vulnerable.satisfies(Version.parse(to_version)):
                target.append(vuln)
        return SecurityReport(name, from_version, to_version, tuple(current), tuple(target))


def write_workspace(
    root: Path,
    workspace_yaml: str = WORKSPACE_YAML,
    packages: Optional[Dict[str, Dict]] = None,
    config: Optional[Dict] = None,
) -> Path:
    root.mkdir(parents=True, exist_ok=True)
    (root / "pnpm-workspace.yaml").write_text(workspace_yaml, encoding="utf-8")
    (root / "package.json").write_text(json.dumps({"name": "demo-monorepo"}), encoding="utf-8")
    for rel_path, manifest in (packages or {}).items():
        package_dir = root / rel_path
        package_dir.mkdir(parents=True, exist_ok=True)
        (package_dir / "package.json").write_text(json.dumps(manifest), encoding="utf-8")
    if config is not None:
        (root / ".pcurc.json").write_text(json.dumps(config), encoding="utf-8")
    return root


@pytest.fixture
def fake_registry() -> FakeRegistry:
    return FakeRegistry()


@pytest.fixture
def workspace_root(tmp_path: Path) -> Path:
    return write_workspace(
        tmp_path / "repo",
        packages={
            "packages/web": {
                "name": "web",
                "dependencies": {"react": "catalog:", "lodash": "catalog:default"},
            },
            "packages/old": {
                "name": "old",
                "dependencies": {"react": "catalog:legacy"},
                "devDependencies": {"typescript": "^5.0.0"},
            },
        },
    )
