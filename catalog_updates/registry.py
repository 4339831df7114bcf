"""
npm registry client.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple
from urllib.parse import quote

import requests

from .concurrency import CircuitBreaker, parallel_limit, retry
from .config import DEFAULT_REGISTRY, PackageFilterConfig
from .errors import (
    CatalogUpdateError,
    NetworkError,
    PackageNotFoundError,
    RegistryError,
    SecurityCheckError,
)
from .models import PackageVersions, SecurityReport, Vulnerability
from .time_utils import parse_timestamp
from .versions import Version, VersionRange, sort_versions


logger = logging.getLogger(__name__)

ADVISORY_BULK_PATH = "/-/npm/v1/security/advisories/bulk"


@dataclass
class RegistryCache:
    """In-memory caches for registry responses."""

    metadata_cache: Dict[str, Tuple[float, Dict]] = field(default_factory=dict)
    security_cache: Dict[Tuple[str, str, Optional[str]], SecurityReport] = field(default_factory=dict)

    def clear(self) -> None:
        self.metadata_cache.clear()
        self.security_cache.clear()


def normalize_repository_url(repository: Any) -> Optional[str]:
    """Turn a ``repository`` manifest field into a browsable https URL."""
    url = repository.get("url") if isinstance(repository, dict) else repository
    if not url or not isinstance(url, str):
        return None
    url = url.strip()
    if url.startswith("git+"):
        url = url[4:]
    if url.startswith("git://"):
        url = "https://" + url[len("git://"):]
    if url.startswith("git@github.com:"):
        url = "https://github.com/" + url[len("git@github.com:"):]
    if url.startswith("github:"):
        url = "https://github.com/" + url[len("github:"):]
    if url.endswith(".git"):
        url = url[:-4]
    if url.startswith("http://") or url.startswith("https://"):
        return url
    if url.count("/") == 1 and ":" not in url:
        return f"https://github.com/{url}"
    return None


class NpmRegistryService:
    """Query the npm registry for versions and security advisories."""

    def __init__(
        self,
        registry_url: str = DEFAULT_REGISTRY,
        timeout: float = 30.0,
        retries: int = 3,
        cache_ttl: float = 3600.0,
        session: Optional[requests.Session] = None,
        retry_delay: float = 1.0,
        failure_threshold: int = 5,
        recovery_timeout: float = 60.0,
        clock=time.monotonic,
    ) -> None:
        self.registry_url = registry_url.rstrip("/")
        self.timeout = timeout
        self.retries = max(1, retries)
        self.cache_ttl = cache_ttl
        self.retry_delay = retry_delay
        self.session = session or requests.Session()
        self.cache = RegistryCache()
        self._clock = clock
        self._breaker = CircuitBreaker(
            self._request_json,
            failure_threshold=failure_threshold,
            recovery_timeout=recovery_timeout,
            clock=clock,
            is_failure=lambda exc: not isinstance(exc, PackageNotFoundError),
        )

    @classmethod
    def from_config(cls, config: PackageFilterConfig, **kwargs) -> "NpmRegistryService":
        advanced = config.advanced
        return cls(
            registry_url=advanced.registry,
            timeout=advanced.timeout,
            retries=advanced.retries,
            cache_ttl=advanced.cache_validity_minutes * 60.0,
            **kwargs,
        )

    def package_url(self, name: str) -> str:
        return f"{self.registry_url}/{quote(name, safe='@')}"

    def _send(self, method: str, url: str, package: str, payload: Optional[Dict]) -> Any:
        try:
            with self.session.request(
                method,
                url,
                json=payload,
                timeout=self.timeout,
                headers={"Accept": "application/json"},
            ) as response:
                if response.status_code == 404:
                    raise PackageNotFoundError(package)
                if response.status_code == 429 or response.status_code >= 500:
                    raise NetworkError(
                        f"Registry returned HTTP {response.status_code} for {package}",
                        package=package,
                        status=response.status_code,
                    )
                response.raise_for_status()
                return response.json()
        except requests.Timeout as exc:
            raise NetworkError(f"Request timeout for {package}: {exc}", package=package) from exc
        except requests.ConnectionError as exc:
            raise NetworkError(f"Connection failed for {package}: {exc}", package=package) from exc
        except requests.HTTPError as exc:
            status = exc.response.status_code if exc.response is not None else 0
            raise RegistryError(f"Registry request failed for {package}: {exc}", package, status) from exc
        except ValueError as exc:
            raise RegistryError(f"Invalid registry response for {package}: {exc}", package) from exc

    async def _request_json(self, method: str, url: str, package: str, payload: Optional[Dict] = None) -> Any:
        return await asyncio.to_thread(self._send, method, url, package, payload)

    async def _fetch(self, method: str, url: str, package: str, payload: Optional[Dict] = None) -> Any:
        return await retry(
            lambda: self._breaker.execute(method, url, package, payload),
            max_attempts=self.retries,
            base_delay=self.retry_delay,
            should_retry=lambda exc: getattr(exc, "retryable", False),
        )

    async def fetch_package_metadata(self, name: str) -> Dict:
        cached = self.cache.metadata_cache.get(name)
        if cached is not None and self._clock() - cached[0] < self.cache_ttl:
            logger.debug("Cache hit: metadata %s", name)
            return cached[1]

        logger.debug("Fetching metadata for %s", name)
        data = await self._fetch("GET", self.package_url(name), name)
        if not isinstance(data, dict):
            raise RegistryError(f"Unexpected metadata format for {name}", name)
        self.cache.metadata_cache[name] = (self._clock(), data)
        return data

    async def get_package_versions(self, name: str) -> PackageVersions:
        data = await self.fetch_package_metadata(name)

        versions = []
        for text in data.get("versions") or {}:
            parsed = Version.try_parse(text)
            if parsed is None:
                logger.debug("Ignoring unparsable version %s@%s", name, text)
                continue
            versions.append(parsed)

        tags = {str(k): str(v) for k, v in (data.get("dist-tags") or {}).items()}
        latest = Version.try_parse(tags["latest"]) if tags.get("latest") else None

        published = {}
        for key, value in (data.get("time") or {}).items():
            if key in ("created", "modified"):
                continue
            stamp = parse_timestamp(value) if isinstance(value, str) else None
            if stamp is not None:
                published[key] = stamp

        return PackageVersions(
            name=name,
            versions=tuple(sort_versions(versions, descending=True)),
            latest_version=latest,
            tags=tags,
            time=published,
            repository_url=normalize_repository_url(data.get("repository")),
            homepage=data.get("homepage") if isinstance(data.get("homepage"), str) else None,
        )

    async def get_greatest_version(self, name: str, include_prerelease: bool = False) -> Version:
        info = await self.get_package_versions(name)
        candidates = [v for v in info.versions if include_prerelease or not v.is_prerelease]
        if not candidates:
            raise RegistryError(f"No versions found for {name}", name)
        return max(candidates)

    async def get_newest_versions(self, name: str, count: int = 10) -> List[Version]:
        """Return up to ``count`` versions ordered by publish time, newest first."""
        info = await self.get_package_versions(name)
        dated = [(info.time[str(v)], v) for v in info.versions if str(v) in info.time]
        dated.sort(key=lambda item: item[0], reverse=True)
        return [version for _, version in dated[:count]]

    async def check_security_vulnerabilities(
        self, name: str, from_version: str, to_version: Optional[str] = None
    ) -> SecurityReport:
        cache_key = (name, from_version, to_version)
        if cache_key in self.cache.security_cache:
            return self.cache.security_cache[cache_key]

        requested = [from_version] + ([to_version] if to_version else [])
        try:
            current = Version.parse(from_version)
            target = Version.parse(to_version) if to_version else None
            data = await self._fetch(
                "POST", f"{self.registry_url}{ADVISORY_BULK_PATH}", name, {name: requested}
            )
        except CatalogUpdateError as exc:
            raise SecurityCheckError(name, str(exc)) from exc

        advisories = data.get(name) if isinstance(data, dict) else None
        affecting_current: List[Vulnerability] = []
        affecting_target: List[Vulnerability] = []
        for advisory in advisories or []:
            vulnerable = VersionRange.try_parse(str(advisory.get("vulnerable_versions", "")))
            if vulnerable is None:
                continue
            vulnerability = Vulnerability(
                id=str(advisory.get("id", "")),
                title=str(advisory.get("title", "")),
                severity=str(advisory.get("severity", "unknown")),
                vulnerable_versions=vulnerable.raw,
                url=advisory.get("url"),
            )
            if vulnerable.satisfies(current):
                affecting_current.append(vulnerability)
            if target is not None and vulnerable.satisfies(target):
                affecting_target.append(vulnerability)

        report = SecurityReport(
            package_name=name,
            from_version=from_version,
            to_version=to_version,
            vulnerabilities=tuple(affecting_current),
            target_vulnerabilities=tuple(affecting_target),
        )
        self.cache.security_cache[cache_key] = report
        return report

    async def batch_query_versions(
        self, names: Iterable[str], concurrency: int = 8
    ) -> Dict[str, PackageVersions]:
        """Fetch versions for many packages, dropping the ones that fail."""

        async def query(name: str, _index: int) -> Optional[PackageVersions]:
            try:
                return await self.get_package_versions(name)
            except CatalogUpdateError as exc:
                logger.warning("Failed to query %s: %s", name, exc)
                return None

        names = list(names)
        results = await parallel_limit(names, query, limit=concurrency)
        return {name: info for name, info in zip(names, results) if info is not None}

    def clear_cache(self) -> None:
        self.cache.clear()

    def close(self) -> None:
        self.session.close()
