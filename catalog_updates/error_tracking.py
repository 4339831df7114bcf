"""
Per-invocation bookkeeping for non-fatal failures.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Tuple

from .errors import EmptyVersionError, NetworkError, PackageNotFoundError


logger = logging.getLogger(__name__)

NOT_FOUND = "not-found"
NETWORK = "network"
EMPTY_VERSION = "empty-version"
OTHER = "other"

REASON_LABELS = {
    NOT_FOUND: "not found in registry",
    NETWORK: "network errors or timeouts",
    EMPTY_VERSION: "empty version string",
    OTHER: "other errors",
}


def classify_error(error: BaseException) -> str:
    """Map a package query failure onto a skip reason."""
    if isinstance(error, PackageNotFoundError):
        return NOT_FOUND
    if isinstance(error, EmptyVersionError):
        return EMPTY_VERSION
    if isinstance(error, (NetworkError, TimeoutError, asyncio.TimeoutError)):
        return NETWORK

    message = str(error)
    lowered = message.lower()
    if "404" in message or "not found" in lowered:
        return NOT_FOUND
    if "version string cannot be empty" in lowered:
        return EMPTY_VERSION
    if "timeout" in lowered or "etimedout" in lowered or "timed out" in lowered:
        return NETWORK
    return OTHER


@dataclass
class SkippedPackage:
    name: str
    reason: str
    message: str


@dataclass
class ErrorTracker:
    """Collects skipped packages and failed security checks for one run."""

    skipped: List[SkippedPackage] = field(default_factory=list)
    security_failures: List[Tuple[str, str]] = field(default_factory=list)

    def track_skipped(self, package: str, error: BaseException) -> str:
        reason = classify_error(error)
        self.skipped.append(SkippedPackage(package, reason, str(error)))
        logger.debug("Skipping %s (%s): %s", package, reason, error)
        return reason

    def track_security_failure(self, package: str, error: BaseException) -> None:
        self.security_failures.append((package, str(error)))
        logger.warning("Security check failed for %s: %s", package, error)

    @property
    def total_skipped(self) -> int:
        return len(self.skipped)

    @property
    def has_failures(self) -> bool:
        return bool(self.skipped or self.security_failures)

    def skipped_by_reason(self) -> Dict[str, Tuple[str, ...]]:
        grouped: Dict[str, List[str]] = {}
        for entry in self.skipped:
            names = grouped.setdefault(entry.reason, [])
            if entry.name not in names:
                names.append(entry.name)
        return {reason: tuple(names) for reason, names in grouped.items()}

    def security_failure_packages(self) -> Tuple[str, ...]:
        return tuple(dict.fromkeys(name for name, _ in self.security_failures))

    def summary_lines(self) -> List[str]:
        lines = []
        for reason, names in self.skipped_by_reason().items():
            label = REASON_LABELS.get(reason, reason)
            lines.append(f"Skipped {len(names)} package(s), {label}: {', '.join(names)}")
        if self.security_failures:
            names = self.security_failure_packages()
            lines.append(f"Security check failed for {len(names)} package(s): {', '.join(names)}")
        return lines

    def log_summary(self) -> None:
        for line in self.summary_lines():
            logger.warning(line)
