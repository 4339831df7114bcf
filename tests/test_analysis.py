"""Tests for rule-based update analysis and error classification."""

import asyncio

import pytest

from catalog_updates.analysis import RuleBasedAnalyzer, analyze_safely
from catalog_updates.error_tracking import (
    EMPTY_VERSION,
    NETWORK,
    NOT_FOUND,
    OTHER,
    ErrorTracker,
    classify_error,
)
from catalog_updates.errors import EmptyVersionError, NetworkError, PackageNotFoundError
from catalog_updates.models import AnalysisContext, PackageUpdateSummary
from catalog_updates.progress import TqdmProgressReporter


def _context(*packages):
    return AnalysisContext(
        packages=tuple(PackageUpdateSummary(*pkg) for pkg in packages),
        workspace_name="demo",
        workspace_path="/repo",
        catalog_count=1,
    )


def test_rule_based_recommendations():
    context = _context(
        ("lodash", "4.17.20", "4.17.21", "patch"),
        ("react", "17.0.2", "18.2.0", "major"),
        ("webpack", "3.0.0", "5.0.0", "major"),
        ("jsonwebtoken", "8.5.1", "9.0.0", "major"),
        ("vite", "5.0.0", "5.1.0-beta.1", "minor"),
    )

    result = RuleBasedAnalyzer().analyze_sync(context)
    recs = {rec.package_name: rec for rec in result.recommendations}

    assert recs["lodash"].action == "update"
    assert recs["lodash"].risk_level == "low"
    assert recs["react"].action == "review"
    assert recs["react"].breaking_changes[0].startswith("React 17 to 18")
    assert recs["webpack"].risk_level == "critical"
    assert recs["jsonwebtoken"].security_notes
    assert recs["jsonwebtoken"].action == "review"
    assert recs["vite"].risk_level == "high"
    assert result.warnings == ("4 high-risk updates detected",)
    assert "2 package(s) ready to update" in result.summary


def test_analyze_safely_passes_through_result():
    context = _context(("lodash", "4.17.20", "4.17.21", "patch"))

    result = asyncio.run(analyze_safely(RuleBasedAnalyzer(), context))

    assert result.provider == "rule-engine"
    assert result.confidence == 0.6


@pytest.mark.parametrize(
    "error, reason",
    [
        (PackageNotFoundError("left-padd"), NOT_FOUND),
        (EmptyVersionError(), EMPTY_VERSION),
        (NetworkError("socket closed"), NETWORK),
        (RuntimeError("HTTP 404"), NOT_FOUND),
        (RuntimeError("connect ETIMEDOUT"), NETWORK),
        (ValueError("Version string cannot be empty"), EMPTY_VERSION),
        (RuntimeError("boom"), OTHER),
        (asyncio.TimeoutError(), NETWORK),
    ],
)
def test_classify_error(error, reason):
    assert classify_error(error) == reason


def test_error_tracker_summary():
    tracker = ErrorTracker()
    tracker.track_skipped("a", PackageNotFoundError("a"))
    tracker.track_skipped("a", PackageNotFoundError("a"))
    tracker.track_skipped("b", NetworkError("timeout"))
    tracker.track_security_failure("c", RuntimeError("advisories down"))

    assert tracker.total_skipped == 3
    assert tracker.has_failures
    assert tracker.skipped_by_reason() == {NOT_FOUND: ("a",), NETWORK: ("b",)}
    assert tracker.summary_lines() == [
        "Skipped 1 package(s), not found in registry: a",
        "Skipped 1 package(s), network errors or timeouts: b",
        "Security check failed for 1 package(s): c",
    ]


def test_tqdm_progress_counts():
    progress = TqdmProgressReporter(disable=True)
    progress.start(2)
    progress.advance("lodash")
    progress.advance("react")
    progress.finish()

    assert progress.completed == 2
