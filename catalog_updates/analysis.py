"""
Update analysis: a rule-based analyzer and a failure-tolerant wrapper for any provider.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Iterable, List, Optional, Tuple

from .interfaces import AnalysisProvider
from .models import (
    AnalysisContext,
    AnalysisResult,
    PackageUpdateSummary,
    PlannedUpdate,
    Recommendation,
)
from .versions import Version
from .workspace import Workspace


logger = logging.getLogger(__name__)

BREAKING_PATTERNS = {
    "react": ("React 17 to 18: Concurrent features", "React 18+: Strict mode changes"),
    "typescript": ("TypeScript 5.0: New decorators", "TypeScript 4.7+: ESM changes"),
    "eslint": ("ESLint 9.0: Flat config required", "ESLint 8.0+: New rule formats"),
    "webpack": ("Webpack 5: Node.js polyfills removed",),
    "vite": ("Vite 5: Node.js 18+ required",),
    "next": ("Next.js 13+: App router changes", "Next.js 14+: Server components default"),
    "vue": ("Vue 3: Composition API", "Vue 3: Breaking template changes"),
}

SECURITY_SENSITIVE_PACKAGES = frozenset({
    "jsonwebtoken",
    "bcrypt",
    "crypto-js",
    "helmet",
    "cors",
    "express-session",
    "passport",
    "oauth",
    "jose",
    "node-forge",
})

HIGH_RISK_LEVELS = ("high", "critical")


def build_analysis_context(
    updates: Iterable[PlannedUpdate],
    workspace: Optional[Workspace] = None,
    analysis_type: str = "impact",
) -> AnalysisContext:
    packages = tuple(
        PackageUpdateSummary(
            name=update.package_name,
            current_version=str(update.current_version),
            target_version=str(update.new_version),
            update_type=update.update_type,
            catalog_name=update.catalog_name,
        )
        for update in updates
    )
    return AnalysisContext(
        packages=packages,
        workspace_name=workspace.name if workspace else "",
        workspace_path=str(workspace.path) if workspace else "",
        catalog_count=len(workspace.catalogs) if workspace else 0,
        analysis_type=analysis_type,
    )


class RuleBasedAnalyzer:
    """Judge updates from version distance and known package traits."""

    name = "rule-engine"

    async def analyze(self, context: AnalysisContext) -> AnalysisResult:
        return self.analyze_sync(context)

    def analyze_sync(self, context: AnalysisContext) -> AnalysisResult:
        recommendations = tuple(self._analyze_package(pkg) for pkg in context.packages)
        high_risk = sum(1 for rec in recommendations if rec.risk_level in HIGH_RISK_LEVELS)
        return AnalysisResult(
            provider=self.name,
            analysis_type=context.analysis_type,
            recommendations=recommendations,
            summary=summarize(recommendations, high_risk),
            confidence=0.6,
            warnings=(f"{high_risk} high-risk updates detected",) if high_risk else (),
        )

    def _analyze_package(self, pkg: PackageUpdateSummary) -> Recommendation:
        risk = self.assess_risk(pkg)
        breaking = self.breaking_changes(pkg)
        security = self.security_notes(pkg)

        if risk == "critical":
            action, reason = "review", "Critical risk level requires manual review before update"
        elif risk == "high" and pkg.update_type == "major":
            action, reason = "review", "Major version update with high risk, review breaking changes"
        elif pkg.update_type == "major" and breaking:
            action, reason = "review", f"Major update with {len(breaking)} known breaking changes"
        elif pkg.update_type == "patch":
            action, reason = "update", "Patch update, typically safe to apply"
        elif pkg.update_type == "minor":
            action, reason = "update", "Minor update, new features and backward compatible"
        else:
            action, reason = "update", "Update recommended based on analysis"

        if pkg.name in SECURITY_SENSITIVE_PACKAGES and pkg.update_type == "major":
            action, reason = "review", "Security-sensitive package, major update requires careful review"

        return Recommendation(
            package_name=pkg.name,
            current_version=pkg.current_version,
            target_version=pkg.target_version,
            action=action,
            reason=reason,
            risk_level=risk,
            breaking_changes=breaking,
            security_notes=security,
            estimated_effort=self.estimate_effort(pkg, len(breaking)),
        )

    @staticmethod
    def assess_risk(pkg: PackageUpdateSummary) -> str:
        current = Version.try_parse(pkg.current_version.lstrip("^~"))
        target = Version.try_parse(pkg.target_version.lstrip("^~"))
        if target is not None and target.is_prerelease:
            return "high"
        if current is None or target is None:
            return "medium"
        if target.major - current.major > 1:
            return "critical"
        if pkg.update_type == "major":
            return "high"
        if pkg.update_type == "minor" and target.minor - current.minor > 5:
            return "medium"
        return "low"

    @staticmethod
    def breaking_changes(pkg: PackageUpdateSummary) -> Tuple[str, ...]:
        if pkg.update_type != "major":
            return ()
        base = pkg.name.split("/")[-1].lower()
        known = BREAKING_PATTERNS.get(base)
        if known:
            return known
        return (f"Major version update from {pkg.current_version} to {pkg.target_version}",)

    @staticmethod
    def security_notes(pkg: PackageUpdateSummary) -> Tuple[str, ...]:
        notes = []
        if pkg.name in SECURITY_SENSITIVE_PACKAGES:
            notes.append("Security-sensitive package, review changelog for security fixes")
        if any(marker in pkg.name for marker in ("auth", "security", "crypto")):
            notes.append("Package may contain security-related changes")
        return tuple(notes)

    @staticmethod
    def estimate_effort(pkg: PackageUpdateSummary, breaking_count: int) -> str:
        if pkg.update_type == "major":
            return "high" if breaking_count > 2 else "medium"
        return "low"


def summarize(recommendations: Iterable[Recommendation], high_risk: int = 0) -> str:
    recommendations = list(recommendations)
    counts = {
        action: sum(1 for rec in recommendations if rec.action == action)
        for action in ("update", "review", "skip")
    }
    parts: List[str] = []
    if counts["update"]:
        parts.append(f"{counts['update']} package(s) ready to update")
    if counts["review"]:
        parts.append(f"{counts['review']} package(s) need review")
    if counts["skip"]:
        parts.append(f"{counts['skip']} package(s) recommended to skip")
    if high_risk:
        parts.append(f"{high_risk} high-risk update(s) detected")
    return ". ".join(parts) or "No updates to analyze"


def review_fallback(context: AnalysisContext, provider: str, message: str) -> AnalysisResult:
    """Result used when a provider cannot give an answer: review everything."""
    recommendations = tuple(
        Recommendation(
            package_name=pkg.name,
            current_version=pkg.current_version,
            target_version=pkg.target_version,
            action="review",
            reason=f"Analysis unavailable ({message}), manual review required",
            risk_level="medium",
        )
        for pkg in context.packages
    )
    return AnalysisResult(
        provider=provider,
        analysis_type=context.analysis_type,
        recommendations=recommendations,
        summary=summarize(recommendations),
        confidence=0.0,
        warnings=(message,),
    )


async def analyze_safely(
    provider: AnalysisProvider, context: AnalysisContext, timeout: Optional[float] = 60.0
) -> AnalysisResult:
    """Run ``provider`` and degrade to a review recommendation on any failure."""
    name = getattr(provider, "name", type(provider).__name__)
    try:
        return await asyncio.wait_for(provider.analyze(context), timeout)
    except asyncio.TimeoutError:
        logger.warning("Analysis provider %s timed out after %ss", name, timeout)
        return review_fallback(context, name, "analysis timed out")
    except Exception as exc:
        logger.warning("Analysis provider %s failed: %s", name, exc)
        return review_fallback(context, name, str(exc) or type(exc).__name__)
