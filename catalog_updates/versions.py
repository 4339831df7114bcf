"""
Semantic version and npm range value objects.

``Version`` is a :class:`semver.Version` that also accepts npm's loose ``v``
and ``=`` prefixes. Ranges follow npm semantics: caret, tilde, x-ranges,
hyphen ranges and ``||`` unions are desugared into plain comparator sets
before matching.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Tuple

import semver

from .errors import EmptyVersionError, InvalidVersionError, InvalidVersionRangeError


UPDATE_TYPE_RANK = {"none": 0, "patch": 1, "minor": 2, "major": 3}

_IDENT = r"[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*"
_PARTIAL_RE = re.compile(
    rf"^[v=]*(\d+|[xX*])(?:\.(\d+|[xX*])(?:\.(\d+|[xX*])(?:-({_IDENT}))?(?:\+{_IDENT})?)?)?$"
)
_HYPHEN_RE = re.compile(r"^\s*(\S+)\s+-\s+(\S+)\s*$")
_OPERATOR_SPACE_RE = re.compile(r"(<=|>=|<|>|=|\^|~>?)\s+")
_TOKEN_RE = re.compile(r"^(<=|>=|<|>|=|\^|~>?)?(.*)$")
_SIMPLE_PREFIX_RE = re.compile(r"^(\^|~|>=|=)?v?\d+\.\d+\.\d+(?:[-+][0-9A-Za-z.+-]*)?$")


class Version(semver.Version):
    """A single resolved semantic version."""

    @classmethod
    def parse(cls, version, optional_minor_and_patch: bool = False) -> "Version":
        if version is None or not str(version).strip():
            raise EmptyVersionError()
        text = str(version).strip().lstrip("v=")
        try:
            return super().parse(text, optional_minor_and_patch)
        except (TypeError, ValueError) as exc:
            raise InvalidVersionError(version) from exc

    @classmethod
    def try_parse(cls, text: str) -> Optional["Version"]:
        try:
            return cls.parse(text)
        except InvalidVersionError:
            return None

    @property
    def is_prerelease(self) -> bool:
        return bool(self.prerelease)

    @property
    def release(self) -> Tuple[int, int, int]:
        return (self.major, self.minor, self.patch)

    def __str__(self) -> str:
        # npm drops build metadata from resolved versions.
        text = f"{self.major}.{self.minor}.{self.patch}"
        if self.prerelease:
            text += f"-{self.prerelease}"
        return text

    def is_newer_than(self, other: "Version") -> bool:
        return self.compare(other) > 0

    def difference_type(self, other: "Version") -> str:
        """Classify how far ``other`` is from this version.

        Returns ``major``, ``minor`` or ``patch`` for the most significant
        differing component, ``none`` when the versions are equal. Versions
        that differ only in their prerelease tag count as a ``patch`` change.
        """
        if self == other:
            return "none"
        if self.major != other.major:
            return "major"
        if self.minor != other.minor:
            return "minor"
        return "patch"

    def satisfies(self, version_range: "VersionRange") -> bool:
        return version_range.satisfies(self)

    def with_prerelease(self, prerelease: Optional[str]) -> "Version":
        return Version(self.major, self.minor, self.patch, prerelease)


def compare(a: Version, b: Version) -> int:
    """Return -1, 0 or 1 following semver precedence."""
    return a.compare(b)


def sort_versions(versions: Iterable[Version], descending: bool = False) -> List[Version]:
    return sorted(versions, reverse=descending)


@dataclass(frozen=True)
class Comparator:
    """One primitive ``<op><version>`` test."""

    operator: str
    version: Version

    def test(self, candidate: Version) -> bool:
        result = compare(candidate, self.version)
        if self.operator == ">=":
            return result >= 0
        if self.operator == ">":
            return result > 0
        if self.operator == "<=":
            return result <= 0
        if self.operator == "<":
            return result < 0
        return result == 0

    def __str__(self) -> str:
        op = "" if self.operator == "=" else self.operator
        return f"{op}{self.version}"


_ZERO = Version(0, 0, 0)
_ANY = Comparator(">=", _ZERO)
_NOTHING = Comparator("<", Version(0, 0, 0, "0"))


def _floor(major: int, minor: int = 0, patch: int = 0) -> Version:
    # Upper bounds exclude every prerelease of the boundary version.
    return Version(major, minor, patch, "0")


def _parse_partial(text: str, source: str):
    match = _PARTIAL_RE.match(text)
    if not match:
        raise InvalidVersionRangeError(source)
    parts = []
    for raw in match.groups()[:3]:
        if raw is None or raw in ("x", "X", "*"):
            parts.append(None)
        else:
            parts.append(int(raw))
    major, minor, patch = parts
    # Anything after a wildcard is a wildcard too.
    if major is None:
        minor = patch = None
    elif minor is None:
        patch = None
    return major, minor, patch, match.group(4)


def _desugar_caret(text: str, source: str) -> List[Comparator]:
    major, minor, patch, pre = _parse_partial(text, source)
    if major is None:
        return [_ANY]
    if minor is None:
        return [Comparator(">=", Version(major, 0, 0)), Comparator("<", _floor(major + 1))]
    if patch is None:
        if major == 0:
            return [
                Comparator(">=", Version(0, minor, 0)),
                Comparator("<", _floor(0, minor + 1)),
            ]
        return [Comparator(">=", Version(major, minor, 0)), Comparator("<", _floor(major + 1))]
    lower = Comparator(">=", Version(major, minor, patch, pre))
    if major == 0:
        if minor == 0:
            return [lower, Comparator("<", _floor(0, 0, patch + 1))]
        return [lower, Comparator("<", _floor(0, minor + 1))]
    return [lower, Comparator("<", _floor(major + 1))]


def _desugar_tilde(text: str, source: str) -> List[Comparator]:
    major, minor, patch, pre = _parse_partial(text, source)
    if major is None:
        return [_ANY]
    if minor is None:
        return [Comparator(">=", Version(major, 0, 0)), Comparator("<", _floor(major + 1))]
    if patch is None:
        return [
            Comparator(">=", Version(major, minor, 0)),
            Comparator("<", _floor(major, minor + 1)),
        ]
    return [
        Comparator(">=", Version(major, minor, patch, pre)),
        Comparator("<", _floor(major, minor + 1)),
    ]


def _desugar_primitive(operator: str, text: str, source: str) -> List[Comparator]:
    major, minor, patch, pre = _parse_partial(text, source)
    operator = operator or "="
    if major is None:
        if operator in (">", "<"):
            return [_NOTHING]
        return [_ANY]
    if patch is not None:
        return [Comparator(operator, Version(major, minor, patch, pre))]

    if operator == ">":
        if minor is None:
            return [Comparator(">=", Version(major + 1, 0, 0))]
        return [Comparator(">=", Version(major, minor + 1, 0))]
    if operator == "<=":
        if minor is None:
            return [Comparator("<", _floor(major + 1))]
        return [Comparator("<", _floor(major, minor + 1))]
    if operator == "<":
        return [Comparator("<", _floor(major, minor or 0))]
    if operator == ">=":
        return [Comparator(">=", Version(major, minor or 0, 0))]
    if minor is None:
        return [Comparator(">=", Version(major, 0, 0)), Comparator("<", _floor(major + 1))]
    return [Comparator(">=", Version(major, minor, 0)), Comparator("<", _floor(major, minor + 1))]


def _desugar_hyphen(low: str, high: str, source: str) -> List[Comparator]:
    comparators: List[Comparator] = []
    major, minor, patch, pre = _parse_partial(low, source)
    if major is None:
        comparators.append(_ANY)
    else:
        comparators.append(Comparator(">=", Version(major, minor or 0, patch or 0, pre)))

    major, minor, patch, pre = _parse_partial(high, source)
    if major is None:
        pass
    elif minor is None:
        comparators.append(Comparator("<", _floor(major + 1)))
    elif patch is None:
        comparators.append(Comparator("<", _floor(major, minor + 1)))
    else:
        comparators.append(Comparator("<=", Version(major, minor, patch, pre)))
    return comparators


def _parse_set(text: str, source: str) -> List[Comparator]:
    text = text.strip()
    if not text:
        return [_ANY]
    hyphen = _HYPHEN_RE.match(text)
    if hyphen:
        return _desugar_hyphen(hyphen.group(1), hyphen.group(2), source)

    comparators: List[Comparator] = []
    for token in _OPERATOR_SPACE_RE.sub(r"\1", text).split():
        operator, rest = _TOKEN_RE.match(token).groups()
        if operator == "^":
            comparators.extend(_desugar_caret(rest, source))
        elif operator in ("~", "~>"):
            comparators.extend(_desugar_tilde(rest, source))
        else:
            comparators.extend(_desugar_primitive(operator or "", rest, source))
    return comparators


@dataclass(frozen=True)
class VersionRange:
    """A declared npm version range such as ``^4.17.20``."""

    raw: str
    comparator_sets: Tuple[Tuple[Comparator, ...], ...] = field(compare=False, repr=False)

    @classmethod
    def parse(cls, text: str) -> "VersionRange":
        if text is None:
            raise InvalidVersionRangeError("")
        raw = str(text).strip()
        if raw.lower() == "latest":
            return cls(raw, ((_ANY,),))
        sets = tuple(tuple(_parse_set(part, raw)) for part in raw.split("||"))
        return cls(raw, sets)

    @classmethod
    def try_parse(cls, text: str) -> Optional["VersionRange"]:
        try:
            return cls.parse(text)
        except InvalidVersionRangeError:
            return None

    def __str__(self) -> str:
        return self.raw

    def satisfies(self, version: Version) -> bool:
        return any(self._test_set(comparators, version) for comparators in self.comparator_sets)

    @staticmethod
    def _test_set(comparators: Tuple[Comparator, ...], version: Version) -> bool:
        if not all(comparator.test(version) for comparator in comparators):
            return False
        if not version.is_prerelease:
            return True
        # A prerelease only matches when a comparator in the same set opts in
        # to prereleases of the same major.minor.patch.
        return any(
            comparator.version.is_prerelease and comparator.version.release == version.release
            for comparator in comparators
        )

    def get_min_version(self) -> Optional[Version]:
        """Return the lowest version that satisfies the range, if any."""
        for candidate in (_ZERO, Version(0, 0, 0, "0")):
            if self.satisfies(candidate):
                return candidate

        lowest: Optional[Version] = None
        for comparators in self.comparator_sets:
            set_min: Optional[Version] = None
            for comparator in comparators:
                bound = comparator.version
                if comparator.operator == ">":
                    if bound.is_prerelease:
                        bound = bound.with_prerelease(f"{bound.prerelease}.0")
                    else:
                        bound = bound.bump_patch()
                elif comparator.operator not in (">=", "="):
                    continue
                if set_min is None or bound > set_min:
                    set_min = bound
            if set_min is not None and (lowest is None or set_min < lowest):
                lowest = set_min

        if lowest is not None and self.satisfies(lowest):
            return lowest
        return None

    def with_version(self, version: Version) -> "VersionRange":
        """Point the range at ``version``, keeping a simple operator prefix."""
        match = _SIMPLE_PREFIX_RE.match(self.raw)
        if match:
            return VersionRange.parse(f"{match.group(1) or ''}{version}")
        return VersionRange.parse(f"^{version}")


def max_satisfying(versions: Iterable[Version], version_range: VersionRange) -> Optional[Version]:
    matching = [v for v in versions if version_range.satisfies(v)]
    return max(matching) if matching else None
