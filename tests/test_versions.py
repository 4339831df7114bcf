"""Tests for semver parsing, ordering and npm ranges."""

import itertools

import pytest
import semver

from catalog_updates.errors import EmptyVersionError, InvalidVersionError, InvalidVersionRangeError
from catalog_updates.versions import Version, VersionRange, compare, max_satisfying, sort_versions


def test_semver_prerelease_sorting() -> None:
    versions = [
        "0.0.0-insiders.b4008fc",
        "0.0.0",
        "0.0.1",
        "0.0.1-alpha.1",
        "v1.2.3",
        "1.2.3+build.7",
        "1.0.0",
        "1.0.0-beta",
    ]

    ordered = [str(v) for v in sort_versions(Version.parse(text) for text in versions)]

    assert ordered == [
        "0.0.0-insiders.b4008fc",
        "0.0.0",
        "0.0.1-alpha.1",
        "0.0.1",
        "1.0.0-beta",
        "1.0.0",
        "1.2.3",
        "1.2.3",
    ]


def test_build_metadata_does_not_affect_equality():
    assert Version.parse("v1.2.3") == Version.parse("1.2.3+build.7")
    assert hash(Version.parse("1.2.3")) == hash(Version.parse("=1.2.3+meta"))


def test_numeric_prerelease_identifiers_sort_before_alphanumeric():
    assert Version.parse("1.0.0-1") < Version.parse("1.0.0-alpha")
    assert Version.parse("1.0.0-alpha") < Version.parse("1.0.0-alpha.1")
    assert Version.parse("1.0.0-alpha.2") < Version.parse("1.0.0-alpha.10")
    assert Version.parse("1.0.0-rc.1") < Version.parse("1.0.0")


def test_compare_is_antisymmetric_and_transitive():
    samples = [Version.parse(v) for v in ["1.0.0-alpha", "1.0.0-alpha.1", "1.0.0", "1.0.1", "2.0.0-0", "2.0.0"]]
    for a, b in itertools.product(samples, repeat=2):
        assert compare(a, b) == -compare(b, a)
    for a, b, c in itertools.product(samples, repeat=3):
        if compare(a, b) <= 0 and compare(b, c) <= 0:
            assert compare(a, c) <= 0


def test_empty_version_has_dedicated_error():
    with pytest.raises(EmptyVersionError, match="Version string cannot be empty"):
        Version.parse("")
    with pytest.raises(EmptyVersionError):
        Version.parse("   ")


def test_invalid_version_rejected():
    with pytest.raises(InvalidVersionError):
        Version.parse("1.2")
    with pytest.raises(InvalidVersionError):
        Version.parse("01.2.3")
    assert Version.try_parse("not-a-version") is None


@pytest.mark.parametrize(
    "current, other, expected",
    [
        ("4.17.20", "4.17.21", "patch"),
        ("4.17.20", "4.18.0", "minor"),
        ("4.17.20", "5.0.0", "major"),
        ("4.17.20", "4.17.20", "none"),
        ("1.0.0-beta.1", "1.0.0", "patch"),
    ],
)
def test_difference_type(current, other, expected):
    assert Version.parse(current).difference_type(Version.parse(other)) == expected


@pytest.mark.parametrize(
    "range_text, expected",
    [
        ("^4.17.20", "4.17.20"),
        ("~1.2.3", "1.2.3"),
        ("4.17.20", "4.17.20"),
        (">=2.0.0 <3.0.0", "2.0.0"),
        (">1.2.3", "1.2.4"),
        (">1.2.3-beta", "1.2.3-beta.0"),
        ("1.x", "1.0.0"),
        ("*", "0.0.0"),
        ("^0.2.3", "0.2.3"),
        ("1.2.3 - 2.3.4", "1.2.3"),
        ("^2.0.0 || ^1.5.0", "1.5.0"),
        (">= 3.1.0", "3.1.0"),
        ("^1.0.0-rc.1", "1.0.0-rc.1"),
        ("<1.0.0", "0.0.0"),
    ],
)
def test_min_version(range_text, expected):
    assert str(VersionRange.parse(range_text).get_min_version()) == expected


def test_min_version_of_unsatisfiable_range_is_none():
    assert VersionRange.parse(">2.0.0 <1.0.0").get_min_version() is None


@pytest.mark.parametrize(
    "range_text, version, expected",
    [
        ("^4.17.20", "4.99.0", True),
        ("^4.17.20", "5.0.0", False),
        ("^4.17.20", "4.17.19", False),
        ("^0.2.3", "0.2.9", True),
        ("^0.2.3", "0.3.0", False),
        ("^0.0.3", "0.0.4", False),
        ("~1.2.3", "1.2.9", True),
        ("~1.2.3", "1.3.0", False),
        ("1.x", "1.9.9", True),
        ("1.2.3 - 2.3", "2.3.9", True),
        ("1.2.3 - 2.3", "2.4.0", False),
        ("<=1.2", "1.2.9", True),
        ("<=1.2", "1.3.0", False),
        (">1", "2.0.0", True),
        (">1", "1.9.0", False),
        ("^1.0.0", "1.5.0-beta", False),
        ("^1.5.0-beta", "1.5.0-rc", True),
        ("^1.5.0-beta", "1.6.0-rc", False),
        ("*", "1.0.0-alpha", False),
        ("<1.2.4 || >=2.0.0", "1.2.3", True),
    ],
)
def test_satisfies(range_text, version, expected):
    assert VersionRange.parse(range_text).satisfies(Version.parse(version)) is expected


def test_invalid_range_rejected():
    with pytest.raises(InvalidVersionRangeError):
        VersionRange.parse("workspace:*")
    assert VersionRange.try_parse("npm:lodash@4") is None


@pytest.mark.parametrize(
    "range_text, expected",
    [
        ("^4.17.20", "^4.17.21"),
        ("~4.17.20", "~4.17.21"),
        ("4.17.20", "4.17.21"),
        (">=4.17.20", ">=4.17.21"),
        (">=4.0.0 <5.0.0", "^4.17.21"),
    ],
)
def test_with_version_keeps_simple_prefix(range_text, expected):
    updated = VersionRange.parse(range_text).with_version(Version.parse("4.17.21"))
    assert updated.raw == expected


def test_max_satisfying():
    versions = [Version.parse(v) for v in ["1.0.0", "1.4.2", "2.0.0", "1.5.0-beta"]]
    assert str(max_satisfying(versions, VersionRange.parse("^1.0.0"))) == "1.4.2"
    assert max_satisfying(versions, VersionRange.parse("^3.0.0")) is None


def test_version_builds_on_semver():
    version = Version.parse("v1.2.3-rc.1")

    assert isinstance(version, semver.Version)
    assert version.prerelease == "rc.1"
    assert str(version.bump_minor()) == "1.3.0"
    assert isinstance(version.bump_patch(), Version)


def test_invalid_version_keeps_semver_cause():
    with pytest.raises(InvalidVersionError) as excinfo:
        Version.parse("1.2.3.4")
    assert isinstance(excinfo.value.__cause__, ValueError)
