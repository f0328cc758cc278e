"""Tests for version parsing and ordering."""
from __future__ import annotations

import pytest

from depseal.errors import VersionParseError
from depseal.version import Version, compare, is_at_least, parse_version


class TestParse:
    def test_missing_components_default_to_zero(self):
        assert parse_version("1") == Version(1, 0, 0)
        assert parse_version("v2.3") == Version(2, 3, 0)

    def test_prerelease_and_build(self):
        v = parse_version("1.2.3-rc.1+build.5")
        assert v.prerelease == ("rc", 1)
        assert v.build == "build.5"
        assert str(v) == "1.2.3-rc.1+build.5"

    @pytest.mark.parametrize("text", ["", "1.2.3.4", "a.b", "1.2.x", "1.0.0-", "1.0.0-01", "1.0.0-a..b", "1.0+"])
    def test_invalid(self, text):
        with pytest.raises(VersionParseError):
            parse_version(text)


class TestOrdering:
    @pytest.mark.parametrize(
        "lower,higher",
        [
            ("1.1.9", "1.2.0-rc.1"),
            ("1.2.0-rc.1", "1.2.0"),
            ("2.0.0-alpha.1", "2.0.0-alpha.2"),
            ("1.0.0-alpha", "1.0.0-alpha.1"),
            ("1.0.0-1", "1.0.0-alpha"),
            ("1.0.0-alpha.beta", "1.0.0-beta"),
            ("1.0.0-beta.11", "1.0.0-rc.1"),
            ("1.9.0", "1.10.0"),
        ],
    )
    def test_pairs(self, lower, higher):
        lo, hi = parse_version(lower), parse_version(higher)
        assert compare(lo, hi) == -1
        assert compare(hi, lo) == 1
        assert lo < hi

    def test_build_metadata_ignored(self):
        a = parse_version("1.0.0+linux")
        b = parse_version("1.0.0+mac")
        assert compare(a, b) == 0
        assert a == b

    def test_is_at_least(self):
        minimum = parse_version("1.2.0")
        assert is_at_least(parse_version("1.2.0"), minimum)
        assert is_at_least(parse_version("1.2.1"), minimum)
        assert not is_at_least(parse_version("1.2.0-rc.9"), minimum)
        assert parse_version("2.0.0").is_at_least(minimum)
