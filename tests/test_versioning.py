"""Tests for flowplug.versioning -- PEP 440 and semver-style ranges."""

from __future__ import annotations

import pytest

from flowplug.versioning import (
    InvalidRangeError,
    is_valid_range,
    is_valid_version,
    parse_range,
    satisfies,
)


class TestVersions:
    @pytest.mark.parametrize("value", ["1.0.0", "0.12.0", "2.0", "1.0.0rc1", "v1.2.3"])
    def test_valid(self, value: str) -> None:
        assert is_valid_version(value)

    @pytest.mark.parametrize("value", ["", "abc", "latest", "1..0"])
    def test_invalid(self, value: str) -> None:
        assert not is_valid_version(value)


class TestPep440Ranges:
    def test_lower_bound(self) -> None:
        assert satisfies("0.12.0", ">=0.12.0")
        assert satisfies("1.4.0", ">=0.12.0")
        assert not satisfies("0.11.9", ">=0.12.0")

    def test_bounded(self) -> None:
        assert satisfies("1.5.0", ">=1.0,<2.0")
        assert not satisfies("2.0.0", ">=1.0,<2.0")

    def test_compatible_release(self) -> None:
        assert satisfies("1.2.9", "~=1.2.0")
        assert not satisfies("1.3.0", "~=1.2.0")

    def test_wildcard_equality(self) -> None:
        assert satisfies("1.7.2", "==1.*")
        assert not satisfies("2.0.0", "==1.*")


class TestSemverRanges:
    def test_caret(self) -> None:
        assert satisfies("1.9.0", "^1.2.3")
        assert satisfies("1.2.3", "^1.2.3")
        assert not satisfies("1.2.2", "^1.2.3")
        assert not satisfies("2.0.0", "^1.2.3")

    def test_caret_zero_major_locks_minor(self) -> None:
        assert satisfies("0.12.5", "^0.12.0")
        assert not satisfies("0.13.0", "^0.12.0")

    def test_tilde(self) -> None:
        assert satisfies("1.2.9", "~1.2.3")
        assert not satisfies("1.3.0", "~1.2.3")

    def test_x_ranges(self) -> None:
        assert satisfies("1.4.0", "1.x")
        assert not satisfies("2.0.0", "1.x")
        assert satisfies("1.2.7", "1.2.*")
        assert not satisfies("1.3.0", "1.2.*")

    def test_any(self) -> None:
        assert satisfies("9.9.9", "*")
        assert satisfies("0.0.1", "")

    def test_alternatives(self) -> None:
        assert satisfies("1.5.0", "^1.0.0 || ^3.0.0")
        assert satisfies("3.1.0", "^1.0.0 || ^3.0.0")
        assert not satisfies("2.0.0", "^1.0.0 || ^3.0.0")

    def test_space_separated_comparators(self) -> None:
        assert satisfies("1.5.0", ">=1.0.0 <2.0.0")
        assert not satisfies("2.1.0", ">=1.0.0 <2.0.0")

    def test_prerelease_host(self) -> None:
        assert satisfies("1.0.0rc1", ">=0.9")


class TestInvalidRanges:
    @pytest.mark.parametrize("value", [">=", "^abc", "not a range", ">=1.0,<<2"])
    def test_rejected(self, value: str) -> None:
        assert not is_valid_range(value)
        with pytest.raises(InvalidRangeError):
            parse_range(value)

    def test_satisfies_is_false_for_invalid_input(self) -> None:
        assert satisfies("1.0.0", "^abc") is False
        assert satisfies("not-a-version", ">=1.0") is False
