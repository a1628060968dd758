"""
Unit tests for semantic version helpers.

Tests cover:
- Strict validation
- Precedence ordering (pre-release, build metadata)
- Change classification
"""

import pytest

from apitize.versioning_server import semantic


class TestValidation:
    """Tests for is_valid / parse."""

    @pytest.mark.parametrize(
        "version",
        ["1.0.0", "0.0.1", "10.20.30", "1.0.0-alpha", "1.0.0-alpha.1", "1.0.0+build.5"],
    )
    def test_valid_versions(self, version):
        """Strict SemVer strings are accepted."""
        assert semantic.is_valid(version)

    @pytest.mark.parametrize("version", ["1.0", "v1.0.0", "1.0.0.0", "", "01.0.0", "latest"])
    def test_invalid_versions(self, version):
        """Anything else is rejected."""
        assert not semantic.is_valid(version)

    def test_non_string_is_invalid(self):
        assert not semantic.is_valid(None)

    def test_parse_rejects_garbage(self):
        with pytest.raises(ValueError):
            semantic.parse("not-a-version")


class TestPrecedence:
    """Tests for compare / sort_versions."""

    def test_numeric_not_lexical(self):
        """1.10.0 sorts after 1.2.0."""
        assert semantic.sort_versions(["1.10.0", "1.2.0", "1.9.1"]) == ["1.2.0", "1.9.1", "1.10.0"]

    def test_prerelease_before_release(self):
        assert semantic.compare("1.0.0-alpha", "1.0.0") == -1
        assert semantic.compare("1.0.0-alpha", "1.0.0-beta") == -1

    def test_build_metadata_ignored(self):
        assert semantic.compare("1.0.0+build.1", "1.0.0+build.2") == 0

    def test_reverse_sort(self):
        assert semantic.sort_versions(["1.0.0", "2.0.0", "1.5.0"], reverse=True) == [
            "2.0.0",
            "1.5.0",
            "1.0.0",
        ]


class TestClassification:
    """Tests for classify_change."""

    @pytest.mark.parametrize(
        "previous,current,expected",
        [
            ("1.2.3", "2.0.0", "major"),
            ("1.2.3", "1.3.0", "minor"),
            ("1.2.3", "1.2.4", "patch"),
            ("1.2.3", "1.2.3", "patch"),
            ("1.2.3", "1.2.3-rc.1", "patch"),
            ("2.0.0", "1.0.0", "major"),
        ],
    )
    def test_classify(self, previous, current, expected):
        assert semantic.classify_change(previous, current) == expected
