"""Tests for version parsing, ordering and Cargo-style requirements."""

import pytest

from whatis.errors import InvalidConstraint, InvalidVersion
from whatis.versioning.semver import (
    Ordering,
    compare,
    matches,
    parse_constraint,
    parse_version,
    select_matching,
)


def v(text):
    return parse_version(text)


class TestParseVersion:
    """Strict version parsing."""

    def test_parse_round_trips_normalized_form(self):
        """str() of a parsed version gives back the canonical text."""
        for text in ("1.2.3", "0.0.1", "1.0.0-alpha.1", "2.1.0+build.5", " 3.4.5 "):
            assert str(v(text)) == text.strip()

    @pytest.mark.parametrize("text", ["", "1", "1.2", "one.two.three", "1.2.3.4"])
    def test_invalid_versions_raise(self, text):
        """Partial or malformed versions are rejected with InvalidVersion."""
        with pytest.raises(InvalidVersion):
            parse_version(text)

    def test_non_string_is_invalid(self):
        with pytest.raises(InvalidVersion):
            parse_version(None)


class TestCompare:
    """Precedence ordering."""

    @pytest.mark.parametrize(
        "lower,higher",
        [
            ("1.0.0", "2.0.0"),
            ("1.2.0", "1.10.0"),
            ("1.0.0-alpha", "1.0.0"),
            ("1.0.0-alpha", "1.0.0-alpha.1"),
            ("1.0.0-alpha.1", "1.0.0-beta"),
            ("1.0.0-beta.2", "1.0.0-beta.11"),
            ("1.0.0-rc.1", "1.0.0"),
        ],
    )
    def test_ordering(self, lower, higher):
        """Numeric components compare numerically; pre-releases sort first."""
        assert compare(v(lower), v(higher)) is Ordering.LESS
        assert compare(v(higher), v(lower)) is Ordering.GREATER

    def test_build_metadata_is_ignored(self):
        assert compare(v("1.0.0+a"), v("1.0.0+b")) is Ordering.EQUAL

    def test_ordering_is_transitive_over_a_sorted_list(self):
        """Every pair in an ascending list compares LESS."""
        ordered = ["0.1.0", "0.9.9", "1.0.0-alpha", "1.0.0", "1.0.1", "1.2.0", "2.0.0"]
        for i, a in enumerate(ordered):
            for b in ordered[i + 1:]:
                assert compare(v(a), v(b)) is Ordering.LESS


class TestConstraints:
    """Requirement parsing and matching."""

    @pytest.mark.parametrize(
        "req,version,expected",
        [
            ("^1.2.0", "1.2.5", True),
            ("^1.2.0", "1.9.9", True),
            ("^1.2.0", "2.0.0", False),
            ("^1.2.0", "1.1.9", False),
            ("1.2.0", "1.9.0", True),
            ("1.2", "1.2.0", True),
            ("1", "1.99.0", True),
            ("^0.2.3", "0.2.9", True),
            ("^0.2.3", "0.3.0", False),
            ("^0.0.3", "0.0.3", True),
            ("^0.0.3", "0.0.4", False),
            ("^0.0", "0.0.7", True),
            ("^0.0", "0.1.0", False),
            ("~1.2.3", "1.2.9", True),
            ("~1.2.3", "1.3.0", False),
            ("~1", "1.9.0", True),
            ("=1.2.3", "1.2.3", True),
            ("=1.2.3", "1.2.4", False),
            ("=1.2", "1.2.7", True),
            (">=1.0, <2.0", "1.5.0", True),
            (">=1.0, <2.0", "2.0.0", False),
            (">= 1.0", "1.0.0", True),
            (">1.2", "1.2.9", False),
            (">1.2", "1.3.0", True),
            ("<=1.2", "1.2.9", True),
            ("<=1.2", "1.3.0", False),
            ("1.*", "1.4.2", True),
            ("1.*", "2.0.0", False),
            ("1.2.*", "1.2.8", True),
            ("1.2.*", "1.3.0", False),
            ("*", "7.0.0", True),
        ],
    )
    def test_matches_table(self, req, version, expected):
        assert matches(parse_constraint(req), v(version)) is expected

    def test_prerelease_needs_explicit_opt_in(self):
        """Pre-releases only match requirements naming a pre-release of the same version."""
        assert not matches(parse_constraint("^1.0.0"), v("1.1.0-beta.1"))
        assert not matches(parse_constraint("*"), v("1.0.0-rc.1"))
        assert matches(parse_constraint(">=1.0.0-alpha"), v("1.0.0-beta"))
        assert not matches(parse_constraint(">=1.0.0-alpha"), v("1.0.1-beta"))

    @pytest.mark.parametrize("text", [None, "", "*", "  "])
    def test_any_version(self, text):
        constraint = parse_constraint(text)
        assert constraint.is_any
        assert str(constraint) == "*"

    def test_raw_text_is_normalized(self):
        assert str(parse_constraint(">= 1.0 ,< 2")) == ">=1.0, <2"

    @pytest.mark.parametrize("text", ["abc", ">=", "1.2.3.4", "^1.*", "1.*.3", ">=1.0,", "~*"])
    def test_invalid_constraints_raise(self, text):
        """Malformed requirements raise InvalidConstraint carrying the text."""
        with pytest.raises(InvalidConstraint) as excinfo:
            parse_constraint(text)
        assert excinfo.value.text == text

    def test_select_matching_is_newest_first(self):
        versions = [v(t) for t in ("1.0.0", "1.5.0", "2.0.0", "1.2.0")]
        picked = select_matching(parse_constraint("^1"), versions)
        assert [str(x) for x in picked] == ["1.5.0", "1.2.0", "1.0.0"]
