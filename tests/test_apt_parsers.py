from __future__ import annotations

"""
Tests for control data parsers.
"""

import pytest

from debstow.apt.parsers import (
    debianize_op,
    fix_dependency,
    format_field,
    iter_stanzas,
    parse_control,
    parse_depends,
    parse_version,
)
from debstow.core.errors import ParseError


class TestControlParsing:
    """Tests for control stanza parsing."""

    def test_simple_stanza(self):
        """Test parsing simple stanza."""
        result = parse_control("Package: nginx\nVersion: 1.18.0\nArchitecture: amd64")

        assert result == {"Package": "nginx", "Version": "1.18.0", "Architecture": "amd64"}

    def test_field_order_preserved(self):
        """Test that fields keep file order."""
        result = parse_control("Zeta: 1\nAlpha: 2\nMiddle: 3")

        assert list(result) == ["Zeta", "Alpha", "Middle"]

    def test_multiline_field(self):
        """Test continuation lines are joined with newlines."""
        stanza = """Package: python3
Description: Python programming language
 Python is an interpreted language.
 It has classes."""

        result = parse_control(stanza)

        assert result["Description"] == (
            "Python programming language\nPython is an interpreted language.\nIt has classes."
        )

    def test_lone_dot_is_blank_line(self):
        """Test that ' .' encodes a blank line inside a value."""
        stanza = """Package: test
Description: First paragraph
 .
 Second paragraph"""

        result = parse_control(stanza)

        assert result["Description"] == "First paragraph\n\nSecond paragraph"

    def test_continuation_of_empty_value(self):
        """Test no leading newline when the field value starts empty."""
        result = parse_control("MD5Sum:\n abc 12 main/Packages\n def 34 main/Packages.gz")

        assert result["MD5Sum"] == "abc 12 main/Packages\ndef 34 main/Packages.gz"

    def test_empty_field_value(self):
        """Test field with empty value."""
        result = parse_control("Package: test\nEmptyField:\nVersion: 1.0")

        assert result["EmptyField"] == ""
        assert result["Version"] == "1.0"


class TestStanzaSplitting:
    """Tests for splitting index content into stanzas."""

    def test_multiple_stanzas(self):
        content = "Package: a\nVersion: 1\n\nPackage: b\nVersion: 2\n"

        stanzas = list(iter_stanzas(content))

        assert len(stanzas) == 2
        assert stanzas[1].startswith("Package: b")

    def test_crlf_and_blank_tail(self):
        content = "Package: a\r\nVersion: 1\r\n\r\nPackage: b\r\nVersion: 2\r\n\r\n\r\n"

        stanzas = list(iter_stanzas(content))

        assert len(stanzas) == 2
        assert "\r" not in stanzas[0]

    def test_empty_content(self):
        assert list(iter_stanzas("")) == []


class TestFormatField:
    """Tests for rendering fields."""

    def test_single_line(self):
        assert format_field("Package", "nginx") == "Package: nginx"

    def test_blank_lines_become_dots(self):
        rendered = format_field("Description", "Summary\nFirst line\n\nAfter blank")

        assert rendered == "Description: Summary\n First line\n .\n After blank"

    def test_parse_format_round_trip(self):
        value = "Summary\nDetails\n\nMore details"

        assert parse_control(format_field("Description", value))["Description"] == value


class TestVersionParsing:
    """Tests for epoch:version-iteration splitting."""

    @pytest.mark.parametrize(
        "full_version, expected",
        [
            ("1.0", (None, "1.0", None)),
            ("1.0-1", (None, "1.0", "1")),
            ("2:1.0-1", (2, "1.0", "1")),
            ("0.9.8.3-1396474125.12e4179.wheezy", (None, "0.9.8.3", "1396474125.12e4179.wheezy")),
            ("1:2.3-4-5", (1, "2.3", "4-5")),
        ],
    )
    def test_parse_version(self, full_version, expected):
        assert parse_version(full_version) == expected

    @pytest.mark.parametrize("full_version", [None, ""])
    def test_missing_version_is_error(self, full_version):
        with pytest.raises(ParseError):
            parse_version(full_version)


class TestDependencies:
    """Tests for dependency parsing and normalization."""

    def test_parse_depends(self):
        result = parse_depends("libc6 (>= 2.31), zlib1g, foo | bar")

        assert result == ["libc6 (>= 2.31)", "zlib1g", "foo | bar"]

    def test_parse_depends_empty(self):
        assert parse_depends(None) == []
        assert parse_depends("  ") == []

    def test_debianize_op(self):
        assert debianize_op("<") == "<<"
        assert debianize_op(">") == ">>"
        assert debianize_op(">=") == ">="

    def test_fix_plain_operator(self):
        assert fix_dependency("foo > 1.0") == (["foo (>> 1.0)"], [])

    def test_fix_name_case_and_underscores(self):
        assert fix_dependency("Foo_Bar (>= 1.0)") == (["foo-bar (>= 1.0)"], [])

    def test_fix_pessimistic_operator(self):
        assert fix_dependency("rails (~> 4.1)") == (["rails (>= 4.1)", "rails (<< 5.0)"], [])
        assert fix_dependency("rails ~> 4.1.2") == (["rails (>= 4.1.2)", "rails (<< 4.2.0)"], [])

    def test_fix_not_equal_becomes_conflict(self):
        assert fix_dependency("foo (!= 1.0)") == ([], ["foo (= 1.0)"])

    def test_alternatives_pass_through(self):
        assert fix_dependency("foo | bar") == (["foo | bar"], [])
