"""Tests for ANSI coloring helpers."""
from __future__ import annotations

from colorlog.escape_codes import escape_codes

from hwcheck.models import Severity
from hwcheck.terminal import colorize, fit, severity_color


class TestColorize:
    """Test colorize."""

    def test_named_color(self):
        """Test a single color name wraps the text and resets."""
        assert colorize("OK", "green") == "\x1b[32mOK\x1b[0m"

    def test_combined_colors(self):
        """Test comma separated names are joined in order."""
        assert colorize("X", "bold,red") == f"{escape_codes['bold']}\x1b[31mX\x1b[0m"

    def test_unknown_color_is_ignored(self):
        """Test unknown names never raise and leave text plain."""
        assert colorize("X", "no_such_color") == "X"
        assert colorize("X", "no_such_color,red") == "\x1b[31mX\x1b[0m"

    def test_disabled(self):
        """Test disabled or empty colors return the text unchanged."""
        assert colorize("OK", "green", enabled=False) == "OK"
        assert colorize("OK", None) == "OK"

    def test_every_severity_color_exists(self):
        """Test each severity maps to a known escape code."""
        for severity in Severity:
            assert severity_color(severity) in escape_codes


class TestFit:
    """Test fit."""

    def test_center_and_truncate(self):
        """Test short text is centered and long text cut."""
        assert fit("ab", 6) == "  ab  "
        assert fit("abcdefgh", 4) == "abcd"
