"""ANSI coloring shared by the grid and the text reports."""
from __future__ import annotations

from colorlog.escape_codes import escape_codes, parse_colors

from hwcheck.models import Severity

SEVERITY_COLORS = {
    Severity.OK: "green",
    Severity.WARNING: "yellow",
    Severity.ERROR: "red",
    Severity.MISSING: "bold_red",
}
NEUTRAL_COLOR = "light_black"


def colorize(text: str, color: str | None, enabled: bool = True) -> str:
    if not enabled or not color:
        return text
    names = [part.strip() for part in color.split(",") if part.strip() in escape_codes]
    code = parse_colors(",".join(names))
    if not code:
        return text
    return f"{code}{text}{escape_codes['reset']}"


def severity_color(severity: Severity | None) -> str:
    if severity is None:
        return NEUTRAL_COLOR
    return SEVERITY_COLORS[severity]


def fit(text: str, width: int) -> str:
    """Center ``text`` in ``width`` columns, truncating when too long."""
    if len(text) > width:
        text = text[:width]
    return text.center(width)
