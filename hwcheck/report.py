"""Plain-text listing and check summary."""
from __future__ import annotations

from typing import Callable, Sequence

from hwcheck.models import CheckResult, Entity, Severity, Status
from hwcheck.terminal import colorize, severity_color

STATUS_COLORS = {
    Status.OK: "green",
    Status.WARNING: "yellow",
    Status.CRITICAL: "red",
    Status.NA: "light_black",
    Status.UNKNOWN: "purple",
}


def format_listing(
    entities: Sequence[Entity],
    format_value: Callable[[Entity], str],
    title: str = "",
    color: bool = True,
    verbose: bool = False,
) -> str:
    lines: list[str] = []
    if title:
        lines.append(title)
    if not entities:
        lines.append("  (nothing found)")
        return "\n".join(lines)
    width = max(len(entity.position) for entity in entities)
    kind_width = max(len(f"{entity.category}/{entity.subtype}") for entity in entities)
    for entity in entities:
        kind = f"{entity.category}/{entity.subtype}"
        status = colorize(f"{entity.status.value:<8}", STATUS_COLORS[entity.status], color)
        line = (
            f"  {entity.position:<{width}}  {kind:<{kind_width}}  "
            f"{format_value(entity):>12}  {status}  {entity.raw_name}"
        )
        if verbose:
            details = [f"source={entity.source}"]
            if entity.sensor_number is not None:
                details.append(f"sensor=#{entity.sensor_number}")
            limits = entity.thresholds
            if not limits.empty:
                details.append(
                    "thresholds="
                    + "/".join(
                        "-" if value is None else f"{value:g}"
                        for value in (limits.critical_min, limits.min, limits.max, limits.critical_max)
                    )
                )
            details.extend(f"{key}={value}" for key, value in sorted(entity.attributes.items()))
            line += "  [" + " ".join(details) + "]"
        lines.append(line)
    return "\n".join(lines)


def format_summary(result: CheckResult, title: str = "", color: bool = True) -> str:
    lines: list[str] = []
    if title:
        lines.append(title)
    for issue in result.issues:
        lines.append(f"  - {issue}")
    failed = sorted(dimension for dimension, ok in result.flags.items() if not ok)
    if failed:
        lines.append(f"  Failed checks: {', '.join(failed)}")
    verdict = {
        Severity.OK: "All checks passed",
        Severity.WARNING: "Checks passed with warnings",
        Severity.ERROR: "Checks failed",
        Severity.MISSING: "Checks failed: required hardware missing",
    }[result.severity]
    lines.append(colorize(f"{verdict} ({result.status.upper()})", severity_color(result.severity), color))
    return "\n".join(lines)
