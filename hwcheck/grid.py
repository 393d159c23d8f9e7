"""Slot grid rendering.

Positions map to 1-based slots through the persisted ``position_to_slot``
table, so a slot keeps its place even when its entity disappears. Rows are
either the operator's custom ranges or an even split of all slots.
"""
from __future__ import annotations

from dataclasses import dataclass
import fnmatch
import logging
from typing import Callable, Iterable, Sequence

from hwcheck.matcher import RequirementMatcher
from hwcheck.models import Entity, Severity
from hwcheck.policy import CategoryVisual, Visualization
from hwcheck.terminal import NEUTRAL_COLOR, colorize, fit, severity_color

logger = logging.getLogger(__name__)

LABEL_WIDTH = 6
EMPTY_VISUAL = CategoryVisual(symbol="   ", short_name="", color=NEUTRAL_COLOR)


@dataclass(frozen=True)
class Row:
    name: str
    slots: tuple[int, ...]


@dataclass(frozen=True)
class Cell:
    slot: int
    position: str | None = None
    entity: Entity | None = None
    severity: Severity | None = None

    @property
    def is_missing(self) -> bool:
        return self.severity is Severity.MISSING


def parse_slot_spec(spec: str, total_slots: int) -> tuple[int, ...]:
    """Parse ``"1-8"`` or ``"1,3,5-6"`` into slot numbers within range."""
    slots: list[int] = []
    for part in spec.split(","):
        part = part.strip()
        if not part:
            continue
        if "-" in part:
            start_text, _, end_text = part.partition("-")
            try:
                start, end = int(start_text), int(end_text)
            except ValueError:
                raise ValueError(f"invalid range {part!r}") from None
            if start > end:
                raise ValueError(f"range start {start} is after end {end}")
            numbers = range(start, end + 1)
        else:
            try:
                numbers = range(int(part), int(part) + 1)
            except ValueError:
                raise ValueError(f"invalid slot {part!r}") from None
        for slot in numbers:
            if slot < 1 or slot > total_slots:
                raise ValueError(f"slot {slot} outside 1-{total_slots}")
            slots.append(slot)
    if not slots:
        raise ValueError("empty slot specification")
    return tuple(slots)


def even_rows(total_slots: int, row_width: int) -> list[Row]:
    rows = []
    for start in range(1, total_slots + 1, max(row_width, 1)):
        end = min(start + row_width - 1, total_slots)
        rows.append(Row(name=f"Slots {start}-{end}", slots=tuple(range(start, end + 1))))
    return rows


def build_rows(
    visualization: Visualization,
    default_layout: Callable[[int, int], list[Row]] = even_rows,
) -> list[Row]:
    total = visualization.total_slots
    custom = visualization.custom_rows
    if custom.enabled and custom.rows:
        rows = []
        for spec in custom.rows:
            try:
                rows.append(Row(name=spec.name, slots=parse_slot_spec(spec.slots, total)))
            except ValueError as exc:
                logger.warning("Skipping row %r (%s): %s", spec.name, spec.slots, exc)
        if rows:
            return rows
        logger.warning("No usable custom rows; using the default layout")
    return default_layout(total, visualization.row_width)


def is_ignored(position: str, patterns: Iterable[str]) -> bool:
    return any(
        pattern in position or fnmatch.fnmatchcase(position, pattern)
        for pattern in patterns
    )


def build_cells(
    entities: Sequence[Entity],
    visualization: Visualization,
    matcher: RequirementMatcher,
) -> dict[int, Cell]:
    slot_positions: dict[int, str] = {}
    for position, slot in visualization.position_to_slot.items():
        if is_ignored(position, visualization.ignore_patterns):
            continue
        if not 1 <= slot <= visualization.total_slots:
            logger.warning(
                "Skipping %s: slot %s outside 1-%s", position, slot, visualization.total_slots
            )
            continue
        slot_positions[slot] = position
    live: dict[str, Entity] = {}
    for entity in entities:
        if entity.is_present:
            live.setdefault(entity.position, entity)
    required = matcher.required_positions()

    cells: dict[int, Cell] = {}
    for slot in range(1, visualization.total_slots + 1):
        position = slot_positions.get(slot)
        entity = live.get(position) if position else None
        if entity is not None:
            severity = matcher.evaluate_entity(entity).severity
        elif position in required:
            entity = Entity.placeholder(position)
            severity = Severity.MISSING
        else:
            severity = None
        cells[slot] = Cell(slot=slot, position=position, entity=entity, severity=severity)
    return cells


class GridRenderer:
    """Draw cells as a boxed grid, one block per row."""

    def __init__(
        self,
        visualization: Visualization,
        visual_for: Callable[[Entity], CategoryVisual],
        format_value: Callable[[Entity], str],
        color: bool = True,
    ) -> None:
        self.visualization = visualization
        self.visual_for = visual_for
        self.format_value = format_value
        self.color = color
        self.width = visualization.slot_width

    def render(self, cells: dict[int, Cell], rows: Sequence[Row], title: str = "") -> str:
        lines: list[str] = []
        if title:
            lines.append(title)
            lines.append("")
        lines.extend(self.legend())
        for row in rows:
            lines.append("")
            lines.extend(self.render_row(row, [cells.get(slot, Cell(slot=slot)) for slot in row.slots]))
        return "\n".join(lines)

    def legend(self) -> list[str]:
        entries = []
        for name, visual in self.visualization.category_visuals.items():
            label = f"{visual.symbol} {visual.short_name or name}"
            if visual.description:
                label += f" {visual.description}"
            entries.append(colorize(label, visual.color, self.color))
        status = [
            colorize("OK", severity_color(Severity.OK), self.color),
            colorize("WARN", severity_color(Severity.WARNING), self.color),
            colorize("ERROR", severity_color(Severity.ERROR), self.color),
            colorize("MISS", severity_color(Severity.MISSING), self.color),
            colorize("EMPTY", NEUTRAL_COLOR, self.color),
        ]
        lines = []
        if entries:
            lines.append("Legend: " + "  ".join(entries))
        lines.append("Status: " + "  ".join(status))
        return lines

    def render_row(self, row: Row, cells: Sequence[Cell]) -> list[str]:
        bar = "─" * self.width
        contents = [self._cell_lines(cell) for cell in cells]
        lines = [row.name]
        lines.append("┌" + "┬".join(bar for _ in cells) + "┐")
        for index in range(4):
            lines.append(
                "│"
                + "│".join(colorize(fit(text[index], self.width), color, self.color) for text, color in contents)
                + "│"
            )
        lines.append("└" + "┴".join(bar for _ in cells) + "┘")
        lines.append(" " + " ".join(fit(str(cell.slot), self.width) for cell in cells) + " ")
        lines.append(
            " "
            + " ".join(fit((cell.position or "")[:LABEL_WIDTH], self.width) for cell in cells)
            + " "
        )
        return lines

    def _cell_lines(self, cell: Cell) -> tuple[tuple[str, str, str, str], str]:
        if cell.is_missing:
            return ("---", "", "", "MISS"), severity_color(Severity.MISSING)
        if cell.entity is not None:
            visual = self.visual_for(cell.entity)
            status = cell.entity.status.value[:4].upper()
            return (
                (visual.symbol, visual.short_name, self.format_value(cell.entity), status),
                severity_color(cell.severity or Severity.OK),
            )
        return (EMPTY_VISUAL.symbol, "", "", "EMPTY"), NEUTRAL_COLOR
