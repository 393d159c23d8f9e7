from __future__ import annotations

import logging
import re
from typing import Any, Sequence

from hwcheck.collector import ParallelCollector
from hwcheck.config import Settings
from hwcheck.errors import CollectionError
from hwcheck.grid import Row, even_rows
from hwcheck.models import Entity, PingResult, RawReading
from hwcheck.normalizer import PositionNormalizer, canonical_unit, is_valid_reading, normalize_status
from hwcheck.policy import (
    ROW_WIDTHS,
    SLOT_WIDTHS,
    CategoryVisual,
    CustomRows,
    Policy,
    Requirement,
    RowSpec,
    Visualization,
)
from hwcheck.providers.base import Provider, first_available

FALLBACK_VISUAL = CategoryVisual(symbol="░░░", short_name="OTH", color="white", description="Other")


def natural_key(text: str) -> list[Any]:
    return [int(part) if part.isdigit() else part for part in re.split(r"(\d+)", text)]


def contiguous_rows(groups: Sequence[tuple[str, Sequence[int]]]) -> tuple[RowSpec, ...]:
    """One row spec per named group of consecutive slots."""
    rows = []
    for name, slots in groups:
        if slots:
            rows.append(RowSpec(name=name, slots=f"{min(slots)}-{max(slots)}"))
    return tuple(rows)


class Domain:
    """One hardware check: where readings come from and how they become entities.

    Subclasses provide the provider chain, classification, visuals and the
    default policy written by ``--create-config``.
    """

    name = ""
    title = ""
    reading_name = "readings"
    normalizer: PositionNormalizer | None = None
    visuals: dict[str, CategoryVisual] = {}
    category_order: tuple[str, ...] = ()

    def __init__(
        self,
        settings: Settings,
        collector: ParallelCollector,
        policy: Policy | None = None,
    ) -> None:
        self.settings = settings
        self.collector = collector
        self.policy = policy
        self.logger = logging.getLogger(self.__class__.__name__)

    @property
    def timeout_s(self) -> float:
        if self.policy is not None:
            return self.policy.probe_timeout_seconds
        return self.settings.bmc.timeout_s

    def providers(self) -> list[Provider]:
        raise NotImplementedError

    def classify(self, reading: RawReading) -> tuple[str, str]:
        raise NotImplementedError

    def position(self, reading: RawReading) -> str:
        if self.normalizer is None:
            return reading.raw_name
        return self.normalizer.normalize(reading.raw_name)

    def build_entity(self, reading: RawReading) -> Entity | None:
        unit = canonical_unit(reading.unit)
        if reading.value is not None and not is_valid_reading(reading.value, unit):
            self.logger.debug(
                "Dropping %s: invalid reading %s%s", reading.raw_name, reading.value, unit
            )
            return None
        category, subtype = self.classify(reading)
        status = normalize_status(reading.status)
        return Entity(
            raw_name=reading.raw_name,
            position=self.position(reading),
            category=category,
            subtype=subtype,
            value=float(reading.value) if reading.value is not None else None,
            unit=unit,
            status=status,
            thresholds=reading.thresholds,
            is_present=self.is_present(reading),
            attributes=dict(reading.attributes),
            source=reading.source,
            sensor_number=reading.sensor_number,
        )

    def is_present(self, reading: RawReading) -> bool:
        return True

    def collect(self) -> list[Entity]:
        outcome = first_available(self.providers(), self.reading_name)
        for failure in outcome.failures:
            self.logger.info("Skipped provider %s", failure)
        entities = [
            entity
            for entity in (self.build_entity(reading) for reading in outcome.readings)
            if entity is not None
        ]
        if not entities:
            raise CollectionError(f"No valid {self.reading_name} from {outcome.provider}")
        self.logger.debug(
            "Collected %s %s from %s", len(entities), self.reading_name, outcome.provider
        )
        return self.sort_entities(entities)

    def sort_entities(self, entities: list[Entity]) -> list[Entity]:
        order = {category: index for index, category in enumerate(self.category_order)}
        return sorted(
            entities,
            key=lambda entity: (
                order.get(entity.category, len(order)),
                natural_key(entity.position),
            ),
        )

    def prepare(self, entities: Sequence[Entity]) -> dict[str, dict[str, PingResult]]:
        """Extra per-entity probing needed before matching."""
        return {}

    def visual_key(self, entity: Entity) -> str:
        return entity.category

    def visual_for(self, entity: Entity) -> CategoryVisual:
        key = self.visual_key(entity)
        if self.policy is not None:
            visual = self.policy.visualization.category_visuals.get(key)
            if visual is not None:
                return visual
        return self.visuals.get(key, FALLBACK_VISUAL)

    def format_value(self, entity: Entity) -> str:
        if entity.value is None:
            return "N/A"
        return f"{entity.value:.1f}{entity.unit}"

    def default_layout(self, total_slots: int, row_width: int) -> list[Row]:
        return even_rows(total_slots, row_width)

    def default_requirements(self, entities: Sequence[Entity]) -> list[Requirement]:
        raise NotImplementedError

    def slot_groups(self, entities: Sequence[Entity]) -> list[tuple[str, list[str]]]:
        """Positions grouped by category, in slot order."""
        groups: dict[str, list[str]] = {}
        seen: set[str] = set()
        for entity in self.sort_entities(list(entities)):
            if entity.position in seen:
                continue
            seen.add(entity.position)
            groups.setdefault(entity.category, []).append(entity.position)
        return list(groups.items())

    def default_policy(self, entities: Sequence[Entity]) -> Policy:
        position_to_slot: dict[str, int] = {}
        slot_runs: list[tuple[str, list[int]]] = []
        for category, positions in self.slot_groups(entities):
            run = []
            for position in positions:
                position_to_slot[position] = len(position_to_slot) + 1
                run.append(position_to_slot[position])
            slot_runs.append((category, run))
        used = {self.visual_key(entity) for entity in entities}
        visualization = Visualization(
            position_to_slot=position_to_slot,
            total_slots=len(position_to_slot),
            slot_width=SLOT_WIDTHS.get(self.name, 10),
            row_width=ROW_WIDTHS.get(self.name, 8),
            category_visuals={
                key: visual for key, visual in self.visuals.items() if key in used
            },
            custom_rows=CustomRows(enabled=False, rows=contiguous_rows(slot_runs)),
        )
        return Policy(
            domain=self.name,
            requirements=tuple(self.default_requirements(entities)),
            visualization=visualization,
        )
