"""Memory modules."""
from __future__ import annotations

from typing import Sequence

from hwcheck.domains.base import Domain
from hwcheck.grid import Row, even_rows
from hwcheck.models import Entity, RawReading
from hwcheck.normalizer import PositionNormalizer, PositionRule
from hwcheck.policy import CategoryVisual, Requirement
from hwcheck.providers.base import Provider
from hwcheck.providers.dmi import DmidecodeProvider, LshwProvider, MeminfoProvider

MEMORY_RULES = (
    PositionRule(r"P(\d+)_NODE\d+_CHANNEL(\d+)_DIMM(\d+)", "P{0}C{1}D{2}"),
    PositionRule(r"CHANNEL([A-Z])[\s_-]*DIMM[\s_-]*(\d+)", "{0}{1}"),
    PositionRule(r"CPU(\d+)[\s_-]*DIMM[\s_-]*([A-Z]\d+)", "CPU{0}_{1}"),
    PositionRule(r"DIMM[\s_-]*([A-Z]\d+)", "DIMM_{0}"),
)

_TYPE_COLORS = {"DDR5": "cyan", "DDR4": "green", "DDR3": "yellow", "DDR2": "purple"}


def _memory_visuals() -> dict[str, CategoryVisual]:
    visuals = {}
    for memory_type, color in _TYPE_COLORS.items():
        visuals[memory_type] = CategoryVisual("▒▒▒", memory_type, color, memory_type)
        visuals[f"{memory_type}E"] = CategoryVisual("▓▓▓", f"{memory_type}E", color, f"{memory_type} ECC")
    visuals["Unknown"] = CategoryVisual("░░░", "RAM", "white", "Unknown type")
    visuals["Total"] = CategoryVisual("███", "TOTAL", "white", "Total memory only")
    return visuals


class MemoryDomain(Domain):
    name = "memory"
    title = "Memory modules"
    reading_name = "memory modules"
    normalizer = PositionNormalizer(MEMORY_RULES, noise_prefixes=())
    category_order = ("Memory", "Total")
    visuals = _memory_visuals()

    def providers(self) -> list[Provider]:
        tools = self.settings.tools
        return [
            DmidecodeProvider(tools, timeout_s=self.timeout_s),
            LshwProvider(tools, timeout_s=self.timeout_s),
            MeminfoProvider(),
        ]

    def classify(self, reading: RawReading) -> tuple[str, str]:
        category = "Total" if reading.attributes.get("total_only") else "Memory"
        return category, reading.attributes.get("memory_type") or "Unknown"

    def is_present(self, reading: RawReading) -> bool:
        return bool(reading.attributes.get("size_mb"))

    def sort_entities(self, entities: list[Entity]) -> list[Entity]:
        return entities

    def visual_key(self, entity: Entity) -> str:
        if entity.category == "Total":
            return "Total"
        key = entity.subtype if entity.subtype in _TYPE_COLORS else "Unknown"
        if key != "Unknown" and entity.attributes.get("ecc"):
            key += "E"
        return key

    def format_value(self, entity: Entity) -> str:
        size_mb = entity.attributes.get("size_mb")
        if not size_mb:
            return "-"
        return f"{size_mb / 1024:g}GB"

    def default_layout(self, total_slots: int, row_width: int) -> list[Row]:
        if total_slots <= 8:
            return even_rows(total_slots, max(total_slots, 1))
        if total_slots <= 16:
            return even_rows(total_slots, 8)
        if total_slots <= 32:
            return even_rows(total_slots, (total_slots + 1) // 2)
        return even_rows(total_slots, 16)

    def default_requirements(self, entities: Sequence[Entity]) -> list[Requirement]:
        modules = [e for e in entities if e.is_present]
        if not modules:
            return []
        category = modules[0].category
        types = {e.subtype for e in modules if e.subtype != "Unknown"}
        speeds = [e.attributes["speed_mhz"] for e in modules if e.attributes.get("speed_mhz")]
        sizes = {e.attributes.get("size_mb") for e in modules}
        total_gb = sum(e.attributes.get("size_mb") or 0 for e in modules) / 1024
        per_module = category == "Memory"
        return [
            Requirement(
                name="Memory Modules",
                description="Installed memory modules",
                category=category,
                positions=tuple(e.position for e in modules) if per_module else (),
                min_count=len(modules),
                expected_status={e.position: "OK" for e in modules} if per_module else {},
                required_type=types.pop() if len(types) == 1 else None,
                min_speed_mhz=min(speeds) if speeds else None,
                require_ecc=per_module and all(e.attributes.get("ecc") for e in modules),
                uniform=per_module and len(sizes) == 1,
                min_total_gb=int(total_gb) or None,
            )
        ]
