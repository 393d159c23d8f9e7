"""Cooling fans."""
from __future__ import annotations

from typing import Sequence

from hwcheck.domains.base import Domain
from hwcheck.models import Entity, RawReading
from hwcheck.normalizer import FAN_RULES, FAN_TYPES, PositionNormalizer
from hwcheck.policy import CategoryVisual, Requirement
from hwcheck.providers.base import Provider
from hwcheck.providers.ipmi import IpmiProvider
from hwcheck.providers.redfish import THERMAL, RedfishProvider
from hwcheck.providers.sensors import HwmonFanProvider, SensorsProvider

DEFAULT_CHASSIS_MIN_RPM = 1000.0
DEFAULT_MAX_RPM_DIFF = 500.0


class FanDomain(Domain):
    name = "fan"
    title = "Fans"
    reading_name = "fans"
    normalizer = PositionNormalizer(FAN_RULES)
    category_order = ("CPU", "Chassis", "PCIe", "PSU", "Other")
    visuals = {
        "CPU": CategoryVisual("▓▓▓", "CPU", "blue", "CPU fan"),
        "Chassis": CategoryVisual("═══", "CHS", "cyan", "Chassis fan"),
        "PSU": CategoryVisual("███", "PSU", "yellow", "PSU fan"),
        "PCIe": CategoryVisual("≡≡≡", "PCI", "purple", "PCIe fan"),
        "Other": CategoryVisual("░░░", "FAN", "white", "Other fan"),
    }

    def providers(self) -> list[Provider]:
        tools = self.settings.tools
        providers: list[Provider] = [
            SensorsProvider(tools, kinds=("fan",), timeout_s=self.timeout_s),
            HwmonFanProvider(tools),
            IpmiProvider(
                tools,
                self.collector,
                units=("RPM",),
                name_hint=r"FAN",
                bmc=self.settings.bmc if self.settings.bmc.host else None,
                timeout_s=self.timeout_s,
            ),
        ]
        if self.settings.bmc.host:
            providers.append(
                RedfishProvider(self.settings.bmc, self.collector, THERMAL, timeout_s=self.timeout_s)
            )
        return providers

    def classify(self, reading: RawReading) -> tuple[str, str]:
        return FAN_TYPES.classify(reading.raw_name), "Fan"

    def format_value(self, entity: Entity) -> str:
        if entity.value is None:
            return "N/A"
        return f"{entity.value:.0f}"

    def default_requirements(self, entities: Sequence[Entity]) -> list[Requirement]:
        requirements = []
        for fan_type, positions in self.slot_groups(entities):
            fans = [e for e in entities if e.category == fan_type]
            active = [e for e in fans if e.is_active]
            minimums = [e.thresholds.min for e in fans if e.thresholds.min is not None]
            if minimums:
                min_rpm: float | None = min(minimums)
            elif fan_type == "Chassis":
                min_rpm = DEFAULT_CHASSIS_MIN_RPM
            else:
                min_rpm = None
            has_target = any(e.attributes.get("target_rpm") for e in fans)
            requirements.append(
                Requirement(
                    name=f"{fan_type} Fans",
                    description=f"{fan_type} fans spinning at the expected speed",
                    category=fan_type,
                    positions=tuple(positions),
                    min_count=len(active),
                    min_value=min_rpm,
                    expected_status={e.position: e.status.value for e in fans},
                    check_critical=True,
                    max_rpm_diff=DEFAULT_MAX_RPM_DIFF if has_target else None,
                )
            )
        return requirements
