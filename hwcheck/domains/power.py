"""Voltage, current and power rails."""
from __future__ import annotations

from typing import Iterable, Sequence

from hwcheck.domains.base import Domain
from hwcheck.models import Entity, RawReading
from hwcheck.normalizer import POWER_CATEGORIES, POWER_RULES, PositionNormalizer, power_type
from hwcheck.policy import CategoryVisual, Requirement
from hwcheck.providers.base import Provider
from hwcheck.providers.ipmi import IpmiProvider
from hwcheck.providers.redfish import POWER, RedfishProvider
from hwcheck.providers.sensors import SensorsProvider

AC_INPUT_WINDOW = (90.0, 264.0)
DC_INPUT_WINDOW = (11.5, 12.5)


def is_input_rail(position: str) -> bool:
    return position.endswith("_VIN")


def input_window(values: Iterable[float | None]) -> tuple[float, float]:
    """Mains window when any input reads above 60 V, else a 12 V bus."""
    observed = [value for value in values if value is not None]
    if observed and max(observed) > 60:
        return AC_INPUT_WINDOW
    return DC_INPUT_WINDOW


class PowerDomain(Domain):
    name = "power"
    title = "Power sensors"
    reading_name = "power sensors"
    normalizer = PositionNormalizer(POWER_RULES)
    category_order = ("System", "CPU", "Memory", "Chipset", "Battery", "PSU", "Other")
    visuals = {
        "PSU": CategoryVisual("███", "PSU", "yellow", "Power supply"),
        "CPU": CategoryVisual("▓▓▓", "CPU", "blue", "CPU rail"),
        "Memory": CategoryVisual("▒▒▒", "MEM", "green", "Memory rail"),
        "System": CategoryVisual("═══", "SYS", "cyan", "System rail"),
        "Chipset": CategoryVisual("≡≡≡", "PCH", "light_black", "Chipset"),
        "Battery": CategoryVisual("▬▬▬", "BAT", "red", "Battery"),
        "Other": CategoryVisual("░░░", "OTH", "white", "Other"),
    }

    def providers(self) -> list[Provider]:
        tools = self.settings.tools
        providers: list[Provider] = [
            IpmiProvider(
                tools,
                self.collector,
                units=("V", "A", "W"),
                bmc=self.settings.bmc if self.settings.bmc.host else None,
                timeout_s=self.timeout_s,
            ),
        ]
        if self.settings.bmc.host:
            providers.append(
                RedfishProvider(self.settings.bmc, self.collector, POWER, timeout_s=self.timeout_s)
            )
        providers.append(SensorsProvider(tools, kinds=("in", "curr", "power"), timeout_s=self.timeout_s))
        return providers

    def classify(self, reading: RawReading) -> tuple[str, str]:
        return POWER_CATEGORIES.classify(reading.raw_name), power_type(reading.unit)

    def default_requirements(self, entities: Sequence[Entity]) -> list[Requirement]:
        requirements = []
        psu_voltages = [e for e in entities if e.category == "PSU" and e.subtype == "Voltage"]
        inputs = [e for e in psu_voltages if is_input_rail(e.position)]
        outputs = sorted({e.position for e in psu_voltages if not is_input_rail(e.position)})
        if inputs:
            low, high = input_window(e.value for e in inputs)
            positions = sorted({e.position for e in inputs})
            requirements.append(
                Requirement(
                    name="PSU Input Voltage",
                    description="PSU input voltage",
                    category="PSU",
                    type="Voltage",
                    positions=tuple(positions),
                    min_count=len(positions),
                    min_value=low,
                    max_value=high,
                    tolerance_percent=5,
                    check_critical=True,
                )
            )
        if outputs:
            requirements.append(
                Requirement(
                    name="PSU Voltage Check",
                    description="PSU output voltage",
                    category="PSU",
                    type="Voltage",
                    positions=tuple(outputs),
                    min_count=len(outputs),
                    min_value=11.5,
                    max_value=12.5,
                    tolerance_percent=5,
                    check_critical=True,
                )
            )
        rails = sorted(
            {e.position for e in entities if e.category == "System" and e.subtype == "Voltage"}
        )
        if rails:
            requirements.append(
                Requirement(
                    name="System Rails",
                    description="Board voltage rails",
                    category="System",
                    type="Voltage",
                    positions=tuple(rails),
                    min_count=len(rails),
                    min_value=0.5,
                    max_value=15.0,
                    tolerance_percent=10,
                    check_critical=True,
                )
            )
        requirements.append(
            Requirement(
                name="Power Sensors",
                description="All power sensors report healthy status",
                min_count=len({e.position for e in entities}),
                check_critical=True,
            )
        )
        return requirements
