"""Local BMC access: IPMI device node and kernel modules."""
from __future__ import annotations

from typing import Sequence

from hwcheck.domains.base import Domain
from hwcheck.models import Entity, RawReading
from hwcheck.policy import CategoryVisual, Requirement
from hwcheck.providers.base import Provider
from hwcheck.providers.bmc import BmcProvider, ReloadOutcome


class BmcDomain(Domain):
    name = "bmc"
    title = "BMC interface"
    reading_name = "IPMI devices and modules"
    category_order = ("Device", "Module")
    visuals = {
        "Device": CategoryVisual("▣▣▣", "DEV", "green", "IPMI device node"),
        "Module": CategoryVisual("◆◆◆", "MOD", "cyan", "Kernel module"),
    }

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.provider = BmcProvider(self.settings.tools)

    def providers(self) -> list[Provider]:
        return [self.provider]

    def classify(self, reading: RawReading) -> tuple[str, str]:
        if reading.attributes.get("kind") == "device":
            return "Device", "IPMI"
        return "Module", "IPMI"

    def position(self, reading: RawReading) -> str:
        if reading.attributes.get("kind") == "device":
            return reading.raw_name.removeprefix("/dev/").replace("/", "_").upper()
        return reading.raw_name.removeprefix("ipmi_").upper()

    def is_present(self, reading: RawReading) -> bool:
        return bool(reading.attributes.get("present"))

    def format_value(self, entity: Entity) -> str:
        return "found" if entity.is_present else "-"

    def default_requirements(self, entities: Sequence[Entity]) -> list[Requirement]:
        return [
            Requirement(
                name="IPMI Device",
                description="An IPMI device node exists",
                category="Device",
                min_count=1,
                check_health=False,
            ),
            Requirement(
                name="IPMI Modules",
                description="IPMI kernel modules are loaded",
                category="Module",
                min_count=1,
                check_health=False,
            ),
        ]

    def revive(self) -> ReloadOutcome:
        """Reload the IPMI kernel modules so the device node comes back."""
        return self.provider.reload_modules()
