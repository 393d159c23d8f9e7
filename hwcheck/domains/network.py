"""Network interfaces: link, speed and reachability."""
from __future__ import annotations

from typing import Sequence

from hwcheck.domains.base import Domain, natural_key
from hwcheck.grid import Row, even_rows
from hwcheck.models import Entity, PingResult, RawReading
from hwcheck.normalizer import INTERFACE_TYPES
from hwcheck.policy import CategoryVisual, Requirement
from hwcheck.providers.base import Provider
from hwcheck.providers.netif import NetworkProvider, ping_interfaces

UNPINGED_TYPES = ("Loopback", "Virtual")
UNCHECKED_TYPES = ("Loopback", "Virtual", "Bridge")


class NetworkDomain(Domain):
    name = "network"
    title = "Network interfaces"
    reading_name = "interfaces"
    category_order = ("Ethernet", "WiFi", "Other", "Bridge", "Virtual", "Loopback")
    visuals = {
        "Ethernet": CategoryVisual("═══", "ETH", "cyan", "Ethernet"),
        "WiFi": CategoryVisual("≈≈≈", "WIFI", "blue", "Wireless"),
        "Bridge": CategoryVisual("╬╬╬", "BR", "purple", "Bridge"),
        "Virtual": CategoryVisual("░░░", "VIRT", "light_black", "Virtual"),
        "Loopback": CategoryVisual("○○○", "LO", "white", "Loopback"),
        "Other": CategoryVisual("▒▒▒", "NET", "white", "Other"),
    }

    def providers(self) -> list[Provider]:
        return [NetworkProvider(self.settings.tools)]

    def classify(self, reading: RawReading) -> tuple[str, str]:
        return INTERFACE_TYPES.classify(reading.raw_name), "Interface"

    def ping_targets(self) -> list[str]:
        targets: list[str] = []
        if self.policy is not None:
            for requirement in self.policy.requirements:
                if requirement.check_ping:
                    targets.extend(t for t in requirement.ping_targets if t not in targets)
        return targets or list(self.settings.collector.ping_targets)

    def prepare(self, entities: Sequence[Entity]) -> dict[str, dict[str, PingResult]]:
        if self.policy is None or not self.policy.checks.ping:
            return {}
        if not any(requirement.check_ping for requirement in self.policy.requirements):
            return {}
        interfaces = [
            entity.raw_name
            for entity in entities
            if entity.is_active and entity.category not in UNPINGED_TYPES
        ]
        if not interfaces:
            return {}
        self.logger.info("Pinging %s via %s", ", ".join(self.ping_targets()), ", ".join(interfaces))
        return ping_interfaces(
            self.collector,
            self.settings.tools,
            interfaces,
            self.ping_targets(),
            self.policy.ping_timeout_seconds,
            self.policy.ping_retries,
        )

    def format_value(self, entity: Entity) -> str:
        if not entity.value:
            return "-"
        speed = int(entity.value)
        if speed >= 1000 and speed % 1000 == 0:
            return f"{speed // 1000}G"
        return f"{speed}M"

    def default_layout(self, total_slots: int, row_width: int) -> list[Row]:
        if total_slots <= 4:
            return even_rows(total_slots, max(total_slots, 1))
        if total_slots <= 8:
            return even_rows(total_slots, (total_slots + 1) // 2)
        return even_rows(total_slots, row_width)

    def slot_groups(self, entities: Sequence[Entity]) -> list[tuple[str, list[str]]]:
        physical = [e for e in entities if e.category not in UNCHECKED_TYPES]
        physical.sort(key=lambda e: (e.attributes.get("pci_slot") or "~", natural_key(e.position)))
        groups: dict[str, list[str]] = {}
        for entity in physical:
            groups.setdefault(entity.category, []).append(entity.position)
        return list(groups.items())

    def default_requirements(self, entities: Sequence[Entity]) -> list[Requirement]:
        requirements = []
        for interface_type, positions in self.slot_groups(entities):
            interfaces = [e for e in entities if e.position in positions]
            speeds = {
                e.attributes.get("speed")
                for e in interfaces
                if e.is_active and e.attributes.get("speed") not in (None, "unknown")
            }
            requirements.append(
                Requirement(
                    name=f"{interface_type} Interfaces",
                    description=f"{interface_type} links up and reachable",
                    category=interface_type,
                    positions=tuple(positions),
                    min_count=len(interfaces),
                    expected_status={
                        e.position: "UP" if e.is_active else "DOWN" for e in interfaces
                    },
                    require_link=True,
                    required_speed=speeds.pop() if len(speeds) == 1 else None,
                    check_ping=True,
                    ping_targets=tuple(self.settings.collector.ping_targets),
                )
            )
        return requirements
