"""Evaluate policy requirements against the entities of one pass."""
from __future__ import annotations

import logging
import re
from typing import Iterable, Mapping, Sequence

from hwcheck.aggregate import aggregate
from hwcheck.models import CheckResult, Entity, PingResult, Severity, Status
from hwcheck.normalizer import normalize_status
from hwcheck.policy import Checks, Requirement

WILDCARDS = ("", "any", "*")


def _speed_mbps(text: str | None) -> int | None:
    if not text:
        return None
    match = re.search(r"(\d+)", str(text))
    return int(match.group(1)) if match else None


def _fmt(value: float, unit: str = "") -> str:
    return f"{value:g}{unit}"


class RequirementMatcher:
    """Apply every requirement to the entities it selects.

    All matching requirements contribute to an entity's verdict. Checks
    only ever escalate severity.
    """

    def __init__(
        self,
        requirements: Sequence[Requirement],
        checks: Checks | None = None,
        ping_results: Mapping[str, Mapping[str, PingResult]] | None = None,
    ) -> None:
        self.requirements = tuple(requirements)
        self.checks = checks or Checks()
        self.ping_results = ping_results or {}
        self.logger = logging.getLogger(self.__class__.__name__)

    def matches(self, requirement: Requirement, entity: Entity) -> bool:
        if requirement.category.lower() not in WILDCARDS and (
            entity.category.lower() != requirement.category.lower()
        ):
            return False
        if requirement.type.lower() not in WILDCARDS and (
            entity.subtype.lower() != requirement.type.lower()
        ):
            return False
        return not requirement.positions or entity.position in requirement.positions

    def select(self, requirement: Requirement, entities: Iterable[Entity]) -> list[Entity]:
        return [entity for entity in entities if self.matches(requirement, entity)]

    def required_positions(self) -> set[str]:
        """Positions some requirement lists and does not expect to be inactive."""
        required: set[str] = set()
        for requirement in self.requirements:
            for position in requirement.positions:
                expected = requirement.expected_status.get(position)
                if expected is None or normalize_status(expected).is_active:
                    required.add(position)
        return required

    def evaluate(self, entities: Sequence[Entity]) -> CheckResult:
        return aggregate(
            self.evaluate_requirement(requirement, entities)
            for requirement in self.requirements
        )

    def evaluate_entity(self, entity: Entity) -> CheckResult:
        result = CheckResult()
        for requirement in self.requirements:
            if self.matches(requirement, entity):
                self._check_entity(requirement, entity, result)
        return result

    def evaluate_requirement(
        self, requirement: Requirement, entities: Sequence[Entity]
    ) -> CheckResult:
        result = CheckResult()
        matched = self.select(requirement, entities)
        self.logger.debug("%s selected %s entities", requirement.name, len(matched))
        if not matched:
            result.add(
                Severity.ERROR,
                f"{requirement.name}: no matching {self._describe(requirement)} found",
                "count",
            )
        self._check_group(requirement, matched, result)
        for entity in matched:
            self._check_entity(requirement, entity, result)
        self._check_uniformity(requirement, matched, result)
        return result

    def _describe(self, requirement: Requirement) -> str:
        parts = [
            value
            for value in (requirement.category, requirement.type)
            if value.lower() not in WILDCARDS
        ]
        label = " ".join(parts) or "entities"
        if requirement.positions:
            label += f" at {', '.join(requirement.positions)}"
        return label

    def _check_group(
        self, requirement: Requirement, matched: list[Entity], result: CheckResult
    ) -> None:
        present = [entity for entity in matched if entity.is_present]
        count = len(present)
        if requirement.min_count is not None and count < requirement.min_count:
            result.add(
                Severity.ERROR,
                f"{requirement.name}: found {count}, expected at least {requirement.min_count}",
                "count",
            )
        elif requirement.max_count is not None and count > requirement.max_count:
            result.add(
                Severity.ERROR,
                f"{requirement.name}: found {count}, expected at most {requirement.max_count}",
                "count",
            )
        elif requirement.min_count is not None or requirement.max_count is not None:
            result.passed("count")

        seen = {entity.position for entity in present}
        for position in requirement.positions:
            if position in seen:
                continue
            expected = requirement.expected_status.get(position)
            if expected is not None and not normalize_status(expected).is_active:
                continue
            result.add(
                Severity.MISSING,
                f"{requirement.name}: {position} is missing",
                "missing",
            )

        if requirement.min_total_gb is not None or requirement.max_total_gb is not None:
            total_gb = sum(entity.attributes.get("size_mb") or 0 for entity in present) / 1024
            if requirement.min_total_gb is not None and total_gb < requirement.min_total_gb:
                result.add(
                    Severity.ERROR,
                    f"{requirement.name}: total {total_gb:g}GB below minimum {requirement.min_total_gb:g}GB",
                    "size",
                )
            elif requirement.max_total_gb is not None and total_gb > requirement.max_total_gb:
                result.add(
                    Severity.ERROR,
                    f"{requirement.name}: total {total_gb:g}GB above maximum {requirement.max_total_gb:g}GB",
                    "size",
                )
            else:
                result.passed("size")

    def _check_entity(
        self, requirement: Requirement, entity: Entity, result: CheckResult
    ) -> None:
        where = f"{requirement.name}: {entity.position}"
        if entity.raw_name != entity.position:
            where += f" ({entity.raw_name})"

        expected = requirement.expected_status.get(entity.position)
        if expected is not None and not self._check_expected(
            where, entity, normalize_status(expected), result
        ):
            return
        if not entity.is_present:
            return

        self._check_range(where, requirement, entity, result)
        self._check_critical(where, requirement, entity, result)
        self._check_health(where, requirement, entity, result)
        self._check_network(where, requirement, entity, result)
        self._check_rpm(where, requirement, entity, result)
        self._check_memory(where, requirement, entity, result)

    def _check_expected(
        self, where: str, entity: Entity, expected: Status, result: CheckResult
    ) -> bool:
        """Return False when the entity is expectedly inactive and needs no more checks."""
        observed = entity.status if entity.is_present else Status.NA
        if not expected.is_active and not observed.is_active:
            return False
        if not expected.is_active:
            result.add(
                Severity.WARNING,
                f"{where} unexpectedly active: status {observed.value}, expected {expected.value}",
                "status",
            )
        elif not observed.is_active:
            result.add(
                Severity.ERROR,
                f"{where} unexpectedly absent: status {observed.value}, expected {expected.value}",
                "status",
            )
        elif observed is not expected:
            result.add(
                Severity.ERROR,
                f"{where} status {observed.value}, expected {expected.value}",
                "status",
            )
        else:
            result.passed("status")
        return True

    def _check_range(
        self, where: str, requirement: Requirement, entity: Entity, result: CheckResult
    ) -> None:
        low, high = requirement.min_value, requirement.max_value
        value = entity.value
        if value is None or (low is None and high is None):
            return
        if entity.unit == "RPM" and value == 0 and low:
            result.add(
                Severity.ERROR,
                f"{where} not spinning (0 RPM, minimum {_fmt(low, ' RPM')})",
                "range",
            )
            return
        below = low is not None and value < low
        above = high is not None and value > high
        if not below and not above:
            result.passed("range")
            return

        bounds = f"[{'' if low is None else _fmt(low)}, {'' if high is None else _fmt(high)}]{entity.unit}"
        tolerance = requirement.tolerance_percent
        if tolerance:
            if low is not None and high is not None:
                midpoint = (low + high) / 2
            else:
                midpoint = low if low is not None else high
            allowance = abs(midpoint) * tolerance / 100
            within = value >= low - allowance if below else value <= high + allowance
            if within:
                result.add(
                    Severity.WARNING,
                    f"{where} value {_fmt(value, entity.unit)} outside {bounds}, "
                    f"within {tolerance:g}% tolerance",
                    "tolerance",
                )
                return
            result.add(
                Severity.ERROR,
                f"{where} value {_fmt(value, entity.unit)} outside {bounds} "
                f"beyond {tolerance:g}% tolerance",
                "range",
            )
            return
        if below:
            message = f"{where} value {_fmt(value, entity.unit)} below minimum {_fmt(low, entity.unit)}"
        else:
            message = f"{where} value {_fmt(value, entity.unit)} above maximum {_fmt(high, entity.unit)}"
        result.add(Severity.ERROR, message, "range")

    def _check_critical(
        self, where: str, requirement: Requirement, entity: Entity, result: CheckResult
    ) -> None:
        value = entity.value
        if value is None:
            return
        unit = entity.unit
        violated = False
        if requirement.critical_min is not None and value < requirement.critical_min:
            result.add(
                Severity.ERROR,
                f"{where} value {_fmt(value, unit)} below critical minimum {_fmt(requirement.critical_min, unit)}",
                "critical",
            )
            violated = True
        if requirement.critical_max is not None and value > requirement.critical_max:
            result.add(
                Severity.ERROR,
                f"{where} value {_fmt(value, unit)} above critical maximum {_fmt(requirement.critical_max, unit)}",
                "critical",
            )
            violated = True

        if requirement.check_critical and self.checks.critical:
            limits = entity.thresholds
            if limits.critical_min is not None and value < limits.critical_min:
                result.add(
                    Severity.ERROR,
                    f"{where} value {_fmt(value, unit)} below sensor critical threshold {_fmt(limits.critical_min, unit)}",
                    "critical",
                )
                violated = True
            elif limits.min is not None and value < limits.min:
                result.add(
                    Severity.WARNING,
                    f"{where} value {_fmt(value, unit)} below sensor threshold {_fmt(limits.min, unit)}",
                    "critical",
                )
                violated = True
            if limits.critical_max is not None and value > limits.critical_max:
                result.add(
                    Severity.ERROR,
                    f"{where} value {_fmt(value, unit)} above sensor critical threshold {_fmt(limits.critical_max, unit)}",
                    "critical",
                )
                violated = True
            elif limits.max is not None and value > limits.max:
                result.add(
                    Severity.WARNING,
                    f"{where} value {_fmt(value, unit)} above sensor threshold {_fmt(limits.max, unit)}",
                    "critical",
                )
                violated = True
        if not violated:
            result.passed("critical")

    def _check_health(
        self, where: str, requirement: Requirement, entity: Entity, result: CheckResult
    ) -> None:
        if not (requirement.check_health and self.checks.health):
            return
        if entity.status is Status.CRITICAL:
            result.add(Severity.ERROR, f"{where} reports CRITICAL health", "health")
        elif entity.status is Status.WARNING:
            result.add(Severity.WARNING, f"{where} reports WARNING health", "health")
        else:
            result.passed("health")

    def _check_network(
        self, where: str, requirement: Requirement, entity: Entity, result: CheckResult
    ) -> None:
        attributes = entity.attributes
        if requirement.require_link and self.checks.link:
            if attributes.get("link_up"):
                result.passed("link")
            else:
                result.add(Severity.ERROR, f"{where} link is down", "link")

        if requirement.required_speed and self.checks.speed:
            speed = attributes.get("speed") or "unknown"
            wanted = _speed_mbps(requirement.required_speed)
            actual = _speed_mbps(speed)
            if actual is not None and wanted is not None and actual != wanted:
                result.add(
                    Severity.WARNING,
                    f"{where} speed {speed}, expected {requirement.required_speed}",
                    "speed",
                )
            else:
                result.passed("speed")

        if requirement.check_ping and self.checks.ping:
            pings = self.ping_results.get(entity.raw_name)
            if not pings:
                return
            failed = [target for target, ping in pings.items() if not ping.ok]
            if len(failed) == len(pings):
                result.add(
                    Severity.ERROR,
                    f"{where} ping failed to all targets ({', '.join(failed)})",
                    "ping",
                )
            elif failed:
                result.add(
                    Severity.WARNING,
                    f"{where} ping failed to {', '.join(failed)}",
                    "ping",
                )
            else:
                result.passed("ping")

    def _check_rpm(
        self, where: str, requirement: Requirement, entity: Entity, result: CheckResult
    ) -> None:
        if requirement.max_rpm_diff is None or not self.checks.target_rpm:
            return
        target = entity.attributes.get("target_rpm")
        if not target or entity.value is None:
            return
        deviation = abs(entity.value - target)
        if deviation > requirement.max_rpm_diff:
            result.add(
                Severity.WARNING,
                f"{where} {_fmt(entity.value, ' RPM')} deviates {_fmt(deviation, ' RPM')} "
                f"from target {_fmt(target, ' RPM')} (max {_fmt(requirement.max_rpm_diff, ' RPM')})",
                "rpm",
            )
        else:
            result.passed("rpm")

    def _check_memory(
        self, where: str, requirement: Requirement, entity: Entity, result: CheckResult
    ) -> None:
        attributes = entity.attributes
        if requirement.required_type:
            memory_type = attributes.get("memory_type") or "unknown"
            if memory_type.upper() != requirement.required_type.upper():
                result.add(
                    Severity.ERROR,
                    f"{where} type {memory_type}, expected {requirement.required_type}",
                    "type",
                )
            else:
                result.passed("type")

        if requirement.min_speed_mhz:
            speed = attributes.get("speed_mhz")
            if not speed:
                result.add(Severity.WARNING, f"{where} speed unknown", "speed")
            elif speed < requirement.min_speed_mhz:
                result.add(
                    Severity.ERROR,
                    f"{where} speed {speed}MHz below minimum {requirement.min_speed_mhz}MHz",
                    "speed",
                )
            else:
                result.passed("speed")

        if requirement.require_ecc and self.checks.ecc:
            if attributes.get("ecc"):
                result.passed("ecc")
            else:
                result.add(Severity.ERROR, f"{where} has no ECC", "ecc")

    def _check_uniformity(
        self, requirement: Requirement, matched: list[Entity], result: CheckResult
    ) -> None:
        if not (requirement.uniform and self.checks.uniform):
            return
        sizes = sorted(
            {
                entity.attributes["size_mb"]
                for entity in matched
                if entity.is_present and entity.attributes.get("size_mb")
            }
        )
        if len(sizes) > 1:
            result.add(
                Severity.WARNING,
                f"{requirement.name}: module sizes are not uniform "
                f"({', '.join(f'{size}MB' for size in sizes)})",
                "uniform",
            )
        else:
            result.passed("uniform")
