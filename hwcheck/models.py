"""Data model shared by every domain."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any, Mapping, Union


class Status(str, Enum):
    OK = "OK"
    WARNING = "WARNING"
    CRITICAL = "CRITICAL"
    NA = "N/A"
    UNKNOWN = "UNKNOWN"

    @property
    def is_active(self) -> bool:
        return self is not Status.NA


class Severity(IntEnum):
    OK = 0
    WARNING = 1
    ERROR = 2
    MISSING = 3

    @property
    def label(self) -> str:
        return self.name.lower()


@dataclass(frozen=True)
class RedfishStatus:
    """``Status`` object of a Redfish resource (``State`` plus ``Health``)."""

    state: str | None = None
    health: str | None = None


@dataclass(frozen=True)
class IpmiStatus:
    """Status column reported by ipmitool (``ok``, ``nc``, ``cr``, ``ns``...)."""

    code: str


@dataclass(frozen=True)
class TextStatus:
    """Free-form status word from any other provider."""

    text: str


ProviderStatus = Union[RedfishStatus, IpmiStatus, TextStatus]


def _no_threshold(value: float | int | str | None) -> float | None:
    if value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if number != 0 else None


@dataclass(frozen=True)
class Thresholds:
    min: float | None = None
    max: float | None = None
    critical_min: float | None = None
    critical_max: float | None = None

    @classmethod
    def from_raw(
        cls,
        min: float | str | None = None,
        max: float | str | None = None,
        critical_min: float | str | None = None,
        critical_max: float | str | None = None,
    ) -> "Thresholds":
        """Build thresholds where zero, ``na`` or absent means no threshold."""
        return cls(
            min=_no_threshold(min),
            max=_no_threshold(max),
            critical_min=_no_threshold(critical_min),
            critical_max=_no_threshold(critical_max),
        )

    @property
    def empty(self) -> bool:
        return all(
            value is None
            for value in (self.min, self.max, self.critical_min, self.critical_max)
        )


@dataclass(frozen=True)
class RawReading:
    raw_name: str
    value: float | None
    unit: str = ""
    status: ProviderStatus | Status | str = Status.UNKNOWN
    thresholds: Thresholds = field(default_factory=Thresholds)
    attributes: Mapping[str, Any] = field(default_factory=dict)
    source: str = ""
    sensor_number: int | None = None


@dataclass(frozen=True)
class Entity:
    raw_name: str
    position: str
    category: str
    subtype: str
    value: float | None
    unit: str
    status: Status
    thresholds: Thresholds = field(default_factory=Thresholds)
    is_present: bool = True
    attributes: Mapping[str, Any] = field(default_factory=dict)
    source: str = ""
    sensor_number: int | None = None

    @classmethod
    def placeholder(
        cls, position: str, category: str = "", subtype: str = ""
    ) -> "Entity":
        """Stand-in for an entity that was expected but not observed."""
        return cls(
            raw_name=position,
            position=position,
            category=category,
            subtype=subtype,
            value=None,
            unit="",
            status=Status.NA,
            is_present=False,
        )

    @property
    def is_active(self) -> bool:
        return self.is_present and self.status.is_active


@dataclass(frozen=True)
class PingResult:
    target: str
    loss_percent: float = 100.0
    rtt_ms: float | None = None
    attempts: int = 0

    @property
    def ok(self) -> bool:
        return self.loss_percent < 100.0


@dataclass
class CheckResult:
    """Outcome of one or more checks.

    ``flags`` holds one boolean per checked dimension (``range``, ``link``,
    ``ecc``...). A dimension is ``False`` as soon as one check on it fails.
    """

    severity: Severity = Severity.OK
    issues: list[str] = field(default_factory=list)
    flags: dict[str, bool] = field(default_factory=dict)

    def add(self, severity: Severity, message: str, dimension: str | None = None) -> None:
        self.issues.append(message)
        self.escalate(severity)
        if dimension:
            self.flags[dimension] = False

    def passed(self, dimension: str) -> None:
        self.flags.setdefault(dimension, True)

    def escalate(self, severity: Severity) -> None:
        if severity > self.severity:
            self.severity = severity

    def merge(self, other: "CheckResult") -> None:
        self.escalate(other.severity)
        self.issues.extend(other.issues)
        for dimension, ok in other.flags.items():
            self.flags[dimension] = self.flags.get(dimension, True) and ok

    @property
    def status(self) -> str:
        return self.severity.label

    @property
    def failed(self) -> bool:
        return self.severity >= Severity.ERROR
