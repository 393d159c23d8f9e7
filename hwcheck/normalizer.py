"""Raw sensor names to canonical positions, categories and statuses."""
from __future__ import annotations

from dataclasses import dataclass
import re
from typing import Sequence

from hwcheck.models import (
    IpmiStatus,
    ProviderStatus,
    RedfishStatus,
    Status,
    TextStatus,
)

MAX_POSITION_LENGTH = 12
NOISE_PREFIXES = ("VOLT_", "CUR_", "PWR_", "STS_", "SENSOR_")

SUSPICIOUS_VALUES = frozenset({32768.0, 32784.0, 65535.0, 65536.0, 4294967295.0})
SANITY_WINDOWS = {
    "V": (0.0, 400.0),
    "A": (0.0, 1000.0),
    "W": (0.0, 10000.0),
    "RPM": (0.0, 50000.0),
}

_UNIT_ALIASES = {
    "V": "V",
    "VOLT": "V",
    "VOLTS": "V",
    "A": "A",
    "AMP": "A",
    "AMPS": "A",
    "W": "W",
    "WATT": "W",
    "WATTS": "W",
    "RPM": "RPM",
    "C": "C",
    "DEGREES C": "C",
    "%": "%",
    "PERCENT": "%",
}


@dataclass(frozen=True)
class PositionRule:
    """``pattern`` must match the whole cleaned name; groups fill ``template``."""

    pattern: str
    template: str

    def apply(self, name: str) -> str | None:
        match = re.fullmatch(self.pattern, name, re.IGNORECASE)
        if match is None:
            return None
        return self.template.format(*(group or "" for group in match.groups()))


POWER_RULES: tuple[PositionRule, ...] = (
    PositionRule(r"PSU[\s_]*(\d+)[\s_]*VIN", "PSU{0}_VIN"),
    PositionRule(r"PSU[\s_]*(\d+)[\s_]*IOUT", "PSU{0}_IOUT"),
    PositionRule(r"PSU[\s_]*(\d+)[\s_]*PIN", "PSU{0}_PIN"),
    PositionRule(r"PSU[\s_]*(\d+)[\s_]*POUT", "PSU{0}_POUT"),
    PositionRule(r"PSU[\s_]*(\d+)", "PSU{0}"),
    PositionRule(r"POWER[\s_]*SUPPLY[\s_]*(\d+)", "PSU{0}"),
    PositionRule(r"CPU[\s_]*(\d+)[\s_]*VCCIN", "CPU{0}_VCCIN"),
    PositionRule(r"CPU[\s_]*(\d+)[\s_]*VOLT", "CPU{0}_VOLT"),
    PositionRule(r"CPU[\s_]*(\d+)", "CPU{0}"),
    PositionRule(r"VDDQ[\s_]*([A-Z]+)", "VDDQ_{0}"),
    PositionRule(r"DDR[\s_]*(\d+)", "DDR{0}"),
    PositionRule(r"DIMM[\s_]*([A-Z]\d+)", "DIMM_{0}"),
    PositionRule(r"(\d+(?:\.\d+)?)V[\s_]*SB", "{0}VSB"),
    PositionRule(r"(\d+(?:\.\d+)?)[\s_]*V[\s_]*STANDBY", "{0}VSB"),
    PositionRule(r"(\d+(?:\.\d+)?)V", "{0}V"),
    PositionRule(r"(\d+(?:\.\d+)?)[\s_]*VOLT", "{0}V"),
    PositionRule(r"PCH[\s_]*1[\s_]*[.\s]*[\s_]*8V", "PCH_1V8"),
    PositionRule(r"PCH[\s_]*(\w+)", "PCH_{0}"),
    PositionRule(r"CHIPSET[\s_]*(\w+)", "PCH_{0}"),
    PositionRule(r"BATTERY?", "BATTERY"),
    PositionRule(r"BAT[\s_]*(\d+)", "BAT{0}"),
)

FAN_RULES: tuple[PositionRule, ...] = (
    PositionRule(r"FAN[\s_]*(\d+)_(\d+).*", "FAN{0}_{1}"),
    PositionRule(r"FAN[\s_]*(\d+).*", "FAN{0}"),
    PositionRule(r"(?=.*CPU).*1.*", "CPU1"),
    PositionRule(r"(?=.*CPU).*2.*", "CPU2"),
    PositionRule(r".*CPU.*", "CPU1"),
    PositionRule(r".*(?:CHASSIS|CASE|SYS)\D*(\d+).*", "CHS{0}"),
    PositionRule(r".*(?:CHASSIS|CASE|SYS).*", "CHS1"),
    PositionRule(r"(?=.*(?:PSU|POWER)).*1.*", "PSU1"),
    PositionRule(r"(?=.*(?:PSU|POWER)).*2.*", "PSU2"),
    PositionRule(r".*(?:PSU|POWER).*", "PSU1"),
)


def clean_name(raw_name: str, noise_prefixes: Sequence[str] = NOISE_PREFIXES) -> str:
    name = re.sub(r"\s+", "_", raw_name.strip().upper())
    name = re.sub(r"_+", "_", name).strip("_")
    stripped = True
    while stripped:
        stripped = False
        for prefix in noise_prefixes:
            if name.startswith(prefix) and len(name) > len(prefix):
                name = name[len(prefix):].strip("_")
                stripped = True
    return name


class PositionNormalizer:
    """Turn vendor sensor labels into short canonical positions.

    The first rule whose pattern matches wins, so specific rules must come
    before generic ones. Names no rule recognises fall back to the cleaned
    label. The result is always capped to ``max_length`` characters.
    """

    def __init__(
        self,
        rules: Sequence[PositionRule],
        noise_prefixes: Sequence[str] = NOISE_PREFIXES,
        max_length: int = MAX_POSITION_LENGTH,
    ) -> None:
        self.rules = tuple(rules)
        self.noise_prefixes = tuple(noise_prefixes)
        self.max_length = max_length

    def normalize(self, raw_name: str) -> str:
        name = clean_name(raw_name, self.noise_prefixes)
        for rule in self.rules:
            position = rule.apply(name)
            if position is not None:
                return self._cap(position.upper())
        return self._cap(name)

    def _cap(self, name: str) -> str:
        return name[: self.max_length].rstrip("_")


class KeywordClassifier:
    """First ``(category, keywords)`` entry with a keyword in the name wins."""

    def __init__(
        self,
        table: Sequence[tuple[str, Sequence[str]]],
        default: str = "Other",
        prefix: bool = False,
    ) -> None:
        self.table = tuple((category, tuple(keywords)) for category, keywords in table)
        self.default = default
        self.prefix = prefix

    def classify(self, raw_name: str) -> str:
        name = re.sub(r"\s+", "_", raw_name.strip().upper())
        for category, keywords in self.table:
            for keyword in keywords:
                keyword = keyword.upper()
                if self.prefix and name.startswith(keyword):
                    return category
                if not self.prefix and keyword in name:
                    return category
        return self.default


POWER_CATEGORIES = KeywordClassifier(
    (
        ("PSU", ("PSU", "POWER_SUPPLY")),
        ("CPU", ("CPU", "VCCIN")),
        ("Memory", ("DDR", "VDDQ", "MEMORY", "DIMM")),
        ("Chipset", ("PCH", "CHIPSET")),
        ("Battery", ("BAT",)),
        ("System", ("12V", "5V", "3.3V", "1.8V", "1.2V", "1.05V", "VSB", "STANDBY")),
    )
)

FAN_TYPES = KeywordClassifier(
    (
        ("CPU", ("CPU",)),
        ("PSU", ("PSU", "POWER")),
        ("Chassis", ("CHASSIS", "CASE", "SYS")),
        ("PCIe", ("PCI", "GPU")),
        ("Chassis", ("FAN",)),
    )
)

INTERFACE_TYPES = KeywordClassifier(
    (
        ("Loopback", ("lo",)),
        ("WiFi", ("wl",)),
        ("Ethernet", ("eth", "ens", "eno", "enp", "enx")),
        ("Bridge", ("br",)),
        ("Virtual", ("veth", "docker", "virbr", "tap", "tun", "bond", "vlan")),
    ),
    default="Other",
    prefix=True,
)


def power_type(unit: str) -> str:
    return {"V": "Voltage", "A": "Current", "W": "Power"}.get(canonical_unit(unit), "Other")


def canonical_unit(unit: str | None) -> str:
    if not unit:
        return ""
    return _UNIT_ALIASES.get(unit.strip().upper(), unit.strip())


def is_valid_reading(value: float | None, unit: str | None) -> bool:
    """Reject sentinel and physically impossible readings."""
    if value is None:
        return False
    if value < 0 or value in SUSPICIOUS_VALUES:
        return False
    window = SANITY_WINDOWS.get(canonical_unit(unit))
    if window is None:
        return True
    low, high = window
    return low <= value <= high


_TEXT_STATUS = {
    "OK": Status.OK,
    "UP": Status.OK,
    "NORMAL": Status.OK,
    "ENABLED": Status.OK,
    "ONLINE": Status.OK,
    "WARNING": Status.WARNING,
    "WARN": Status.WARNING,
    "ALARM": Status.WARNING,
    "DEGRADED": Status.WARNING,
    "NC": Status.WARNING,
    "CRITICAL": Status.CRITICAL,
    "CR": Status.CRITICAL,
    "NR": Status.CRITICAL,
    "FAIL": Status.CRITICAL,
    "FAILED": Status.CRITICAL,
    "ERROR": Status.CRITICAL,
    "N/A": Status.NA,
    "NA": Status.NA,
    "NS": Status.NA,
    "DOWN": Status.NA,
    "ABSENT": Status.NA,
    "DISABLED": Status.NA,
    "UNAVAILABLE": Status.NA,
    "UNKNOWN": Status.UNKNOWN,
}


def _normalize_redfish(status: RedfishStatus) -> Status:
    state = (status.state or "").strip().upper()
    health = (status.health or "").strip().upper()
    if health == "OK" and state in ("", "ENABLED", "ONLINE"):
        return Status.OK
    if health == "WARNING" or state == "DEGRADED":
        return Status.WARNING
    if health == "CRITICAL" or state in ("ABSENT", "OFFLINE"):
        return Status.CRITICAL
    if state in ("DISABLED", "UNAVAILABLE", "STANDBYOFFLINE"):
        return Status.NA
    return Status.UNKNOWN


def normalize_status(status: ProviderStatus | Status | str | None) -> Status:
    """Map any provider status onto ``Status``. Total and idempotent."""
    if isinstance(status, Status):
        return status
    if isinstance(status, RedfishStatus):
        return _normalize_redfish(status)
    if isinstance(status, IpmiStatus):
        text = status.code
    elif isinstance(status, TextStatus):
        text = status.text
    elif isinstance(status, str):
        text = status
    else:
        return Status.UNKNOWN
    return _TEXT_STATUS.get(text.strip().upper(), Status.UNKNOWN)
