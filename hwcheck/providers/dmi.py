"""Memory modules from dmidecode, lshw or psutil."""
from __future__ import annotations

import logging
import re
from typing import Any

import psutil

from hwcheck.config import ToolsConfig
from hwcheck.errors import ProviderError
from hwcheck.models import RawReading, Status
from hwcheck.providers.command import run_command

_SIZE_RE = re.compile(r"(\d+)\s*(MB|GB|TB|MiB|GiB|TiB)", re.IGNORECASE)
_SPEED_RE = re.compile(r"(\d+)\s*(?:MHz|MT/s)", re.IGNORECASE)
_VOLTAGE_RE = re.compile(r"(\d+(?:\.\d+)?)\s*V")
_TYPE_RE = re.compile(r"\b(DDR\d|LPDDR\d|SDRAM)\b", re.IGNORECASE)
_EMPTY_SIZES = ("NO MODULE INSTALLED", "NOT PRESENT", "NOT INSTALLED", "")
_UNKNOWN = ("", "unknown", "not specified", "none", "other")

logger = logging.getLogger(__name__)


def parse_size_mb(text: str) -> int:
    if text.strip().upper() in _EMPTY_SIZES:
        return 0
    match = _SIZE_RE.search(text)
    if not match:
        return 0
    size = int(match.group(1))
    unit = match.group(2).upper()[0]
    return size * {"M": 1, "G": 1024, "T": 1024 * 1024}[unit]


def parse_speed_mhz(text: str) -> int:
    match = _SPEED_RE.search(text)
    return int(match.group(1)) if match else 0


def _bits(text: str) -> int:
    match = re.search(r"(\d+)\s*bits", text)
    return int(match.group(1)) if match else 0


def _clean(value: str) -> str | None:
    return None if value.strip().lower() in _UNKNOWN else value.strip()


def _module_reading(attributes: dict[str, Any], locator: str, source: str) -> RawReading:
    size_mb = attributes.get("size_mb") or 0
    return RawReading(
        raw_name=locator,
        value=size_mb / 1024 if size_mb else None,
        unit="GB",
        status=Status.OK if size_mb else Status.NA,
        attributes=attributes,
        source=source,
    )


def parse_dmidecode(output: str) -> list[RawReading]:
    readings = []
    for section in output.split("Memory Device")[1:]:
        attributes: dict[str, Any] = {"size_mb": 0, "ecc": False}
        locator = ""
        total_width = data_width = None
        for line in section.splitlines():
            key, separator, value = line.strip().partition(":")
            if not separator:
                continue
            key, value = key.strip(), value.strip()
            if key == "Locator":
                locator = value
            elif key == "Size":
                attributes["size_mb"] = parse_size_mb(value)
            elif key == "Type":
                attributes["memory_type"] = _clean(value)
            elif key == "Speed":
                attributes.setdefault("speed_mhz", parse_speed_mhz(value) or None)
            elif key in ("Configured Memory Speed", "Configured Clock Speed"):
                if parse_speed_mhz(value):
                    attributes["speed_mhz"] = parse_speed_mhz(value)
            elif key == "Manufacturer":
                attributes["manufacturer"] = _clean(value)
            elif key == "Part Number":
                attributes["part_number"] = _clean(value)
            elif key == "Serial Number":
                attributes["serial_number"] = _clean(value)
            elif key == "Bank Locator":
                attributes["bank"] = _clean(value)
            elif key == "Type Detail" and "ecc" in value.lower():
                attributes["ecc"] = True
            elif key == "Total Width":
                total_width = _bits(value)
            elif key == "Data Width":
                data_width = _bits(value)
            elif key in ("Voltage", "Configured Voltage"):
                match = _VOLTAGE_RE.search(value)
                if match:
                    attributes["voltage"] = float(match.group(1))
        if total_width and data_width and total_width > data_width:
            attributes["ecc"] = True
        if not locator:
            continue
        readings.append(_module_reading(attributes, locator, "dmidecode"))
    return readings


def parse_lshw_short(output: str) -> list[RawReading]:
    readings = []
    for line in output.splitlines():
        line = line.strip()
        if not line or line.startswith("H/W path") or line.startswith("="):
            continue
        lowered = line.lower()
        if "memory" not in lowered or "system memory" in lowered:
            continue
        if any(word in lowered for word in ("cache", "bios", "flash")):
            continue
        size_mb = next(
            (parse_size_mb(field) for field in line.split() if parse_size_mb(field)),
            0,
        )
        if not size_mb:
            continue
        type_match = _TYPE_RE.search(line)
        attributes = {
            "size_mb": size_mb,
            "memory_type": type_match.group(1).upper() if type_match else None,
            "speed_mhz": parse_speed_mhz(line) or None,
            "ecc": False,
        }
        readings.append(_module_reading(attributes, f"BANK{len(readings)}", "lshw"))
    return readings


class DmidecodeProvider:
    name = "dmidecode"

    def __init__(self, tools: ToolsConfig, timeout_s: float = 30.0) -> None:
        self.tools = tools
        self.timeout_s = timeout_s

    def read(self) -> list[RawReading]:
        output = run_command([self.tools.dmidecode_path, "-t", "memory"], timeout_s=self.timeout_s)
        if output is None:
            raise ProviderError(self.name, "dmidecode failed (root required)")
        return parse_dmidecode(output)


class LshwProvider:
    name = "lshw"

    def __init__(self, tools: ToolsConfig, timeout_s: float = 30.0) -> None:
        self.tools = tools
        self.timeout_s = timeout_s

    def read(self) -> list[RawReading]:
        output = run_command(
            [self.tools.lshw_path, "-c", "memory", "-short"], timeout_s=self.timeout_s
        )
        if output is None:
            raise ProviderError(self.name, "lshw failed")
        return parse_lshw_short(output)


class MeminfoProvider:
    """Only the total, for hosts where no per-module data is available."""

    name = "psutil"

    def read(self) -> list[RawReading]:
        total_mb = psutil.virtual_memory().total // (1024 * 1024)
        logger.debug("Falling back to total memory only: %s MB", total_mb)
        return [
            RawReading(
                raw_name="TOTAL",
                value=total_mb / 1024,
                unit="GB",
                status=Status.OK,
                attributes={"size_mb": total_mb, "ecc": False, "total_only": True},
                source=self.name,
            )
        ]
