"""lm-sensors and raw sysfs hwmon readings."""
from __future__ import annotations

import json
import logging
from pathlib import Path
import re
from typing import Any, Iterable

from hwcheck.config import ToolsConfig
from hwcheck.errors import ProviderError
from hwcheck.models import RawReading, Status, TextStatus, Thresholds
from hwcheck.providers.command import read_file, run_command

SENSOR_UNITS = {"fan": "RPM", "in": "V", "curr": "A", "power": "W"}
_KEY_RE = re.compile(r"^(fan|in|curr|power)(\d+)_(\w+)$")


def _status(kind: str, values: dict[str, float]) -> Status | TextStatus:
    if values.get("fault"):
        return TextStatus("FAIL")
    if values.get("alarm"):
        return TextStatus("ALARM")
    if kind == "fan" and values.get("input") == 0:
        return Status.NA
    return Status.OK


def parse_sensors_json(output: str, kinds: Iterable[str]) -> list[RawReading]:
    """Turn ``sensors -j`` output into readings for the given sensor kinds."""
    try:
        data = json.loads(output)
    except json.JSONDecodeError as exc:
        raise ProviderError("sensors", f"invalid JSON output: {exc}") from exc
    wanted = set(kinds)
    readings: list[RawReading] = []
    for chip, chip_data in data.items():
        if not isinstance(chip_data, dict):
            continue
        for label, values in chip_data.items():
            if not isinstance(values, dict):
                continue
            grouped: dict[str, dict[str, float]] = {}
            for key, value in values.items():
                match = _KEY_RE.match(key)
                if not match or not isinstance(value, (int, float)):
                    continue
                kind, _, field = match.groups()
                if kind in wanted:
                    grouped.setdefault(kind, {})[field] = float(value)
            for kind, fields in grouped.items():
                if "input" not in fields:
                    continue
                readings.append(
                    RawReading(
                        raw_name=label,
                        value=fields["input"],
                        unit=SENSOR_UNITS[kind],
                        status=_status(kind, fields),
                        thresholds=Thresholds.from_raw(
                            min=fields.get("min"),
                            max=fields.get("max"),
                            critical_min=fields.get("lcrit"),
                            critical_max=fields.get("crit"),
                        ),
                        attributes={"chip": chip},
                        source="sensors",
                    )
                )
    return readings


class SensorsProvider:
    name = "sensors"

    def __init__(self, tools: ToolsConfig, kinds: Iterable[str], timeout_s: float = 30.0) -> None:
        self.tools = tools
        self.kinds = tuple(kinds)
        self.timeout_s = timeout_s

    def read(self) -> list[RawReading]:
        output = run_command([self.tools.sensors_path, "-j"], timeout_s=self.timeout_s)
        if output is None:
            raise ProviderError(self.name, "sensors command failed")
        return parse_sensors_json(output, self.kinds)


class HwmonFanProvider:
    """Fans straight from ``/sys/class/hwmon`` when lm-sensors is absent."""

    name = "hwmon"

    def __init__(self, tools: ToolsConfig) -> None:
        self.root = Path(tools.hwmon_root)
        self.logger = logging.getLogger(self.__class__.__name__)

    def _number(self, path: Path) -> float | None:
        text = read_file(path)
        if text is None:
            return None
        try:
            return float(text)
        except ValueError:
            return None

    def read(self) -> list[RawReading]:
        if not self.root.is_dir():
            raise ProviderError(self.name, f"{self.root} not found")
        readings: list[RawReading] = []
        for device in sorted(self.root.glob("hwmon*")):
            chip = read_file(device / "name") or device.name
            for input_path in sorted(device.glob("fan*_input")):
                prefix = input_path.name[: -len("_input")]
                rpm = self._number(input_path)
                if rpm is None:
                    continue
                fields: dict[str, Any] = {"input": rpm}
                for field in ("min", "max", "target", "alarm", "fault"):
                    value = self._number(device / f"{prefix}_{field}")
                    if value is not None:
                        fields[field] = value
                attributes: dict[str, Any] = {"chip": chip, "path": str(input_path)}
                if fields.get("target"):
                    attributes["target_rpm"] = fields["target"]
                readings.append(
                    RawReading(
                        raw_name=read_file(device / f"{prefix}_label") or prefix,
                        value=rpm,
                        unit="RPM",
                        status=_status("fan", fields),
                        thresholds=Thresholds.from_raw(min=fields.get("min"), max=fields.get("max")),
                        attributes=attributes,
                        source="hwmon",
                    )
                )
        self.logger.debug("Found %s fans under %s", len(readings), self.root)
        return readings
