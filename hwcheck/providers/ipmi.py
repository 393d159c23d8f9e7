"""IPMI readings through ipmitool.

One ``sdr elist full`` pass builds the index of relevant sensors; it is
cached on the collector. Each indexed sensor is then read in parallel with
``sensor get`` to pick up its thresholds.
"""
from __future__ import annotations

from dataclasses import dataclass
import logging
import re
from typing import Iterable

from hwcheck.collector import ParallelCollector
from hwcheck.config import BmcConfig, ToolsConfig
from hwcheck.errors import ProviderError
from hwcheck.models import IpmiStatus, RawReading, Thresholds
from hwcheck.normalizer import canonical_unit
from hwcheck.providers.command import run_command

_READING_RE = re.compile(r"^\s*(-?[\d.]+)\s*(.*)$")
_SENSOR_FIELDS = {
    "Sensor Reading": "reading",
    "Status": "status",
    "Lower Critical": "critical_min",
    "Lower Non-Critical": "min",
    "Upper Non-Critical": "max",
    "Upper Critical": "critical_max",
}


@dataclass(frozen=True)
class SdrRecord:
    name: str
    sensor_number: int | None
    status: str
    entity_id: str
    value: float | None
    unit: str


@dataclass(frozen=True)
class BmcInfo:
    """What ``mc info`` and ``lan print`` report about the BMC."""

    firmware: str | None = None
    ipmi_version: str | None = None
    manufacturer: str | None = None
    address: str | None = None


def parse_key_values(output: str) -> dict[str, str]:
    """``Key : value`` lines of ipmitool output; continuation lines are ignored."""
    values: dict[str, str] = {}
    for line in output.splitlines():
        key, separator, value = line.partition(":")
        if not separator or line.startswith((" ", "\t")):
            continue
        values.setdefault(key.strip(), value.strip())
    return values


def _parse_reading(text: str) -> tuple[float | None, str]:
    match = _READING_RE.match(text)
    if not match:
        return None, ""
    try:
        value = float(match.group(1))
    except ValueError:
        return None, ""
    unit = re.sub(r"\(.*?\)", "", match.group(2)).strip()
    return value, canonical_unit(unit)


def parse_sdr_elist(output: str) -> list[SdrRecord]:
    records = []
    for line in output.splitlines():
        parts = [part.strip() for part in line.split("|")]
        if len(parts) < 5 or not parts[0]:
            continue
        name, sensor_id, status, entity_id, reading = parts[:5]
        try:
            number = int(sensor_id.rstrip("hH"), 16)
        except ValueError:
            number = None
        value, unit = _parse_reading(reading)
        records.append(
            SdrRecord(
                name=name,
                sensor_number=number,
                status=status,
                entity_id=entity_id,
                value=value,
                unit=unit,
            )
        )
    return records


def parse_sensor_get(output: str, record: SdrRecord) -> RawReading:
    fields: dict[str, str] = {}
    for line in output.splitlines():
        key, separator, value = line.partition(":")
        if not separator:
            continue
        name = _SENSOR_FIELDS.get(key.strip())
        if name:
            fields[name] = value.strip()
    value, unit = _parse_reading(fields.get("reading", ""))
    if value is None:
        value, unit = record.value, record.unit
    return RawReading(
        raw_name=record.name,
        value=value,
        unit=unit or record.unit,
        status=IpmiStatus(fields.get("status") or record.status),
        thresholds=Thresholds.from_raw(
            min=fields.get("min"),
            max=fields.get("max"),
            critical_min=fields.get("critical_min"),
            critical_max=fields.get("critical_max"),
        ),
        attributes={"entity_id": record.entity_id},
        source="ipmi",
        sensor_number=record.sensor_number,
    )


def _record_key(record: SdrRecord) -> tuple[str, int | None]:
    return record.name, record.sensor_number


def _from_record(record: SdrRecord) -> RawReading:
    return RawReading(
        raw_name=record.name,
        value=record.value,
        unit=record.unit,
        status=IpmiStatus(record.status),
        attributes={"entity_id": record.entity_id},
        source="ipmi",
        sensor_number=record.sensor_number,
    )


class IpmiProvider:
    name = "ipmi"

    def __init__(
        self,
        tools: ToolsConfig,
        collector: ParallelCollector,
        units: Iterable[str],
        name_hint: str | None = None,
        bmc: BmcConfig | None = None,
        timeout_s: float = 30.0,
    ) -> None:
        self.tools = tools
        self.collector = collector
        self.units = {canonical_unit(unit) for unit in units}
        self.name_hint = re.compile(name_hint, re.IGNORECASE) if name_hint else None
        self.bmc = bmc
        self.timeout_s = timeout_s
        self.logger = logging.getLogger(self.__class__.__name__)

    def _command(self, *args: str) -> list[str]:
        command = [self.tools.ipmitool_path]
        if self.bmc is not None and self.bmc.host:
            command += ["-I", "lanplus", "-H", self.bmc.host]
            if self.bmc.username:
                command += ["-U", self.bmc.username]
            if self.bmc.password:
                command += ["-P", self.bmc.password]
        return command + list(args)

    def is_relevant(self, record: SdrRecord) -> bool:
        if record.unit in self.units:
            return True
        return record.value is None and bool(self.name_hint and self.name_hint.search(record.name))

    def load_index(self) -> list[SdrRecord]:
        output = run_command(self._command("sdr", "elist", "full"), timeout_s=self.timeout_s)
        if output is None:
            raise ProviderError(self.name, "ipmitool sdr listing failed")
        return parse_sdr_elist(output)

    def read(self) -> list[RawReading]:
        index = self.collector.index_cache.get(self.load_index)
        records = [record for record in index if self.is_relevant(record)]
        self.logger.debug("%s of %s SDR records are relevant", len(records), len(index))
        if not records:
            return []
        results = self.collector.collect(records, self._probe, key=_record_key)
        readings = []
        for record in records:
            result = results[_record_key(record)]
            if result.ok and result.value is not None:
                readings.append(result.value)
            else:
                self.logger.debug("Using SDR value for %s: %s", record.name, result.error)
                readings.append(_from_record(record))
        return readings

    def _probe(self, record: SdrRecord) -> RawReading:
        output = run_command(self._command("sensor", "get", record.name), timeout_s=self.timeout_s)
        if output is None:
            raise ProviderError(self.name, f"sensor get failed for {record.name}")
        return parse_sensor_get(output, record)

    def connection_info(self) -> BmcInfo:
        """Ask the BMC for its identity. The LAN address is best effort."""
        output = run_command(self._command("mc", "info"), timeout_s=self.timeout_s)
        if output is None:
            raise ProviderError(self.name, "BMC did not answer 'mc info'")
        mc = parse_key_values(output)
        address = None
        lan = run_command(self._command("lan", "print"), timeout_s=self.timeout_s)
        if lan is None:
            self.logger.warning("Failed to discover the BMC IP address")
        else:
            address = parse_key_values(lan).get("IP Address")
        return BmcInfo(
            firmware=mc.get("Firmware Revision"),
            ipmi_version=mc.get("IPMI Version"),
            manufacturer=mc.get("Manufacturer Name"),
            address=address,
        )
