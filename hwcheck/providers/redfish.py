"""Power and fan readings from a BMC's Redfish service."""
from __future__ import annotations

import json
import logging
import ssl
from typing import Any
from urllib.error import URLError
from urllib.request import (
    HTTPBasicAuthHandler,
    HTTPPasswordMgrWithPriorAuth,
    HTTPSHandler,
    Request,
    build_opener,
)

from hwcheck.collector import ParallelCollector
from hwcheck.config import BmcConfig
from hwcheck.errors import ProviderError
from hwcheck.models import RawReading, RedfishStatus, Thresholds
from hwcheck.normalizer import canonical_unit

POWER = "Power"
THERMAL = "Thermal"


def _status(item: dict[str, Any]) -> RedfishStatus:
    status = item.get("Status") or {}
    return RedfishStatus(state=status.get("State"), health=status.get("Health"))


def _thresholds(item: dict[str, Any]) -> Thresholds:
    return Thresholds.from_raw(
        min=item.get("LowerThresholdNonCritical"),
        max=item.get("UpperThresholdNonCritical"),
        critical_min=item.get("LowerThresholdCritical"),
        critical_max=item.get("UpperThresholdCritical"),
    )


def _sensor_number(item: dict[str, Any]) -> int | None:
    number = item.get("SensorNumber")
    return number if isinstance(number, int) else None


def parse_power(document: dict[str, Any], chassis: str) -> list[RawReading]:
    readings: list[RawReading] = []
    for item in document.get("Voltages") or []:
        name = item.get("Name")
        if not name:
            continue
        readings.append(
            RawReading(
                raw_name=name,
                value=item.get("ReadingVolts"),
                unit="V",
                status=_status(item),
                thresholds=_thresholds(item),
                attributes={"chassis": chassis},
                source="redfish",
                sensor_number=_sensor_number(item),
            )
        )
    for index, supply in enumerate(document.get("PowerSupplies") or [], start=1):
        label = f"PSU{index}"
        attributes = {"chassis": chassis, "name": supply.get("Name") or label}
        for suffix, key, unit in (
            ("VIN", "LineInputVoltage", "V"),
            ("PIN", "PowerInputWatts", "W"),
            ("POUT", "PowerOutputWatts", "W"),
        ):
            value = supply.get(key)
            if value is None and key == "PowerOutputWatts":
                value = supply.get("LastPowerOutputWatts")
            if value is None:
                continue
            readings.append(
                RawReading(
                    raw_name=f"{label} {suffix}",
                    value=value,
                    unit=unit,
                    status=_status(supply),
                    attributes=attributes,
                    source="redfish",
                )
            )
    return readings


def parse_thermal(document: dict[str, Any], chassis: str) -> list[RawReading]:
    readings: list[RawReading] = []
    for item in document.get("Fans") or []:
        name = item.get("Name") or item.get("FanName")
        if not name:
            continue
        unit = canonical_unit(item.get("ReadingUnits") or "RPM")
        attributes: dict[str, Any] = {"chassis": chassis}
        if unit == "%":
            attributes["percent"] = item.get("Reading")
        readings.append(
            RawReading(
                raw_name=name,
                value=item.get("Reading") if unit == "RPM" else None,
                unit="RPM",
                status=_status(item),
                thresholds=_thresholds(item),
                attributes=attributes,
                source="redfish",
                sensor_number=_sensor_number(item),
            )
        )
    return readings


class RedfishProvider:
    name = "redfish"

    def __init__(
        self,
        bmc: BmcConfig,
        collector: ParallelCollector,
        resource: str,
        timeout_s: float | None = None,
    ) -> None:
        self.bmc = bmc
        self.collector = collector
        self.resource = resource
        self.timeout_s = timeout_s or bmc.timeout_s
        self.logger = logging.getLogger(self.__class__.__name__)
        context = ssl.create_default_context()
        if not bmc.verify_tls:
            context.check_hostname = False
            context.verify_mode = ssl.CERT_NONE
        self.passwords = HTTPPasswordMgrWithPriorAuth()
        if bmc.username and bmc.host:
            self.passwords.add_password(
                None, f"https://{bmc.host}/", bmc.username, bmc.password or "", is_authenticated=True
            )
        self.opener = build_opener(HTTPSHandler(context=context), HTTPBasicAuthHandler(self.passwords))

    def get(self, path: str) -> dict[str, Any]:
        url = path if path.startswith("http") else f"https://{self.bmc.host}{path}"
        request = Request(url, headers={"Accept": "application/json"})
        self.logger.debug("GET %s", url)
        try:
            with self.opener.open(request, timeout=self.timeout_s) as response:
                return json.loads(response.read().decode("utf-8"))
        except (URLError, OSError, ValueError) as exc:
            raise ProviderError(self.name, f"GET {url} failed: {exc}") from exc

    def read(self) -> list[RawReading]:
        if not self.bmc.host:
            raise ProviderError(self.name, "no BMC host configured")
        collection = self.get("/redfish/v1/Chassis")
        members = [
            member["@odata.id"]
            for member in collection.get("Members") or []
            if member.get("@odata.id")
        ]
        if not members:
            raise ProviderError(self.name, "no chassis found")
        results = self.collector.collect(members, self._read_chassis)
        readings: list[RawReading] = []
        for member, result in results.items():
            if result.ok:
                readings.extend(result.value or [])
            else:
                self.logger.warning("Chassis %s: %s", member, result.error)
        if not any(result.ok for result in results.values()):
            raise ProviderError(self.name, f"all {len(members)} chassis failed")
        return readings

    def _read_chassis(self, member: str) -> list[RawReading]:
        document = self.get(f"{member.rstrip('/')}/{self.resource}")
        chassis = member.rstrip("/").rsplit("/", 1)[-1]
        if self.resource == POWER:
            return parse_power(document, chassis)
        return parse_thermal(document, chassis)
