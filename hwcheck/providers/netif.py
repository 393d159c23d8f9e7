"""Network interfaces from psutil and sysfs, plus per-interface ping."""
from __future__ import annotations

import logging
import os
from pathlib import Path
import re
import socket
from typing import Any, Callable, Sequence

import psutil

from hwcheck.collector import ParallelCollector, best_of_attempts
from hwcheck.config import ToolsConfig
from hwcheck.errors import ProviderError
from hwcheck.models import PingResult, RawReading, TextStatus
from hwcheck.providers.command import read_file, run_command

LOSS_RE = re.compile(r", (\d+(?:\.\d+)?)% packet loss")
RTT_RE = re.compile(r"rtt [^=]+= [\d.]+/([\d.]+)/")

logger = logging.getLogger(__name__)


def read_speed(net_root: Path, name: str, fallback: int = 0) -> str:
    text = read_file(net_root / name / "speed")
    try:
        speed = int(text) if text is not None else fallback
    except ValueError:
        speed = fallback
    return f"{speed}Mb/s" if speed > 0 else "unknown"


class NetworkProvider:
    name = "netif"

    def __init__(self, tools: ToolsConfig) -> None:
        self.net_root = Path(tools.net_root)
        self.logger = logging.getLogger(self.__class__.__name__)

    def _device_link(self, name: str, *parts: str) -> str | None:
        path = self.net_root.joinpath(name, "device", *parts)
        if not path.exists():
            return None
        return os.path.basename(os.path.realpath(path))

    def read(self) -> list[RawReading]:
        try:
            addresses = psutil.net_if_addrs()
            stats = psutil.net_if_stats()
        except OSError as exc:
            raise ProviderError(self.name, str(exc)) from exc
        readings = []
        for name in sorted(set(addresses) | set(stats)):
            stat = stats.get(name)
            attributes: dict[str, Any] = {
                "link_up": bool(stat and stat.isup),
                "operstate": read_file(self.net_root / name / "operstate") or "unknown",
                "speed": read_speed(self.net_root, name, stat.speed if stat else 0),
                "mtu": stat.mtu if stat else None,
            }
            for address in addresses.get(name, []):
                if address.family == socket.AF_INET and "ipv4" not in attributes:
                    attributes["ipv4"] = address.address
                elif address.family == psutil.AF_LINK and "mac" not in attributes:
                    attributes["mac"] = address.address
            driver = self._device_link(name, "driver")
            if driver:
                attributes["driver"] = driver
            pci_slot = self._device_link(name)
            if pci_slot:
                attributes["pci_slot"] = pci_slot
            speed_match = re.match(r"(\d+)", attributes["speed"])
            readings.append(
                RawReading(
                    raw_name=name,
                    value=float(speed_match.group(1)) if speed_match else None,
                    unit="Mb/s",
                    status=TextStatus("UP" if attributes["link_up"] else "DOWN"),
                    attributes=attributes,
                    source=self.name,
                )
            )
        return readings


def parse_ping(output: str | None, target: str, attempt: int) -> PingResult:
    loss = 100.0
    rtt = None
    if output:
        match = LOSS_RE.search(output)
        if match:
            loss = float(match.group(1))
        match = RTT_RE.search(output)
        if match:
            rtt = float(match.group(1))
    return PingResult(target=target, loss_percent=loss, rtt_ms=rtt, attempts=attempt + 1)


def ping(
    tools: ToolsConfig,
    interface: str,
    target: str,
    timeout_s: int,
    retries: int,
    sleep: Callable[[float], None] | None = None,
) -> PingResult:
    """Ping ``target`` through ``interface``; keep the lowest loss over all attempts."""

    def attempt(number: int) -> PingResult:
        output = run_command(
            [tools.ping_path, "-I", interface, "-c", "1", "-W", str(timeout_s), target],
            timeout_s=timeout_s + 5,
            merge_stderr=True,
        )
        return parse_ping(output, target, number)

    kwargs: dict[str, Any] = {}
    if sleep is not None:
        kwargs["sleep"] = sleep
    return best_of_attempts(
        attempt,
        retries,
        succeeded=lambda result: result.ok,
        rank=lambda result: result.loss_percent,
        **kwargs,
    )


def ping_interfaces(
    collector: ParallelCollector,
    tools: ToolsConfig,
    interfaces: Sequence[str],
    targets: Sequence[str],
    timeout_s: int,
    retries: int,
) -> dict[str, dict[str, PingResult]]:
    pairs = [(interface, target) for interface in interfaces for target in targets]
    results = collector.collect(
        pairs,
        lambda pair: ping(tools, pair[0], pair[1], timeout_s, retries),
    )
    pings: dict[str, dict[str, PingResult]] = {}
    for (interface, target), result in results.items():
        if result.ok and result.value is not None:
            outcome = result.value
        else:
            outcome = PingResult(target=target)
        pings.setdefault(interface, {})[target] = outcome
        logger.debug(
            "Ping %s via %s: %.0f%% loss, rtt %s",
            target,
            interface,
            outcome.loss_percent,
            outcome.rtt_ms,
        )
    return pings
