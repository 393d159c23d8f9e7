"""IPMI device nodes and kernel modules on the local host."""
from __future__ import annotations

from dataclasses import dataclass, field
import logging
from pathlib import Path

from hwcheck.config import ToolsConfig
from hwcheck.models import RawReading, Status
from hwcheck.providers.command import run_command

DEVICE_PATHS = (
    "/dev/ipmi0",
    "/dev/ipmi1",
    "/dev/ipmi2",
    "/dev/ipmi/0",
    "/dev/ipmidev/0",
)
MODULES = (
    "ipmi_si",
    "ipmi_ssif",
    "acpi_ipmi",
    "ipmi_devintf",
    "ipmi_msghandler",
)

logger = logging.getLogger(__name__)


@dataclass
class ReloadOutcome:
    unloaded: list[str] = field(default_factory=list)
    unload_failed: list[str] = field(default_factory=list)
    loaded: list[str] = field(default_factory=list)
    load_failed: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.unload_failed and not self.load_failed and bool(self.loaded)


class BmcProvider:
    name = "bmc"

    def __init__(self, tools: ToolsConfig, device_paths: tuple[str, ...] = DEVICE_PATHS) -> None:
        self.tools = tools
        self.device_paths = device_paths
        self.module_root = Path(tools.module_root)

    def loaded_modules(self) -> list[str]:
        return [module for module in MODULES if (self.module_root / module).exists()]

    def read(self) -> list[RawReading]:
        readings = []
        for path in self.device_paths:
            present = Path(path).exists()
            readings.append(
                RawReading(
                    raw_name=path,
                    value=None,
                    status=Status.OK if present else Status.NA,
                    attributes={"kind": "device", "present": present},
                    source=self.name,
                )
            )
        loaded = set(self.loaded_modules())
        for module in MODULES:
            readings.append(
                RawReading(
                    raw_name=module,
                    value=None,
                    status=Status.OK if module in loaded else Status.NA,
                    attributes={"kind": "module", "present": module in loaded},
                    source=self.name,
                )
            )
        return readings

    def reload_modules(self) -> ReloadOutcome:
        """Unload the loaded IPMI modules, then modprobe every known one."""
        outcome = ReloadOutcome()
        for module in self.loaded_modules():
            if run_command([self.tools.rmmod_path, module]) is None:
                outcome.unload_failed.append(module)
            else:
                outcome.unloaded.append(module)
        for module in MODULES:
            if run_command([self.tools.modprobe_path, module]) is None:
                outcome.load_failed.append(module)
            else:
                outcome.loaded.append(module)
        logger.info(
            "Reloaded IPMI modules: unloaded=%s failed_unload=%s loaded=%s failed_load=%s",
            outcome.unloaded,
            outcome.unload_failed,
            outcome.loaded,
            outcome.load_failed,
        )
        return outcome
