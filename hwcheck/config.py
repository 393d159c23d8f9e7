"""Optional INI settings: tool paths, BMC access and collector defaults."""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
import configparser

from hwcheck.collector import DEFAULT_WORKERS
from hwcheck.errors import ConfigError

DEFAULT_SETTINGS_PATH = "/etc/hwcheck/hwcheck.cfg"


@dataclass(frozen=True)
class ToolsConfig:
    ipmitool_path: str = "ipmitool"
    sensors_path: str = "sensors"
    dmidecode_path: str = "dmidecode"
    lshw_path: str = "lshw"
    ping_path: str = "ping"
    modprobe_path: str = "modprobe"
    rmmod_path: str = "rmmod"
    hwmon_root: str = "/sys/class/hwmon"
    net_root: str = "/sys/class/net"
    module_root: str = "/sys/module"


@dataclass(frozen=True)
class BmcConfig:
    host: str | None = None
    username: str | None = None
    password: str | None = None
    verify_tls: bool = False
    timeout_s: float = 30.0


@dataclass(frozen=True)
class CollectorConfig:
    workers: int = DEFAULT_WORKERS
    ping_targets: list[str] = field(default_factory=lambda: ["8.8.8.8", "1.1.1.1"])


@dataclass(frozen=True)
class Settings:
    tools: ToolsConfig = field(default_factory=ToolsConfig)
    bmc: BmcConfig = field(default_factory=BmcConfig)
    collector: CollectorConfig = field(default_factory=CollectorConfig)


def _get_optional(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value if value else None


def _get_list(value: str | None) -> list[str]:
    if value is None:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def load_settings(path: str | Path | None = None) -> Settings:
    """Read settings from ``path``; every section and key is optional.

    Without an explicit path the default location is used when it exists,
    otherwise built-in defaults apply.
    """
    parser = configparser.ConfigParser()
    if path is None:
        if not Path(DEFAULT_SETTINGS_PATH).is_file():
            return Settings()
        path = DEFAULT_SETTINGS_PATH
    try:
        read_files = parser.read(path)
    except configparser.Error as exc:
        raise ConfigError(f"Invalid settings file {path}: {exc}") from exc
    if not read_files:
        raise FileNotFoundError(f"Settings file not found: {path}")

    defaults = ToolsConfig()
    try:
        tools = ToolsConfig(
            ipmitool_path=parser.get("tools", "ipmitool_path", fallback=defaults.ipmitool_path),
            sensors_path=parser.get("tools", "sensors_path", fallback=defaults.sensors_path),
            dmidecode_path=parser.get("tools", "dmidecode_path", fallback=defaults.dmidecode_path),
            lshw_path=parser.get("tools", "lshw_path", fallback=defaults.lshw_path),
            ping_path=parser.get("tools", "ping_path", fallback=defaults.ping_path),
            modprobe_path=parser.get("tools", "modprobe_path", fallback=defaults.modprobe_path),
            rmmod_path=parser.get("tools", "rmmod_path", fallback=defaults.rmmod_path),
            hwmon_root=parser.get("tools", "hwmon_root", fallback=defaults.hwmon_root),
            net_root=parser.get("tools", "net_root", fallback=defaults.net_root),
            module_root=parser.get("tools", "module_root", fallback=defaults.module_root),
        )
        bmc = BmcConfig(
            host=_get_optional(parser.get("bmc", "host", fallback=None)),
            username=_get_optional(parser.get("bmc", "username", fallback=None)),
            password=_get_optional(parser.get("bmc", "password", fallback=None)),
            verify_tls=parser.getboolean("bmc", "verify_tls", fallback=False),
            timeout_s=parser.getfloat("bmc", "timeout_s", fallback=30.0),
        )
        targets = _get_list(parser.get("collector", "ping_targets", fallback=None))
        collector = CollectorConfig(
            workers=parser.getint("collector", "workers", fallback=DEFAULT_WORKERS),
            ping_targets=targets or CollectorConfig().ping_targets,
        )
    except ValueError as exc:
        raise ConfigError(f"Invalid value in settings file {path}: {exc}") from exc
    if collector.workers < 1:
        raise ConfigError(f"collector.workers must be at least 1 in {path}")
    return Settings(tools=tools, bmc=bmc, collector=collector)
