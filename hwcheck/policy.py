"""The JSON policy document: requirements, slot map and check switches."""
from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
import json
import logging
from pathlib import Path
from typing import Any, Mapping

from hwcheck.collector import DEFAULT_WORKERS
from hwcheck.errors import ConfigError
from hwcheck.schema import validate_policy

DEFAULT_PROBE_TIMEOUT_S = 30.0
DEFAULT_PING_TIMEOUT_S = 5
DEFAULT_PING_RETRIES = 2

SLOT_WIDTHS = {"power": 12, "fan": 9, "network": 10, "memory": 10, "bmc": 12}
ROW_WIDTHS = {"power": 8, "fan": 8, "network": 6, "memory": 8, "bmc": 5}

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Requirement:
    name: str
    description: str = ""
    category: str = ""
    type: str = ""
    positions: tuple[str, ...] = ()
    min_count: int | None = None
    max_count: int | None = None
    min_value: float | None = None
    max_value: float | None = None
    tolerance_percent: float | None = None
    critical_min: float | None = None
    critical_max: float | None = None
    expected_status: Mapping[str, str] = field(default_factory=dict)
    check_critical: bool = False
    check_health: bool = True
    require_link: bool = False
    required_speed: str | None = None
    check_ping: bool = False
    ping_targets: tuple[str, ...] = ()
    max_rpm_diff: float | None = None
    required_type: str | None = None
    min_speed_mhz: int | None = None
    require_ecc: bool = False
    uniform: bool = False
    min_total_gb: float | None = None
    max_total_gb: float | None = None


@dataclass(frozen=True)
class CategoryVisual:
    symbol: str
    short_name: str
    color: str
    description: str = ""


@dataclass(frozen=True)
class RowSpec:
    name: str
    slots: str


@dataclass(frozen=True)
class CustomRows:
    enabled: bool = False
    rows: tuple[RowSpec, ...] = ()


@dataclass(frozen=True)
class Visualization:
    position_to_slot: Mapping[str, int] = field(default_factory=dict)
    total_slots: int = 0
    slot_width: int = 10
    row_width: int = 8
    category_visuals: Mapping[str, CategoryVisual] = field(default_factory=dict)
    custom_rows: CustomRows = field(default_factory=CustomRows)
    ignore_patterns: tuple[str, ...] = ()


@dataclass(frozen=True)
class Checks:
    critical: bool = True
    health: bool = True
    link: bool = True
    speed: bool = True
    ping: bool = True
    target_rpm: bool = True
    ecc: bool = True
    uniform: bool = True


@dataclass(frozen=True)
class Policy:
    domain: str
    requirements: tuple[Requirement, ...] = ()
    visualization: Visualization = field(default_factory=Visualization)
    checks: Checks = field(default_factory=Checks)
    probe_timeout_seconds: float = DEFAULT_PROBE_TIMEOUT_S
    ping_timeout_seconds: int = DEFAULT_PING_TIMEOUT_S
    ping_retries: int = DEFAULT_PING_RETRIES
    workers: int = DEFAULT_WORKERS


def _known(cls: type, data: Mapping[str, Any]) -> dict[str, Any]:
    names = {item.name for item in fields(cls)}
    unknown = sorted(set(data) - names)
    if unknown:
        logger.debug("Ignoring unknown %s keys: %s", cls.__name__, ", ".join(unknown))
    return {key: value for key, value in data.items() if key in names}


def requirement_from_dict(data: Mapping[str, Any]) -> Requirement:
    values = _known(Requirement, data)
    values["positions"] = tuple(values.get("positions") or ())
    values["ping_targets"] = tuple(values.get("ping_targets") or ())
    values["expected_status"] = dict(values.get("expected_status") or {})
    return Requirement(**values)


def visualization_from_dict(data: Mapping[str, Any], domain: str) -> Visualization:
    position_to_slot = {str(key): int(value) for key, value in (data.get("position_to_slot") or {}).items()}
    total_slots = data.get("total_slots")
    if total_slots is None:
        total_slots = max(position_to_slot.values(), default=0)
    custom = data.get("custom_rows") or {}
    return Visualization(
        position_to_slot=position_to_slot,
        total_slots=int(total_slots),
        slot_width=int(data.get("slot_width") or SLOT_WIDTHS.get(domain, 10)),
        row_width=int(data.get("row_width") or ROW_WIDTHS.get(domain, 8)),
        category_visuals={
            name: CategoryVisual(**_known(CategoryVisual, visual))
            for name, visual in (data.get("category_visuals") or {}).items()
        },
        custom_rows=CustomRows(
            enabled=bool(custom.get("enabled", False)),
            rows=tuple(RowSpec(**_known(RowSpec, row)) for row in custom.get("rows") or ()),
        ),
        ignore_patterns=tuple(data.get("ignore_patterns") or ()),
    )


def policy_from_dict(data: Mapping[str, Any], domain: str | None = None) -> Policy:
    """Build a ``Policy`` from a validated document, filling in defaults."""
    domain = domain or data.get("domain") or ""
    return Policy(
        domain=domain,
        requirements=tuple(requirement_from_dict(item) for item in data.get("requirements") or ()),
        visualization=visualization_from_dict(data.get("visualization") or {}, domain),
        checks=Checks(**_known(Checks, data.get("checks") or {})),
        probe_timeout_seconds=float(data.get("probe_timeout_seconds", DEFAULT_PROBE_TIMEOUT_S)),
        ping_timeout_seconds=int(data.get("ping_timeout_seconds", DEFAULT_PING_TIMEOUT_S)),
        ping_retries=int(data.get("ping_retries", DEFAULT_PING_RETRIES)),
        workers=int(data.get("workers", DEFAULT_WORKERS)),
    )


def _drop_empty(value: Any) -> Any:
    if isinstance(value, dict):
        return {key: _drop_empty(item) for key, item in value.items() if item is not None}
    if isinstance(value, (list, tuple)):
        return [_drop_empty(item) for item in value]
    return value


def policy_to_dict(policy: Policy) -> dict[str, Any]:
    return _drop_empty(asdict(policy))


def load_policy(path: str | Path, domain: str | None = None) -> Policy:
    try:
        text = Path(path).read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise ConfigError(f"Policy file not found: {path}") from exc
    except OSError as exc:
        raise ConfigError(f"Cannot read policy {path}: {exc}") from exc
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Policy {path} is not valid JSON: {exc}") from exc
    errors = validate_policy(data)
    if errors:
        raise ConfigError(f"Policy {path} failed schema validation", errors)
    if domain and data.get("domain") not in (None, domain):
        raise ConfigError(f"Policy {path} is for domain {data['domain']!r}, not {domain!r}")
    policy = policy_from_dict(data, domain)
    logger.debug(
        "Loaded policy %s: %s requirements, %s slots",
        path,
        len(policy.requirements),
        policy.visualization.total_slots,
    )
    return policy


def save_policy(policy: Policy, path: str | Path) -> None:
    payload = policy_to_dict(policy)
    with open(path, "w", encoding="utf-8") as handle:
        json.dump(payload, handle, indent=2, ensure_ascii=False)
        handle.write("\n")
