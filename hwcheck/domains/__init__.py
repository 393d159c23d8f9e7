"""The hardware checks, keyed by command-line name."""
from __future__ import annotations

from hwcheck.domains.base import Domain
from hwcheck.domains.bmc import BmcDomain
from hwcheck.domains.fan import FanDomain
from hwcheck.domains.memory import MemoryDomain
from hwcheck.domains.network import NetworkDomain
from hwcheck.domains.power import PowerDomain

DOMAINS: dict[str, type[Domain]] = {
    "network": NetworkDomain,
    "power": PowerDomain,
    "memory": MemoryDomain,
    "fan": FanDomain,
    "bmc": BmcDomain,
}

__all__ = ["DOMAINS", "Domain", "get_domain"]


def get_domain(name: str) -> type[Domain]:
    try:
        return DOMAINS[name]
    except KeyError:
        raise ValueError(f"Unknown domain {name!r}; choose from {', '.join(DOMAINS)}") from None
