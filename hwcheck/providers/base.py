from __future__ import annotations

from dataclasses import dataclass, field
import logging
from typing import Protocol, Sequence

from hwcheck.errors import CollectionError, ProviderError
from hwcheck.models import RawReading

logger = logging.getLogger(__name__)


class Provider(Protocol):
    name: str

    def read(self) -> list[RawReading]:
        """Return readings, or raise ``ProviderError``."""
        ...


@dataclass
class ProviderOutcome:
    provider: str
    readings: list[RawReading]
    failures: list[ProviderError] = field(default_factory=list)


def first_available(providers: Sequence[Provider], what: str = "readings") -> ProviderOutcome:
    """Try providers in order and return the first non-empty result."""
    failures: list[ProviderError] = []
    for provider in providers:
        try:
            readings = provider.read()
        except ProviderError as exc:
            logger.debug("Provider %s failed: %s", provider.name, exc)
            failures.append(exc)
            continue
        if readings:
            logger.debug("Provider %s returned %s %s", provider.name, len(readings), what)
            return ProviderOutcome(provider=provider.name, readings=readings, failures=failures)
        logger.debug("Provider %s returned no %s", provider.name, what)
        failures.append(ProviderError(provider.name, f"no {what}"))
    raise CollectionError(f"No {what} collected", failures)
