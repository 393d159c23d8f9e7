"""Exception types raised by hwcheck.

Policy violations are never raised; they are collected as issues on a
``CheckResult``. Exceptions are reserved for failures that stop a pass.
"""
from __future__ import annotations


class HwCheckError(Exception):
    """Base class for all hwcheck errors."""


class ConfigError(HwCheckError):
    """A policy or settings file could not be read or is invalid."""

    def __init__(self, message: str, details: list[str] | None = None) -> None:
        super().__init__(message)
        self.details = details or []


class ProviderError(HwCheckError):
    """One provider could not produce readings."""

    def __init__(self, provider: str, message: str) -> None:
        super().__init__(f"{provider}: {message}")
        self.provider = provider


class CollectionError(HwCheckError):
    """No provider produced any readings for a collection pass."""

    def __init__(self, message: str, failures: list[ProviderError] | None = None) -> None:
        super().__init__(message)
        self.failures = failures or []

    def __str__(self) -> str:
        base = super().__str__()
        if not self.failures:
            return base
        return base + " (" + "; ".join(str(f) for f in self.failures) + ")"
