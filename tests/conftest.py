"""Pytest configuration and shared fixtures."""
from __future__ import annotations

import pytest

from hwcheck import config as config_module
from hwcheck.errors import ProviderError
from hwcheck.models import Entity, Status, Thresholds


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "linux: mark test as Linux-specific"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as integration test"
    )


def make_entity(
    position: str,
    value: float | None = None,
    category: str = "PSU",
    subtype: str = "Voltage",
    unit: str = "V",
    status: Status = Status.OK,
    raw_name: str | None = None,
    thresholds: Thresholds | None = None,
    is_present: bool = True,
    **attributes,
) -> Entity:
    return Entity(
        raw_name=raw_name or position,
        position=position,
        category=category,
        subtype=subtype,
        value=value,
        unit=unit,
        status=status,
        thresholds=thresholds or Thresholds(),
        is_present=is_present,
        attributes=attributes,
        source="test",
    )


@pytest.fixture
def entity_factory():
    """Build entities with sensible defaults."""
    return make_entity


@pytest.fixture(autouse=True)
def no_system_settings(monkeypatch, tmp_path):
    """Never pick up a settings file installed on the test machine."""
    monkeypatch.setattr(
        config_module, "DEFAULT_SETTINGS_PATH", str(tmp_path / "absent.cfg")
    )


class FakeProvider:
    """Provider returning canned readings or raising a provider error."""

    def __init__(self, name, readings=None, error=None):
        self.name = name
        self.readings = readings or []
        self.error = error
        self.calls = 0

    def read(self):
        self.calls += 1
        if self.error:
            raise ProviderError(self.name, self.error)
        return list(self.readings)
