"""Tests for domain collection, classification and default policies."""
from __future__ import annotations

from unittest.mock import patch

import pytest

from conftest import FakeProvider, make_entity
from hwcheck.collector import ParallelCollector
from hwcheck.config import Settings, ToolsConfig
from hwcheck.domains import DOMAINS, get_domain
from hwcheck.domains.bmc import BmcDomain
from hwcheck.domains.fan import FanDomain
from hwcheck.domains.memory import MemoryDomain
from hwcheck.domains.network import NetworkDomain
from hwcheck.domains.power import AC_INPUT_WINDOW, DC_INPUT_WINDOW, PowerDomain, input_window, is_input_rail
from hwcheck.errors import CollectionError
from hwcheck.matcher import RequirementMatcher
from hwcheck.models import IpmiStatus, PingResult, RawReading, Severity, Status, TextStatus, Thresholds
from hwcheck.policy import CategoryVisual, Policy, Requirement, Visualization, policy_to_dict
from hwcheck.providers.bmc import BmcProvider
from hwcheck.providers.redfish import parse_power
from hwcheck.schema import validate_policy

POWER_READINGS = [
    RawReading("PSU1 VIN", 230.0, "Volts", IpmiStatus("ok"), source="ipmi"),
    RawReading("PSU2 VIN", 228.0, "Volts", IpmiStatus("ok"), source="ipmi"),
    RawReading("12V", 12.1, "Volts", IpmiStatus("ok"), source="ipmi"),
    RawReading("CPU1 VCCIN", 1.8, "Volts", IpmiStatus("ok"), source="ipmi"),
    RawReading("P5V", 65535.0, "Volts", IpmiStatus("ok"), source="ipmi"),
]

FAN_READINGS = [
    RawReading("CPU Fan", 1200.0, "RPM", Status.OK, Thresholds(min=300.0)),
    RawReading("SYS_FAN1", 1500.0, "RPM", Status.OK),
    RawReading("SYS_FAN2", 0.0, "RPM", Status.NA),
]


def domain_with(domain_class, readings, policy=None, settings=None):
    domain = domain_class(settings or Settings(), ParallelCollector(2), policy)
    patcher = patch.object(domain, "providers", return_value=[FakeProvider("fake", readings)])
    patcher.start()
    return domain, patcher


@pytest.fixture
def power_domain():
    domain, patcher = domain_with(PowerDomain, POWER_READINGS)
    yield domain
    patcher.stop()


@pytest.fixture
def fan_domain():
    domain, patcher = domain_with(FanDomain, FAN_READINGS)
    yield domain
    patcher.stop()


class TestRegistry:
    """Test domain lookup."""

    def test_all_domains(self):
        """Test every check is registered."""
        assert set(DOMAINS) == {"network", "power", "memory", "fan", "bmc"}
        assert get_domain("fan") is FanDomain

    def test_unknown(self):
        """Test an unknown name is rejected."""
        with pytest.raises(ValueError, match="Unknown domain"):
            get_domain("disk")


class TestCollect:
    """Test the shared collection pipeline."""

    def test_power_entities(self, power_domain):
        """Test positions, categories, units and ordering."""
        entities = power_domain.collect()

        assert [e.position for e in entities] == ["12V", "CPU1_VCCIN", "PSU1_VIN", "PSU2_VIN"]
        assert [e.category for e in entities] == ["System", "CPU", "PSU", "PSU"]
        assert {e.subtype for e in entities} == {"Voltage"}
        assert {e.unit for e in entities} == {"V"}
        assert entities[2].raw_name == "PSU1 VIN"
        assert entities[2].status is Status.OK

    def test_invalid_readings_only(self):
        """Test a pass with no valid reading is a collection error."""
        domain, patcher = domain_with(PowerDomain, [RawReading("P5V", 65535.0, "V")])
        try:
            with pytest.raises(CollectionError, match="No valid power sensors"):
                domain.collect()
        finally:
            patcher.stop()

    def test_falls_back_to_next_provider(self):
        """Test the first provider with readings is used."""
        domain = PowerDomain(Settings(), ParallelCollector(), None)
        failing = FakeProvider("ipmi", error="no BMC")
        working = FakeProvider("sensors", POWER_READINGS[:1])
        with patch.object(domain, "providers", return_value=[failing, working]):
            entities = domain.collect()
        assert [e.position for e in entities] == ["PSU1_VIN"]
        assert working.calls == 1

    def test_power_providers_without_bmc(self):
        """Test Redfish is only tried when a BMC host is configured."""
        domain = PowerDomain(Settings(), ParallelCollector(), None)
        assert [provider.name for provider in domain.providers()] == ["ipmi", "sensors"]

    def test_visual_for_prefers_policy(self, power_domain):
        """Test policy visuals override the built-in ones."""
        custom = CategoryVisual("###", "P", "red")
        power_domain.policy = Policy(
            domain="power", visualization=Visualization(category_visuals={"PSU": custom})
        )
        assert power_domain.visual_for(make_entity("PSU1_VIN", 12.0)) == custom
        assert power_domain.visual_for(make_entity("12V", 12.0, category="System")).short_name == "SYS"
        assert power_domain.visual_for(make_entity("X", 1.0, category="Nope")).short_name == "OTH"


class TestDefaultPolicy:
    """Test policies derived from the hardware found now."""

    def test_power_policy(self, power_domain):
        """Test slot map, custom rows and requirements."""
        entities = power_domain.collect()
        policy = power_domain.default_policy(entities)
        vis = policy.visualization

        assert vis.position_to_slot == {"12V": 1, "CPU1_VCCIN": 2, "PSU1_VIN": 3, "PSU2_VIN": 4}
        assert vis.total_slots == 4
        assert vis.slot_width == 12
        assert set(vis.category_visuals) == {"System", "CPU", "PSU"}
        assert vis.custom_rows.enabled is False
        assert [(row.name, row.slots) for row in vis.custom_rows.rows] == [
            ("System", "1-1"), ("CPU", "2-2"), ("PSU", "3-4"),
        ]
        names = [requirement.name for requirement in policy.requirements]
        assert names == ["PSU Input Voltage", "System Rails", "Power Sensors"]
        assert policy.requirements[0].positions == ("PSU1_VIN", "PSU2_VIN")
        assert (policy.requirements[0].min_value, policy.requirements[0].max_value) == (90.0, 264.0)
        assert policy.requirements[2].min_count == 4

    def test_generated_policy_is_valid_and_passes(self, power_domain):
        """Test a freshly generated policy validates and passes on the same hardware."""
        entities = power_domain.collect()
        policy = power_domain.default_policy(entities)

        assert validate_policy(policy_to_dict(policy)) == []
        result = RequirementMatcher(policy.requirements, policy.checks).evaluate(entities)
        assert result.severity is Severity.OK

    def test_redfish_policy_passes_on_same_hardware(self):
        """Test mains input and 12 V outputs from Redfish pass their own generated policy."""
        document = {
            "Voltages": [
                {"Name": "PSU1 12V", "ReadingVolts": 12.05, "Status": {"State": "Enabled", "Health": "OK"}},
                {"Name": "5V", "ReadingVolts": 5.02, "Status": {"State": "Enabled", "Health": "OK"}},
            ],
            "PowerSupplies": [
                {
                    "Name": "PS1",
                    "LineInputVoltage": 230,
                    "PowerInputWatts": 310,
                    "PowerOutputWatts": 290,
                    "Status": {"State": "Enabled", "Health": "OK"},
                },
                {
                    "Name": "PS2",
                    "LineInputVoltage": 229,
                    "PowerInputWatts": 300,
                    "PowerOutputWatts": 280,
                    "Status": {"State": "Enabled", "Health": "OK"},
                },
            ],
        }
        domain, patcher = domain_with(PowerDomain, parse_power(document, "1"))
        try:
            entities = domain.collect()
            policy = domain.default_policy(entities)
            result = RequirementMatcher(policy.requirements, policy.checks).evaluate(entities)
        finally:
            patcher.stop()

        inputs = policy.requirements[0]
        assert inputs.name == "PSU Input Voltage"
        assert inputs.positions == ("PSU1_VIN", "PSU2_VIN")
        assert (inputs.min_value, inputs.max_value) == AC_INPUT_WINDOW
        assert policy.requirements[1].name == "PSU Voltage Check"
        assert policy.requirements[1].positions == ("PSU1_12V",)
        assert result.issues == []
        assert result.severity is Severity.OK

    @pytest.mark.parametrize(
        "values, window",
        [([230.0, 231.5], AC_INPUT_WINDOW), ([12.1, 11.9], DC_INPUT_WINDOW), ([None], DC_INPUT_WINDOW)],
    )
    def test_input_window(self, values, window):
        """Test the input voltage window follows the observed nominal."""
        assert input_window(values) == window

    def test_input_rail(self):
        """Test only VIN positions count as PSU input rails."""
        assert is_input_rail("PSU1_VIN")
        assert not is_input_rail("PSU1")
        assert not is_input_rail("PSU1_POUT")

    def test_fan_policy(self, fan_domain):
        """Test per-type requirements with stopped fans expected inactive."""
        entities = fan_domain.collect()
        assert [e.position for e in entities] == ["CPU1", "CHS1", "CHS2"]

        cpu, chassis = fan_domain.default_policy(entities).requirements
        assert cpu.name == "CPU Fans"
        assert cpu.min_value == 300.0
        assert chassis.positions == ("CHS1", "CHS2")
        assert chassis.min_count == 1
        assert chassis.min_value == 1000.0
        assert chassis.expected_status == {"CHS1": "OK", "CHS2": "N/A"}
        assert chassis.max_rpm_diff is None

        result = RequirementMatcher([cpu, chassis]).evaluate(entities)
        assert result.severity is Severity.OK

    def test_fan_format(self, fan_domain):
        """Test fan speeds render as whole RPM."""
        assert fan_domain.format_value(make_entity("CPU1", 1234.6, unit="RPM")) == "1235"
        assert fan_domain.format_value(make_entity("CPU1", None, unit="RPM")) == "N/A"


class TestNetworkDomain:
    """Test interface classification, ping preparation and layout."""

    def entities(self, domain):
        readings = [
            RawReading("eth0", 1000.0, "Mb/s", TextStatus("UP"), attributes={"link_up": True, "speed": "1000Mb/s"}),
            RawReading("eth1", None, "Mb/s", TextStatus("DOWN"), attributes={"link_up": False, "speed": "unknown"}),
            RawReading("lo", None, "Mb/s", TextStatus("UP"), attributes={"link_up": True, "speed": "unknown"}),
            RawReading("docker0", None, "Mb/s", TextStatus("UP"), attributes={"link_up": True}),
        ]
        return [domain.build_entity(reading) for reading in readings]

    def test_classification(self):
        """Test interface types from name prefixes."""
        domain = NetworkDomain(Settings(), ParallelCollector(), None)
        entities = self.entities(domain)
        assert [e.category for e in entities] == ["Ethernet", "Ethernet", "Loopback", "Virtual"]
        assert entities[1].status is Status.NA

    def test_prepare_pings_active_physical_interfaces(self):
        """Test only up, non-virtual interfaces are pinged with the policy targets."""
        policy = Policy(
            domain="network",
            requirements=(Requirement(name="NICs", check_ping=True, ping_targets=("9.9.9.9",)),),
        )
        domain = NetworkDomain(Settings(), ParallelCollector(), policy)
        expected = {"eth0": {"9.9.9.9": PingResult("9.9.9.9", 0.0)}}
        with patch("hwcheck.domains.network.ping_interfaces", return_value=expected) as mock_ping:
            assert domain.prepare(self.entities(domain)) == expected
        args = mock_ping.call_args.args
        assert args[2] == ["eth0"]
        assert args[3] == ["9.9.9.9"]
        assert args[4:] == (5, 2)

    def test_prepare_without_ping_requirement(self):
        """Test nothing is pinged when no requirement asks for it."""
        domain = NetworkDomain(Settings(), ParallelCollector(), Policy(domain="network"))
        with patch("hwcheck.domains.network.ping_interfaces") as mock_ping:
            assert domain.prepare(self.entities(domain)) == {}
        mock_ping.assert_not_called()

    def test_default_requirements(self):
        """Test physical interfaces get link, speed and ping requirements."""
        domain = NetworkDomain(Settings(), ParallelCollector(), None)
        [requirement] = domain.default_requirements(self.entities(domain))
        assert requirement.name == "Ethernet Interfaces"
        assert requirement.positions == ("eth0", "eth1")
        assert requirement.expected_status == {"eth0": "UP", "eth1": "DOWN"}
        assert requirement.required_speed == "1000Mb/s"
        assert requirement.ping_targets == ("8.8.8.8", "1.1.1.1")

    @pytest.mark.parametrize(
        "value, text", [(1000.0, "1G"), (10000.0, "10G"), (100.0, "100M"), (2500.0, "2500M"), (None, "-")]
    )
    def test_format_value(self, value, text):
        """Test speed labels."""
        domain = NetworkDomain(Settings(), ParallelCollector(), None)
        assert domain.format_value(make_entity("eth0", value, unit="Mb/s")) == text

    def test_default_layout(self):
        """Test small interface counts fit one or two rows."""
        domain = NetworkDomain(Settings(), ParallelCollector(), None)
        assert [row.slots for row in domain.default_layout(3, 6)] == [(1, 2, 3)]
        assert [len(row.slots) for row in domain.default_layout(6, 6)] == [3, 3]
        assert [len(row.slots) for row in domain.default_layout(10, 6)] == [6, 4]


class TestMemoryDomain:
    """Test module positions, visuals and requirements."""

    def module(self, locator, size_mb=16384, memory_type="DDR4", ecc=True, speed=3200):
        return RawReading(
            locator,
            size_mb / 1024 if size_mb else None,
            "GB",
            Status.OK if size_mb else Status.NA,
            attributes={"size_mb": size_mb, "memory_type": memory_type, "ecc": ecc, "speed_mhz": speed},
        )

    @pytest.mark.parametrize(
        "raw, position",
        [
            ("DIMM_A1", "DIMM_A1"),
            ("P0_Node0_Channel0_Dimm0", "P0C0D0"),
            ("ChannelA-DIMM0", "A0"),
            ("CPU1_DIMM_A1", "CPU1_A1"),
        ],
    )
    def test_positions(self, raw, position):
        """Test vendor locators become short positions."""
        domain = MemoryDomain(Settings(), ParallelCollector(), None)
        assert domain.position(RawReading(raw, None)) == position

    def test_entities(self):
        """Test empty slots are kept as absent entities in provider order."""
        domain = MemoryDomain(Settings(), ParallelCollector(), None)
        entities = [
            domain.build_entity(reading)
            for reading in (self.module("DIMM_B1"), self.module("DIMM_A1", size_mb=0, memory_type=None))
        ]
        assert [e.position for e in domain.sort_entities(entities)] == ["DIMM_B1", "DIMM_A1"]
        assert entities[0].is_present
        assert not entities[1].is_present
        assert entities[1].subtype == "Unknown"
        assert domain.visual_key(entities[0]) == "DDR4E"
        assert domain.visual_key(entities[1]) == "Unknown"
        assert domain.format_value(entities[0]) == "16GB"
        assert domain.format_value(entities[1]) == "-"

    def test_default_requirements(self):
        """Test one requirement covering type, speed, ECC, uniformity and total."""
        domain = MemoryDomain(Settings(), ParallelCollector(), None)
        entities = [
            domain.build_entity(reading)
            for reading in (
                self.module("DIMM_A1"),
                self.module("DIMM_B1", speed=2933),
                self.module("DIMM_C1", size_mb=0, memory_type=None),
            )
        ]
        [requirement] = domain.default_requirements(entities)
        assert requirement.positions == ("DIMM_A1", "DIMM_B1")
        assert requirement.required_type == "DDR4"
        assert requirement.min_speed_mhz == 2933
        assert requirement.require_ecc is True
        assert requirement.uniform is True
        assert requirement.min_total_gb == 32
        assert RequirementMatcher([requirement]).evaluate(entities).severity is Severity.OK

    def test_total_only(self):
        """Test the total-only fallback checks just the total."""
        domain = MemoryDomain(Settings(), ParallelCollector(), None)
        reading = RawReading(
            "TOTAL", 15.5, "GB", Status.OK, attributes={"size_mb": 15872, "total_only": True}
        )
        entity = domain.build_entity(reading)
        [requirement] = domain.default_requirements([entity])
        assert entity.category == "Total"
        assert requirement.positions == ()
        assert requirement.min_total_gb == 15
        assert requirement.require_ecc is False

    def test_default_layout(self):
        """Test row splits for growing slot counts."""
        domain = MemoryDomain(Settings(), ParallelCollector(), None)
        assert [len(r.slots) for r in domain.default_layout(6, 8)] == [6]
        assert [len(r.slots) for r in domain.default_layout(12, 8)] == [8, 4]
        assert [len(r.slots) for r in domain.default_layout(24, 8)] == [12, 12]
        assert [len(r.slots) for r in domain.default_layout(40, 8)] == [16, 16, 8]


class TestBmcDomain:
    """Test IPMI device and module checks."""

    @pytest.mark.parametrize(
        "raw, kind, position",
        [
            ("/dev/ipmi0", "device", "IPMI0"),
            ("/dev/ipmi/0", "device", "IPMI_0"),
            ("ipmi_si", "module", "SI"),
            ("acpi_ipmi", "module", "ACPI_IPMI"),
        ],
    )
    def test_positions(self, raw, kind, position):
        """Test device paths and module names become positions."""
        domain = BmcDomain(Settings(), ParallelCollector(), None)
        assert domain.position(RawReading(raw, None, attributes={"kind": kind})) == position

    def test_missing_device_fails(self, tmp_path):
        """Test a host with modules but no device node fails the check."""
        modules = tmp_path / "module"
        (modules / "ipmi_si").mkdir(parents=True)
        settings = Settings(tools=ToolsConfig(module_root=str(modules)))
        domain = BmcDomain(settings, ParallelCollector(), None)
        domain.provider = BmcProvider(settings.tools, device_paths=(str(tmp_path / "ipmi0"),))

        entities = domain.collect()
        result = RequirementMatcher(domain.default_requirements(entities)).evaluate(entities)

        assert [e.category for e in entities][:1] == ["Device"]
        assert result.severity is Severity.ERROR
        assert result.issues == ["IPMI Device: found 0, expected at least 1"]
        present = [e for e in entities if e.is_present]
        assert [e.raw_name for e in present] == ["ipmi_si"]
        assert domain.format_value(present[0]) == "found"

    def test_revive_reloads_modules(self):
        """Test revive delegates to the module reload."""
        domain = BmcDomain(Settings(), ParallelCollector(), None)
        with patch.object(domain.provider, "reload_modules") as mock_reload:
            domain.revive()
        mock_reload.assert_called_once_with()
