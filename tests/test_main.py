"""End-to-end tests for the command line."""
from __future__ import annotations

import json
import sys
from unittest.mock import patch

import pytest

from conftest import FakeProvider, make_entity
from hwcheck import main as main_module
from hwcheck.config import Settings
from hwcheck.domains.bmc import BmcDomain
from hwcheck.domains.power import PowerDomain
from hwcheck.errors import ConfigError, ProviderError
from hwcheck.main import EXIT_ERROR, EXIT_FAILED, EXIT_OK, apply_overrides, build_parser, run
from hwcheck.models import IpmiStatus, RawReading, Status
from hwcheck.providers.bmc import ReloadOutcome
from hwcheck.providers.ipmi import BmcInfo, IpmiProvider


def power_readings(psu2=231.0):
    readings = [
        RawReading("PSU1 VIN", 230.0, "V", IpmiStatus("ok")),
        RawReading("12V", 12.1, "V", IpmiStatus("ok")),
        RawReading("CPU1 VCCIN", 1.8, "V", IpmiStatus("ok")),
    ]
    if psu2 is not None:
        readings.insert(1, RawReading("PSU2 VIN", psu2, "V", IpmiStatus("ok")))
    return readings


def run_cli(*argv):
    return run(build_parser().parse_args(list(argv)))


@pytest.fixture(autouse=True)
def quiet_logging():
    """Keep the root logger untouched between tests."""
    with patch.object(main_module, "configure_logging"):
        yield


@pytest.fixture
def hardware():
    """Swap the power provider chain for canned readings."""
    provider = FakeProvider("fake", power_readings())
    with patch.object(PowerDomain, "providers", return_value=[provider]):
        yield provider


@pytest.fixture
def policy_path(tmp_path, hardware):
    """A policy generated from the canned healthy hardware."""
    path = tmp_path / "hwcheck-power.json"
    assert run_cli("power", "--create-config", "-c", str(path)) == EXIT_OK
    return path


class TestCreateConfig:
    """Test policy generation."""

    def test_writes_valid_policy(self, capsys, policy_path):
        """Test the generated document is written and reported."""
        document = json.loads(policy_path.read_text(encoding="utf-8"))
        assert document["domain"] == "power"
        assert document["visualization"]["total_slots"] == 4
        assert "Wrote" in capsys.readouterr().out


@pytest.mark.integration
class TestCheck:
    """Test check mode exit codes and output."""

    def test_healthy(self, policy_path, capsys):
        """Test unchanged hardware passes."""
        capsys.readouterr()
        assert run_cli("power", "-c", str(policy_path)) == EXIT_OK
        out = capsys.readouterr().out
        assert "Power sensors" in out
        assert "Check results:" in out
        assert "All checks passed (OK)" in out

    def test_terminal_output_is_colored(self, policy_path, capsys):
        """Test a TTY run renders the grid and summary with ANSI colors."""
        capsys.readouterr()
        with patch.object(sys.stdout, "isatty", return_value=True):
            assert run_cli("power", "-c", str(policy_path)) == EXIT_OK
        out = capsys.readouterr().out
        assert "\x1b[32mAll checks passed (OK)\x1b[0m" in out
        assert "Power sensors" in out

    def test_no_color_flag(self, policy_path, capsys):
        """Test --no-color wins over a TTY."""
        capsys.readouterr()
        with patch.object(sys.stdout, "isatty", return_value=True):
            assert run_cli("power", "--no-color", "-c", str(policy_path)) == EXIT_OK
        assert "\x1b[" not in capsys.readouterr().out

    def test_warning_passes(self, policy_path, hardware, capsys):
        """Test a reading within tolerance warns but exits zero."""
        hardware.readings = power_readings(psu2=270.0)
        assert run_cli("power", "-c", str(policy_path)) == EXIT_OK
        assert "Checks passed with warnings (WARNING)" in capsys.readouterr().out

    def test_out_of_range_fails(self, policy_path, hardware, capsys):
        """Test a reading beyond tolerance fails."""
        hardware.readings = power_readings(psu2=300.0)
        assert run_cli("power", "-c", str(policy_path)) == EXIT_FAILED
        out = capsys.readouterr().out
        assert "PSU2_VIN (PSU2 VIN) value 300V" in out
        assert "Checks failed (ERROR)" in out

    def test_missing_hardware_fails(self, policy_path, hardware, capsys):
        """Test a vanished sensor is reported missing."""
        hardware.readings = power_readings(psu2=None)
        assert run_cli("power", "-c", str(policy_path)) == EXIT_FAILED
        out = capsys.readouterr().out
        assert "PSU Input Voltage: PSU2_VIN is missing" in out
        assert "MISS" in out

    def test_vis_never_fails(self, policy_path, hardware, capsys):
        """Test visualisation mode only draws the grid."""
        hardware.readings = power_readings(psu2=300.0)
        capsys.readouterr()
        assert run_cli("power", "--vis", "-c", str(policy_path)) == EXIT_OK
        out = capsys.readouterr().out
        assert "Power sensors" in out
        assert "Check results:" not in out

    def test_missing_policy(self, tmp_path, hardware):
        """Test checking without a policy is a configuration error."""
        assert run_cli("power", "-c", str(tmp_path / "absent.json")) == EXIT_ERROR

    def test_collection_error(self, tmp_path):
        """Test a pass where every provider fails."""
        with patch.object(PowerDomain, "providers", return_value=[FakeProvider("ipmi", error="down")]):
            assert run_cli("power", "--list") == EXIT_ERROR


class TestListing:
    """Test list mode."""

    def test_list(self, hardware, capsys):
        """Test every entity is listed without a policy."""
        assert run_cli("power", "--list") == EXIT_OK
        out = capsys.readouterr().out
        assert "Power sensors (4)" in out
        assert "PSU1_VIN" in out
        assert "PSU/Voltage" in out

    def test_verbose_list(self, hardware, capsys):
        """Test -v adds provider details."""
        assert run_cli("power", "--list", "-v") == EXIT_OK
        assert "source=" in capsys.readouterr().out


@pytest.mark.integration
class TestRevive:
    """Test the bmc module reload path."""

    def test_revive_then_pass(self, tmp_path, capsys):
        """Test a failed check is re-run after reloading modules."""
        path = tmp_path / "hwcheck-bmc.json"
        path.write_text(
            json.dumps(
                {
                    "domain": "bmc",
                    "requirements": [
                        {"name": "IPMI Device", "category": "Device", "min_count": 1, "check_health": False}
                    ],
                    "visualization": {"position_to_slot": {"IPMI0": 1}},
                }
            ),
            encoding="utf-8",
        )
        missing = [make_entity("IPMI0", category="Device", subtype="IPMI", status=Status.NA, is_present=False)]
        found = [make_entity("IPMI0", category="Device", subtype="IPMI")]
        with patch.object(BmcDomain, "collect", side_effect=[missing, found]), patch.object(
            BmcDomain, "revive", return_value=ReloadOutcome(loaded=["ipmi_si"])
        ) as mock_revive:
            code = run_cli("bmc", "--revive", "-c", str(path))

        assert code == EXIT_OK
        mock_revive.assert_called_once_with()
        assert "All checks passed" in capsys.readouterr().out

    def test_revive_needs_bmc(self):
        """Test --revive is rejected for other checks."""
        with patch("sys.argv", ["hwcheck", "power", "--revive"]):
            with pytest.raises(SystemExit) as excinfo:
                main_module.main()
        assert excinfo.value.code == 2


class TestOverrides:
    """Test command-line BMC overrides."""

    def test_host_and_user(self):
        """Test host and credentials replace the settings."""
        settings = apply_overrides(Settings(), "10.0.0.5", "admin:pa:ss")
        assert settings.bmc.host == "10.0.0.5"
        assert settings.bmc.username == "admin"
        assert settings.bmc.password == "pa:ss"

    def test_bad_user(self):
        """Test credentials without a colon are rejected."""
        with pytest.raises(ConfigError):
            apply_overrides(Settings(), None, "admin")
        assert run_cli("power", "--list", "-u", "admin") == EXIT_ERROR


class TestIpmiConnection:
    """Test the IPMI connection mode."""

    def test_connection_ok(self, capsys):
        """Test BMC identity and address are printed."""
        info = BmcInfo(firmware="1.71", ipmi_version="2.0", manufacturer="Supermicro", address="10.0.0.5")
        with patch.object(IpmiProvider, "connection_info", return_value=info), patch.object(
            PowerDomain, "collect"
        ) as mock_collect:
            assert run_cli("power", "--test") == EXIT_OK
        out = capsys.readouterr().out
        assert "IPMI connection OK: Supermicro, firmware 1.71, IPMI 2.0" in out
        assert "BMC IP address: 10.0.0.5" in out
        mock_collect.assert_not_called()

    def test_connection_failed(self, capsys):
        """Test an unreachable BMC exits with an error."""
        with patch.object(IpmiProvider, "connection_info", side_effect=ProviderError("ipmi", "no answer")):
            assert run_cli("power", "--test") == EXIT_ERROR
        assert "IPMI connection OK" not in capsys.readouterr().out

    def test_remote_bmc(self):
        """Test --bmc-host reaches the provider as a lanplus target."""
        info = BmcInfo()
        with patch("hwcheck.main.IpmiProvider") as mock_provider:
            mock_provider.return_value.connection_info.return_value = info
            assert run_cli("fan", "--test", "--bmc-host", "10.0.0.9", "-u", "admin:pw") == EXIT_OK
        bmc = mock_provider.call_args.kwargs["bmc"]
        assert (bmc.host, bmc.username, bmc.password) == ("10.0.0.9", "admin", "pw")
