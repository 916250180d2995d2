"""Tests for the command line interface."""

import json

import pytest
from click.testing import CliRunner

from conftest import MAC, make_reply
from pxedhcp.cli import main
from pxedhcp.dhcp import cli as dhcp_cli
from pxedhcp.dhcp import config as config_module
from pxedhcp.dhcp.client import DHCPLease
from pxedhcp.dhcp.config import DHCPConfig
from pxedhcp.dhcp.device import NetDevice
from pxedhcp.dhcp.errors import DHCPTimeoutError
from pxedhcp.dhcp.packet import DHCPMessageType, DHCPOption, DHCPPacket


@pytest.fixture(autouse=True)
def default_config(monkeypatch):
    monkeypatch.setattr(config_module, "_config", DHCPConfig())


@pytest.fixture
def runner():
    return CliRunner()


def fake_interface(monkeypatch):
    def from_interface(cls, interface, mac_override=None):
        return NetDevice(interface, MAC)

    monkeypatch.setattr(NetDevice, "from_interface", classmethod(from_interface))


class TestPacket:
    def test_discover_as_hex(self, runner):
        result = runner.invoke(main, ["dhcp", "packet", "-m", "aa:bb:cc:dd:ee:ff", "--hex"])

        assert result.exit_code == 0
        packet = DHCPPacket.parse(bytes.fromhex(result.output.strip()))
        assert packet.message_type == DHCPMessageType.DISCOVER
        assert packet.xid == 0xCCDDEEFF

    def test_request_for_captured_offer(self, runner, tmp_path):
        offer = tmp_path / "offer.bin"
        offer.write_bytes(make_reply(DHCPMessageType.OFFER))

        result = runner.invoke(main, ["dhcp", "packet", "-m", "aa:bb:cc:dd:ee:ff", "--offer", str(offer)])

        assert result.exit_code == 0
        assert "DHCPREQUEST" in result.output

    def test_unsupported_hardware_type(self, runner):
        result = runner.invoke(main, ["dhcp", "packet", "-m", "aa:bb:cc:dd:ee:ff", "--htype", "99"])

        assert result.exit_code == 2

    def test_address_length_mismatch(self, runner):
        result = runner.invoke(main, ["dhcp", "packet", "-m", "aa:bb:cc:dd:ee:ff", "--htype", "32"])

        assert result.exit_code == 2


class TestDecode:
    def test_decode_binary(self, runner, tmp_path):
        capture = tmp_path / "ack.bin"
        capture.write_bytes(make_reply(DHCPMessageType.ACK, options={DHCPOption.HOSTNAME: b"node1"}))

        result = runner.invoke(main, ["dhcp", "decode", str(capture)])

        assert result.exit_code == 0
        assert "DHCPACK" in result.output
        assert "node1" in result.output

    def test_decode_hex(self, runner, tmp_path):
        capture = tmp_path / "offer.hex"
        capture.write_text(make_reply(DHCPMessageType.OFFER).hex() + "\n")

        result = runner.invoke(main, ["dhcp", "decode", "--hex", str(capture)])

        assert result.exit_code == 0
        assert "DHCPOFFER" in result.output

    def test_decode_garbage(self, runner, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        (tmp_path / "junk.bin").write_bytes(b"junk")

        result = runner.invoke(main, ["dhcp", "decode", "junk.bin"])

        assert result.exit_code == 1
        assert "not a DHCP packet" in result.output


class TestObtain:
    def test_requires_interface(self, runner):
        result = runner.invoke(main, ["dhcp", "obtain"])

        assert result.exit_code == 2

    def test_json_output(self, runner, monkeypatch):
        fake_interface(monkeypatch)
        seen = {}

        class FakeClient:
            def __init__(self, config):
                seen["config"] = config

            async def obtain(self, netdev):
                return DHCPLease(ip_address="10.0.0.5", server_id="10.0.0.1", client_mac=netdev.mac)

        monkeypatch.setattr(dhcp_cli, "DHCPClient", FakeClient)

        result = runner.invoke(main, ["dhcp", "obtain", "-i", "eth0", "-r", "3", "-t", "2", "--json-output"])

        assert result.exit_code == 0
        output = json.loads(result.output)
        assert output["success"]
        assert output["lease"]["ip_address"] == "10.0.0.5"
        assert seen["config"].interface == "eth0"
        assert seen["config"].max_attempts == 3
        assert seen["config"].max_timeout == 2.0

    def test_failure_exits_nonzero(self, runner, monkeypatch):
        fake_interface(monkeypatch)

        class FailingClient:
            def __init__(self, config):
                pass

            async def obtain(self, netdev):
                raise DHCPTimeoutError("no DHCP reply on eth0 after 7 attempts")

        monkeypatch.setattr(dhcp_cli, "DHCPClient", FailingClient)

        result = runner.invoke(main, ["dhcp", "obtain", "-i", "eth0", "--json-output"])

        assert result.exit_code == 1
        assert json.loads(result.output) == {
            "success": False,
            "error": "no DHCP reply on eth0 after 7 attempts",
        }

    def test_permission_denied(self, runner, monkeypatch):
        fake_interface(monkeypatch)

        class DeniedClient:
            def __init__(self, config):
                pass

            async def obtain(self, netdev):
                raise PermissionError(13, "Permission denied")

        monkeypatch.setattr(dhcp_cli, "DHCPClient", DeniedClient)

        result = runner.invoke(main, ["dhcp", "obtain", "-i", "eth0"])

        assert result.exit_code == 1
        assert "Permission denied" in result.output
