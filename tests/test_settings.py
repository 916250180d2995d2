"""Tests for the settings tree and DHCP response blocks."""

import pytest

from conftest import make_reply
from pxedhcp.dhcp import settings as settings_module
from pxedhcp.dhcp.errors import SettingsError
from pxedhcp.dhcp.packet import (
    DHCP_EB_NO_PROXYDHCP,
    DHCP_EB_PRIORITY,
    DHCP_EB_YIADDR,
    DHCPMessageType,
    DHCPOption,
)
from pxedhcp.dhcp.settings import (
    SETTINGS,
    DHCPSettings,
    Settings,
    SettingsRegistry,
    fetchf,
    get_registry,
)


class TestRegistry:
    def test_register_and_find(self):
        registry = SettingsRegistry()
        net0 = Settings("net0")
        dhcp = Settings("dhcp")

        registry.register(net0)
        registry.register(dhcp, net0)

        assert registry.find("net0") is net0
        assert registry.find("net0.dhcp") is dhcp
        assert registry.find("net1") is None
        assert registry.find("net0.proxydhcp") is None
        assert dhcp.path == "net0.dhcp"

    def test_name_collision(self):
        registry = SettingsRegistry()
        registry.register(Settings("net0"))

        with pytest.raises(SettingsError):
            registry.register(Settings("net0"))

    def test_already_registered(self):
        registry = SettingsRegistry()
        block = Settings("net0")
        registry.register(block)

        with pytest.raises(SettingsError):
            registry.register(block, Settings("elsewhere"))

    def test_unregister(self):
        registry = SettingsRegistry()
        block = Settings("net0")
        registry.register(block)

        registry.unregister(block)
        registry.unregister(block)

        assert registry.find("net0") is None
        assert block.parent is None

    def test_replace(self):
        registry = SettingsRegistry()
        old, new = Settings("proxydhcp"), Settings("proxydhcp")
        registry.register(old)

        registry.replace(new)

        assert registry.find("proxydhcp") is new
        assert old.parent is None

    def test_fetch_searches_block_before_children(self):
        registry = SettingsRegistry()
        net0, child = Settings("net0"), Settings("dhcp")
        registry.register(net0)
        registry.register(child, net0)
        child.store(DHCPOption.HOSTNAME, b"child")
        child.store(DHCPOption.DOMAIN_NAME, b"example.com")
        net0.store(DHCPOption.HOSTNAME, b"parent")

        assert registry.fetch(DHCPOption.HOSTNAME) == b"parent"
        assert registry.fetch(DHCPOption.DOMAIN_NAME) == b"example.com"
        assert registry.fetch(DHCPOption.HOSTNAME, child) == b"child"
        assert registry.fetch(DHCPOption.ROOT_PATH) is None

    def test_global_registry(self, monkeypatch):
        monkeypatch.setattr(settings_module, "_registry", None)

        assert get_registry() is get_registry()


class TestSettings:
    def test_store_and_clear(self):
        block = Settings("local")

        block.store(DHCPOption.HOSTNAME, bytearray(b"pxe"))
        assert block.fetch(DHCPOption.HOSTNAME) == b"pxe"

        block.store(DHCPOption.HOSTNAME, None)
        assert block.fetch(DHCPOption.HOSTNAME) is None


class TestDHCPSettings:
    def test_defaults(self):
        block = DHCPSettings(make_reply(DHCPMessageType.OFFER))

        assert block.name == "dhcp"
        assert block.priority == 0
        assert not block.no_proxydhcp
        assert not block.is_proxy

    def test_priority_and_flags(self):
        block = DHCPSettings(make_reply(
            DHCPMessageType.OFFER,
            yiaddr="0.0.0.0",
            options={DHCP_EB_PRIORITY: b"\x07", DHCP_EB_NO_PROXYDHCP: b"\x01"},
        ))

        assert block.priority == 7
        assert block.no_proxydhcp
        assert block.is_proxy

    def test_zero_no_proxydhcp_is_false(self):
        block = DHCPSettings(make_reply(
            DHCPMessageType.OFFER, options={DHCP_EB_NO_PROXYDHCP: b"\x00"}
        ))

        assert not block.no_proxydhcp

    def test_private_copy(self):
        data = bytearray(make_reply(DHCPMessageType.ACK))
        block = DHCPSettings(data)

        data[:] = bytes(len(data))

        assert block.fetch(DHCP_EB_YIADDR) == bytes([10, 0, 0, 5])

    def test_store_writes_packet(self):
        block = DHCPSettings(make_reply(DHCPMessageType.ACK))

        block.store(DHCPOption.HOSTNAME, b"node1")

        assert block.packet.fetch(DHCPOption.HOSTNAME) == b"node1"


class TestFetchf:
    @pytest.fixture
    def ack(self):
        return DHCPSettings(make_reply(
            DHCPMessageType.ACK,
            siaddr="10.0.0.9",
            options={
                DHCPOption.SUBNET_MASK: bytes([255, 255, 255, 0]),
                DHCPOption.DNS_SERVER: bytes([8, 8, 8, 8, 1, 1, 1, 1]),
                DHCPOption.HOSTNAME: b"node1",
                DHCPOption.LEASE_TIME: (3600).to_bytes(4, "big"),
                DHCP_EB_PRIORITY: b"\x02",
            },
        ))

    def test_formats(self, ack):
        assert fetchf(ack, "ip") == "10.0.0.5"
        assert fetchf(ack, "netmask") == "255.255.255.0"
        assert fetchf(ack, "dns") == "8.8.8.8, 1.1.1.1"
        assert fetchf(ack, "hostname") == "node1"
        assert fetchf(ack, "lease-time") == "3600"
        assert fetchf(ack, "next-server") == "10.0.0.9"
        assert fetchf(ack, "server-id") == "10.0.0.1"
        assert fetchf(ack, SETTINGS["priority"]) == "2"

    def test_missing_setting(self, ack):
        assert fetchf(ack, "root-path") is None

    def test_through_registry(self, ack):
        registry = SettingsRegistry()
        registry.register(ack)

        assert fetchf(registry, "hostname") == "node1"

    def test_uuid(self):
        block = Settings("smbios")
        block.store(DHCPOption.CLIENT_UUID, b"\x00" + bytes(range(16)))

        assert fetchf(block, "uuid") == "00010203-0405-0607-0809-0a0b0c0d0e0f"
