"""
Settings tree.

Configuration acquired by DHCP is exposed to the rest of the system as
settings blocks registered in a tree. Each block answers store/fetch
requests by option tag; a received DHCP packet is itself a block.

Copyright (c) 2025 DNS Science.io, an After Dark Systems, LLC company.
All rights reserved.
"""

import logging
import struct
import uuid
from dataclasses import dataclass
from ipaddress import IPv4Address
from typing import Callable, Iterator

from pxedhcp.dhcp.errors import SettingsError
from pxedhcp.dhcp.packet import (
    DHCP_EB_NO_PROXYDHCP,
    DHCP_EB_PRIORITY,
    DHCP_EB_SIADDR,
    DHCP_EB_YIADDR,
    ZERO_ADDRESS,
    DHCPOption,
    DHCPPacket,
)

logger = logging.getLogger(__name__)

DHCP_SETTINGS_NAME = "dhcp"
PROXYDHCP_SETTINGS_NAME = "proxydhcp"


class Settings:
    """
    A settings block.

    The base block keeps values in memory; subclasses back them with
    other storage. Blocks form a tree through register().
    """

    def __init__(self, name: str):
        self.name = name
        self.parent: "Settings | None" = None
        self.children: list["Settings"] = []
        self._values: dict[int, bytes] = {}

    def store(self, tag: int, data: bytes | None):
        """Store a value, or clear it when data is None."""
        if data is None:
            self._values.pop(tag, None)
        else:
            self._values[tag] = bytes(data)

    def fetch(self, tag: int) -> bytes | None:
        """Fetch a value held by this block only."""
        return self._values.get(tag)

    @property
    def path(self) -> str:
        """Dotted name from the tree root, e.g. "net0.dhcp"."""
        names = []
        settings: Settings | None = self
        while settings is not None and settings.parent is not None:
            names.append(settings.name)
            settings = settings.parent
        return ".".join(reversed(names))

    def walk(self) -> Iterator["Settings"]:
        """This block followed by all descendants, depth first."""
        yield self
        for child in self.children:
            yield from child.walk()

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name!r})"


class DHCPSettings(Settings):
    """
    A received DHCP packet exposed as a settings block.

    The packet data is copied on construction and not shared with the
    receive buffer.
    """

    def __init__(self, data: bytes, name: str = DHCP_SETTINGS_NAME):
        super().__init__(name)
        self.packet = DHCPPacket.from_bytes(data)

    def store(self, tag: int, data: bytes | None):
        self.packet.store(tag, data)

    def fetch(self, tag: int) -> bytes | None:
        return self.packet.fetch(tag)

    @property
    def priority(self) -> int:
        """Server priority used to arbitrate between replies (default 0)."""
        value = self.fetch(DHCP_EB_PRIORITY)
        return value[0] if value else 0

    @property
    def no_proxydhcp(self) -> bool:
        """Server asked the client not to wait for or use ProxyDHCP."""
        value = self.fetch(DHCP_EB_NO_PROXYDHCP)
        return bool(value and value[0])

    @property
    def is_proxy(self) -> bool:
        """A ProxyDHCP reply offers no address."""
        return self.packet.fetch(DHCP_EB_YIADDR) == ZERO_ADDRESS


class SettingsRegistry:
    """
    Root of a settings tree.

    Usage:
        registry = SettingsRegistry()
        registry.register(netdev.settings)
        ip = registry.fetch(DHCP_EB_YIADDR)
    """

    def __init__(self):
        self.root = Settings("")

    def register(self, settings: Settings, parent: Settings | None = None):
        """
        Register a settings block under a parent (the root by default).

        Raises:
            SettingsError: Block already registered or name already in use
        """
        parent = parent or self.root
        if settings.parent is not None:
            raise SettingsError(f"settings {settings.path!r} already registered")
        if self.find_child(parent, settings.name) is not None:
            raise SettingsError(
                f"settings {settings.name!r} already exists under {parent.path or 'root'!r}"
            )
        settings.parent = parent
        parent.children.append(settings)
        logger.debug(f"Registered settings {settings.path}")

    def unregister(self, settings: Settings):
        """Remove a settings block (and its children) from the tree."""
        parent = settings.parent
        if parent is None:
            return
        logger.debug(f"Unregistering settings {settings.path}")
        parent.children.remove(settings)
        settings.parent = None

    def replace(self, settings: Settings, parent: Settings | None = None):
        """Register a block, first unregistering any sibling of the same name."""
        parent = parent or self.root
        old_settings = self.find_child(parent, settings.name)
        if old_settings is not None:
            self.unregister(old_settings)
        self.register(settings, parent)

    def find_child(self, parent: Settings, name: str) -> Settings | None:
        for child in parent.children:
            if child.name == name:
                return child
        return None

    def find(self, name: str) -> Settings | None:
        """Find a block by dotted path, e.g. "net0.dhcp"."""
        settings = self.root
        for part in filter(None, name.split(".")):
            settings = self.find_child(settings, part)
            if settings is None:
                return None
        return settings

    def fetch(self, tag: int, settings: Settings | None = None) -> bytes | None:
        """Fetch a value from a block or its descendants, block first."""
        for block in (settings or self.root).walk():
            value = block.fetch(tag)
            if value is not None:
                return value
        return None


# Global registry instance
_registry: SettingsRegistry | None = None


def get_registry() -> SettingsRegistry:
    """Get the global settings registry."""
    global _registry
    if _registry is None:
        _registry = SettingsRegistry()
    return _registry


def _format_ipv4(data: bytes) -> str:
    return str(IPv4Address(data[:4]))


def _format_ipv4_list(data: bytes) -> str:
    return ", ".join(str(IPv4Address(data[i:i + 4])) for i in range(0, len(data) - 3, 4))


def _format_string(data: bytes) -> str:
    return data.decode('utf-8', errors='ignore').rstrip('\x00')


def _format_uint(size: int) -> Callable[[bytes], str]:
    codec = struct.Struct({1: "!B", 2: "!H", 4: "!I"}[size])

    def formatter(data: bytes) -> str:
        return str(codec.unpack(data[:size].rjust(size, b"\x00"))[0])

    return formatter


def _format_hex(data: bytes) -> str:
    return ":".join(f"{b:02x}" for b in data)


def _format_uuid(data: bytes) -> str:
    # Option 97 carries a type byte before the UUID
    if len(data) == 17:
        data = data[1:]
    return str(uuid.UUID(bytes=data[:16]))


SETTING_TYPES: dict[str, Callable[[bytes], str]] = {
    "ipv4": _format_ipv4,
    "ipv4_list": _format_ipv4_list,
    "string": _format_string,
    "uint8": _format_uint(1),
    "uint16": _format_uint(2),
    "uint32": _format_uint(4),
    "hex": _format_hex,
    "uuid": _format_uuid,
}


@dataclass(frozen=True)
class Setting:
    """A named, typed view of one option tag."""
    name: str
    tag: int
    type: str = "hex"
    description: str = ""

    def format(self, data: bytes) -> str:
        return SETTING_TYPES[self.type](data)


SETTINGS: dict[str, Setting] = {setting.name: setting for setting in (
    Setting("ip", DHCP_EB_YIADDR, "ipv4", "IPv4 address"),
    Setting("netmask", DHCPOption.SUBNET_MASK, "ipv4", "Subnet mask"),
    Setting("gateway", DHCPOption.ROUTER, "ipv4", "Default gateway"),
    Setting("dns", DHCPOption.DNS_SERVER, "ipv4_list", "DNS servers"),
    Setting("hostname", DHCPOption.HOSTNAME, "string", "Host name"),
    Setting("domain", DHCPOption.DOMAIN_NAME, "string", "DNS domain"),
    Setting("root-path", DHCPOption.ROOT_PATH, "string", "NFS/iSCSI root path"),
    Setting("filename", DHCPOption.BOOTFILE_NAME, "string", "Boot filename"),
    Setting("next-server", DHCP_EB_SIADDR, "ipv4", "TFTP server"),
    Setting("tftp-server", DHCPOption.TFTP_SERVER_NAME, "string", "TFTP server name"),
    Setting("server-id", DHCPOption.SERVER_ID, "ipv4", "DHCP server"),
    Setting("lease-time", DHCPOption.LEASE_TIME, "uint32", "Lease time"),
    Setting("priority", DHCP_EB_PRIORITY, "uint8", "Priority of these settings"),
    Setting("uuid", DHCPOption.CLIENT_UUID, "uuid", "Client UUID"),
)}


def fetchf(source: Settings | SettingsRegistry, setting: Setting | str) -> str | None:
    """
    Fetch a setting and format it as text.

    Args:
        source: A settings block, or a registry to search from its root
        setting: Setting descriptor or name from SETTINGS

    Returns:
        Formatted value, or None if the setting is absent
    """
    if isinstance(setting, str):
        setting = SETTINGS[setting]
    data = source.fetch(setting.tag)
    if data is None:
        return None
    try:
        return setting.format(data)
    except ValueError as e:
        logger.debug(f"Could not format setting {setting.name}: {e}")
        return None
