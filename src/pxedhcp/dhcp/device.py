"""
Network device metadata.

Read-only description of the device a DHCP session configures: its
link-layer protocol and address, and the bus it sits on.

Copyright (c) 2025 DNS Science.io, an After Dark Systems, LLC company.
All rights reserved.
"""

import logging
import socket
import struct
import uuid
from dataclasses import dataclass, field
from enum import IntEnum
from pathlib import Path

from pxedhcp.dhcp.settings import Settings

logger = logging.getLogger(__name__)

SIOCGIFHWADDR = 0x8927
SYSFS_NET = Path("/sys/class/net")
SMBIOS_UUID_PATH = Path("/sys/class/dmi/id/product_uuid")


class BusType(IntEnum):
    """Bus types reported in the bus identification option."""
    UNKNOWN = 0
    PCI = 1
    ISAPNP = 2
    EISA = 3
    MCA = 4
    ISA = 5


@dataclass(frozen=True)
class LinkLayerProtocol:
    """A link-layer protocol: ARP hardware type and address length."""
    name: str
    ll_proto: int
    ll_addr_len: int


ETHERNET = LinkLayerProtocol("Ethernet", 1, 6)
IPOIB = LinkLayerProtocol("IPoIB", 32, 20)

LL_PROTOCOLS = {proto.ll_proto: proto for proto in (ETHERNET, IPOIB)}


@dataclass(frozen=True)
class DeviceDescription:
    """Identification of the hardware behind a network device."""
    bus_type: int = BusType.UNKNOWN
    vendor: int = 0
    device: int = 0


@dataclass
class NetDevice:
    """
    A network device undergoing configuration.

    Usage:
        netdev = NetDevice.from_interface("eth0")
        print(netdev.mac)
    """
    name: str
    ll_addr: bytes
    ll_protocol: LinkLayerProtocol = ETHERNET
    desc: DeviceDescription = field(default_factory=DeviceDescription)
    settings: Settings = field(init=False, repr=False)

    def __post_init__(self):
        self.ll_addr = bytes(self.ll_addr)
        if len(self.ll_addr) != self.ll_protocol.ll_addr_len:
            raise ValueError(
                f"{self.ll_protocol.name} address must be "
                f"{self.ll_protocol.ll_addr_len} bytes, got {len(self.ll_addr)}"
            )
        self.settings = Settings(self.name)

    @property
    def mac(self) -> str:
        """Link-layer address formatted as a string."""
        return format_mac(self.ll_addr)

    @classmethod
    def from_interface(cls, interface: str, mac_override: str | None = None) -> "NetDevice":
        """
        Describe a host network interface.

        Args:
            interface: Interface name, e.g. "eth0"
            mac_override: Use this address instead of the interface's

        Returns:
            NetDevice for the interface
        """
        ll_protocol = LL_PROTOCOLS.get(_read_sysfs_int(interface, "type"), ETHERNET)

        if mac_override:
            ll_addr = parse_mac(mac_override)
            if len(ll_addr) != ll_protocol.ll_addr_len:
                ll_protocol = ETHERNET
        else:
            ll_addr = get_hardware_address(interface, ll_protocol.ll_addr_len)

        vendor = _read_sysfs_int(interface, "device/vendor")
        device = _read_sysfs_int(interface, "device/device")
        if vendor is not None and device is not None:
            desc = DeviceDescription(BusType.PCI, vendor, device)
        else:
            desc = DeviceDescription()

        return cls(interface, ll_addr, ll_protocol, desc)


def format_mac(mac: bytes) -> str:
    """Format MAC address as string."""
    return ":".join(f"{b:02x}" for b in mac)


def parse_mac(text: str) -> bytes:
    """Parse a MAC address written with ':' or '-' separators."""
    mac = text.replace(":", "").replace("-", "")
    try:
        return bytes.fromhex(mac)
    except ValueError:
        raise ValueError(f"invalid hardware address: {text!r}") from None


def get_hardware_address(interface: str, length: int = 6) -> bytes:
    """Read an interface's hardware address with SIOCGIFHWADDR."""
    if length > 6:
        # ifreq only carries 14 bytes of sockaddr data; wide addresses come from sysfs
        address = (SYSFS_NET / interface / "address").read_text().strip()
        return parse_mac(address)

    import fcntl
    with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
        info = fcntl.ioctl(
            sock.fileno(),
            SIOCGIFHWADDR,
            struct.pack('256s', interface.encode()[:15])
        )
    return info[18:18 + length]


def _read_sysfs_int(interface: str, attribute: str) -> int | None:
    try:
        return int((SYSFS_NET / interface / attribute).read_text().strip(), 0)
    except (OSError, ValueError):
        return None


def get_uuid() -> uuid.UUID | None:
    """
    Get the system UUID from SMBIOS.

    Returns:
        System UUID, or None when it cannot be read
    """
    try:
        return uuid.UUID(SMBIOS_UUID_PATH.read_text().strip())
    except (OSError, ValueError) as e:
        logger.debug(f"Could not read system UUID: {e}")
        return None
