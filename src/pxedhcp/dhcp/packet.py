"""
DHCP packet codec.

BOOTP/DHCP header layout, option tags, and a tag/length/value option
store that operates on a caller-supplied fixed-size buffer.

Copyright (c) 2025 DNS Science.io, an After Dark Systems, LLC company.
All rights reserved.
"""

import struct
from enum import IntEnum
from ipaddress import IPv4Address
from types import MappingProxyType
from typing import Iterator

from pxedhcp.dhcp.errors import InsufficientSpaceError, MalformedPacketError

# DHCP Constants
DHCP_SERVER_PORT = 67
DHCP_CLIENT_PORT = 68
DHCP_MAGIC_COOKIE = 0x63825363

# Fixed header including the magic cookie
DHCP_HEADER_LEN = 240
# Buffer size used for outgoing packets (RFC 2131 minimum message size)
DHCP_MIN_LEN = 552
# Some relays drop BOOTP packets shorter than this
BOOTP_MIN_LEN = 300
BOOTP_FLAG_BROADCAST = 0x8000
CHADDR_LEN = 16

ZERO_ADDRESS = bytes(4)


class BootpOp(IntEnum):
    """BOOTP operation codes (the "op" header field)."""
    REQUEST = 1
    REPLY = 2


class DHCPMessageType(IntEnum):
    """DHCP message types (Option 53)."""
    DISCOVER = 1
    OFFER = 2
    REQUEST = 3
    DECLINE = 4
    ACK = 5
    NAK = 6
    RELEASE = 7
    INFORM = 8


class DHCPOption(IntEnum):
    """DHCP option tags used by the client."""
    PAD = 0
    SUBNET_MASK = 1
    ROUTER = 3
    DNS_SERVER = 6
    LOG_SERVER = 7
    HOSTNAME = 12
    DOMAIN_NAME = 15
    ROOT_PATH = 17
    VENDOR_ENCAP = 43
    REQUESTED_IP = 50
    LEASE_TIME = 51
    OPTION_OVERLOAD = 52
    MESSAGE_TYPE = 53
    SERVER_ID = 54
    PARAMETER_REQUEST = 55
    MESSAGE = 56
    MAX_MESSAGE_SIZE = 57
    RENEWAL_TIME = 58
    REBINDING_TIME = 59
    VENDOR_CLASS_ID = 60
    CLIENT_ID = 61
    TFTP_SERVER_NAME = 66
    BOOTFILE_NAME = 67
    # PXE Options
    CLIENT_ARCHITECTURE = 93
    CLIENT_NDI = 94
    CLIENT_UUID = 97
    # Etherboot encapsulated options
    EB_ENCAP = 175
    ISCSI_INITIATOR_IQN = 203
    # End
    END = 255


# Operation code for each message type
DHCP_OP = MappingProxyType({
    DHCPMessageType.DISCOVER: BootpOp.REQUEST,
    DHCPMessageType.OFFER: BootpOp.REPLY,
    DHCPMessageType.REQUEST: BootpOp.REQUEST,
    DHCPMessageType.DECLINE: BootpOp.REQUEST,
    DHCPMessageType.ACK: BootpOp.REPLY,
    DHCPMessageType.NAK: BootpOp.REPLY,
    DHCPMessageType.RELEASE: BootpOp.REQUEST,
    DHCPMessageType.INFORM: BootpOp.REQUEST,
})


def encap_tag(encapsulator: int, encapsulated: int) -> int:
    """Build the tag of an option carried inside another option."""
    return (encapsulator << 8) | encapsulated


def tag_encapsulator(tag: int) -> int:
    return tag >> 8


def tag_encapsulated(tag: int) -> int:
    return tag & 0xFF


DHCP_EB_PRIORITY = encap_tag(DHCPOption.EB_ENCAP, 0x01)
DHCP_EB_YIADDR = encap_tag(DHCPOption.EB_ENCAP, 0x02)
DHCP_EB_SIADDR = encap_tag(DHCPOption.EB_ENCAP, 0x03)
DHCP_EB_NO_PROXYDHCP = encap_tag(DHCPOption.EB_ENCAP, 0xB0)
DHCP_EB_BUS_ID = encap_tag(DHCPOption.EB_ENCAP, 0xB1)


def tag_name(tag: int) -> str:
    """Format an option tag for log messages."""
    if tag_encapsulator(tag):
        return f"{tag_encapsulator(tag)}.{tag_encapsulated(tag)}"
    if tag in DHCPOption._value2member_map_:
        return DHCPOption(tag).name
    return f"Unknown({tag})"


def message_type_name(msgtype: int) -> str:
    """Name a DHCP message type; 0 means a plain BOOTP packet."""
    if msgtype == 0:
        return "BOOTP"
    if msgtype in DHCPMessageType._value2member_map_:
        return f"DHCP{DHCPMessageType(msgtype).name}"
    return "DHCP<invalid>"


def decode_options(raw: bytes) -> dict[int, bytes]:
    """
    Decode a tag/length/value option block.

    PAD bytes are skipped and decoding stops at END or at the first
    truncated option. Repeated tags are concatenated (RFC 3396).

    Args:
        raw: Encoded options

    Returns:
        Option values keyed by tag, in order of first appearance
    """
    options: dict[int, bytes] = {}
    i = 0

    while i < len(raw):
        tag = raw[i]

        if tag == DHCPOption.PAD:
            i += 1
            continue

        if tag == DHCPOption.END:
            break

        if i + 1 >= len(raw):
            break

        length = raw[i + 1]
        if i + 2 + length > len(raw):
            break

        value = bytes(raw[i + 2:i + 2 + length])
        options[tag] = options.get(tag, b"") + value

        i += 2 + length

    return options


def encode_options(options: dict[int, bytes], terminate: bool = True) -> bytes:
    """
    Encode options as a tag/length/value block.

    Values longer than 255 bytes are split across repeated tags.

    Args:
        options: Option values keyed by tag
        terminate: Append the END tag

    Returns:
        Encoded options
    """
    encoded = bytearray()
    for tag, value in options.items():
        if not value:
            encoded += bytes([tag, 0])
            continue
        for start in range(0, len(value), 255):
            chunk = value[start:start + 255]
            encoded += bytes([tag, len(chunk)])
            encoded += chunk
    if terminate:
        encoded.append(DHCPOption.END)
    return bytes(encoded)


def _update(options: dict[int, bytes], tag: int, data: bytes | None):
    if data is None:
        options.pop(tag, None)
    else:
        options[tag] = bytes(data)


class DHCPOptions:
    """
    Keyed option store over a fixed-size region of a buffer.

    The region is decoded on first access. Every store re-encodes the
    whole block into the region, so the buffer always holds a valid,
    END-terminated option block.
    """

    def __init__(
        self,
        buffer: bytearray,
        offset: int = 0,
        max_len: int | None = None,
        length: int | None = None,
    ):
        """
        Args:
            buffer: Backing buffer
            offset: Start of the option region within the buffer
            max_len: Size of the option region (defaults to the rest of the buffer)
            length: Bytes of the region currently in use (defaults to max_len)
        """
        self.buffer = buffer
        self.offset = offset
        self.max_len = len(buffer) - offset if max_len is None else max_len
        self.len = self.max_len if length is None else length
        self._options: dict[int, bytes] | None = None

    def _decoded(self) -> dict[int, bytes]:
        if self._options is None:
            self._options = decode_options(
                self.buffer[self.offset:self.offset + self.len]
            )
        return self._options

    def fetch(self, tag: int) -> bytes | None:
        """
        Fetch an option value.

        Args:
            tag: Option tag, possibly encapsulated

        Returns:
            Option value, or None if the option is not present
        """
        outer = tag_encapsulator(tag)
        if outer:
            block = self._decoded().get(outer)
            if block is None:
                return None
            return decode_options(block).get(tag_encapsulated(tag))
        return self._decoded().get(tag)

    def store(self, tag: int, data: bytes | None):
        """
        Store an option value, or delete it when data is None.

        Raises:
            InsufficientSpaceError: The option block would overflow the region
        """
        if tag in (DHCPOption.PAD, DHCPOption.END):
            raise ValueError(f"cannot store option {tag_name(tag)}")

        options = dict(self._decoded())
        outer = tag_encapsulator(tag)
        if outer:
            inner = decode_options(options.get(outer, b""))
            _update(inner, tag_encapsulated(tag), data)
            _update(options, outer, encode_options(inner, terminate=False) if inner else None)
        else:
            _update(options, tag, data)

        encoded = encode_options(options)
        if len(encoded) > self.max_len:
            raise InsufficientSpaceError(
                f"storing option {tag_name(tag)} needs {len(encoded)} bytes, "
                f"{self.max_len} available"
            )

        start = self.offset
        self.buffer[start:start + len(encoded)] = encoded
        stale = self.len - len(encoded)
        if stale > 0:
            self.buffer[start + len(encoded):start + self.len] = bytes(stale)
        self.len = len(encoded)
        self._options = options

    def items(self) -> Iterator[tuple[int, bytes]]:
        return iter(self._decoded().items())

    def __contains__(self, tag: int) -> bool:
        return self.fetch(tag) is not None


# name: (offset, struct format)
HEADER_FIELDS = MappingProxyType({
    "op": (0, "B"),
    "htype": (1, "B"),
    "hlen": (2, "B"),
    "hops": (3, "B"),
    "xid": (4, "I"),
    "secs": (8, "H"),
    "flags": (10, "H"),
    "ciaddr": (12, "4s"),
    "yiaddr": (16, "4s"),
    "siaddr": (20, "4s"),
    "giaddr": (24, "4s"),
    "chaddr": (28, "16s"),
    "sname": (44, "64s"),
    "file": (108, "128s"),
    "magic": (236, "I"),
})

# Encapsulated options served from header fields
HEADER_OPTIONS = MappingProxyType({
    DHCP_EB_YIADDR: "yiaddr",
    DHCP_EB_SIADDR: "siaddr",
})


def _header_field(name: str) -> property:
    offset, fmt = HEADER_FIELDS[name]
    codec = struct.Struct("!" + fmt)

    def getter(self):
        return codec.unpack_from(self.buffer, offset)[0]

    def setter(self, value):
        codec.pack_into(self.buffer, offset, value)

    return property(getter, setter, doc=f"Raw {name} header field")


def _address_field(name: str) -> property:
    offset, _ = HEADER_FIELDS[name]

    def getter(self) -> IPv4Address:
        return IPv4Address(bytes(self.buffer[offset:offset + 4]))

    def setter(self, value):
        self.buffer[offset:offset + 4] = IPv4Address(value).packed

    return property(getter, setter, doc=f"{name} header field as an address")


class DHCPPacket:
    """
    A DHCP packet backed by a buffer.

    Usage:
        packet = DHCPPacket.from_bytes(data)
        if packet.is_valid():
            server_id = packet.fetch(DHCPOption.SERVER_ID)
    """

    op = _header_field("op")
    htype = _header_field("htype")
    hlen = _header_field("hlen")
    hops = _header_field("hops")
    xid = _header_field("xid")
    secs = _header_field("secs")
    flags = _header_field("flags")
    magic = _header_field("magic")
    ciaddr = _address_field("ciaddr")
    yiaddr = _address_field("yiaddr")
    siaddr = _address_field("siaddr")
    giaddr = _address_field("giaddr")

    def __init__(self, buffer: bytearray, length: int | None = None):
        """
        Args:
            buffer: Packet buffer; its size bounds the option block
            length: Bytes of the buffer holding packet data (defaults to all)
        """
        self.buffer = buffer
        self.data_len = len(buffer) if length is None else length
        self.options = DHCPOptions(
            buffer,
            offset=DHCP_HEADER_LEN,
            max_len=max(0, len(buffer) - DHCP_HEADER_LEN),
            length=max(0, self.data_len - DHCP_HEADER_LEN),
        )

    @classmethod
    def from_bytes(cls, data: bytes) -> "DHCPPacket":
        """Wrap a private copy of received packet data."""
        buffer = bytearray(data)
        return cls(buffer, len(buffer))

    @classmethod
    def parse(cls, data: bytes) -> "DHCPPacket":
        """
        Wrap received data, rejecting anything that is not a DHCP packet.

        Raises:
            MalformedPacketError: Data is truncated or lacks the magic cookie
        """
        packet = cls.from_bytes(data)
        if not packet.is_valid():
            raise MalformedPacketError(f"not a DHCP packet ({len(data)} bytes)")
        return packet

    @property
    def len(self) -> int:
        """Length of the header plus the encoded options."""
        return DHCP_HEADER_LEN + self.options.len

    @property
    def chaddr(self) -> bytes:
        """Client hardware address, trimmed to hlen."""
        offset, _ = HEADER_FIELDS["chaddr"]
        hlen = min(self.hlen, CHADDR_LEN)
        return bytes(self.buffer[offset:offset + hlen])

    @chaddr.setter
    def chaddr(self, value: bytes):
        offset, _ = HEADER_FIELDS["chaddr"]
        if len(value) > CHADDR_LEN:
            raise ValueError(f"hardware address too long: {value!r}")
        self.buffer[offset:offset + CHADDR_LEN] = bytes(value).ljust(CHADDR_LEN, b"\x00")
        self.hlen = len(value)

    @property
    def server_name(self) -> bytes:
        offset, _ = HEADER_FIELDS["sname"]
        return bytes(self.buffer[offset:offset + 64]).rstrip(b"\x00")

    @property
    def boot_file_name(self) -> bytes:
        offset, _ = HEADER_FIELDS["file"]
        return bytes(self.buffer[offset:offset + 128]).rstrip(b"\x00")

    def is_valid(self) -> bool:
        """Check the packet holds a full header and the DHCP magic cookie."""
        return (
            self.data_len >= DHCP_HEADER_LEN
            and len(self.buffer) >= DHCP_HEADER_LEN
            and self.magic == DHCP_MAGIC_COOKIE
        )

    @property
    def message_type(self) -> int:
        """Value of the message type option, or 0 for plain BOOTP."""
        value = self.fetch(DHCPOption.MESSAGE_TYPE)
        return value[0] if value else 0

    def fetch(self, tag: int) -> bytes | None:
        """Fetch an option; header-backed tags read the header."""
        field = HEADER_OPTIONS.get(tag)
        if field is not None:
            offset, _ = HEADER_FIELDS[field]
            return bytes(self.buffer[offset:offset + 4])
        return self.options.fetch(tag)

    def store(self, tag: int, data: bytes | None):
        """Store an option; header-backed tags write the header."""
        field = HEADER_OPTIONS.get(tag)
        if field is not None:
            data = ZERO_ADDRESS if data is None else bytes(data)
            if len(data) != 4:
                raise ValueError(f"{field} must be 4 bytes, got {len(data)}")
            offset, _ = HEADER_FIELDS[field]
            self.buffer[offset:offset + 4] = data
            return
        self.options.store(tag, data)

    def option_items(self) -> list[tuple[int, bytes]]:
        return list(self.options.items())

    def encode(self) -> bytes:
        """Packet bytes ready for transmission."""
        data = bytes(self.buffer[:self.len])
        if len(data) < BOOTP_MIN_LEN:
            data += b"\x00" * (BOOTP_MIN_LEN - len(data))
        return data

    def __repr__(self) -> str:
        if not self.is_valid():
            return f"{type(self).__name__}(<invalid, {self.data_len} bytes>)"
        return (
            f"{type(self).__name__}({message_type_name(self.message_type)} "
            f"xid=0x{self.xid:08x} yiaddr={self.yiaddr} siaddr={self.siaddr})"
        )
