"""
DHCP packet construction.

Builds DHCPDISCOVER and DHCPREQUEST packets for a network device into a
caller-supplied buffer.

Copyright (c) 2025 DNS Science.io, an After Dark Systems, LLC company.
All rights reserved.
"""

import logging
import struct
import uuid
from typing import Callable

from pxedhcp.dhcp.config import DHCPConfig, get_config
from pxedhcp.dhcp.device import NetDevice, get_uuid
from pxedhcp.dhcp.errors import InsufficientSpaceError, MalformedOfferError
from pxedhcp.dhcp.features import encode_features
from pxedhcp.dhcp.packet import (
    BOOTP_FLAG_BROADCAST,
    CHADDR_LEN,
    DHCP_EB_BUS_ID,
    DHCP_EB_YIADDR,
    DHCP_HEADER_LEN,
    DHCP_MAGIC_COOKIE,
    DHCP_OP,
    ZERO_ADDRESS,
    DHCPMessageType,
    DHCPOption,
    DHCPPacket,
    encode_options,
    message_type_name,
)
from pxedhcp.dhcp.settings import Settings

logger = logging.getLogger(__name__)


def dhcp_xid(netdev: NetDevice) -> int:
    """
    Transaction ID for a device.

    Taken from the trailing four bytes of the link-layer address, so
    replies can be matched without keeping any extra state.
    """
    return int.from_bytes(netdev.ll_addr[-4:], "big")


def create_dhcp_packet(
    netdev: NetDevice,
    msgtype: DHCPMessageType,
    options: bytes,
    buffer: bytearray,
) -> DHCPPacket:
    """
    Create a DHCP packet in a buffer.

    Args:
        netdev: Device the packet is sent from
        msgtype: DHCP message type
        options: Encoded initial options, END-terminated
        buffer: Buffer to build the packet in

    Returns:
        Packet wrapping the buffer

    Raises:
        InsufficientSpaceError: Buffer too small for the header and options
    """
    if len(buffer) < DHCP_HEADER_LEN + len(options):
        raise InsufficientSpaceError(
            f"{message_type_name(msgtype)} needs {DHCP_HEADER_LEN + len(options)} bytes, "
            f"buffer holds {len(buffer)}"
        )

    buffer[:] = bytes(len(buffer))
    buffer[DHCP_HEADER_LEN:DHCP_HEADER_LEN + len(options)] = options
    packet = DHCPPacket(buffer, DHCP_HEADER_LEN + len(options))

    packet.op = DHCP_OP[msgtype]
    packet.htype = netdev.ll_protocol.ll_proto
    packet.xid = dhcp_xid(netdev)
    packet.magic = DHCP_MAGIC_COOKIE

    if len(netdev.ll_addr) <= CHADDR_LEN:
        packet.chaddr = netdev.ll_addr
    else:
        # Address does not fit in chaddr; ask for a broadcast reply instead
        packet.hlen = 0
        packet.flags = BOOTP_FLAG_BROADCAST

    packet.store(DHCPOption.MESSAGE_TYPE, bytes([msgtype]))
    return packet


def encode_request_options(config: DHCPConfig) -> bytes:
    """Options sent with every DISCOVER and REQUEST."""
    return encode_options({
        DHCPOption.MAX_MESSAGE_SIZE: struct.pack("!H", config.max_message_size),
        DHCPOption.VENDOR_CLASS_ID: config.vendor_class_id.encode('ascii'),
        DHCPOption.CLIENT_ARCHITECTURE: struct.pack("!H", config.client_architecture),
        DHCPOption.CLIENT_NDI: bytes(config.client_ndi),
        DHCPOption.PARAMETER_REQUEST: bytes(config.requested_options),
    })


def create_dhcp_request(
    netdev: NetDevice,
    buffer: bytearray,
    offer: Settings | DHCPPacket | None = None,
    config: DHCPConfig | None = None,
    get_uuid: Callable[[], uuid.UUID | None] = get_uuid,
) -> DHCPPacket:
    """
    Create a DHCPDISCOVER, or a DHCPREQUEST for an offer.

    Args:
        netdev: Device the packet is sent from
        buffer: Buffer to build the packet in
        offer: DHCPOFFER being accepted; None builds a DHCPDISCOVER
        config: Client configuration (defaults to the global one)
        get_uuid: Source of the client UUID

    Returns:
        Packet wrapping the buffer

    Raises:
        InsufficientSpaceError: Buffer too small for the packet
        MalformedOfferError: Offer lacks a server identifier or address
    """
    config = config or get_config()
    msgtype = DHCPMessageType.DISCOVER if offer is None else DHCPMessageType.REQUEST

    packet = create_dhcp_packet(netdev, msgtype, encode_request_options(config), buffer)

    if offer is not None:
        server_id = offer.fetch(DHCPOption.SERVER_ID)
        if server_id is None or len(server_id) != 4:
            raise MalformedOfferError("DHCPOFFER carries no valid server identifier")
        requested_ip = offer.fetch(DHCP_EB_YIADDR)
        if not requested_ip or requested_ip == ZERO_ADDRESS:
            raise MalformedOfferError("DHCPOFFER carries no offered address")
        packet.store(DHCPOption.SERVER_ID, server_id)
        packet.store(DHCPOption.REQUESTED_IP, requested_ip)

    packet.store(DHCPOption.EB_ENCAP, encode_features(config.features))

    desc = netdev.desc
    packet.store(DHCP_EB_BUS_ID, struct.pack("!BHH", desc.bus_type, desc.vendor, desc.device))

    packet.store(
        DHCPOption.CLIENT_ID,
        bytes([netdev.ll_protocol.ll_proto]) + netdev.ll_addr,
    )

    client_uuid = get_uuid()
    if client_uuid is not None:
        packet.store(DHCPOption.CLIENT_UUID, b"\x00" + client_uuid.bytes)

    logger.debug(f"Built {packet!r} ({packet.len} bytes) for {netdev.name}")
    return packet
