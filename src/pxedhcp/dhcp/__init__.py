"""
DHCP client for network boot.

Acquires an IPv4 address and boot configuration with DHCP, merging in
ProxyDHCP replies, and publishes the result as settings blocks.

Copyright (c) 2025 DNS Science.io, an After Dark Systems, LLC company.
All rights reserved.
"""

from pxedhcp.dhcp.client import DHCPClient, DHCPLease
from pxedhcp.dhcp.config import DHCPConfig
from pxedhcp.dhcp.device import NetDevice
from pxedhcp.dhcp.errors import (
    DHCPCancelledError,
    DHCPError,
    DHCPTimeoutError,
    InsufficientSpaceError,
    MalformedOfferError,
    SettingsError,
)
from pxedhcp.dhcp.packet import DHCPMessageType, DHCPOption, DHCPPacket
from pxedhcp.dhcp.session import DHCPSession, SessionState, start_dhcp
from pxedhcp.dhcp.settings import DHCPSettings, SettingsRegistry

__all__ = [
    "DHCPClient",
    "DHCPConfig",
    "DHCPLease",
    "DHCPMessageType",
    "DHCPOption",
    "DHCPPacket",
    "DHCPSession",
    "DHCPSettings",
    "NetDevice",
    "SessionState",
    "SettingsRegistry",
    "start_dhcp",
    "DHCPError",
    "DHCPCancelledError",
    "DHCPTimeoutError",
    "InsufficientSpaceError",
    "MalformedOfferError",
    "SettingsError",
]
