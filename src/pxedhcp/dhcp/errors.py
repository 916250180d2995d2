"""
DHCP client errors.

Terminal session outcomes are reported to the session owner as one of
these exception instances; packet construction failures are raised
from the builder and handled by the session as a failed attempt.

Copyright (c) 2025 DNS Science.io, an After Dark Systems, LLC company.
All rights reserved.
"""

__all__ = [
    "DHCPError",
    "InsufficientSpaceError",
    "MalformedOfferError",
    "MalformedPacketError",
    "DHCPTimeoutError",
    "DHCPCancelledError",
    "SettingsError",
]


class DHCPError(Exception):
    """Base class for DHCP client errors"""
    pass


class InsufficientSpaceError(DHCPError):
    """Packet buffer cannot hold the header and options"""
    pass


class MalformedOfferError(DHCPError, ValueError):
    """DHCPOFFER is missing the server identifier or offered address"""
    pass


class MalformedPacketError(DHCPError):
    """Received datagram is too short or is not a DHCP packet"""
    pass


class DHCPTimeoutError(DHCPError, TimeoutError):
    """Retry budget exhausted without completing the exchange"""
    pass


class DHCPCancelledError(DHCPError):
    """Session was cancelled by its owner"""
    pass


class SettingsError(DHCPError):
    """Acquired settings could not be registered"""
    pass
