"""
pxedhcp - DHCP/BOOTP client session engine for network boot

Acquires an IP address and boot configuration from a DHCP server and
an optional ProxyDHCP server, and exposes the result through a
settings tree.

Copyright (c) 2025 DNS Science.io, an After Dark Systems, LLC company.
All rights reserved.
"""

__version__ = "0.1.0"
__author__ = "DNS Science.io"
__copyright__ = "Copyright (c) 2025 DNS Science.io, an After Dark Systems, LLC company"
