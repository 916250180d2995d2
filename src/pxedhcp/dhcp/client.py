"""
DHCP client facade.

Runs a DHCP session on the asyncio event loop and summarizes the
acquired configuration as a lease.

Copyright (c) 2025 DNS Science.io, an After Dark Systems, LLC company.
All rights reserved.
"""

import asyncio
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from ipaddress import IPv4Address
from typing import Any, Callable

from pxedhcp.dhcp.config import DHCPConfig, get_config
from pxedhcp.dhcp.device import NetDevice, format_mac, get_uuid
from pxedhcp.dhcp.packet import DHCPOption, ZERO_ADDRESS
from pxedhcp.dhcp.session import start_dhcp
from pxedhcp.dhcp.settings import DHCPSettings, SettingsRegistry, fetchf, get_registry
from pxedhcp.dhcp.transport import UDPTransport, open_udp_transport


def _address_list(data: bytes | None) -> list[str]:
    if not data:
        return []
    return [str(IPv4Address(data[i:i + 4])) for i in range(0, len(data) - 3, 4)]


def _int_or_none(text: str | None) -> int | None:
    return int(text) if text is not None else None


@dataclass
class DHCPLease:
    """Represents a DHCP lease."""
    ip_address: str | None = None
    subnet_mask: str | None = None
    gateway: str | None = None
    dns_servers: list[str] = field(default_factory=list)
    domain_name: str | None = None
    hostname: str | None = None

    # Lease timing
    lease_time: int | None = None  # seconds

    # Server info
    server_id: str | None = None

    # PXE/Boot info
    next_server: str | None = None  # siaddr from DHCP packet
    tftp_server: str | None = None
    bootfile: str | None = None
    root_path: str | None = None
    proxy_dhcp: bool = False

    # Timestamps
    obtained_at: datetime | None = None
    expires_at: datetime | None = None

    # Transaction
    transaction_id: int | None = None
    client_mac: str | None = None

    # All options received
    all_options: dict[int, bytes] = field(default_factory=dict)
    proxy_options: dict[int, bytes] = field(default_factory=dict)

    @classmethod
    def from_settings(
        cls,
        dhcp: DHCPSettings,
        proxy: DHCPSettings | None = None,
    ) -> "DHCPLease":
        """
        Summarize an acknowledged DHCP reply and an optional ProxyDHCP reply.

        Boot parameters offered by the ProxyDHCP server take precedence
        over those in the DHCP reply.
        """
        packet = dhcp.packet
        boot_sources = [proxy, dhcp] if proxy is not None else [dhcp]

        def boot_setting(name: str) -> str | None:
            for settings in boot_sources:
                value = fetchf(settings, name)
                if value:
                    return value
            return None

        def boot_header(settings: DHCPSettings) -> str | None:
            if settings.packet.siaddr.packed != ZERO_ADDRESS:
                return str(settings.packet.siaddr)
            return None

        next_server = None
        for settings in boot_sources:
            next_server = boot_header(settings)
            if next_server:
                break

        bootfile = boot_setting("filename")
        if bootfile is None:
            for settings in boot_sources:
                if settings.packet.boot_file_name:
                    bootfile = settings.packet.boot_file_name.decode('utf-8', errors='ignore')
                    break

        routers = _address_list(dhcp.fetch(DHCPOption.ROUTER))
        lease_time = _int_or_none(fetchf(dhcp, "lease-time"))
        obtained_at = datetime.now()

        return cls(
            ip_address=str(packet.yiaddr),
            subnet_mask=fetchf(dhcp, "netmask"),
            gateway=routers[0] if routers else None,
            dns_servers=_address_list(dhcp.fetch(DHCPOption.DNS_SERVER)),
            domain_name=fetchf(dhcp, "domain"),
            hostname=fetchf(dhcp, "hostname"),
            lease_time=lease_time,
            server_id=fetchf(dhcp, "server-id"),
            next_server=next_server,
            tftp_server=boot_setting("tftp-server"),
            bootfile=bootfile,
            root_path=boot_setting("root-path"),
            proxy_dhcp=proxy is not None,
            obtained_at=obtained_at,
            expires_at=obtained_at + timedelta(seconds=lease_time) if lease_time else None,
            transaction_id=packet.xid,
            client_mac=format_mac(packet.chaddr) if packet.chaddr else None,
            all_options=dict(packet.option_items()),
            proxy_options=dict(proxy.packet.option_items()) if proxy is not None else {},
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "ip_address": self.ip_address,
            "subnet_mask": self.subnet_mask,
            "gateway": self.gateway,
            "dns_servers": self.dns_servers,
            "domain_name": self.domain_name,
            "hostname": self.hostname,
            "lease_time": self.lease_time,
            "server_id": self.server_id,
            "next_server": self.next_server,
            "tftp_server": self.tftp_server,
            "bootfile": self.bootfile,
            "root_path": self.root_path,
            "proxy_dhcp": self.proxy_dhcp,
            "obtained_at": self.obtained_at.isoformat() if self.obtained_at else None,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
            "transaction_id": self.transaction_id,
            "client_mac": self.client_mac,
            "options": {str(tag): value.hex() for tag, value in self.all_options.items()},
            "proxy_options": {str(tag): value.hex() for tag, value in self.proxy_options.items()},
        }


class DHCPClient:
    """
    DHCP client for network boot configuration.

    Usage:
        client = DHCPClient()
        lease = asyncio.run(client.obtain(NetDevice.from_interface("eth0")))
        print(f"Got IP: {lease.ip_address}")
    """

    def __init__(
        self,
        config: DHCPConfig | None = None,
        registry: SettingsRegistry | None = None,
        open_transport: Callable[..., UDPTransport] = open_udp_transport,
        get_uuid: Callable[[], uuid.UUID | None] = get_uuid,
    ):
        """
        Initialize DHCP client.

        Args:
            config: Client configuration (defaults to the global one)
            registry: Settings tree for acquired settings (defaults to the global one)
            open_transport: Factory for the datagram endpoint
            get_uuid: Source of the client UUID
        """
        self.config = config or get_config()
        self.registry = registry or get_registry()
        self.open_transport = open_transport
        self.get_uuid = get_uuid

    async def obtain(self, netdev: NetDevice) -> DHCPLease:
        """
        Configure a device with DHCP.

        Args:
            netdev: Device to configure

        Returns:
            Lease describing the acquired configuration

        Raises:
            DHCPTimeoutError: No usable reply within the retry budget
            SettingsError: Acquired settings could not be registered
            OSError: The client socket could not be opened
        """
        loop = asyncio.get_running_loop()
        done = loop.create_future()

        def on_done(error: Exception | None):
            if not done.done():
                done.set_result(error)

        if netdev.settings.parent is None:
            self.registry.register(netdev.settings)

        session = start_dhcp(
            netdev,
            on_done,
            loop=loop,
            config=self.config,
            registry=self.registry,
            open_transport=self.open_transport,
            get_uuid=self.get_uuid,
        )

        try:
            error = await done
        except asyncio.CancelledError:
            session.kill()
            raise

        if error is not None:
            raise error
        return DHCPLease.from_settings(session.response, session.proxy_response)
