"""
DHCP session state machine.

A session configures one network device: it broadcasts DHCPDISCOVER,
collects DHCPOFFERs (keeping the best standard and the best ProxyDHCP
reply), sends DHCPREQUEST for the chosen offer, and on DHCPACK registers
the acquired configuration in the settings tree.

All progress happens inside three callbacks: timer_expired(), deliver()
and kill(). None of them blocks.

Copyright (c) 2025 DNS Science.io, an After Dark Systems, LLC company.
All rights reserved.
"""

import logging
import uuid
from enum import Enum
from typing import Any, Callable

from pxedhcp.dhcp.builder import create_dhcp_request, dhcp_xid
from pxedhcp.dhcp.config import DHCPConfig, get_config
from pxedhcp.dhcp.device import NetDevice, get_uuid
from pxedhcp.dhcp.errors import (
    DHCPCancelledError,
    DHCPTimeoutError,
    InsufficientSpaceError,
    MalformedOfferError,
    SettingsError,
)
from pxedhcp.dhcp.packet import DHCPMessageType, message_type_name
from pxedhcp.dhcp.settings import (
    DHCP_SETTINGS_NAME,
    PROXYDHCP_SETTINGS_NAME,
    DHCPSettings,
    SettingsRegistry,
    get_registry,
)
from pxedhcp.dhcp.timer import RetryTimer
from pxedhcp.dhcp.transport import UDPTransport, open_udp_transport

logger = logging.getLogger(__name__)

# Seconds to keep collecting offers in case a ProxyDHCP server answers
PROXYDHCP_WAIT_TIME = 1.0


class SessionState(Enum):
    """DHCP session states."""
    DISCOVERING = "discovering"
    REQUESTING = "requesting"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in (SessionState.SUCCEEDED, SessionState.FAILED)


# Message type accepted in each active state
EXPECTED_MESSAGE_TYPE = {
    SessionState.DISCOVERING: DHCPMessageType.OFFER,
    SessionState.REQUESTING: DHCPMessageType.ACK,
}


class DHCPSession:
    """
    A DHCP session on one network device.

    Create sessions with start_dhcp(). The owner callback is invoked
    exactly once, with None on success or the error that ended the
    session.
    """

    def __init__(
        self,
        netdev: NetDevice,
        on_done: Callable[[Exception | None], None] | None,
        *,
        loop: Any,
        config: DHCPConfig,
        registry: SettingsRegistry,
        get_uuid: Callable[[], uuid.UUID | None] = get_uuid,
    ):
        self.netdev = netdev
        self.on_done = on_done
        self.loop = loop
        self.config = config
        self.registry = registry
        self.get_uuid = get_uuid

        self.state = SessionState.DISCOVERING
        self.start_time = loop.time()
        self.xid = dhcp_xid(netdev)
        self.response: DHCPSettings | None = None
        self.proxy_response: DHCPSettings | None = None
        self.error: Exception | None = None
        self.transport: UDPTransport | None = None
        self.timer = RetryTimer(
            loop,
            self.timer_expired,
            min_timeout=config.min_timeout,
            max_timeout=config.max_timeout,
            max_attempts=config.max_attempts,
        )

    @property
    def finished(self) -> bool:
        return self.state.terminal

    @property
    def elapsed(self) -> float:
        """Seconds since the session started."""
        return self.loop.time() - self.start_time

    def __repr__(self) -> str:
        return f"DHCPSession({self.netdev.name}, {self.state.value}, xid=0x{self.xid:08x})"

    def send_request(self):
        """
        Send the packet for the current state.

        The retry timer is started first, so a packet that cannot be
        built or sent is simply retried when the timer fires.
        """
        self.timer.start()

        offer = self.response if self.state is SessionState.REQUESTING else None
        msgtype = DHCPMessageType.REQUEST if offer is not None else DHCPMessageType.DISCOVER
        try:
            buffer = self.transport.alloc_buffer(self.config.buffer_len)
            packet = create_dhcp_request(
                self.netdev, buffer, offer, self.config, self.get_uuid
            )
            logger.info(
                f"{self.netdev.name}: sending {message_type_name(msgtype)} "
                f"(xid 0x{self.xid:08x}, attempt {self.timer.attempts})"
            )
            self.transport.send(packet.encode())
        except (InsufficientSpaceError, MalformedOfferError, OSError, MemoryError) as e:
            logger.warning(
                f"{self.netdev.name}: could not send {message_type_name(msgtype)}: {e}"
            )

    def timer_expired(self, fail: bool):
        """Retransmit, or give up once the attempt budget is spent."""
        if self.finished:
            return
        if fail:
            self.finish(DHCPTimeoutError(
                f"no DHCP reply on {self.netdev.name} after {self.timer.attempts} attempts"
            ))
            return
        self.send_request()

    def deliver(self, data: bytes):
        """
        Handle a received datagram.

        Raises:
            MemoryError: The reply could not be copied
        """
        if self.finished:
            return

        response = DHCPSettings(data)
        packet = response.packet

        if not packet.is_valid():
            logger.debug(f"{self.netdev.name}: discarding {len(data)}-byte non-DHCP datagram")
            return

        if packet.xid != self.xid:
            logger.debug(
                f"{self.netdev.name}: discarding reply with xid 0x{packet.xid:08x} "
                f"(expected 0x{self.xid:08x})"
            )
            return

        msgtype = packet.message_type
        if msgtype != EXPECTED_MESSAGE_TYPE[self.state]:
            logger.debug(
                f"{self.netdev.name}: discarding {message_type_name(msgtype)} "
                f"while {self.state.value}"
            )
            return

        logger.info(
            f"{self.netdev.name}: received {message_type_name(msgtype)} "
            f"{'ProxyDHCP' if response.is_proxy else f'for {packet.yiaddr}'} "
            f"(priority {response.priority})"
        )
        self._merge(response)

        if self.state is SessionState.DISCOVERING:
            self._check_offers()
        else:
            self._check_ack(response)

    def _merge(self, response: DHCPSettings):
        slot = "proxy_response" if response.is_proxy else "response"
        stored = getattr(self, slot)
        stored_priority = stored.priority if stored is not None else 0

        if response.priority >= stored_priority:
            setattr(self, slot, response)
        else:
            logger.debug(
                f"{self.netdev.name}: ignoring reply with priority {response.priority} "
                f"(holding priority {stored_priority})"
            )

    def _check_offers(self):
        if self.response is None:
            return

        no_proxydhcp = self.response.no_proxydhcp
        if self.elapsed <= PROXYDHCP_WAIT_TIME and not no_proxydhcp:
            logger.debug(f"{self.netdev.name}: waiting for ProxyDHCP offers")
            return

        logger.info(
            f"{self.netdev.name}: requesting {self.response.packet.yiaddr}"
            f"{' (ProxyDHCP disabled)' if no_proxydhcp else ''}"
        )
        self.timer.stop()
        self.state = SessionState.REQUESTING
        self.send_request()

    def _check_ack(self, response: DHCPSettings):
        # Only the server that leases the address can complete the session
        if response.is_proxy:
            return

        if self.response is not response:
            logger.debug(
                f"{self.netdev.name}: accepting DHCPACK over stored "
                f"priority {self.response.priority} reply"
            )
            self.response = response

        if response.no_proxydhcp and self.proxy_response is not None:
            logger.debug(f"{self.netdev.name}: discarding ProxyDHCP reply")
            self.proxy_response = None

        try:
            self._register()
        except SettingsError as e:
            self.finish(e)
            return
        self.finish(None)

    def _register(self):
        if self.proxy_response is not None:
            self.proxy_response.name = PROXYDHCP_SETTINGS_NAME
            self.registry.replace(self.proxy_response)
        self.response.name = DHCP_SETTINGS_NAME
        self.registry.replace(self.response, self.netdev.settings)

    def kill(self):
        """Cancel the session."""
        if self.finished:
            return
        self.finish(DHCPCancelledError(f"DHCP on {self.netdev.name} cancelled"))

    def finish(self, error: Exception | None = None):
        """
        End the session and report the outcome to the owner.

        Args:
            error: Error that ended the session, or None on success
        """
        if self.finished:
            return

        # Cut off further events before releasing anything
        on_done, self.on_done = self.on_done, None
        transport, self.transport = self.transport, None
        if transport is not None:
            transport.detach()

        self.state = SessionState.FAILED if error is not None else SessionState.SUCCEEDED
        self.error = error

        self.timer.stop()
        if transport is not None:
            transport.close()

        if error is None:
            logger.info(f"{self.netdev.name}: DHCP complete in {self.elapsed:.2f}s")
        else:
            logger.info(f"{self.netdev.name}: DHCP failed: {error}")

        if on_done is not None:
            on_done(error)


def start_dhcp(
    netdev: NetDevice,
    on_done: Callable[[Exception | None], None] | None,
    *,
    loop: Any,
    config: DHCPConfig | None = None,
    registry: SettingsRegistry | None = None,
    open_transport: Callable[..., UDPTransport] = open_udp_transport,
    get_uuid: Callable[[], uuid.UUID | None] = get_uuid,
) -> DHCPSession:
    """
    Start DHCP on a network device.

    Args:
        netdev: Device to configure
        on_done: Called once with None on success or the terminal error
        loop: Event loop providing call_later() and time()
        config: Client configuration (defaults to the global one)
        registry: Settings tree to register results in (defaults to the global one)
        open_transport: Factory for the datagram endpoint
        get_uuid: Source of the client UUID

    Returns:
        The running session

    Raises:
        OSError: The transport could not be opened; on_done is not called
    """
    session = DHCPSession(
        netdev,
        on_done,
        loop=loop,
        config=config or get_config(),
        registry=registry or get_registry(),
        get_uuid=get_uuid,
    )
    logger.info(f"Starting DHCP on {netdev.name} ({netdev.mac}, xid 0x{session.xid:08x})")

    try:
        session.transport = open_transport(loop, netdev, session.deliver)
    except OSError as e:
        session.on_done = None
        session.finish(e)
        raise

    session.timer.start_nodelay()
    return session
