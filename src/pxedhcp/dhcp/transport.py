"""
UDP transport for DHCP sessions.

A non-blocking broadcast socket on the DHCP client port, read from the
event loop.

Copyright (c) 2025 DNS Science.io, an After Dark Systems, LLC company.
All rights reserved.
"""

import logging
import socket
from typing import Any, Callable

from pxedhcp.dhcp.device import NetDevice
from pxedhcp.dhcp.packet import DHCP_CLIENT_PORT, DHCP_SERVER_PORT

logger = logging.getLogger(__name__)

SO_BINDTODEVICE = getattr(socket, "SO_BINDTODEVICE", 25)
BROADCAST_ADDRESS = "255.255.255.255"
MAX_DATAGRAM = 4096


def create_socket(interface: str | None = None) -> socket.socket:
    """Create UDP socket for DHCP."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM, socket.IPPROTO_UDP)
    try:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_BROADCAST, 1)

        # Bind to specific interface if provided
        if interface:
            try:
                sock.setsockopt(socket.SOL_SOCKET, SO_BINDTODEVICE, interface.encode())
                logger.debug(f"Bound to interface: {interface}")
            except OSError as e:
                logger.warning(f"Could not bind to interface {interface}: {e}")

        sock.bind(('0.0.0.0', DHCP_CLIENT_PORT))
        sock.setblocking(False)
    except OSError:
        sock.close()
        raise
    return sock


class UDPTransport:
    """
    Datagram endpoint between a session and the network.

    Received datagrams are passed to deliver() until detach() is called.
    """

    def __init__(
        self,
        loop: Any,
        sock: socket.socket,
        deliver: Callable[[bytes], None] | None,
        destination: tuple[str, int] = (BROADCAST_ADDRESS, DHCP_SERVER_PORT),
    ):
        self.loop = loop
        self.sock: socket.socket | None = sock
        self.deliver = deliver
        self.destination = destination
        loop.add_reader(sock.fileno(), self._readable)

    def _readable(self):
        if self.sock is None:
            return
        try:
            data, addr = self.sock.recvfrom(MAX_DATAGRAM)
        except (BlockingIOError, InterruptedError):
            return
        except OSError as e:
            logger.warning(f"Receive failed: {e}")
            return

        logger.debug(f"Received {len(data)} bytes from {addr[0]}:{addr[1]}")
        if self.deliver is not None:
            self.deliver(data)

    def alloc_buffer(self, size: int) -> bytearray:
        """Allocate a zeroed buffer for an outgoing packet."""
        return bytearray(size)

    def send(self, data: bytes):
        """
        Broadcast a datagram to the server port.

        Raises:
            OSError: The transport is closed or the send failed
        """
        if self.sock is None:
            raise OSError("transport is closed")
        self.sock.sendto(data, self.destination)
        logger.debug(f"Sent {len(data)} bytes to {self.destination[0]}:{self.destination[1]}")

    def detach(self):
        """Stop delivering received datagrams."""
        self.deliver = None

    def close(self):
        if self.sock is None:
            return
        self.loop.remove_reader(self.sock.fileno())
        self.sock.close()
        self.sock = None


def open_udp_transport(
    loop: Any,
    netdev: NetDevice,
    deliver: Callable[[bytes], None],
) -> UDPTransport:
    """
    Open the DHCP client socket on a device.

    Raises:
        PermissionError: Binding the client port needs privileges
        OSError: The socket could not be created or bound
    """
    sock = create_socket(netdev.name)
    try:
        return UDPTransport(loop, sock, deliver)
    except Exception:
        sock.close()
        raise
