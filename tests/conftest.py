"""
Shared fixtures: a deterministic event loop, an in-memory transport and
builders for server replies.
"""

import logging
from ipaddress import IPv4Address

import pytest

from pxedhcp.dhcp.config import DHCPConfig
from pxedhcp.dhcp.device import NetDevice
from pxedhcp.dhcp.packet import (
    DHCP_HEADER_LEN,
    DHCP_MAGIC_COOKIE,
    DHCP_MIN_LEN,
    BootpOp,
    DHCPOption,
    DHCPPacket,
)
from pxedhcp.dhcp.session import start_dhcp
from pxedhcp.dhcp.settings import SettingsRegistry

MAC = bytes.fromhex("aabbccddeeff")
XID = 0xCCDDEEFF
SERVER_ID = IPv4Address("10.0.0.1").packed


class FakeHandle:
    def __init__(self, when, callback, args):
        self.when = when
        self.callback = callback
        self.args = args
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class FakeLoop:
    """Event loop stand-in with a manually advanced clock."""

    def __init__(self):
        self.now = 0.0
        self.handles: list[FakeHandle] = []

    def time(self) -> float:
        return self.now

    def call_later(self, delay, callback, *args):
        handle = FakeHandle(self.now + delay, callback, args)
        self.handles.append(handle)
        return handle

    def pending(self) -> list[FakeHandle]:
        return [handle for handle in self.handles if not handle.cancelled]

    def _run_next(self, until: float | None) -> bool:
        due = [h for h in self.pending() if until is None or h.when <= until]
        if not due:
            return False
        handle = min(due, key=lambda h: h.when)
        self.handles.remove(handle)
        self.now = max(self.now, handle.when)
        handle.callback(*handle.args)
        return True

    def advance(self, seconds: float):
        """Move the clock forward, firing every callback that falls due."""
        target = self.now + seconds
        while self._run_next(target):
            pass
        self.now = target

    def run_until_idle(self, limit: int = 1000):
        """Fire callbacks in time order until none are pending."""
        for _ in range(limit):
            if not self._run_next(None):
                return
        raise AssertionError("loop did not go idle")


class FakeTransport:
    """Records sent packets; replies are injected with receive()."""

    def __init__(self, deliver):
        self.deliver = deliver
        self.sent: list[DHCPPacket] = []
        self.closed = False
        self.fail_sends = 0

    def alloc_buffer(self, size):
        return bytearray(size)

    def send(self, data):
        if self.fail_sends:
            self.fail_sends -= 1
            raise OSError("Network is unreachable")
        self.sent.append(DHCPPacket.from_bytes(data))

    def detach(self):
        self.deliver = None

    def close(self):
        self.closed = True

    def receive(self, data):
        if self.deliver is not None:
            self.deliver(data)


def make_reply(
    msgtype: int,
    xid: int = XID,
    yiaddr: str = "10.0.0.5",
    siaddr: str = "0.0.0.0",
    options: dict[int, bytes] | None = None,
    server_id: bytes | None = SERVER_ID,
) -> bytes:
    """Build a server reply as it would arrive on the wire."""
    packet = DHCPPacket(bytearray(DHCP_MIN_LEN), DHCP_HEADER_LEN)
    packet.op = BootpOp.REPLY
    packet.htype = 1
    packet.chaddr = MAC
    packet.xid = xid
    packet.yiaddr = yiaddr
    packet.siaddr = siaddr
    packet.magic = DHCP_MAGIC_COOKIE
    packet.store(DHCPOption.MESSAGE_TYPE, bytes([msgtype]))
    if server_id is not None:
        packet.store(DHCPOption.SERVER_ID, server_id)
    for tag, value in (options or {}).items():
        packet.store(tag, value)
    return packet.encode()


@pytest.fixture(autouse=True)
def reset_package_logger():
    yield
    logger = logging.getLogger("pxedhcp")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(logging.NOTSET)
    logger.propagate = True


@pytest.fixture
def loop():
    return FakeLoop()


@pytest.fixture
def netdev():
    return NetDevice("net0", MAC)


@pytest.fixture
def registry(netdev):
    registry = SettingsRegistry()
    registry.register(netdev.settings)
    return registry


@pytest.fixture
def config():
    return DHCPConfig()


@pytest.fixture
def transports():
    created: list[FakeTransport] = []

    def open_transport(loop, netdev, deliver):
        transport = FakeTransport(deliver)
        created.append(transport)
        return transport

    open_transport.created = created
    return open_transport


@pytest.fixture
def outcomes():
    return []


@pytest.fixture
def start_session(netdev, loop, registry, config, transports, outcomes):
    def start(**overrides):
        kwargs = dict(
            loop=loop,
            config=config,
            registry=registry,
            open_transport=transports,
            get_uuid=lambda: None,
        )
        kwargs.update(overrides)
        return start_dhcp(netdev, outcomes.append, **kwargs)

    return start
