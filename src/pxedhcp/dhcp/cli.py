"""
CLI commands for DHCP operations.

Runs a network-boot DHCP session on an interface, and builds or decodes
packets offline for inspecting what the client sends and receives.

Copyright (c) 2025 DNS Science.io, an After Dark Systems, LLC company.
All rights reserved.
"""

import asyncio
import dataclasses
import json
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

from pxedhcp.dhcp.builder import create_dhcp_request
from pxedhcp.dhcp.client import DHCPClient, DHCPLease
from pxedhcp.dhcp.config import get_config
from pxedhcp.dhcp.device import LL_PROTOCOLS, NetDevice, parse_mac
from pxedhcp.dhcp.errors import DHCPError, MalformedPacketError
from pxedhcp.dhcp.packet import (
    DHCPOption,
    DHCPPacket,
    decode_options,
    encap_tag,
    message_type_name,
    tag_name,
)
from pxedhcp.dhcp.settings import SETTINGS, DHCPSettings
from pxedhcp.logging_config import raise_verbosity

console = Console()

# Settings that describe how to format each option tag
SETTINGS_BY_TAG = {setting.tag: setting for setting in SETTINGS.values()}


@click.group()
def dhcp():
    """DHCP client operations for network boot.

    Acquires an address and boot configuration the way network-boot
    firmware does, including ProxyDHCP replies.

    \b
    Examples:
        # Obtain a lease with full debug output
        pxedhcp dhcp obtain -v -i eth0

        # Show the DHCPDISCOVER that would be sent
        pxedhcp dhcp packet -m 52:54:00:12:34:56

        # Decode a captured reply
        pxedhcp dhcp decode offer.bin

    Note: obtain requires root privileges.
    """
    pass


def format_value(tag: int, value: bytes) -> str:
    """Format an option value for display."""
    setting = SETTINGS_BY_TAG.get(tag)
    if setting is not None:
        try:
            return setting.format(value)
        except ValueError:
            pass
    if tag == DHCPOption.MESSAGE_TYPE and value:
        return message_type_name(value[0])
    if value and all(32 <= b < 127 for b in value):
        return value.decode('ascii')
    return value.hex() or "(empty)"


def display_lease(lease: DHCPLease, verbose: bool = False):
    """Display lease information."""
    table = Table(title="DHCP Lease", show_header=False)
    table.add_column("Field", style="cyan")
    table.add_column("Value")

    table.add_row("IP Address", lease.ip_address or "N/A")
    table.add_row("Subnet Mask", lease.subnet_mask or "N/A")
    table.add_row("Gateway", lease.gateway or "N/A")
    table.add_row("DNS Servers", ", ".join(lease.dns_servers) if lease.dns_servers else "N/A")
    table.add_row("Domain", lease.domain_name or "N/A")
    table.add_row("Hostname", lease.hostname or "N/A")

    table.add_row("", "")  # Spacer
    table.add_row("Lease Time", f"{lease.lease_time}s ({lease.lease_time // 3600}h)" if lease.lease_time else "N/A")
    table.add_row("Server ID", lease.server_id or "N/A")

    if lease.tftp_server or lease.bootfile or lease.next_server or lease.root_path:
        table.add_row("", "")  # Spacer
        table.add_row("[bold]PXE Boot Info[/bold]", "[green]via ProxyDHCP[/green]" if lease.proxy_dhcp else "")
        table.add_row("Next Server (siaddr)", lease.next_server or "N/A")
        table.add_row("TFTP Server", lease.tftp_server or "N/A")
        table.add_row("Boot File", lease.bootfile or "N/A")
        if lease.root_path:
            table.add_row("Root Path", lease.root_path)

    if verbose:
        table.add_row("", "")  # Spacer
        table.add_row("Transaction ID", f"0x{lease.transaction_id:08x}" if lease.transaction_id is not None else "N/A")
        table.add_row("Client MAC", lease.client_mac or "N/A")
        for tag, value in lease.all_options.items():
            table.add_row(f"Option {tag_name(tag)}", format_value(tag, value))
        for tag, value in lease.proxy_options.items():
            table.add_row(f"Proxy option {tag_name(tag)}", format_value(tag, value))

    console.print(table)


def display_packet(packet: DHCPPacket):
    """Display a packet's header and options."""
    header = Table(title=message_type_name(packet.message_type), show_header=False)
    header.add_column("Field", style="cyan")
    header.add_column("Value")

    header.add_row("op / htype / hlen", f"{packet.op} / {packet.htype} / {packet.hlen}")
    header.add_row("xid", f"0x{packet.xid:08x}")
    header.add_row("flags", f"0x{packet.flags:04x}")
    header.add_row("ciaddr", str(packet.ciaddr))
    header.add_row("yiaddr", str(packet.yiaddr))
    header.add_row("siaddr", str(packet.siaddr))
    header.add_row("giaddr", str(packet.giaddr))
    header.add_row("chaddr", packet.chaddr.hex(":") or "(none)")
    if packet.server_name:
        header.add_row("sname", packet.server_name.decode('utf-8', errors='ignore'))
    if packet.boot_file_name:
        header.add_row("file", packet.boot_file_name.decode('utf-8', errors='ignore'))
    console.print(header)

    options = Table(title="Options")
    options.add_column("Tag", style="cyan")
    options.add_column("Len", justify="right")
    options.add_column("Value")

    for tag, value in packet.option_items():
        options.add_row(tag_name(tag), str(len(value)), format_value(tag, value))
        if tag == DHCPOption.EB_ENCAP:
            for inner, inner_value in decode_options(value).items():
                full_tag = encap_tag(tag, inner)
                options.add_row(f"  {tag_name(full_tag)}", str(len(inner_value)), format_value(full_tag, inner_value))

    console.print(options)


def read_packet(path: str, as_hex: bool) -> bytes:
    """Read a captured packet as raw bytes or hex text."""
    data = Path(path).read_bytes()
    if as_hex:
        return bytes.fromhex(data.decode('ascii'))
    return data


@dhcp.command()
@click.option("--interface", "-i", help="Network interface to use")
@click.option("--mac", "-m", help="Override MAC address (xx:xx:xx:xx:xx:xx)")
@click.option("--verbose", "-v", is_flag=True, help="Verbose debug output")
@click.option("--timeout", "-t", type=float, help="Maximum retransmission timeout in seconds")
@click.option("--retries", "-r", type=int, help="Transmissions per phase before giving up")
@click.option("--json-output", "json_out", is_flag=True, help="Output as JSON")
def obtain(
    interface: str | None,
    mac: str | None,
    verbose: bool,
    timeout: float | None,
    retries: int | None,
    json_out: bool,
):
    """Obtain a DHCP lease (full DORA process).

    Performs complete DHCP handshake:
    - DHCPDISCOVER (broadcast)
    - DHCPOFFER (from DHCP and ProxyDHCP servers)
    - DHCPREQUEST (broadcast)
    - DHCPACK (from server)

    \b
    Examples:
        # Obtain lease with verbose output
        pxedhcp dhcp obtain -v -i eth0

        # Give up sooner
        pxedhcp dhcp obtain -i eth0 -r 3 -t 2
    """
    config = get_config()
    interface = interface or config.interface
    if not interface:
        raise click.UsageError("No interface given; use -i or set PXEDHCP_INTERFACE")

    overrides = {}
    if timeout is not None:
        overrides["max_timeout"] = timeout
    if retries is not None:
        overrides["max_attempts"] = retries
    config = dataclasses.replace(
        config,
        interface=interface,
        mac_address=mac or config.mac_address,
        **overrides,
    )

    if verbose:
        raise_verbosity("DEBUG")

    try:
        netdev = NetDevice.from_interface(interface, config.mac_address)
    except (OSError, ValueError) as e:
        console.print(f"[red]Error: Cannot use interface {interface}: {e}[/red]")
        sys.exit(1)

    if not json_out and not verbose:
        console.print(f"[dim]Starting DHCP on {interface} ({netdev.mac})...[/dim]")

    client = DHCPClient(config=config)
    try:
        lease = asyncio.run(client.obtain(netdev))
    except PermissionError:
        console.print("[red]Error: Permission denied. Run as root or with CAP_NET_BIND_SERVICE capability.[/red]")
        sys.exit(1)
    except (DHCPError, OSError) as e:
        if json_out:
            click.echo(json.dumps({"success": False, "error": str(e)}))
        else:
            console.print(f"[red]Failed to obtain DHCP lease: {e}[/red]")
        sys.exit(1)

    if json_out:
        output = {"success": True, "lease": lease.to_dict()}
        click.echo(json.dumps(output, indent=2))
    else:
        console.print()
        console.print("[green]Lease obtained successfully![/green]")
        console.print()
        display_lease(lease, verbose)


@dhcp.command()
@click.option("--mac", "-m", required=True, help="Client hardware address")
@click.option("--htype", type=int, default=1, show_default=True, help="ARP hardware type (1=Ethernet, 32=IPoIB)")
@click.option("--offer", type=click.Path(exists=True, dir_okay=False), help="Captured DHCPOFFER; builds the DHCPREQUEST for it")
@click.option("--hex", "as_hex", is_flag=True, help="Print the packet as hex (and read --offer as hex)")
def packet(mac: str, htype: int, offer: str | None, as_hex: bool):
    """Build the packet the client would send, without sending it.

    \b
    Examples:
        # DHCPDISCOVER for an Ethernet device
        pxedhcp dhcp packet -m 52:54:00:12:34:56

        # DHCPREQUEST for a captured offer, as hex
        pxedhcp dhcp packet -m 52:54:00:12:34:56 --offer offer.hex --hex
    """
    ll_protocol = LL_PROTOCOLS.get(htype)
    if ll_protocol is None:
        raise click.BadParameter(f"unsupported hardware type {htype}", param_hint="--htype")
    try:
        netdev = NetDevice("net0", parse_mac(mac), ll_protocol)
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="--mac")

    offer_settings = None
    if offer:
        try:
            data = read_packet(offer, as_hex)
        except ValueError as e:
            raise click.BadParameter(str(e), param_hint="--offer")
        try:
            DHCPPacket.parse(data)
        except MalformedPacketError as e:
            console.print(f"[red]Error: {offer}: {e}[/red]")
            sys.exit(1)
        offer_settings = DHCPSettings(data)

    config = get_config()
    try:
        built = create_dhcp_request(netdev, bytearray(config.buffer_len), offer_settings, config)
    except DHCPError as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)

    if as_hex:
        click.echo(built.encode().hex())
    else:
        display_packet(built)


@dhcp.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
@click.option("--hex", "as_hex", is_flag=True, help="File contains hex text")
def decode(path: str, as_hex: bool):
    """Decode a captured DHCP packet.

    \b
    Examples:
        pxedhcp dhcp decode ack.bin
        pxedhcp dhcp decode --hex offer.hex
    """
    try:
        data = read_packet(path, as_hex)
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="PATH")

    try:
        decoded = DHCPPacket.parse(data)
    except MalformedPacketError as e:
        console.print(f"[red]Error: {path}: {e}[/red]")
        sys.exit(1)

    display_packet(decoded)
