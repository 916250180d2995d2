"""
Command line entry point.

Copyright (c) 2025 DNS Science.io, an After Dark Systems, LLC company.
All rights reserved.
"""

import click

from pxedhcp import __version__
from pxedhcp.dhcp.cli import dhcp
from pxedhcp.logging_config import configure_logging


@click.group()
@click.version_option(__version__, prog_name="pxedhcp")
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.option("--log-file", type=click.Path(dir_okay=False), help="Also log to this file")
def main(debug: bool, log_file: str | None):
    """pxedhcp - DHCP client for network boot."""
    configure_logging(debug=debug, log_file=log_file)


main.add_command(dhcp)


if __name__ == "__main__":
    main()
