"""
Configuration management for the DHCP client.

Loads tunables from environment variables or a .env file. The
configuration is immutable: it is loaded once and passed by reference
to the packet builder and sessions.

Copyright (c) 2025 DNS Science.io, an After Dark Systems, LLC company.
All rights reserved.
"""

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

from pxedhcp.dhcp.features import DEFAULT_FEATURES, Feature, parse_features
from pxedhcp.dhcp.packet import DHCP_MIN_LEN, DHCPOption

ENV_LOCATIONS = (
    Path.home() / ".pxedhcp" / ".env",
    Path.home() / ".config" / "pxedhcp" / ".env",
    Path.cwd() / ".env",
)


def load_env_file(locations=ENV_LOCATIONS) -> Path | None:
    """
    Load the first .env file found into the environment.

    Variables already set in the environment are not overridden.

    Returns:
        Path of the loaded file, or None if there was none
    """
    for env_path in locations:
        if env_path.exists():
            load_dotenv(env_path)
            return env_path
    return None


load_env_file()


DEFAULT_REQUESTED_OPTIONS: tuple[int, ...] = (
    DHCPOption.SUBNET_MASK,
    DHCPOption.ROUTER,
    DHCPOption.DNS_SERVER,
    DHCPOption.LOG_SERVER,
    DHCPOption.HOSTNAME,
    DHCPOption.DOMAIN_NAME,
    DHCPOption.ROOT_PATH,
    DHCPOption.VENDOR_ENCAP,
    DHCPOption.VENDOR_CLASS_ID,
    DHCPOption.TFTP_SERVER_NAME,
    DHCPOption.BOOTFILE_NAME,
    DHCPOption.EB_ENCAP,
    DHCPOption.ISCSI_INITIATOR_IQN,
)


@dataclass(frozen=True)
class DHCPConfig:
    """DHCP client configuration."""
    interface: str | None = None
    mac_address: str | None = None  # Override MAC (for testing)

    # Request options template
    max_message_size: int = 1500
    vendor_class_id: str = "PXEClient:Arch:00000:UNDI:002001"
    client_architecture: int = 0  # 0=x86 BIOS, 7=x64 UEFI, 9=EFI x86
    client_ndi: tuple[int, int, int] = (1, 2, 1)  # UNDI v2.1
    requested_options: tuple[int, ...] = DEFAULT_REQUESTED_OPTIONS
    features: tuple[Feature, ...] = DEFAULT_FEATURES

    # Retransmission
    min_timeout: float = 0.25
    max_timeout: float = 10.0
    max_attempts: int = 7

    # Size of the buffer each outgoing packet is built in
    buffer_len: int = DHCP_MIN_LEN

    @classmethod
    def from_env(cls) -> "DHCPConfig":
        """Load configuration from environment variables."""
        defaults = cls()
        features = os.getenv("PXEDHCP_FEATURES")
        return cls(
            interface=os.getenv("PXEDHCP_INTERFACE") or None,
            mac_address=os.getenv("PXEDHCP_MAC") or None,
            vendor_class_id=os.getenv("PXEDHCP_VENDOR_CLASS", defaults.vendor_class_id),
            client_architecture=int(os.getenv("PXEDHCP_CLIENT_ARCH", defaults.client_architecture)),
            features=parse_features(features) if features else defaults.features,
            min_timeout=float(os.getenv("PXEDHCP_MIN_TIMEOUT", defaults.min_timeout)),
            max_timeout=float(os.getenv("PXEDHCP_MAX_TIMEOUT", defaults.max_timeout)),
            max_attempts=int(os.getenv("PXEDHCP_MAX_ATTEMPTS", defaults.max_attempts)),
        )


# Global config instance
_config: DHCPConfig | None = None


def get_config() -> DHCPConfig:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = DHCPConfig.from_env()
    return _config


def set_config(config: DHCPConfig) -> None:
    """Set the global configuration instance."""
    global _config
    _config = config
