"""
Compiled-in feature table.

The client advertises what it can do to the server inside the
encapsulated option block (option 175), so that the server can hand
out boot configuration the client is able to use.

Copyright (c) 2025 DNS Science.io, an After Dark Systems, LLC company.
All rights reserved.
"""

from dataclasses import dataclass
from enum import IntEnum


class DHCPFeature(IntEnum):
    """Feature codes carried as sub-options of option 175."""
    PXE_EXT = 0x10
    ISCSI = 0x11
    AOE = 0x12
    HTTP = 0x13
    HTTPS = 0x14
    TFTP = 0x15
    FTP = 0x16
    DNS = 0x17
    BZIMAGE = 0x18
    MULTIBOOT = 0x19
    SLAM = 0x1A
    SRP = 0x1B
    NBI = 0x20
    PXE = 0x21
    ELF = 0x22
    COMBOOT = 0x23
    EFI = 0x24


@dataclass(frozen=True)
class Feature:
    """One entry of the feature table."""
    code: int
    version: bytes = b"\x01"

    def encode(self) -> bytes:
        return bytes([self.code, len(self.version)]) + self.version


DEFAULT_FEATURES: tuple[Feature, ...] = (
    Feature(DHCPFeature.PXE_EXT, b"\x02"),
    Feature(DHCPFeature.TFTP),
    Feature(DHCPFeature.DNS),
    Feature(DHCPFeature.HTTP),
)


def encode_features(features: tuple[Feature, ...]) -> bytes:
    """Encode the feature table as the body of option 175."""
    return b"".join(feature.encode() for feature in features)


def parse_features(text: str) -> tuple[Feature, ...]:
    """
    Parse a comma-separated feature list, e.g. "PXE_EXT:2,TFTP,HTTP".

    Raises:
        ValueError: Unknown feature name or bad version
    """
    features = []
    for item in text.split(","):
        item = item.strip()
        if not item:
            continue
        name, _, version = item.partition(":")
        try:
            code = DHCPFeature[name.strip().upper()]
        except KeyError:
            raise ValueError(f"unknown feature: {name!r}") from None
        features.append(Feature(code, bytes([int(version or 1)])))
    return tuple(features)
