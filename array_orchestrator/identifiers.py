"""
Cross-system identifier parsing.

Pure functions that translate between vSphere device identifiers and
FlashArray object identifiers. Parsers return None when the input is not
an array identifier; callers use that as a filter, not as an error.
"""

import random
import re
from typing import Iterable, List, Optional

# NAA identifiers of FlashArray volumes: naa.624a9370 + volume serial
NAA_PREFIX = "naa.624a9370"
NAA_PREFIX_LENGTH = len(NAA_PREFIX)

# VVol storage array UUIDs carry a vendor prefix, "com.purestorage:"
VVOL_UUID_SERIAL_OFFSET = 16

WWN_LENGTH = 16

VMFS_DEVICE_PATH = "/vmfs/devices/disks/"

_HEX_RE = re.compile(r"^[0-9a-fA-F]+$")
_HOST_NAME_INVALID_RE = re.compile(r"[^A-Za-z0-9-]")


def is_array_volume_naa(naa: Optional[str]) -> bool:
    return volume_serial_from_naa(naa) is not None


def volume_serial_from_naa(naa: Optional[str]) -> Optional[str]:
    """
    Extract the FlashArray volume serial from a vSphere NAA identifier.

    Args:
        naa: Canonical device name, e.g. naa.624a93701c0d5a1e0e3d4c2b00011cd0

    Returns:
        Uppercase volume serial, or None when the device is not a FlashArray volume
    """
    if not naa:
        return None
    naa = naa.strip()
    if not naa.lower().startswith(NAA_PREFIX):
        return None
    serial = naa[NAA_PREFIX_LENGTH:]
    if not _HEX_RE.match(serial):
        return None
    return serial.upper()


def naa_from_volume_serial(serial: str) -> str:
    """Build the NAA identifier vSphere reports for a FlashArray volume serial."""
    if not serial or not _HEX_RE.match(serial):
        raise ValueError(f"Invalid volume serial: {serial!r}")
    return f"{NAA_PREFIX}{serial.lower()}"


def disk_path_from_serial(serial: str) -> str:
    return VMFS_DEVICE_PATH + naa_from_volume_serial(serial)


def array_serial_from_vvol_uuid(storage_array_uuid: Optional[str]) -> Optional[str]:
    """
    Derive the array serial from a VVol datastore's storage array UUID.

    Example: com.purestorage:2dcf29ad-6aca-4913-b62e-a15875c6635f
    """
    if not storage_array_uuid or len(storage_array_uuid) <= VVOL_UUID_SERIAL_OFFSET:
        return None
    return storage_array_uuid[VVOL_UUID_SERIAL_OFFSET:]


def split_wwns(raw: Optional[str]) -> List[str]:
    """
    Recover WWNs from a concatenated hex string.

    Line breaks and spaces are stripped first, then the string is cut into
    consecutive 16 character chunks in order.

    Raises:
        ValueError: if the cleaned string is not a whole number of WWNs
    """
    if not raw:
        return []
    cleaned = re.sub(r"[\r\n ]", "", raw)
    if len(cleaned) % WWN_LENGTH:
        raise ValueError(f"WWN string has {len(cleaned)} characters, not a multiple of {WWN_LENGTH}")
    if cleaned and not _HEX_RE.match(cleaned):
        raise ValueError(f"WWN string is not hexadecimal: {raw!r}")
    return [cleaned[i:i + WWN_LENGTH] for i in range(0, len(cleaned), WWN_LENGTH)]


def wwn_from_port_number(port_wwn: int) -> str:
    """Format a vSphere portWorldWideName (a long) as 16 hex characters."""
    return format(port_wwn & 0xFFFFFFFFFFFFFFFF, "016x")


def normalize_wwn(wwn: str) -> str:
    return wwn.replace(":", "").strip().lower()


def wwns_match(left: str, right: str) -> bool:
    return normalize_wwn(left) == normalize_wwn(right)


def iqns_match(left: str, right: str) -> bool:
    return left.lower() == right.lower()


def any_match(values: Iterable[str], candidates: Iterable[str], matcher) -> bool:
    candidates = list(candidates)
    return any(matcher(value, candidate) for value in values for candidate in candidates)


def storage_host_name(hostname: str) -> str:
    """
    Array host object name for a compute host.

    FlashArray names allow letters, digits and dashes only, so the short
    hostname is used and anything else becomes a dash.
    """
    short = hostname.split(".")[0] if hostname else ""
    name = _HOST_NAME_INVALID_RE.sub("-", short).strip("-")
    if not name:
        raise ValueError(f"Cannot derive a host name from {hostname!r}")
    return name


def host_group_name(prefix: str) -> str:
    """Random suffixed host group name, e.g. WorkloadDomain-48213."""
    return f"{prefix}-{random.randint(10000, 99999)}"
