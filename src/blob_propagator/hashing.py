"""Hashing utilities for blob identification.

Blobs are identified by their versioned hash: a version byte followed by the
tail of the SHA256 digest of the blob's KZG commitment.
"""

import hashlib
import re

from .constants import VERSIONED_HASH_VERSION_KZG
from .errors import InvalidHashError

_HASH_KEY = re.compile(r"^[A-Za-z0-9_-]+$")


def _strip_0x(value: str) -> str:
    return value[2:] if value.startswith(("0x", "0X")) else value


def compute_versioned_hash(commitment: str) -> str:
    """Compute the versioned hash of a blob from its commitment.

    Args:
        commitment: Hex-encoded KZG commitment (with or without 0x prefix)

    Returns:
        Versioned hash in format "0x01xxxx" (32 bytes)

    Raises:
        ValueError: If commitment is not valid hex
    """
    digest = hashlib.sha256(bytes.fromhex(_strip_0x(commitment))).digest()
    versioned = bytes([VERSIONED_HASH_VERSION_KZG]) + digest[1:]
    return f"0x{versioned.hex()}"


def validate_hash_key(versioned_hash: str) -> str:
    """Validate a hash before using it as a file name or row key.

    Any alphanumeric hash is accepted, so synthetic hashes work too.

    Raises:
        InvalidHashError: If the hash is empty or could escape a directory

    Security:
        Rejects path separators and dots so a hash never resolves outside
        the staging or filesystem store root.
    """
    if not isinstance(versioned_hash, str) or not _HASH_KEY.fullmatch(versioned_hash):
        raise InvalidHashError(versioned_hash)
    return versioned_hash


def decode_blob_data(data: str) -> bytes:
    """Decode a 0x-prefixed hex string of blob data into bytes."""
    return bytes.fromhex(_strip_0x(data.strip()))


def encode_blob_data(data: bytes) -> str:
    """Encode blob bytes as a 0x-prefixed hex string."""
    return f"0x{data.hex()}"


__all__ = [
    "compute_versioned_hash",
    "decode_blob_data",
    "encode_blob_data",
    "validate_hash_key",
]
