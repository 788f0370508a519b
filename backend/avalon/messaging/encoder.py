"""
MessagePack encoder/decoder for wire format communication.

Every frame is one MessagePack map. Outbound payloads are plain dicts built
from pydantic models; inbound frames are decoded with strict size limits
before any validation runs.
"""

from typing import Any

import msgpack


def encode(data: dict[str, Any]) -> bytes:
    """
    Encode a dict to MessagePack bytes.
    """
    return msgpack.packb(data)


class DecodeError(Exception):
    """Error raised when MessagePack decoding fails."""


# Size limits to prevent resource exhaustion from malicious payloads.
# Avalon messages are tiny: the largest is a team proposal of at most ten ids.
MAX_BUFFER_LEN = 16 * 1024
MAX_STR_LEN = 1024
MAX_BIN_LEN = 1024
MAX_ARRAY_LEN = 64
MAX_MAP_LEN = 32
MAX_EXT_LEN = 256


def decode(data: bytes) -> dict[str, Any]:
    """
    Decode MessagePack bytes to a dict.

    Raises DecodeError if data is invalid, not a dict, or exceeds size limits.
    """
    if len(data) > MAX_BUFFER_LEN:
        raise DecodeError(f"payload too large: {len(data)} bytes (max {MAX_BUFFER_LEN})")
    try:
        result = msgpack.unpackb(
            data,
            raw=False,
            max_str_len=MAX_STR_LEN,
            max_bin_len=MAX_BIN_LEN,
            max_array_len=MAX_ARRAY_LEN,
            max_map_len=MAX_MAP_LEN,
            max_ext_len=MAX_EXT_LEN,
        )
    except (msgpack.UnpackException, ValueError) as e:
        raise DecodeError(f"failed to decode MessagePack data: {e}") from e

    if not isinstance(result, dict):
        raise DecodeError(f"expected dict, got {type(result).__name__}")

    return result
