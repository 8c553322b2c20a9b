"""
MessagePack framing for WebSocket messages.

Every frame is a single MessagePack map. Decoding applies size limits so a
client cannot make the server allocate large strings or containers.
"""

from typing import Any

import msgpack

MAX_FRAME_BYTES = 128 * 1024
_UNPACK_LIMITS = {
    "max_str_len": 64 * 1024,
    "max_bin_len": 4 * 1024,
    "max_array_len": 512,
    "max_map_len": 128,
    "max_ext_len": 0,
}


class DecodeError(Exception):
    """A frame could not be decoded into a message map."""


def encode(data: dict[str, Any]) -> bytes:
    return msgpack.packb(data, use_bin_type=True)


def decode(data: bytes) -> dict[str, Any]:
    """
    Decode one frame into a dict.

    Raises DecodeError for oversized, malformed, or non-map payloads.
    """
    if len(data) > MAX_FRAME_BYTES:
        raise DecodeError(f"frame of {len(data)} bytes exceeds {MAX_FRAME_BYTES}")
    try:
        message = msgpack.unpackb(data, raw=False, **_UNPACK_LIMITS)
    except (msgpack.UnpackException, ValueError) as e:
        raise DecodeError(f"malformed frame: {e}") from e
    if not isinstance(message, dict):
        raise DecodeError(f"frame must be a map, got {type(message).__name__}")
    return message
