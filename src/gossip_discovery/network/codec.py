"""Gossip frame codec.

A frame is one length byte ``L`` followed by ``L`` bytes of compact JSON
mapping peer id → list of addresses (without the peer id suffix).
``L == 0`` is the empty peer list and carries no payload.
"""

from __future__ import annotations

import asyncio
import json
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from gossip_discovery.network.host import Stream

MAX_PAYLOAD = 255

GossipMessage = dict[str, list[str]]


class FramingError(Exception):
    """A frame was truncated or its payload is not a peer list."""


class FrameTooLarge(ValueError):
    """The message does not fit in a single frame."""


def _payload(message: GossipMessage) -> bytes:
    return json.dumps(message, separators=(",", ":")).encode("utf-8")


def encode(message: GossipMessage) -> bytes:
    """Encode a peer list into one frame.

    Raises:
        FrameTooLarge: If the JSON payload exceeds ``MAX_PAYLOAD`` bytes.
    """
    if not message:
        return b"\x00"
    payload = _payload(message)
    if len(payload) > MAX_PAYLOAD:
        raise FrameTooLarge(
            f"payload is {len(payload)} bytes, limit is {MAX_PAYLOAD}"
        )
    return bytes([len(payload)]) + payload


def parse_payload(payload: bytes) -> GossipMessage:
    """Validate and parse a non-empty frame payload."""
    try:
        data = json.loads(payload.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise FramingError(f"malformed payload: {e}") from e

    if not isinstance(data, dict):
        raise FramingError("payload is not an object")
    for peer_id, addresses in data.items():
        if not isinstance(addresses, list) or not all(
            isinstance(a, str) for a in addresses
        ):
            raise FramingError(f"bad address list for {peer_id}")
    return data


def decode(frame: bytes) -> GossipMessage:
    """Decode exactly one frame."""
    if not frame:
        raise FramingError("empty frame")
    length = frame[0]
    payload = frame[1:]
    if len(payload) != length:
        raise FramingError(
            f"length byte says {length}, got {len(payload)} payload bytes"
        )
    if length == 0:
        return {}
    return parse_payload(payload)


def fit_message(message: GossipMessage) -> GossipMessage:
    """Largest prefix of ``message`` that still encodes into one frame."""
    fitted: GossipMessage = {}
    for peer_id, addresses in message.items():
        candidate = {**fitted, peer_id: addresses}
        if len(_payload(candidate)) > MAX_PAYLOAD:
            break
        fitted = candidate
    return fitted


async def read_message(stream: Stream) -> GossipMessage:
    """Read one frame from a stream."""
    try:
        header = await stream.read_exactly(1)
        length = header[0]
        if length == 0:
            return {}
        payload = await stream.read_exactly(length)
    except asyncio.IncompleteReadError as e:
        raise FramingError(
            f"stream ended after {len(e.partial)} of {e.expected} bytes"
        ) from e
    return parse_payload(payload)


async def write_message(stream: Stream, message: GossipMessage) -> None:
    """Write one frame to a stream."""
    await stream.write(encode(message))
