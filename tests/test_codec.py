"""Tests for gossip_discovery.network.codec."""

from __future__ import annotations

import asyncio

import pytest

from gossip_discovery.network.codec import (
    MAX_PAYLOAD,
    FrameTooLarge,
    FramingError,
    decode,
    encode,
    fit_message,
    read_message,
    write_message,
)


# ── Helpers ──────────────────────────────────────────────────────

class BufferStream:
    """Minimal in-memory stream over a fixed byte string."""

    def __init__(self, data: bytes = b"", eof: bool = True) -> None:
        self.reader = asyncio.StreamReader()
        if data:
            self.reader.feed_data(data)
        if eof:
            self.reader.feed_eof()
        self.written = bytearray()

    async def read_exactly(self, n: int) -> bytes:
        return await self.reader.readexactly(n)

    async def write(self, data: bytes) -> None:
        self.written.extend(data)

    async def close_write(self) -> None:
        pass

    async def close(self) -> None:
        pass


def big_message(n: int = 20) -> dict[str, list[str]]:
    return {f"peer-{i:03d}": [f"/ip4/10.0.0.{i}/tcp/4001"] for i in range(n)}


# ── Encoding ─────────────────────────────────────────────────────

class TestEncode:
    def test_empty_is_single_zero_byte(self):
        assert encode({}) == b"\x00"

    def test_length_prefix(self):
        frame = encode({"QmA": ["/ip4/1.2.3.4/tcp/4001"]})
        assert frame[0] == len(frame) - 1

    def test_compact_json(self):
        frame = encode({"QmA": ["/ip4/1.2.3.4/tcp/4001"]})
        assert frame[1:] == b'{"QmA":["/ip4/1.2.3.4/tcp/4001"]}'

    def test_too_large_rejected(self):
        with pytest.raises(FrameTooLarge):
            encode(big_message())

    def test_payload_at_limit_accepted(self):
        # {"x":["..."]} has 10 bytes of overhead
        frame = encode({"x": ["a" * (MAX_PAYLOAD - 10)]})
        assert frame[0] == MAX_PAYLOAD


# ── Decoding ─────────────────────────────────────────────────────

class TestDecode:
    def test_empty_frame(self):
        assert decode(b"\x00") == {}

    def test_round_trip(self):
        message = {
            "QmA": ["/ip4/1.2.3.4/tcp/4001", "/ip6/::1/tcp/4001"],
            "QmB": [],
        }
        assert decode(encode(message)) == message

    def test_no_bytes(self):
        with pytest.raises(FramingError):
            decode(b"")

    def test_truncated_payload(self):
        frame = encode({"QmA": ["/ip4/1.2.3.4/tcp/4001"]})
        with pytest.raises(FramingError):
            decode(frame[:-3])

    def test_trailing_bytes(self):
        with pytest.raises(FramingError):
            decode(b"\x00\x01")

    def test_invalid_utf8(self):
        with pytest.raises(FramingError):
            decode(b"\x02\xff\xfe")

    def test_not_json(self):
        with pytest.raises(FramingError):
            decode(b"\x05hello")

    def test_not_an_object(self):
        with pytest.raises(FramingError):
            decode(b"\x02[]")

    def test_addresses_not_a_list(self):
        with pytest.raises(FramingError):
            decode(encode_raw(b'{"QmA":"/ip4/1.2.3.4"}'))

    def test_address_not_a_string(self):
        with pytest.raises(FramingError):
            decode(encode_raw(b'{"QmA":[42]}'))


def encode_raw(payload: bytes) -> bytes:
    return bytes([len(payload)]) + payload


# ── Fitting ──────────────────────────────────────────────────────

class TestFitMessage:
    def test_small_message_unchanged(self):
        message = {"QmA": ["/ip4/1.2.3.4/tcp/4001"]}
        assert fit_message(message) == message

    def test_large_message_trimmed_to_fit(self):
        message = big_message()
        fitted = fit_message(message)
        assert 0 < len(fitted) < len(message)
        encode(fitted)  # does not raise

    def test_keeps_insertion_order_prefix(self):
        message = big_message()
        fitted = fit_message(message)
        assert list(fitted) == list(message)[: len(fitted)]


# ── Streams ──────────────────────────────────────────────────────

class TestStreams:
    @pytest.mark.asyncio
    async def test_read_message(self):
        message = {"QmA": ["/ip4/1.2.3.4/tcp/4001"]}
        stream = BufferStream(encode(message))
        assert await read_message(stream) == message

    @pytest.mark.asyncio
    async def test_read_empty_message(self):
        assert await read_message(BufferStream(b"\x00")) == {}

    @pytest.mark.asyncio
    async def test_read_stops_after_one_frame(self):
        stream = BufferStream(b"\x00\x00")
        await read_message(stream)
        assert await stream.read_exactly(1) == b"\x00"

    @pytest.mark.asyncio
    async def test_read_eof_before_header(self):
        with pytest.raises(FramingError):
            await read_message(BufferStream(b""))

    @pytest.mark.asyncio
    async def test_read_truncated(self):
        with pytest.raises(FramingError):
            await read_message(BufferStream(b"\x10{}"))

    @pytest.mark.asyncio
    async def test_read_malformed(self):
        with pytest.raises(FramingError):
            await read_message(BufferStream(b"\x03{{{"))

    @pytest.mark.asyncio
    async def test_write_message(self):
        stream = BufferStream()
        await write_message(stream, {})
        assert bytes(stream.written) == b"\x00"
