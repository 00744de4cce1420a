"""Transport layer — protocol streams over HTTP.

Uses aiohttp on both sides. Each node runs a small HTTP server where every
handled protocol id is a GET route, and the response body is the
protocol's byte stream. Dialing a peer is a GET against the first address
of the peer that names a host and a TCP port.

Dial requests carry the dialer's id and listen addresses in headers so the
serving node learns about the dialer, the way a connection does in libp2p.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from aiohttp import ClientError, ClientResponse, ClientSession, ClientTimeout, web
from multiaddr import Multiaddr

from gossip_discovery.network.host import ConnectListener, DialError, StreamHandler
from gossip_discovery.network.peer import PeerId, PeerRecord, strip_peer_suffix, with_peer_suffix
from gossip_discovery.network.peer_book import PeerBook

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = ClientTimeout(total=10)
PEER_ID_HEADER = "X-Peer-Id"
PEER_ADDRS_HEADER = "X-Peer-Addrs"
HOST_PROTOCOLS = ("ip4", "ip6", "dns4", "dns6", "dns")


def http_endpoint(address: str) -> str | None:
    """``/ip4/1.2.3.4/tcp/80[/p2p/<id>]`` → ``1.2.3.4:80``, or None if not dialable."""
    try:
        maddr = Multiaddr(strip_peer_suffix(address))
        port = maddr.value_for_protocol("tcp")
    except (ValueError, LookupError):
        return None
    for proto in HOST_PROTOCOLS:
        try:
            host = maddr.value_for_protocol(proto)
        except (ValueError, LookupError):
            continue
        if proto == "ip6":
            host = f"[{host}]"
        return f"{host}:{port}"
    return None


class ResponseStream:
    """Serving side of a protocol stream: writes go to the HTTP response."""

    def __init__(self, response: web.StreamResponse) -> None:
        self._response = response

    async def read_exactly(self, n: int) -> bytes:
        raise asyncio.IncompleteReadError(b"", n)

    async def write(self, data: bytes) -> None:
        await self._response.write(data)

    async def close_write(self) -> None:
        await self._response.write_eof()

    async def close(self) -> None:
        await self.close_write()


class ClientStream:
    """Dialing side of a protocol stream: reads come from the response body."""

    def __init__(self, response: ClientResponse, on_close: Any = None) -> None:
        self._response = response
        self._on_close = on_close

    async def read_exactly(self, n: int) -> bytes:
        try:
            return await self._response.content.readexactly(n)
        except asyncio.TimeoutError:
            raise
        except ClientError as e:
            raise ConnectionError(str(e)) from e

    async def write(self, data: bytes) -> None:
        raise ConnectionError("dialing side of an HTTP stream is read-only")

    async def close_write(self) -> None:
        pass

    async def close(self) -> None:
        self._response.close()
        if self._on_close:
            self._on_close(self)


class HttpTransport:
    """HTTP-based host for peer-to-peer protocol streams.

    Runs an aiohttp server for inbound streams and uses an aiohttp client
    session for outbound ones.
    """

    def __init__(
        self,
        peer_id: PeerId | None = None,
        host: str = "0.0.0.0",
        port: int = 8470,
        peer_book: PeerBook | None = None,
        advertise_host: str | None = None,
    ) -> None:
        self._peer_id = peer_id or PeerId.random()
        self._peer_book = peer_book if peer_book is not None else PeerBook()
        self.host = host
        self.port = port
        self.advertise_host = advertise_host
        self._app = web.Application()
        self._runner: web.AppRunner | None = None
        self._session: ClientSession | None = None
        self._handlers: dict[str, StreamHandler] = {}
        self._listeners: list[ConnectListener] = []
        self._streams: dict[PeerId, set[ClientStream]] = {}

        # Register routes
        self._app.router.add_get("/health", self._handle_health)
        self._app.router.add_get("/peers", self._handle_peers)
        self._app.router.add_get("/{protocol:.+}", self._handle_protocol)

    @property
    def peer_id(self) -> PeerId:
        return self._peer_id

    @property
    def peer_book(self) -> PeerBook:
        return self._peer_book

    @property
    def listen_addrs(self) -> list[str]:
        """Our dialable addresses, without the peer id suffix."""
        advertise = self.advertise_host
        if advertise is None:
            advertise = "127.0.0.1" if self.host in ("0.0.0.0", "", "::") else self.host
        proto = "ip6" if ":" in advertise else "ip4"
        return [f"/{proto}/{advertise}/tcp/{self.port}"]

    def record(self) -> PeerRecord:
        """Our own peer record, as others would store it."""
        return PeerRecord(
            self._peer_id,
            {with_peer_suffix(a, self._peer_id) for a in self.listen_addrs},
        )

    def is_running(self) -> bool:
        return self._runner is not None

    async def start(self) -> None:
        """Start the HTTP server and client session."""
        self._session = ClientSession(timeout=DEFAULT_TIMEOUT)
        runner = web.AppRunner(self._app)
        await runner.setup()
        site = web.TCPSite(runner, self.host, self.port)
        await site.start()
        self._runner = runner
        if self.port == 0:
            self.port = runner.addresses[0][1]
        logger.info("Transport listening on %s:%d as %s", self.host, self.port, self._peer_id)

    async def stop(self) -> None:
        """Gracefully shut down transport."""
        runner, self._runner = self._runner, None
        for peer_id in list(self._streams):
            await self.hang_up(peer_id)
        if self._session:
            await self._session.close()
            self._session = None
        if runner:
            await runner.cleanup()
        logger.info("Transport stopped")

    # ── Protocol registration ────────────────────────────────────

    def handle(self, protocol: str, handler: StreamHandler) -> None:
        self._handlers[protocol] = handler

    def unhandle(self, protocol: str) -> None:
        self._handlers.pop(protocol, None)

    def add_connect_listener(self, listener: ConnectListener) -> None:
        self._listeners.append(listener)

    def remove_connect_listener(self, listener: ConnectListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    # ── Outbound ─────────────────────────────────────────────────

    async def dial(self, peer: PeerRecord, protocol: str) -> ClientStream:
        """Open a protocol stream to a peer.

        Raises:
            DialError: If the transport is down, the peer has no dialable
                address, the connection fails or the protocol is refused.
        """
        if not self._session:
            raise DialError("transport not started")

        endpoints = [e for e in map(http_endpoint, sorted(peer.addresses)) if e]
        if not endpoints:
            raise DialError(f"no dialable address for {peer.peer_id}")

        url = f"http://{endpoints[0]}{protocol}"
        headers = {
            PEER_ID_HEADER: str(self._peer_id),
            PEER_ADDRS_HEADER: ",".join(self.listen_addrs),
        }
        try:
            response = await self._session.get(url, headers=headers)
        except (ClientError, OSError, asyncio.TimeoutError) as e:
            raise DialError(f"{url}: {e!r}") from e

        if response.status != 200:
            response.close()
            raise DialError(f"{url} answered {response.status}")

        stream = ClientStream(response, on_close=lambda s: self._forget(peer.peer_id, s))
        self._streams.setdefault(peer.peer_id, set()).add(stream)
        return stream

    def _forget(self, peer_id: PeerId, stream: ClientStream) -> None:
        streams = self._streams.get(peer_id)
        if streams is None:
            return
        streams.discard(stream)
        if not streams:
            del self._streams[peer_id]

    async def hang_up(self, peer_id: PeerId) -> None:
        """Close every open stream to a peer."""
        for stream in list(self._streams.pop(peer_id, ())):
            await stream.close()

    # ── Inbound ──────────────────────────────────────────────────

    def _remote_record(self, request: web.Request) -> PeerRecord | None:
        raw_id = request.headers.get(PEER_ID_HEADER)
        if not raw_id:
            return None
        try:
            peer_id = PeerId(raw_id)
        except ValueError:
            logger.debug("Ignoring invalid %s header %r", PEER_ID_HEADER, raw_id)
            return None
        record = PeerRecord(peer_id)
        for address in request.headers.get(PEER_ADDRS_HEADER, "").split(","):
            if address.strip():
                record.add_address(address.strip())
        return record

    def _notify_connect(self, record: PeerRecord) -> None:
        if record.peer_id == self._peer_id:
            return
        known = self._peer_book.put(record)
        for listener in list(self._listeners):
            try:
                listener(known)
            except Exception:
                logger.exception("Connect listener failed for %s", record.peer_id)

    async def _handle_protocol(self, request: web.Request) -> web.StreamResponse:
        """Route an inbound stream to the registered protocol handler."""
        protocol = "/" + request.match_info["protocol"]
        handler = self._handlers.get(protocol)
        if handler is None:
            return web.json_response(
                {"status": "error", "detail": f"protocol not supported: {protocol}"},
                status=404,
            )

        remote = self._remote_record(request)
        if remote is not None:
            self._notify_connect(remote)

        response = web.StreamResponse(
            headers={"Content-Type": "application/octet-stream"},
        )
        await response.prepare(request)
        await handler(ResponseStream(response), remote.peer_id if remote else None)
        return response

    async def _handle_health(self, request: web.Request) -> web.Response:
        """Health check endpoint."""
        return web.json_response({
            "status": "healthy",
            "peer_id": str(self._peer_id),
            "port": self.port,
        })

    async def _handle_peers(self, request: web.Request) -> web.Response:
        """Known peers, keyed by peer id."""
        return web.json_response({"peers": self._peer_book.snapshot()})
