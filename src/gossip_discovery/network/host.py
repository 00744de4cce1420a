"""Interfaces the discovery engine consumes from its host node.

The engine never touches sockets directly: it dials through a ``Host``,
gets back a ``Stream``, and registers protocol handlers on the host.
``HttpTransport`` is the bundled implementation.
"""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Protocol

from gossip_discovery.network.peer import PeerId, PeerRecord
from gossip_discovery.network.peer_book import PeerBook


class DialError(Exception):
    """Could not open a protocol stream to a peer."""


class Stream(Protocol):
    """A duplex byte stream for one protocol exchange."""

    async def read_exactly(self, n: int) -> bytes:
        """Read exactly ``n`` bytes or raise ``asyncio.IncompleteReadError``."""
        ...

    async def write(self, data: bytes) -> None: ...

    async def close_write(self) -> None:
        """Half-close: signal end of our data, keep reading possible."""
        ...

    async def close(self) -> None: ...


StreamHandler = Callable[[Stream, PeerId | None], Awaitable[None]]
ConnectListener = Callable[[PeerRecord], Any]


class Host(Protocol):
    """The node the discovery engine is attached to."""

    @property
    def peer_id(self) -> PeerId: ...

    @property
    def peer_book(self) -> PeerBook: ...

    def is_running(self) -> bool: ...

    async def dial(self, peer: PeerRecord, protocol: str) -> Stream:
        """Open a stream to ``peer`` speaking ``protocol``.

        Raises:
            DialError: On any connectivity failure.
        """
        ...

    async def hang_up(self, peer_id: PeerId) -> None: ...

    def handle(self, protocol: str, handler: StreamHandler) -> None: ...

    def unhandle(self, protocol: str) -> None: ...

    def add_connect_listener(self, listener: ConnectListener) -> None: ...

    def remove_connect_listener(self, listener: ConnectListener) -> None: ...
