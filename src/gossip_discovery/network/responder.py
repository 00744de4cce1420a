"""Passive side of gossip discovery — answer with our peer book."""

from __future__ import annotations

import logging

from gossip_discovery.network.codec import fit_message, write_message
from gossip_discovery.network.host import Stream
from gossip_discovery.network.peer import PeerId
from gossip_discovery.network.peer_book import PeerBook

logger = logging.getLogger(__name__)


class GossipResponder:
    """Writes one frame with a snapshot of the peer book, then closes.

    Never reads from the remote. If the book doesn't fit in a frame only
    the entries that fit are sent.
    """

    def __init__(self, peer_book: PeerBook) -> None:
        self.peer_book = peer_book

    async def __call__(self, stream: Stream, remote: PeerId | None = None) -> None:
        peers = self.peer_book.snapshot()
        message = fit_message(peers)
        if len(message) < len(peers):
            logger.warning(
                "Peer list trimmed to %d of %d entries to fit one frame",
                len(message), len(peers),
            )
        try:
            await write_message(stream, message)
            await stream.close_write()
            logger.debug("Sent %d peers to %s", len(message), remote or "unknown")
        except (ConnectionError, OSError):
            logger.debug("Failed to answer %s", remote or "unknown", exc_info=True)
        finally:
            try:
                await stream.close()
            except (ConnectionError, OSError):
                logger.debug("Failed to close stream to %s", remote or "unknown", exc_info=True)
