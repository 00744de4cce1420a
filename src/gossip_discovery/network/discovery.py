"""Gossip Discovery — grow the peer book by asking peers for their peers.

Each round dials every seed peer over ``PROTOCOL_ID``, reads the single
frame the remote answers with, keeps only the peers we did not know yet
and recurses on those. A branch stops when:
  1. discovery was stopped (checked at every recursion entry)
  2. the peer book already holds ``target_number_of_peers``
  3. the remote told us nothing new

Failure handling:
  - Dial failure → the peer is assumed stale and silently evicted
  - Invalid frame → the peer is hung up on, evicted and reported as a
    ``PeerSuspect`` event; it cannot be re-admitted during the same epoch

Branches run concurrently and observe the book size independently, so
the book may overshoot the target by the fan-out in flight.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Iterable

from gossip_discovery.network.codec import FramingError, GossipMessage, read_message
from gossip_discovery.network.events import EventChannel, PeerAdmitted, PeerSuspect
from gossip_discovery.network.host import DialError, Host, Stream
from gossip_discovery.network.peer import PeerId, PeerRecord
from gossip_discovery.network.responder import GossipResponder

logger = logging.getLogger(__name__)

PROTOCOL_ID = "/discovery/gossip/0.0.0"
DEFAULT_DIAL_TIMEOUT = 10.0  # Seconds to open a discovery stream
DEFAULT_READ_TIMEOUT = 10.0  # Seconds to receive the remote's frame


class ConfigurationError(ValueError):
    """Invalid discovery configuration."""


@dataclass(frozen=True)
class DiscoveryConfig:
    """Discovery settings, fixed for the lifetime of an engine."""

    target_number_of_peers: int
    dial_timeout: float | None = DEFAULT_DIAL_TIMEOUT
    read_timeout: float | None = DEFAULT_READ_TIMEOUT

    def __post_init__(self) -> None:
        target = self.target_number_of_peers
        if isinstance(target, bool) or not isinstance(target, int) or target <= 0:
            raise ConfigurationError(
                f"target_number_of_peers must be a positive integer, got {target!r}"
            )
        for name in ("dial_timeout", "read_timeout"):
            value = getattr(self, name)
            if value is not None and value <= 0:
                raise ConfigurationError(f"{name} must be positive, got {value!r}")


@dataclass
class DiscoveryEpoch:
    """Cancellation token shared by all branches started by one ``start()``."""

    cancelled: bool = False
    suspects: set[PeerId] = field(default_factory=set)

    def cancel(self) -> None:
        self.cancelled = True


class GossipDiscovery:
    """Recursive peer discovery over the gossip protocol.

    Usage::

        discovery = GossipDiscovery.configure(20)
        discovery.attach(node)
        events = discovery.subscribe()
        await discovery.start()
    """

    def __init__(self, config: DiscoveryConfig) -> None:
        self.config = config
        self.events = EventChannel()
        self._host: Host | None = None
        self._epoch: DiscoveryEpoch | None = None
        self._tasks: set[asyncio.Task[None]] = set()

    @classmethod
    def configure(cls, target_number_of_peers: int, **kwargs: float | None) -> GossipDiscovery:
        return cls(DiscoveryConfig(target_number_of_peers, **kwargs))

    @property
    def target_number_of_peers(self) -> int:
        return self.config.target_number_of_peers

    @property
    def host(self) -> Host:
        if self._host is None:
            raise RuntimeError("discovery is not attached to a host")
        return self._host

    @property
    def is_started(self) -> bool:
        return self._epoch is not None and not self._epoch.cancelled

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    def attach(self, host: Host) -> None:
        self._host = host

    def subscribe(self) -> asyncio.Queue:
        """Shortcut for ``self.events.subscribe()``."""
        return self.events.subscribe()

    # ── Lifecycle ────────────────────────────────────────────────

    async def start(self) -> None:
        """Serve our peer list, run a round over all known peers and
        start listening for new connections."""
        if self.is_started:
            return
        host = self.host
        self._epoch = epoch = DiscoveryEpoch()
        host.handle(PROTOCOL_ID, GossipResponder(host.peer_book))
        self._spawn(host.peer_book.list_all(), epoch)
        host.add_connect_listener(self._on_connect)
        logger.info(
            "Gossip discovery started (target=%d, known=%d)",
            self.target_number_of_peers, len(host.peer_book),
        )

    async def stop(self) -> None:
        """Stop serving and stop recursing. In-flight dials still finish."""
        if self._epoch is None:
            return
        self._epoch.cancel()
        self._epoch = None
        host = self.host
        host.unhandle(PROTOCOL_ID)
        host.remove_connect_listener(self._on_connect)
        logger.info("Gossip discovery stopped (%d rounds in flight)", len(self._tasks))

    async def join(self) -> None:
        """Wait until every in-flight round has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def discover(self, seeds: Iterable[PeerRecord]) -> asyncio.Task[None] | None:
        """Start a background round seeded with ``seeds``."""
        if self._epoch is None or self._epoch.cancelled:
            return None
        return self._spawn(seeds, self._epoch)

    def _spawn(
        self, seeds: Iterable[PeerRecord], epoch: DiscoveryEpoch,
    ) -> asyncio.Task[None]:
        task = asyncio.create_task(self._discover(list(seeds), epoch))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _on_connect(self, peer: PeerRecord) -> None:
        epoch = self._epoch
        if epoch is not None and peer.peer_id in epoch.suspects:
            logger.debug("Ignoring connection from suspect peer %s", peer.peer_id)
            self.host.peer_book.remove(peer.peer_id)
            return
        known = self.host.peer_book.get(peer.peer_id)
        if known is not None and known.asked:
            return
        logger.debug("Connected peer %s, starting discovery", peer.peer_id)
        self.discover([known or peer])

    def _running(self, epoch: DiscoveryEpoch) -> bool:
        return not epoch.cancelled and self.host.is_running()

    # ── Discovery ────────────────────────────────────────────────

    async def _discover(self, seeds: list[PeerRecord], epoch: DiscoveryEpoch) -> None:
        if not self._running(epoch):
            return
        known = len(self.host.peer_book)
        if known >= self.target_number_of_peers or not seeds:
            return

        results = await asyncio.gather(
            *(self._probe(peer, epoch) for peer in seeds),
            return_exceptions=True,
        )
        for peer, result in zip(seeds, results):
            if isinstance(result, Exception):
                logger.error(
                    "Discovery branch for %s failed", peer.peer_id,
                    exc_info=result,
                )

    async def _probe(self, peer: PeerRecord, epoch: DiscoveryEpoch) -> None:
        """Ask one peer for its peers and recurse on the new ones."""
        host = self.host
        book = host.peer_book
        peer.asked = True
        book.mark_asked(peer.peer_id)

        try:
            stream = await asyncio.wait_for(
                host.dial(peer, PROTOCOL_ID), self.config.dial_timeout,
            )
        except (DialError, asyncio.TimeoutError) as e:
            logger.debug("Cannot dial %s: %s", peer.peer_id, str(e) or "timeout")
            try:
                if self._running(epoch):
                    await host.hang_up(peer.peer_id)
            finally:
                book.remove(peer.peer_id)
            return

        if not self._running(epoch):
            await stream.close()
            return

        try:
            remote = await asyncio.wait_for(
                read_message(stream), self.config.read_timeout,
            )
        except asyncio.TimeoutError:
            logger.debug("Timed out reading peers from %s", peer.peer_id)
            await self._evict(peer.peer_id, stream)
            return
        except (FramingError, ConnectionError) as e:
            epoch.suspects.add(peer.peer_id)
            await self._evict(peer.peer_id, stream)
            logger.warning("Peer %s sent an invalid peer list: %s", peer.peer_id, e)
            self.events.publish(PeerSuspect(peer.peer_id, str(e)))
            return
        await stream.close()

        new_peers = self.filter_peers(remote, epoch)
        logger.debug(
            "Peer %s reported %d peers, %d new",
            peer.peer_id, len(remote), len(new_peers),
        )
        await self._discover(new_peers, epoch)

    async def _evict(self, peer_id: PeerId, stream: Stream) -> None:
        try:
            await stream.close()
            await self.host.hang_up(peer_id)
        finally:
            self.host.peer_book.remove(peer_id)

    def filter_peers(
        self, remote: GossipMessage, epoch: DiscoveryEpoch | None = None,
    ) -> list[PeerRecord]:
        """Admit the peers of ``remote`` we don't know yet.

        Known peers are skipped as-is: addresses reported for them are
        not merged. Returns the admitted records.
        """
        host = self.host
        admitted: list[PeerRecord] = []
        for raw_id, addresses in remote.items():
            try:
                peer_id = PeerId(raw_id)
            except ValueError:
                logger.debug("Ignoring invalid peer id %r", raw_id)
                continue
            if peer_id == host.peer_id:
                continue
            if epoch is not None and peer_id in epoch.suspects:
                logger.debug("Ignoring suspect peer %s", peer_id)
                continue

            record = PeerRecord.from_bare(peer_id, addresses)
            if not host.peer_book.add_if_absent(record):
                logger.debug("Already have peer %s", peer_id)
                continue
            admitted.append(record)
            self.events.publish(PeerAdmitted(record))
        return admitted
