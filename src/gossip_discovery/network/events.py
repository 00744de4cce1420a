"""Discovery events and the channel that delivers them."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from gossip_discovery.network.peer import PeerId, PeerRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PeerAdmitted:
    """A previously unknown peer was added to the peer book."""

    record: PeerRecord


@dataclass(frozen=True)
class PeerSuspect:
    """A peer sent an invalid response and was evicted."""

    peer_id: PeerId
    reason: str


DiscoveryEvent = PeerAdmitted | PeerSuspect


class EventChannel:
    """Fans events out to every subscribed queue.

    Queues are unbounded so publishing never blocks a discovery branch.
    """

    def __init__(self) -> None:
        self._subscribers: list[asyncio.Queue[DiscoveryEvent]] = []

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self) -> asyncio.Queue[DiscoveryEvent]:
        queue: asyncio.Queue[DiscoveryEvent] = asyncio.Queue()
        self._subscribers.append(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue[DiscoveryEvent]) -> None:
        if queue in self._subscribers:
            self._subscribers.remove(queue)

    def publish(self, event: DiscoveryEvent) -> None:
        logger.debug("Event %s", event)
        for queue in self._subscribers:
            queue.put_nowait(event)
