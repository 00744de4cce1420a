"""Gossip node — an HTTP transport with gossip peer discovery attached.

A node:
1. Serves its peer book to anyone dialing the gossip protocol
2. Seeds its peer book with the configured bootstrap peers
3. Grows the peer book by recursive gossip discovery
4. Starts a discovery round for every peer that connects to it
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from gossip_discovery.network.discovery import (
    DEFAULT_DIAL_TIMEOUT,
    DEFAULT_READ_TIMEOUT,
    DiscoveryConfig,
    GossipDiscovery,
)
from gossip_discovery.network.peer import PeerId, PeerRecord
from gossip_discovery.network.peer_book import PeerBook
from gossip_discovery.network.transport import HttpTransport

logger = logging.getLogger(__name__)


@dataclass
class NodeConfig:
    """Configuration for a gossip node."""

    host: str = "0.0.0.0"
    port: int = 8470
    advertise_host: str | None = None
    peer_id: str = ""  # Random if empty
    bootstrap_peers: list[str] = field(default_factory=list)  # /ip4/../tcp/../p2p/<id>

    # Discovery
    target_number_of_peers: int = 20
    dial_timeout: float | None = DEFAULT_DIAL_TIMEOUT
    read_timeout: float | None = DEFAULT_READ_TIMEOUT

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> NodeConfig:
        return cls(
            host=raw.get("host", "0.0.0.0"),
            port=raw.get("port", 8470),
            advertise_host=raw.get("advertise_host"),
            peer_id=raw.get("peer_id", ""),
            bootstrap_peers=list(raw.get("bootstrap_peers", [])),
            target_number_of_peers=raw.get("target_number_of_peers", 20),
            dial_timeout=raw.get("dial_timeout", DEFAULT_DIAL_TIMEOUT),
            read_timeout=raw.get("read_timeout", DEFAULT_READ_TIMEOUT),
        )

    def discovery_config(self) -> DiscoveryConfig:
        return DiscoveryConfig(
            target_number_of_peers=self.target_number_of_peers,
            dial_timeout=self.dial_timeout,
            read_timeout=self.read_timeout,
        )


class Node:
    """Ties the transport, the peer book and gossip discovery together."""

    def __init__(self, config: NodeConfig) -> None:
        self.config = config
        self.peer_book = PeerBook()
        self.transport = HttpTransport(
            peer_id=PeerId(config.peer_id) if config.peer_id else None,
            host=config.host,
            port=config.port,
            peer_book=self.peer_book,
            advertise_host=config.advertise_host,
        )
        self.discovery = GossipDiscovery(config.discovery_config())
        self.discovery.attach(self.transport)

    @property
    def peer_id(self) -> PeerId:
        """This node's peer ID."""
        return self.transport.peer_id

    @property
    def addresses(self) -> list[str]:
        """Full addresses other nodes can bootstrap from."""
        return sorted(self.transport.record().addresses)

    def add_bootstrap_peers(self) -> int:
        """Put the configured bootstrap peers into the peer book."""
        added = 0
        for address in self.config.bootstrap_peers:
            try:
                record = PeerRecord.parse(address)
            except ValueError:
                logger.warning("Skipping bootstrap peer without peer id: %s", address)
                continue
            if record.peer_id == self.peer_id:
                continue
            self.peer_book.put(record)
            added += 1
        return added

    async def start(self) -> None:
        await self.transport.start()
        added = self.add_bootstrap_peers()
        logger.info("Node %s started with %d bootstrap peers", self.peer_id, added)
        await self.discovery.start()

    async def stop(self) -> None:
        await self.discovery.stop()
        await self.transport.stop()
        await self.discovery.join()
        logger.info("Node %s stopped", self.peer_id)
