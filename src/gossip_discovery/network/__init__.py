"""Networking layer — peer book, gossip codec and recursive discovery."""

from gossip_discovery.network.codec import FramingError, FrameTooLarge
from gossip_discovery.network.discovery import (
    PROTOCOL_ID,
    ConfigurationError,
    DiscoveryConfig,
    GossipDiscovery,
)
from gossip_discovery.network.events import PeerAdmitted, PeerSuspect
from gossip_discovery.network.host import DialError
from gossip_discovery.network.peer import PeerId, PeerRecord
from gossip_discovery.network.peer_book import PeerBook
from gossip_discovery.network.transport import HttpTransport

__all__ = [
    "PROTOCOL_ID",
    "ConfigurationError",
    "DialError",
    "DiscoveryConfig",
    "FrameTooLarge",
    "FramingError",
    "GossipDiscovery",
    "HttpTransport",
    "PeerAdmitted",
    "PeerBook",
    "PeerId",
    "PeerRecord",
    "PeerSuspect",
]
