"""Peer identity and records — who a peer is and where to reach it."""

from __future__ import annotations

import secrets
from dataclasses import dataclass, field

# Routing suffixes that carry a peer id at the end of an address.
PEER_SUFFIX_PROTOCOLS = ("p2p", "ipfs")


@dataclass(frozen=True, order=True)
class PeerId:
    """Opaque peer identifier with a canonical string form."""

    value: str

    def __post_init__(self) -> None:
        if not self.value or "/" in self.value or any(c.isspace() for c in self.value):
            raise ValueError(f"invalid peer id: {self.value!r}")

    @classmethod
    def random(cls) -> PeerId:
        return cls(secrets.token_hex(16))

    def __str__(self) -> str:
        return self.value


def strip_peer_suffix(address: str) -> str:
    """Drop a trailing ``/p2p/<id>`` (or legacy ``/ipfs/<id>``) component."""
    parts = address.rstrip("/").split("/")
    if len(parts) >= 3 and parts[-2] in PEER_SUFFIX_PROTOCOLS:
        return "/".join(parts[:-2])
    return address


def with_peer_suffix(address: str, peer_id: PeerId | str) -> str:
    """Append the peer id as a ``/p2p/`` routing suffix."""
    return f"{strip_peer_suffix(address)}/p2p/{peer_id}"


@dataclass
class PeerRecord:
    """A known peer: its id, full addresses and discovery bookkeeping.

    ``asked`` is set once a discovery round has been started against the
    peer so connection events don't trigger a second one.
    """

    peer_id: PeerId
    addresses: set[str] = field(default_factory=set)
    asked: bool = False

    @classmethod
    def from_bare(cls, peer_id: PeerId, addresses: list[str]) -> PeerRecord:
        """Rebuild a record from suffix-less addresses as sent on the wire."""
        return cls(peer_id, {with_peer_suffix(a, peer_id) for a in addresses})

    @classmethod
    def parse(cls, address: str) -> PeerRecord:
        """Build a record from a full ``.../p2p/<id>`` address."""
        parts = address.rstrip("/").split("/")
        if len(parts) < 3 or parts[-2] not in PEER_SUFFIX_PROTOCOLS:
            raise ValueError(f"address has no peer id suffix: {address}")
        peer_id = PeerId(parts[-1])
        return cls(peer_id, {with_peer_suffix(address, peer_id)})

    def add_address(self, address: str) -> None:
        self.addresses.add(with_peer_suffix(address, self.peer_id))

    def bare_addresses(self) -> list[str]:
        """Addresses with the routing suffix removed, sorted."""
        return sorted({strip_peer_suffix(a) for a in self.addresses})
