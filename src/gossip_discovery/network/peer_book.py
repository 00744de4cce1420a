"""Peer book — the local set of known peers, keyed by peer id.

Shared by every discovery branch and the responder. All check-then-act
sequences run under one lock so parallel branches can never admit the
same id twice.
"""

from __future__ import annotations

import logging
import threading

from gossip_discovery.network.peer import PeerId, PeerRecord

logger = logging.getLogger(__name__)


class PeerBook:
    """Mapping of PeerId to PeerRecord, safe under interleaved access."""

    def __init__(self) -> None:
        self._peers: dict[PeerId, PeerRecord] = {}
        self._lock = threading.RLock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._peers)

    def __contains__(self, peer_id: object) -> bool:
        with self._lock:
            return peer_id in self._peers

    def get(self, peer_id: PeerId) -> PeerRecord | None:
        with self._lock:
            return self._peers.get(peer_id)

    def put(self, record: PeerRecord) -> PeerRecord:
        """Insert a record, merging addresses into an existing one."""
        with self._lock:
            existing = self._peers.get(record.peer_id)
            if existing is None:
                self._peers[record.peer_id] = record
                return record
            existing.addresses |= record.addresses
            existing.asked = existing.asked or record.asked
            return existing

    def add_if_absent(self, record: PeerRecord) -> bool:
        """Insert only if the id is unknown. Returns True when inserted."""
        with self._lock:
            if record.peer_id in self._peers:
                return False
            self._peers[record.peer_id] = record
            return True

    def remove(self, peer_id: PeerId) -> bool:
        """Forget a peer. Removing an unknown peer is a no-op."""
        with self._lock:
            removed = self._peers.pop(peer_id, None) is not None
        if removed:
            logger.debug("Removed peer %s", peer_id)
        return removed

    def mark_asked(self, peer_id: PeerId) -> None:
        with self._lock:
            record = self._peers.get(peer_id)
            if record is not None:
                record.asked = True

    def list_all(self) -> list[PeerRecord]:
        with self._lock:
            return list(self._peers.values())

    def snapshot(self) -> dict[str, list[str]]:
        """Id → suffix-less addresses, as exchanged on the wire."""
        with self._lock:
            return {
                str(pid): record.bare_addresses()
                for pid, record in self._peers.items()
            }
