"""A raw transaction wrapped with the metadata the mempool indexes it by."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field

from txpriopool.types import tx_key


@dataclass(eq=False)
class WrappedTx:
    """A transaction plus its key, arrival data and application-assigned values.

    ``timestamp`` is seconds since the epoch at the time of arrival.
    """

    tx: bytes
    hash: bytes = b""
    height: int = 0
    timestamp: float = field(default_factory=time.time)
    gas_wanted: int = 0
    priority: int = 0
    sender: str = ""
    peers: set[int] = field(default_factory=set)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    def __post_init__(self) -> None:
        self.tx = bytes(self.tx)
        if not self.hash:
            self.hash = tx_key(self.tx)

    def size(self) -> int:
        """Return the size of the raw transaction in bytes."""
        return len(self.tx)

    def set_peer(self, peer_id: int) -> None:
        """Record ``peer_id`` as a sender of this transaction."""
        with self._lock:
            self.peers.add(peer_id)

    def has_peer(self, peer_id: int) -> bool:
        """Report whether ``peer_id`` sent this transaction."""
        with self._lock:
            return peer_id in self.peers