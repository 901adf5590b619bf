"""Value types shared by the mempool: transactions, ABCI messages and configuration."""

from __future__ import annotations

import hashlib
from collections.abc import Iterable
from dataclasses import dataclass
from enum import IntEnum
from typing import Protocol, runtime_checkable

CODE_TYPE_OK = 0
"""Response code an application uses to accept a transaction."""

TX_KEY_SIZE = 32
"""Length in bytes of a transaction key."""

MAX_PEER_ID = 0xFFFF


def tx_key(tx: bytes) -> bytes:
    """Return the fixed-length key (SHA-256 digest) indexing a raw transaction."""
    return hashlib.sha256(bytes(tx)).digest()


def tx_hash(tx: bytes) -> bytes:
    """Return the hash of a raw transaction."""
    return hashlib.sha256(bytes(tx)).digest()


def _varint_len(value: int) -> int:
    length = 1
    while value >= 0x80:
        value >>= 7
        length += 1
    return length


def proto_size_for_txs(txs: Iterable[bytes]) -> int:
    """Return the protobuf-encoded size of a block data message holding ``txs``.

    Each transaction is a ``repeated bytes`` entry of field 1: one tag byte,
    a varint length prefix and the payload.
    """
    return sum(1 + _varint_len(len(tx)) + len(tx) for tx in txs)


@dataclass(frozen=True)
class TxInfo:
    """Parameters passed along when a transaction is offered to the mempool."""

    sender_id: int = 0
    sender_p2p_id: str = ""

    def __post_init__(self) -> None:
        if not 0 <= self.sender_id <= MAX_PEER_ID:
            raise ValueError(f"sender id {self.sender_id} out of range 0..{MAX_PEER_ID}")


class CheckTxType(IntEnum):
    """Whether a CheckTx call concerns a new transaction or a recheck."""

    NEW = 0
    RECHECK = 1


@dataclass(frozen=True)
class CheckTxRequest:
    """A request to the application to validate a transaction."""

    tx: bytes
    type: CheckTxType = CheckTxType.NEW


@dataclass
class CheckTxResponse:
    """The application's verdict on a transaction."""

    code: int = CODE_TYPE_OK
    data: bytes = b""
    log: str = ""
    gas_wanted: int = 0
    priority: int = 0
    sender: str = ""
    mempool_error: str = ""

    @property
    def is_ok(self) -> bool:
        return self.code == CODE_TYPE_OK


@dataclass(frozen=True)
class DeliverTxResponse:
    """The result of executing a committed transaction."""

    code: int = CODE_TYPE_OK

    @property
    def is_ok(self) -> bool:
        return self.code == CODE_TYPE_OK


@dataclass
class MempoolConfig:
    """Limits and behaviour switches of a mempool.

    ``ttl_duration`` is in seconds; zero disables time-based expiry, as a zero
    ``ttl_num_blocks`` disables height-based expiry.
    """

    recheck: bool = True
    broadcast: bool = True
    size: int = 5000
    max_txs_bytes: int = 1024 * 1024 * 1024
    cache_size: int = 10000
    keep_invalid_txs_in_cache: bool = False
    max_tx_bytes: int = 1024 * 1024
    ttl_duration: float = 0.0
    ttl_num_blocks: int = 0

    def __post_init__(self) -> None:
        for name in (
            "size",
            "max_txs_bytes",
            "cache_size",
            "max_tx_bytes",
            "ttl_duration",
            "ttl_num_blocks",
        ):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} can't be negative")


@runtime_checkable
class AppConnection(Protocol):
    """Connection from the mempool to the application that validates transactions."""

    def check_tx_sync(self, request: CheckTxRequest) -> CheckTxResponse:
        """Validate a transaction and return the application's response."""

    def flush_sync(self) -> None:
        """Block until all pending requests have been handled."""

    def flush_async(self) -> None:
        """Ask for pending requests to be handled without waiting."""

    def error(self) -> Exception | None:
        """Return the connection's error, if it has failed."""