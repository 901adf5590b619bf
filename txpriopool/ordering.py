"""Orderings and selections the mempool applies to its wrapped transactions."""

from __future__ import annotations

from collections.abc import Iterable

from txpriopool.types import proto_size_for_txs
from txpriopool.wrapped import WrappedTx

_UINT64_MASK = (1 << 64) - 1


def sort_by_priority(entries: Iterable[WrappedTx]) -> list[WrappedTx]:
    """Return ``entries`` by nonincreasing priority, ties broken by earlier arrival."""
    return sorted(entries, key=lambda w: (-w.priority, w.timestamp))


def eviction_order(entries: Iterable[WrappedTx]) -> list[WrappedTx]:
    """Return ``entries`` lowest priority first, ties broken in favour of newer arrivals."""
    return sorted(entries, key=lambda w: (w.priority, -w.timestamp))


def select_victims(
    entries: Iterable[WrappedTx], priority: int, needed_bytes: int
) -> list[WrappedTx]:
    """Choose transactions to evict to make room for ``needed_bytes`` at ``priority``.

    Only entries with a priority strictly lower than ``priority`` are eligible.
    If there are none, or together they are smaller than ``needed_bytes``, the
    result is empty and nothing should be evicted.  Otherwise victims are taken
    in eviction order until their combined size reaches ``needed_bytes``.
    """
    candidates = [w for w in entries if w.priority < priority]
    if not candidates or sum(w.size() for w in candidates) < needed_bytes:
        return []

    victims: list[WrappedTx] = []
    evicted = 0
    for w in eviction_order(candidates):
        victims.append(w)
        evicted += w.size()
        if evicted >= needed_bytes:
            break
    return victims


def is_expired(
    wtx: WrappedTx,
    block_height: int,
    now: float,
    ttl_num_blocks: int,
    ttl_duration: float,
) -> bool:
    """Report whether ``wtx`` has outlived its height or time limit.

    A zero ``ttl_num_blocks`` or ``ttl_duration`` disables that limit.  Heights
    are unsigned 64-bit values, so their difference wraps around.
    """
    if ttl_num_blocks > 0:
        age = (block_height - wtx.height) & _UINT64_MASK
        if age > ttl_num_blocks:
            return True
    if ttl_duration > 0 and now - wtx.timestamp > ttl_duration:
        return True
    return False


def reap_within_limits(
    entries: Iterable[WrappedTx], max_bytes: int, max_gas: int
) -> list[bytes]:
    """Collect transactions, in the given order, that fit the byte and gas limits.

    A transaction that does not fit is skipped and later ones are still
    considered.  Sizes include protobuf encoding overhead.  A negative limit
    means no limit.
    """
    total_bytes = 0
    total_gas = 0
    keep: list[bytes] = []
    for w in entries:
        tx_bytes = proto_size_for_txs([w.tx])
        if (max_gas >= 0 and total_gas + w.gas_wanted > max_gas) or (
            max_bytes >= 0 and total_bytes + tx_bytes > max_bytes
        ):
            continue
        total_bytes += tx_bytes
        total_gas += w.gas_wanted
        keep.append(w.tx)
    return keep


def reap_count(entries: Iterable[WrappedTx], max_txs: int) -> list[bytes]:
    """Return up to ``max_txs`` transactions in the given order; all if negative."""
    keep: list[bytes] = []
    for w in entries:
        if 0 <= max_txs <= len(keep):
            break
        keep.append(w.tx)
    return keep