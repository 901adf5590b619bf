import os
import threading

from txpriopool.cache import LRUTxCache, NopTxCache
from txpriopool.types import tx_key


def test_cache_remove():
    cache = LRUTxCache(100)
    num_txs = 10
    txs = [os.urandom(32) for _ in range(num_txs)]

    for count, tx in enumerate(txs, start=1):
        cache.push(tx)
        assert len(cache) == count
        assert len(cache.keys()) == count

    for count, tx in enumerate(txs, start=1):
        cache.remove(tx)
        assert len(cache) == num_txs - count
        assert len(cache.keys()) == num_txs - count


def test_push_reports_new_and_existing():
    cache = LRUTxCache(10)
    assert cache.push(b"a") is True
    assert cache.push(b"a") is False
    assert len(cache) == 1


def test_push_existing_moves_to_back():
    cache = LRUTxCache(10)
    for tx in (b"a", b"b", b"c"):
        cache.push(tx)
    cache.push(b"a")
    assert cache.keys() == [tx_key(b"b"), tx_key(b"c"), tx_key(b"a")]


def test_evicts_least_recently_used():
    cache = LRUTxCache(2)
    cache.push(b"a")
    cache.push(b"b")
    cache.push(b"a")
    cache.push(b"c")
    assert cache.has(b"a")
    assert cache.has(b"c")
    assert not cache.has(b"b")
    assert len(cache) == 2


def test_has_does_not_refresh():
    cache = LRUTxCache(2)
    cache.push(b"a")
    cache.push(b"b")
    assert cache.has(b"a")
    cache.push(b"c")
    assert not cache.has(b"a")


def test_zero_size_cache_keeps_latest_only():
    cache = LRUTxCache(0)
    cache.push(b"a")
    cache.push(b"b")
    assert cache.keys() == [tx_key(b"b")]


def test_remove_missing_is_harmless():
    cache = LRUTxCache(5)
    cache.push(b"a")
    cache.remove(b"zzz")
    assert cache.keys() == [tx_key(b"a")]


def test_reset_empties_cache():
    cache = LRUTxCache(5)
    for tx in (b"a", b"b"):
        cache.push(tx)
    cache.reset()
    assert len(cache) == 0
    assert cache.push(b"a") is True


def test_concurrent_pushes():
    cache = LRUTxCache(10000)

    def worker(base):
        for i in range(200):
            cache.push(f"{base}-{i}".encode())

    threads = [threading.Thread(target=worker, args=(n,)) for n in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert len(cache) == 8 * 200


def test_nop_cache():
    cache = NopTxCache()
    assert cache.push(b"a") is True
    assert cache.push(b"a") is True
    assert cache.has(b"a") is False
    cache.remove(b"a")
    cache.reset()
    assert cache.has(b"a") is False