# txpriopool

A thread-safe transaction mempool that orders transactions by a priority
the application assigns to them.

A transaction offered to the pool is first checked for size, by an
optional pre-check hook and against a cache of transactions already seen.
It is then passed to an application connection, whose `CheckTxResponse`
decides whether it is valid and what its priority, gas and sender are.
When the pool is full, transactions of strictly lower priority are evicted
to make room; if that is not possible, the new transaction is dropped.
Committed transactions are removed on `update`, old ones are expired by
block count or age, and what remains is rechecked in the background or
announced.

## Installation

```
pip install txpriopool
```

For running the tests:

```
pip install "txpriopool[test]"
pytest
```

## Modules

- `txpriopool.pool` — `TxMempool`, the mempool. Main methods:
  `check_tx`, `reap_max_bytes_max_gas`, `reap_max_txs`, `update`,
  `remove_tx_by_key`, `flush`, `size`, `size_bytes`, `entries_sorted`,
  `enable_txs_available` / `txs_available`, and `key in pool` to test
  whether a transaction key is present.
- `txpriopool.types` — `CheckTxRequest`, `CheckTxResponse`,
  `DeliverTxResponse`, `CheckTxType`, `TxInfo`, `MempoolConfig`, the
  `AppConnection` protocol, and the helpers `tx_key`, `tx_hash` and
  `proto_size_for_txs`.
- `txpriopool.app` — `PriorityApp`, which accepts transactions of the form
  `sender=key=priority` (each wanting one unit of gas), and
  `LocalAppConnection`, which connects an application to the pool in
  process.
- `txpriopool.cache` — the `TxCache` interface, `LRUTxCache` and the
  no-op `NopTxCache`.
- `txpriopool.checks` — hook factories `pre_check_max_bytes` and
  `post_check_max_gas`.
- `txpriopool.errors` — `MempoolError` and its subclasses
  `TxTooLargeError`, `PreCheckError`, `TxInCacheError`,
  `TxNotFoundError` and `MempoolIsFullError`, plus `is_pre_check_error`.
- `txpriopool.ordering` — the orderings and selections the pool uses:
  `sort_by_priority`, `eviction_order`, `select_victims`, `is_expired`,
  `reap_within_limits`, `reap_count`.
- `txpriopool.wrapped` — `WrappedTx`, a transaction with its key, height,
  arrival time, gas, priority, sender and peers.
- `txpriopool.clist` — `CList` and `CElement`, a concurrent linked list
  that readers can walk and wait on; `ListFullError` when it is full.
- `txpriopool.metrics` — `Counter`, `Gauge`, `Histogram`, `Metrics`,
  `labelled_metrics`, `nop_metrics` and `exponential_buckets`.

## Example

```python
from txpriopool.app import LocalAppConnection, PriorityApp
from txpriopool.pool import TxMempool
from txpriopool.types import DeliverTxResponse, MempoolConfig, TxInfo

config = MempoolConfig()
pool = TxMempool(config, LocalAppConnection(PriorityApp()), 0)

pool.check_tx(b"alice=k1=10", None, TxInfo())
pool.check_tx(b"bob=k2=30", None, TxInfo())

print(pool.reap_max_txs(-1))   # [b'bob=k2=30', b'alice=k1=10']

with pool:
    pool.update(1, [b"bob=k2=30"], [DeliverTxResponse(code=0)], None, None)

print(pool.size())             # 1
```

`check_tx` raises for oversized transactions, pre-check failures,
transactions already in the cache and a failed application connection.
A transaction that the application, the post-check hook or a full pool
rejects is not raised; the response handed to the callback carries the
reason in `mempool_error` where there is one.

Reaping does not remove transactions; `update` does, and it should be
called while holding the pool's lock (`with pool:` or `lock()` /
`unlock()`).

## What it does not do

The package holds and orders transactions in memory only. It does not
gossip transactions to peers, does not persist anything, and has no
network connection to an application: the only connection provided is
`LocalAppConnection`, which calls an application in the same process.
Metrics are kept in memory and are not exported anywhere.