"""A priority mempool: valid transactions ordered by application-assigned priority."""

from __future__ import annotations

import logging
import os
import queue
import threading
import time
from collections.abc import Callable, Iterable, Sequence
from concurrent.futures import ThreadPoolExecutor, wait
from typing import Any

from txpriopool.cache import LRUTxCache, NopTxCache, TxCache
from txpriopool.checks import PostCheckFunc, PreCheckFunc
from txpriopool.clist import CElement, CList
from txpriopool.errors import (
    MempoolIsFullError,
    PreCheckError,
    TxInCacheError,
    TxNotFoundError,
    TxTooLargeError,
)
from txpriopool.metrics import Metrics, nop_metrics
from txpriopool.ordering import (
    is_expired,
    reap_count,
    reap_within_limits,
    select_victims,
    sort_by_priority,
)
from txpriopool.types import (
    AppConnection,
    CheckTxRequest,
    CheckTxResponse,
    CheckTxType,
    DeliverTxResponse,
    MempoolConfig,
    TxInfo,
    tx_hash,
    tx_key,
)
from txpriopool.wrapped import WrappedTx

CheckTxCallback = Callable[[CheckTxResponse], Any]


def _hex(tx: bytes) -> str:
    return tx_hash(tx).hex().upper()


class TxMempool:
    """A mempool where the application sets transaction priorities in its CheckTx response.

    Higher-priority transactions are reaped first and evicted last.  Within
    the pool, transactions are kept in order of arrival.
    """

    def __init__(
        self,
        config: MempoolConfig,
        app_conn: AppConnection,
        height: int = 0,
        *,
        pre_check: PreCheckFunc | None = None,
        post_check: PostCheckFunc | None = None,
        metrics: Metrics | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.config = config
        self.metrics = nop_metrics() if metrics is None else metrics
        self.cache: TxCache = (
            LRUTxCache(config.cache_size) if config.cache_size > 0 else NopTxCache()
        )
        self.height = height
        self._app_conn = app_conn
        self._logger = logger if logger is not None else logging.getLogger(__name__)
        self._pre_check = pre_check
        self._post_check = post_check

        self._lock = threading.RLock()
        self._bytes_lock = threading.Lock()
        self._txs_bytes = 0
        self._clock_lock = threading.Lock()
        self._last_timestamp = 0.0

        self._notified_txs_available = False
        self._txs_available: queue.Queue[None] | None = None

        self._txs = CList()
        self._by_key: dict[bytes, CElement] = {}
        self._by_sender: dict[str, CElement] = {}

    # -- locking -----------------------------------------------------------

    def lock(self) -> None:
        """Acquire the mempool lock; release it with :meth:`unlock`."""
        self._lock.acquire()

    def unlock(self) -> None:
        """Release the mempool lock."""
        self._lock.release()

    def __enter__(self) -> TxMempool:
        self._lock.acquire()
        return self

    def __exit__(self, *args: Any) -> None:
        self._lock.release()

    # -- queries -----------------------------------------------------------

    def __contains__(self, key: object) -> bool:
        """Report whether a transaction with key ``key`` is in the pool."""
        with self._lock:
            return key in self._by_key

    def size(self) -> int:
        """Return the number of valid transactions in the pool."""
        return len(self._txs)

    def size_bytes(self) -> int:
        """Return the total size in bytes of the transactions in the pool."""
        with self._bytes_lock:
            return self._txs_bytes

    def _add_bytes(self, delta: int) -> None:
        with self._bytes_lock:
            self._txs_bytes += delta

    def _next_timestamp(self) -> float:
        # Arrival times are kept strictly increasing so ties follow arrival order.
        with self._clock_lock:
            now = max(time.time(), self._last_timestamp + 1e-6)
            self._last_timestamp = now
            return now

    def flush_app_conn(self) -> None:
        """Flush the application connection; the caller must hold the lock."""
        self._lock.release()
        try:
            self._app_conn.flush_sync()
        finally:
            self._lock.acquire()

    def enable_txs_available(self) -> None:
        """Start signalling, once per height, when transactions are available."""
        with self._lock:
            self._txs_available = queue.Queue(maxsize=1)

    def txs_available(self) -> queue.Queue[None] | None:
        """Return the queue that receives one item per height with transactions, if enabled."""
        return self._txs_available

    def txs_wait_event(self) -> threading.Event:
        """Return an event that is set once at least one transaction is in the pool."""
        return self._txs.wait_event()

    def txs_front(self) -> CElement | None:
        """Return the first element of the arrival-ordered list, or None if empty."""
        return self._txs.front()

    # -- adding ------------------------------------------------------------

    def check_tx(
        self,
        tx: bytes,
        callback: CheckTxCallback | None = None,
        tx_info: TxInfo | None = None,
    ) -> None:
        """Validate ``tx`` with the application and add it to the pool if it is accepted.

        Raises if the transaction is too large, fails the pre-check, is already
        in the cache, or the application connection has failed.  Otherwise the
        application's response is passed to ``callback``; a transaction the
        application or the pool rejects is reported there, not raised.
        """
        tx = bytes(tx)
        info = tx_info if tx_info is not None else TxInfo()

        with self._lock:
            if len(tx) > self.config.max_tx_bytes:
                raise TxTooLargeError(self.config.max_tx_bytes, len(tx))
            if self._pre_check is not None:
                try:
                    self._pre_check(tx)
                except Exception as exc:
                    raise PreCheckError(exc) from exc
            conn_error = self._app_conn.error()
            if conn_error is not None:
                raise conn_error
            if not self.cache.push(tx):
                element = self._by_key.get(tx_key(tx))
                if element is not None:
                    element.value.set_peer(info.sender_id)
                raise TxInCacheError()
            height = self.height

        try:
            response = self._app_conn.check_tx_sync(CheckTxRequest(tx))
        except Exception:
            self.cache.remove(tx)
            raise

        wtx = WrappedTx(
            tx=tx, hash=tx_key(tx), timestamp=self._next_timestamp(), height=height
        )
        wtx.set_peer(info.sender_id)
        self._add_new_transaction(wtx, response)
        if callback is not None:
            callback(response)

    def _run_post_check(self, tx: bytes, response: CheckTxResponse) -> Exception | None:
        if self._post_check is None:
            return None
        try:
            self._post_check(tx, response)
        except Exception as exc:
            return exc
        return None

    def _fullness_error(self, wtx: WrappedTx) -> MempoolIsFullError | None:
        num_txs = self.size()
        txs_bytes = self.size_bytes()
        if (
            num_txs >= self.config.size
            or wtx.size() + txs_bytes > self.config.max_txs_bytes
        ):
            return MempoolIsFullError(
                num_txs, self.config.size, txs_bytes, self.config.max_txs_bytes
            )
        return None

    def _add_new_transaction(self, wtx: WrappedTx, response: CheckTxResponse) -> None:
        with self._lock:
            err = self._run_post_check(wtx.tx, response)

            if err is not None or not response.is_ok:
                self._logger.debug(
                    "rejected bad transaction priority=%s tx=%s peers=%s code=%s post_check_err=%s",
                    wtx.priority,
                    _hex(wtx.tx),
                    sorted(wtx.peers),
                    response.code,
                    err,
                )
                self.metrics.failed_txs.add(1)
                if not self.config.keep_invalid_txs_in_cache:
                    self.cache.remove(wtx.tx)
                if err is not None:
                    response.mempool_error = str(err)
                return

            priority = response.priority
            sender = response.sender

            if sender:
                existing = self._by_sender.get(sender)
                if existing is not None:
                    other = existing.value
                    self._logger.debug(
                        "rejected valid incoming transaction; tx already exists for sender "
                        "tx=%s sender=%s",
                        _hex(other.tx),
                        sender,
                    )
                    response.mempool_error = (
                        "rejected valid incoming transaction; tx already exists for sender "
                        f'"{sender}" ({_hex(other.tx)})'
                    )
                    self.metrics.rejected_txs.add(1)
                    return

            full = self._fullness_error(wtx)
            if full is not None:
                victims = select_victims(
                    (element.value for element in self._txs), priority, wtx.size()
                )
                if not victims:
                    self.cache.remove(wtx.tx)
                    self._logger.error(
                        "rejected valid incoming transaction; mempool is full tx=%s err=%s",
                        _hex(wtx.tx),
                        full,
                    )
                    response.mempool_error = (
                        "rejected valid incoming transaction; mempool is full "
                        f"({_hex(wtx.tx)})"
                    )
                    self.metrics.rejected_txs.add(1)
                    return

                self._logger.debug(
                    "evicting lower-priority transactions new_tx=%s new_priority=%s",
                    _hex(wtx.tx),
                    priority,
                )
                for victim in victims:
                    self._logger.debug(
                        "evicted valid existing transaction; mempool full "
                        "old_tx=%s old_priority=%s",
                        _hex(victim.tx),
                        victim.priority,
                    )
                    element = self._by_key.get(tx_key(victim.tx))
                    if element is not None:
                        self._remove_element(element)
                    self.cache.remove(victim.tx)
                    self.metrics.evicted_txs.add(1)

            wtx.gas_wanted = response.gas_wanted
            wtx.priority = priority
            wtx.sender = sender
            self.insert_tx(wtx)

            self.metrics.tx_size_bytes.observe(float(wtx.size()))
            self.metrics.size.set(float(self.size()))
            self._logger.debug(
                "inserted new valid transaction priority=%s tx=%s height=%s num_txs=%s",
                wtx.priority,
                _hex(wtx.tx),
                self.height,
                self.size(),
            )
            self._notify_txs_available()

    def insert_tx(self, wtx: WrappedTx) -> None:
        """Append ``wtx`` to the pool and its indexes without any checks."""
        with self._lock:
            element = self._txs.push_back(wtx)
            self._by_key[tx_key(wtx.tx)] = element
            if wtx.sender:
                self._by_sender[wtx.sender] = element
            self._add_bytes(wtx.size())

    # -- removing ----------------------------------------------------------

    def remove_tx_by_key(self, key: bytes) -> None:
        """Remove the transaction with key ``key``; the cache is left alone.

        Raises :class:`TxNotFoundError` if no such transaction is in the pool.
        """
        with self._lock:
            self._remove_tx_by_key(key)

    def _remove_tx_by_key(self, key: bytes) -> None:
        element = self._by_key.get(key)
        if element is None:
            raise TxNotFoundError(key)
        self._remove_element(element, key)

    def _remove_element(self, element: CElement, key: bytes | None = None) -> None:
        w: WrappedTx = element.value
        self._by_key.pop(tx_key(w.tx) if key is None else key, None)
        self._by_sender.pop(w.sender, None)
        self._txs.remove(element)
        element.detach_prev()
        element.detach_next()
        self._add_bytes(-w.size())

    def flush(self) -> None:
        """Remove every transaction from the pool and empty the cache; the height is kept."""
        with self._lock:
            for element in list(self._txs):
                self._remove_element(element)
            self.cache.reset()

    # -- reaping -----------------------------------------------------------

    def entries_sorted(self) -> list[WrappedTx]:
        """Return all transactions by nonincreasing priority, ties broken by arrival."""
        with self._lock:
            return sort_by_priority(element.value for element in self._by_key.values())

    def reap_max_bytes_max_gas(self, max_bytes: int, max_gas: int) -> list[bytes]:
        """Return transactions in priority order that fit the byte and gas limits.

        A negative limit means no limit.  The pool is not changed.
        """
        return reap_within_limits(self.entries_sorted(), max_bytes, max_gas)

    def reap_max_txs(self, max_txs: int) -> list[bytes]:
        """Return up to ``max_txs`` transactions in priority order; all if negative."""
        return reap_count(self.entries_sorted(), max_txs)

    # -- block commit ------------------------------------------------------

    def update(
        self,
        block_height: int,
        block_txs: Iterable[bytes] | None,
        deliver_tx_responses: Sequence[DeliverTxResponse] | None,
        new_pre_fn: PreCheckFunc | None = None,
        new_post_fn: PostCheckFunc | None = None,
    ) -> None:
        """Drop committed transactions, move to ``block_height`` and expire old entries.

        Committed transactions stay in the cache when they succeeded; failed
        ones leave it unless configured otherwise.  Remaining transactions are
        then rechecked or announced.  Raises ValueError if the numbers of
        transactions and responses differ.
        """
        txs = [bytes(tx) for tx in (block_txs or ())]
        responses = list(deliver_tx_responses or ())
        if len(txs) != len(responses):
            raise ValueError(
                f"mempool: got {len(txs)} transactions but "
                f"{len(responses)} DeliverTx responses"
            )

        with self._lock:
            self.height = block_height
            self._notified_txs_available = False
            if new_pre_fn is not None:
                self._pre_check = new_pre_fn
            if new_post_fn is not None:
                self._post_check = new_post_fn

            for tx, response in zip(txs, responses):
                if response.is_ok:
                    self.cache.push(tx)
                elif not self.config.keep_invalid_txs_in_cache:
                    self.cache.remove(tx)
                try:
                    self._remove_tx_by_key(tx_key(tx))
                except TxNotFoundError:
                    pass

            self._purge_expired_txs(block_height)

            size = self.size()
            self.metrics.size.set(float(size))
            if size > 0:
                if self.config.recheck:
                    self._recheck_transactions()
                else:
                    self._notify_txs_available()

    def _purge_expired_txs(self, block_height: int) -> None:
        if self.config.ttl_num_blocks == 0 and self.config.ttl_duration == 0:
            return
        now = time.time()
        for element in list(self._txs):
            w: WrappedTx = element.value
            if is_expired(
                w,
                block_height,
                now,
                self.config.ttl_num_blocks,
                self.config.ttl_duration,
            ):
                self._remove_element(element)
                self.cache.remove(w.tx)
                self.metrics.evicted_txs.add(1)

    def _recheck_transactions(self) -> None:
        if self.size() == 0:
            raise RuntimeError("mempool: cannot run recheck on an empty mempool")
        self._logger.debug(
            "executing re-CheckTx for all remaining transactions num_txs=%s height=%s",
            self.size(),
            self.height,
        )
        wtxs = [element.value for element in self._txs]
        threading.Thread(target=self._run_recheck, args=(wtxs,), daemon=True).start()

    def _recheck_one(self, wtx: WrappedTx) -> None:
        try:
            response = self._app_conn.check_tx_sync(
                CheckTxRequest(wtx.tx, CheckTxType.RECHECK)
            )
        except Exception as exc:
            self._logger.error(
                "failed to execute CheckTx during recheck err=%s hash=%s",
                exc,
                tx_hash(wtx.tx).hex(),
            )
            return
        self._handle_recheck_result(wtx.tx, response)

    def _run_recheck(self, wtxs: list[WrappedTx]) -> None:
        workers = 2 * (os.cpu_count() or 1)
        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = [executor.submit(self._recheck_one, wtx) for wtx in wtxs]
            self._app_conn.flush_async()
            wait(futures)
        with self._lock:
            self._notify_txs_available()

    def _handle_recheck_result(self, tx: bytes, response: CheckTxResponse) -> None:
        self.metrics.recheck_times.add(1)
        with self._lock:
            element = self._by_key.get(tx_key(tx))
            if element is None:
                return
            wtx: WrappedTx = element.value

            err = self._run_post_check(tx, response)
            if response.is_ok and err is None:
                wtx.priority = response.priority
                return

            self._logger.debug(
                "existing transaction no longer valid; failed re-CheckTx callback "
                "priority=%s tx=%s err=%s code=%s",
                wtx.priority,
                _hex(wtx.tx),
                err,
                response.code,
            )
            self._remove_element(element)
            self.metrics.failed_txs.add(1)
            if not self.config.keep_invalid_txs_in_cache:
                self.cache.remove(wtx.tx)
            self.metrics.size.set(float(self.size()))

    def _notify_txs_available(self) -> None:
        if self.size() == 0:
            return
        if self._txs_available is not None and not self._notified_txs_available:
            self._notified_txs_available = True
            try:
                self._txs_available.put_nowait(None)
            except queue.Full:
                pass