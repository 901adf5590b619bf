"""Counters, gauges and histograms describing the mempool."""

from __future__ import annotations

import threading
from bisect import bisect_left
from dataclasses import dataclass, field

METRICS_SUBSYSTEM = "mempool"


def exponential_buckets(start: float, factor: float, count: int) -> tuple[float, ...]:
    """Return ``count`` bucket bounds starting at ``start``, each ``factor`` times the last."""
    if count < 1:
        raise ValueError("exponential_buckets needs a positive count")
    if start <= 0:
        raise ValueError("exponential_buckets needs a positive start value")
    if factor <= 1:
        raise ValueError("exponential_buckets needs a factor greater than 1")
    buckets = []
    bound = start
    for _ in range(count):
        buckets.append(bound)
        bound *= factor
    return tuple(buckets)


def _full_name(namespace: str, subsystem: str, name: str) -> str:
    return "_".join(part for part in (namespace, subsystem, name) if part)


@dataclass
class Counter:
    """A monotonically increasing value."""

    name: str = ""
    help: str = ""
    labels: dict[str, str] = field(default_factory=dict)
    enabled: bool = True
    value: float = field(default=0.0, init=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False, compare=False)

    def add(self, delta: float) -> None:
        if delta < 0:
            raise ValueError("counter cannot decrease in value")
        if not self.enabled:
            return
        with self._lock:
            self.value += delta


@dataclass
class Gauge:
    """A value that can go up and down."""

    name: str = ""
    help: str = ""
    labels: dict[str, str] = field(default_factory=dict)
    enabled: bool = True
    value: float = field(default=0.0, init=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False, compare=False)

    def set(self, value: float) -> None:
        if not self.enabled:
            return
        with self._lock:
            self.value = value


@dataclass
class Histogram:
    """Observations counted into cumulative buckets with upper bounds ``buckets``."""

    name: str = ""
    help: str = ""
    labels: dict[str, str] = field(default_factory=dict)
    buckets: tuple[float, ...] = ()
    enabled: bool = True
    count: int = field(default=0, init=False)
    sum: float = field(default=0.0, init=False)
    _per_bucket: list[int] = field(default_factory=list, init=False, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        self.buckets = tuple(sorted(self.buckets))
        self._per_bucket = [0] * len(self.buckets)

    def observe(self, value: float) -> None:
        if not self.enabled:
            return
        with self._lock:
            self.count += 1
            self.sum += value
            index = bisect_left(self.buckets, value)
            if index < len(self._per_bucket):
                self._per_bucket[index] += 1

    @property
    def bucket_counts(self) -> tuple[int, ...]:
        """Cumulative number of observations at or below each bucket bound."""
        with self._lock:
            totals = []
            running = 0
            for n in self._per_bucket:
                running += n
                totals.append(running)
            return tuple(totals)


@dataclass
class Metrics:
    """The metrics a mempool reports."""

    size: Gauge
    tx_size_bytes: Histogram
    failed_txs: Counter
    rejected_txs: Counter
    evicted_txs: Counter
    recheck_times: Counter


def labelled_metrics(namespace: str, *args: str) -> Metrics:
    """Build recording metrics under ``namespace``.

    ``args`` alternate label names and values; a missing final value is
    recorded as ``"unknown"``.
    """
    pairs = list(args)
    if len(pairs) % 2:
        pairs.append("unknown")
    labels = dict(zip(pairs[::2], pairs[1::2]))

    def name(short: str) -> str:
        return _full_name(namespace, METRICS_SUBSYSTEM, short)

    return Metrics(
        size=Gauge(
            name("size"),
            "Size of the mempool (number of uncommitted transactions).",
            dict(labels),
        ),
        tx_size_bytes=Histogram(
            name("tx_size_bytes"),
            "Transaction sizes in bytes.",
            dict(labels),
            exponential_buckets(1, 3, 17),
        ),
        failed_txs=Counter(name("failed_txs"), "Number of failed transactions.", dict(labels)),
        rejected_txs=Counter(
            name("rejected_txs"), "Number of rejected transactions.", dict(labels)
        ),
        evicted_txs=Counter(
            name("evicted_txs"), "Number of evicted transactions.", dict(labels)
        ),
        recheck_times=Counter(
            name("recheck_times"),
            "Number of times transactions are rechecked in the mempool.",
            dict(labels),
        ),
    )


def nop_metrics() -> Metrics:
    """Return metrics that discard everything recorded on them."""
    return Metrics(
        size=Gauge(enabled=False),
        tx_size_bytes=Histogram(enabled=False),
        failed_txs=Counter(enabled=False),
        rejected_txs=Counter(enabled=False),
        evicted_txs=Counter(enabled=False),
        recheck_times=Counter(enabled=False),
    )