import pytest

from txpriopool.metrics import (
    METRICS_SUBSYSTEM,
    Counter,
    Gauge,
    Histogram,
    exponential_buckets,
    labelled_metrics,
    nop_metrics,
)


def test_exponential_buckets_shape():
    buckets = exponential_buckets(1, 3, 17)
    assert len(buckets) == 17
    assert buckets[0] == 1
    assert all(b == a * 3 for a, b in zip(buckets, buckets[1:]))


@pytest.mark.parametrize("start,factor,count", [(1, 3, 0), (0, 3, 5), (1, 1, 5)])
def test_exponential_buckets_rejects_bad_arguments(start, factor, count):
    with pytest.raises(ValueError):
        exponential_buckets(start, factor, count)


def test_counter_accumulates():
    c = Counter()
    c.add(1)
    c.add(2.5)
    assert c.value == 3.5


def test_counter_rejects_negative():
    c = Counter()
    with pytest.raises(ValueError):
        c.add(-1)


def test_gauge_set_replaces_value():
    g = Gauge()
    g.set(10)
    g.set(4)
    assert g.value == 4


def test_histogram_counts_cumulatively():
    h = Histogram(buckets=(1, 3, 9))
    for v in (0.5, 2, 3, 100):
        h.observe(v)
    assert h.count == 4
    assert h.sum == 0.5 + 2 + 3 + 100
    counts = h.bucket_counts
    assert counts == tuple(sorted(counts))
    assert counts[-1] == 3


def test_nop_metrics_discard_everything():
    m = nop_metrics()
    m.failed_txs.add(5)
    m.size.set(7)
    m.tx_size_bytes.observe(3)
    assert m.failed_txs.value == 0
    assert m.size.value == 0
    assert m.tx_size_bytes.count == 0


def test_labelled_metrics_names_and_labels():
    m = labelled_metrics("ns", "chain_id", "test-chain")
    assert m.size.name == f"ns_{METRICS_SUBSYSTEM}_size"
    assert m.recheck_times.name == f"ns_{METRICS_SUBSYSTEM}_recheck_times"
    assert m.evicted_txs.labels == {"chain_id": "test-chain"}
    assert m.tx_size_bytes.buckets == exponential_buckets(1, 3, 17)


def test_labelled_metrics_without_namespace():
    m = labelled_metrics("")
    assert m.failed_txs.name == f"{METRICS_SUBSYSTEM}_failed_txs"
    assert m.failed_txs.labels == {}


def test_labelled_metrics_pads_missing_value():
    m = labelled_metrics("ns", "chain_id")
    assert m.size.labels == {"chain_id": "unknown"}


def test_labelled_metrics_record_values():
    m = labelled_metrics("ns")
    m.rejected_txs.add(1)
    m.rejected_txs.add(1)
    m.size.set(3)
    assert m.rejected_txs.value == 2
    assert m.size.value == 3