import pytest

from txpriopool.errors import (
    MempoolError,
    MempoolIsFullError,
    PreCheckError,
    TxInCacheError,
    TxNotFoundError,
    TxTooLargeError,
    is_pre_check_error,
)


def test_tx_in_cache_message():
    assert str(TxInCacheError()) == "tx already exists in cache"


def test_tx_too_large_message_and_fields():
    err = TxTooLargeError(max=10, actual=20)
    assert (err.max, err.actual) == (10, 20)
    assert str(err) == "Tx too large. Max size is 10, but got 20"


def test_mempool_is_full_message():
    err = MempoolIsFullError(num_txs=5, max_txs=5, txs_bytes=40, max_txs_bytes=60)
    assert str(err) == (
        "mempool is full: number of txs 5 (max: 5), total txs bytes 40 (max: 60)"
    )
    assert err.max_txs_bytes == 60


def test_pre_check_error_uses_reason_text():
    reason = ValueError("too big")
    err = PreCheckError(reason)
    assert str(err) == "too big"
    assert err.reason is reason


def test_tx_not_found_message_is_hex_key():
    key = bytes([0xAB, 0x01])
    err = TxNotFoundError(key)
    assert str(err) == f"transaction {key.hex()} not found"
    assert err.key == key


@pytest.mark.parametrize(
    ("err", "message"),
    [
        (TxInCacheError(), "tx already exists in cache"),
        (TxTooLargeError(1, 2), "Tx too large. Max size is 1, but got 2"),
        (
            MempoolIsFullError(1, 1, 1, 1),
            "mempool is full: number of txs 1 (max: 1), total txs bytes 1 (max: 1)",
        ),
        (PreCheckError(ValueError("x")), "x"),
        (TxNotFoundError(b"\x00"), "transaction 00 not found"),
    ],
)
def test_errors_share_base_class(err, message):
    with pytest.raises(MempoolError) as info:
        raise err
    assert info.value is err
    assert str(info.value) == message


def test_is_pre_check_error_direct():
    assert is_pre_check_error(PreCheckError(ValueError("x"))) is True


def test_is_pre_check_error_through_chain():
    try:
        try:
            raise PreCheckError(ValueError("inner"))
        except PreCheckError as inner:
            raise RuntimeError("outer") from inner
    except RuntimeError as outer:
        assert is_pre_check_error(outer) is True


def test_is_pre_check_error_false_for_other_errors():
    assert is_pre_check_error(TxInCacheError()) is False
    assert is_pre_check_error(ValueError("x")) is False
    assert is_pre_check_error(None) is False