from concurrent.futures import ThreadPoolExecutor

import pytest

from txpriopool.app import LocalAppConnection, PriorityApp
from txpriopool.types import CODE_TYPE_OK, AppConnection, CheckTxRequest, CheckTxType


@pytest.fixture
def app():
    return PriorityApp()


def test_valid_tx_gets_priority_and_sender(app):
    res = app.check_tx(CheckTxRequest(b"sender-0=ABCD=50"))
    assert res.code == CODE_TYPE_OK
    assert res.priority == 50
    assert res.sender == "sender-0"
    assert res.gas_wanted == 1


def test_negative_priority_is_accepted(app):
    res = app.check_tx(CheckTxRequest(b"s=k=-3"))
    assert res.is_ok
    assert res.priority == -3


def test_non_numeric_priority_is_rejected(app):
    res = app.check_tx(CheckTxRequest(b"s=k=abc"))
    assert res.code == 100
    assert res.priority == 0
    assert res.gas_wanted == 1
    assert res.sender == ""


def test_priority_out_of_int64_range_is_rejected(app):
    res = app.check_tx(CheckTxRequest(b"s=k=99999999999999999999"))
    assert res.code == 100


@pytest.mark.parametrize("tx", [b"noequals", b"a=b", b"a=b=c=d", b""])
def test_wrong_shape_is_rejected(app, tx):
    res = app.check_tx(CheckTxRequest(tx))
    assert res.code == 101
    assert res.gas_wanted == 1


def test_recheck_request_is_handled_the_same(app):
    first = app.check_tx(CheckTxRequest(b"x=y=7"))
    again = app.check_tx(CheckTxRequest(b"x=y=7", CheckTxType.RECHECK))
    assert first == again


def test_local_connection_delegates_to_app(app):
    conn = LocalAppConnection(app)
    request = CheckTxRequest(b"bob=key=12")
    assert conn.check_tx_sync(request) == app.check_tx(request)
    conn.flush_sync()
    conn.flush_async()
    assert conn.error() is None
    assert isinstance(conn, AppConnection)


def test_local_connection_concurrent_calls(app):
    conn = LocalAppConnection(app)
    requests = [CheckTxRequest(f"s{i}=k={i}".encode()) for i in range(20)]

    with ThreadPoolExecutor(max_workers=8) as pool:
        responses = list(pool.map(conn.check_tx_sync, requests))

    assert [(res.code, res.priority, res.sender) for res in responses] == [
        (CODE_TYPE_OK, i, f"s{i}") for i in range(20)
    ]