"""Ready-made pre-check and post-check hooks."""

from __future__ import annotations

from collections.abc import Callable

from txpriopool.errors import MempoolError
from txpriopool.types import CheckTxResponse, proto_size_for_txs

PreCheckFunc = Callable[[bytes], None]
PostCheckFunc = Callable[[bytes, CheckTxResponse], None]


def pre_check_max_bytes(max_bytes: int) -> PreCheckFunc:
    """Return a hook rejecting transactions whose encoded size exceeds ``max_bytes``."""

    def check(tx: bytes) -> None:
        tx_size = proto_size_for_txs([tx])
        if tx_size > max_bytes:
            raise MempoolError(f"tx size is too big: {tx_size}, max: {max_bytes}")

    return check


def post_check_max_gas(max_gas: int) -> PostCheckFunc:
    """Return a hook rejecting transactions that want more than ``max_gas``.

    A ``max_gas`` of -1 accepts everything.
    """

    def check(tx: bytes, res: CheckTxResponse) -> None:
        if max_gas == -1:
            return
        if res.gas_wanted < 0:
            raise MempoolError(f"gas wanted {res.gas_wanted} is negative")
        if res.gas_wanted > max_gas:
            raise MempoolError(
                f"gas wanted {res.gas_wanted} is greater than max gas {max_gas}"
            )

    return check