"""An in-process application that assigns priorities to ``sender=key=priority`` transactions."""

from __future__ import annotations

import re
import threading

from txpriopool.types import CODE_TYPE_OK, CheckTxRequest, CheckTxResponse

CODE_BAD_PRIORITY = 100
CODE_BAD_FORMAT = 101

_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1
_INTEGER = re.compile(rb"[+-]?[0-9]+")


def _parse_int64(raw: bytes) -> int | None:
    if _INTEGER.fullmatch(raw) is None:
        return None
    value = int(raw)
    if not _INT64_MIN <= value <= _INT64_MAX:
        return None
    return value


class PriorityApp:
    """Validates transactions of the form ``sender=key=priority``.

    The priority is the decimal integer after the second ``=``; every
    transaction wants one unit of gas.
    """

    def check_tx(self, request: CheckTxRequest) -> CheckTxResponse:
        parts = bytes(request.tx).split(b"=")
        if len(parts) != 3:
            return CheckTxResponse(code=CODE_BAD_FORMAT, priority=0, gas_wanted=1)
        priority = _parse_int64(parts[2])
        if priority is None:
            return CheckTxResponse(code=CODE_BAD_PRIORITY, priority=0, gas_wanted=1)
        return CheckTxResponse(
            code=CODE_TYPE_OK,
            priority=priority,
            sender=parts[0].decode("utf-8", errors="surrogateescape"),
            gas_wanted=1,
        )


class LocalAppConnection:
    """An application connection that calls an in-process application directly.

    Calls are serialised; the first exception raised by the application is
    remembered and reported by :meth:`error`.
    """

    def __init__(self, app: PriorityApp) -> None:
        self._app = app
        self._lock = threading.Lock()
        self._error: Exception | None = None

    def check_tx_sync(self, request: CheckTxRequest) -> CheckTxResponse:
        with self._lock:
            try:
                return self._app.check_tx(request)
            except Exception as exc:
                if self._error is None:
                    self._error = exc
                raise

    def flush_sync(self) -> None:
        with self._lock:
            return None

    def flush_async(self) -> threading.Event:
        """Return an event that is set once all calls issued so far have finished."""
        done = threading.Event()
        with self._lock:
            done.set()
        return done

    def error(self) -> Exception | None:
        with self._lock:
            return self._error