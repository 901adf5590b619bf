"""A thread-safe doubly linked list that readers can traverse while it changes.

Elements removed from the list cannot be added back.  Any number of threads
may walk the list at once, and may block until a neighbour appears.
"""

from __future__ import annotations

import sys
import threading
import time
from collections.abc import Callable, Iterator
from typing import Any

MAX_LENGTH = sys.maxsize
"""Default maximum number of elements a list may hold."""


class ListFullError(OverflowError):
    """Raised when pushing onto a list that has reached its maximum length."""

    def __init__(self, max_length: int) -> None:
        self.max_length = max_length
        super().__init__(f"clist: maximum length list reached {max_length}")


def _wait_for(
    snapshot: Callable[[], tuple[Any, threading.Event, bool]],
    timeout: float | None,
) -> Any:
    """Wait until ``snapshot`` reports a link or completion, or ``timeout`` runs out."""
    deadline = None if timeout is None else time.monotonic() + timeout
    while True:
        link, event, done = snapshot()
        if link is not None or done:
            return link
        if deadline is None:
            event.wait()
            continue
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            return None
        event.wait(remaining)


class CElement:
    """An element of a :class:`CList`; traversal from it is thread-safe."""

    def __init__(self, value: Any) -> None:
        self.value = value
        self._lock = threading.Lock()
        self._prev: CElement | None = None
        self._next: CElement | None = None
        self._prev_event = threading.Event()
        self._next_event = threading.Event()
        self._removed = False

    def __repr__(self) -> str:
        return f"CElement({self.value!r}, removed={self.removed()})"

    def _next_state(self) -> tuple[CElement | None, threading.Event, bool]:
        with self._lock:
            return self._next, self._next_event, self._removed

    def _prev_state(self) -> tuple[CElement | None, threading.Event, bool]:
        with self._lock:
            return self._prev, self._prev_event, self._removed

    def next_wait(self, timeout: float | None = None) -> CElement | None:
        """Block until a next element exists and return it.

        Returns None if the element was the tail and got removed, or if
        ``timeout`` seconds pass first.
        """
        return _wait_for(self._next_state, timeout)

    def prev_wait(self, timeout: float | None = None) -> CElement | None:
        """Block until a previous element exists and return it.

        Returns None if the element was the head and got removed, or if
        ``timeout`` seconds pass first.
        """
        return _wait_for(self._prev_state, timeout)

    def next_wait_event(self) -> threading.Event:
        """Return an event that is set once a next element exists (or on removal)."""
        with self._lock:
            return self._next_event

    def prev_wait_event(self) -> threading.Event:
        """Return an event that is set once a previous element exists (or on removal)."""
        with self._lock:
            return self._prev_event

    def next(self) -> CElement | None:
        """Return the next element without blocking."""
        with self._lock:
            return self._next

    def prev(self) -> CElement | None:
        """Return the previous element without blocking."""
        with self._lock:
            return self._prev

    def removed(self) -> bool:
        """Report whether the element has been removed from its list."""
        with self._lock:
            return self._removed

    def detach_next(self) -> None:
        """Drop the link to the next element; only allowed after removal."""
        with self._lock:
            if not self._removed:
                raise RuntimeError("detach_next() must be called after remove(e)")
            self._next = None

    def detach_prev(self) -> None:
        """Drop the link to the previous element; only allowed after removal."""
        with self._lock:
            if not self._removed:
                raise RuntimeError("detach_prev() must be called after remove(e)")
            self._prev = None

    def set_next(self, new_next: CElement | None) -> None:
        """Link ``new_next`` after this element, waking waiters as needed."""
        with self._lock:
            old_next = self._next
            self._next = new_next
            if old_next is not None and new_next is None:
                self._next_event = threading.Event()
            if old_next is None and new_next is not None:
                self._next_event.set()

    def set_prev(self, new_prev: CElement | None) -> None:
        """Link ``new_prev`` before this element, waking waiters as needed."""
        with self._lock:
            old_prev = self._prev
            self._prev = new_prev
            if old_prev is not None and new_prev is None:
                self._prev_event = threading.Event()
            if old_prev is None and new_prev is not None:
                self._prev_event.set()

    def set_removed(self) -> None:
        """Mark the element removed and wake anyone waiting in either direction."""
        with self._lock:
            self._removed = True
            if self._prev is None:
                self._prev_event.set()
            if self._next is None:
                self._next_event.set()


class CList:
    """A thread-safe linked list bounded by ``max_length`` elements."""

    def __init__(self, max_length: int = MAX_LENGTH) -> None:
        self._max_length = max_length
        self._lock = threading.Lock()
        self._event = threading.Event()
        self._head: CElement | None = None
        self._tail: CElement | None = None
        self._len = 0

    def __len__(self) -> int:
        with self._lock:
            return self._len

    def __iter__(self) -> Iterator[CElement]:
        element = self.front()
        while element is not None:
            yield element
            element = element.next()

    def front(self) -> CElement | None:
        """Return the first element, or None if the list is empty."""
        with self._lock:
            return self._head

    def _head_state(self) -> tuple[CElement | None, threading.Event, bool]:
        with self._lock:
            return self._head, self._event, False

    def _tail_state(self) -> tuple[CElement | None, threading.Event, bool]:
        with self._lock:
            return self._tail, self._event, False

    def front_wait(self, timeout: float | None = None) -> CElement | None:
        """Block until the list has a first element and return it (None on timeout)."""
        return _wait_for(self._head_state, timeout)

    def back(self) -> CElement | None:
        """Return the last element, or None if the list is empty."""
        with self._lock:
            return self._tail

    def back_wait(self, timeout: float | None = None) -> CElement | None:
        """Block until the list has a last element and return it (None on timeout)."""
        return _wait_for(self._tail_state, timeout)

    def wait_event(self) -> threading.Event:
        """Return an event that is set once the list becomes non-empty."""
        with self._lock:
            return self._event

    def push_back(self, value: Any) -> CElement:
        """Append ``value`` and return its element.

        Raises :class:`ListFullError` if the list is at its maximum length.
        """
        with self._lock:
            if self._len >= self._max_length:
                raise ListFullError(self._max_length)
            element = CElement(value)
            if self._len == 0:
                self._event.set()
            self._len += 1
            if self._tail is None:
                self._head = element
                self._tail = element
            else:
                element.set_prev(self._tail)
                self._tail.set_next(element)
                self._tail = element
            return element

    def remove(self, element: CElement) -> Any:
        """Unlink ``element`` and return its value.

        The caller should detach the removed element afterwards.  Raises
        ValueError if the element is not a plausible member of this list.
        """
        with self._lock:
            prev = element.prev()
            nxt = element.next()
            if self._head is None or self._tail is None:
                raise ValueError("remove(e) on empty CList")
            if prev is None and self._head is not element:
                raise ValueError("remove(e) with false head")
            if nxt is None and self._tail is not element:
                raise ValueError("remove(e) with false tail")

            if self._len == 1:
                self._event = threading.Event()
            self._len -= 1

            if prev is None:
                self._head = nxt
            else:
                prev.set_next(nxt)
            if nxt is None:
                self._tail = prev
            else:
                nxt.set_prev(prev)

            element.set_removed()
            return element.value