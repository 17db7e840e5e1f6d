from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Iterator, Optional

from lockstake.runtime.errors import ReentrantCall


class ReentrancyGuard:
    """
    Call-scoped exclusive lock for state-mutating operations.

    Acquisition never blocks: if an operation is already in progress (for
    example a token transfer calling back into the facility), the nested call
    is rejected with ReentrantCall instead of waiting. The lock is released on
    every exit path, including exceptions.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._op: Optional[str] = None

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    @property
    def current_op(self) -> Optional[str]:
        return self._op

    @contextmanager
    def hold(self, op: str) -> Iterator[None]:
        if not self._lock.acquire(blocking=False):
            raise ReentrantCall("operation_in_progress", {"op": op, "in_progress": self._op})
        self._op = op
        try:
            yield
        finally:
            self._op = None
            self._lock.release()
