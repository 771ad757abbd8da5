import threading
from collections.abc import Iterator
from contextlib import contextmanager


class RuleLockRegistry:
    """
    Hands out one lock per recurrence rule so mutations of the same rule are
    serialized inside a process. Cross-process serialization relies on the
    database transaction wrapping each mutation.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: dict[int, threading.Lock] = {}

    def _get_lock(self, rule_id: int) -> threading.Lock:
        with self._guard:
            return self._locks.setdefault(rule_id, threading.Lock())

    @contextmanager
    def hold(self, rule_id: int) -> Iterator[None]:
        with self._get_lock(rule_id):
            yield

    def discard(self, rule_id: int) -> None:
        with self._guard:
            self._locks.pop(rule_id, None)
