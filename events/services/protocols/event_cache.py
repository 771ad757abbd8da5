from typing import Any, Protocol


class EventCache(Protocol):
    def get(self, key: str) -> Any | None:
        """
        Retrieve a cached value.
        :return: The value, or None on a cache miss.
        """
        ...

    def set(self, key: str, value: Any, ttl_seconds: int) -> None:  # noqa: A003
        """
        Store a JSON serializable ``value`` under ``key`` for ``ttl_seconds``.
        """
        ...

    def invalidate_by_prefix(self, prefix: str) -> int:
        """
        Remove every key starting with ``prefix``.
        :return: Number of removed keys.
        """
        ...

    def delete_key(self, key: str) -> None:
        ...
