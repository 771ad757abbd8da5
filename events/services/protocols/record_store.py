from collections.abc import Iterable, Sequence
from contextlib import AbstractContextManager
from typing import Any, Protocol


Record = dict[str, Any]


class RecordStore(Protocol):
    """
    Generic table-oriented storage. Filters are a mapping of field name to value;
    a field name may end with ``__gte`` or ``__lte`` for range filtering, every
    other key is an equality filter.
    """

    def find(
        self,
        table: str,
        filters: dict[str, Any] | None = None,
        ordering: Sequence[str] | None = None,
        offset: int = 0,
        limit: int | None = None,
    ) -> list[Record]:
        """
        Retrieve records of ``table`` matching ``filters``.
        :param ordering: Field names, prefixed with "-" for descending order.
        :param offset: Number of matching records to skip.
        :param limit: Maximum number of records to return.
        :return: Matching records.
        """
        ...

    def find_one(self, table: str, filters: dict[str, Any]) -> Record | None:
        """
        Retrieve the first record matching ``filters``.
        :return: The record, or None when nothing matches.
        """
        ...

    def insert(self, table: str, records: Iterable[Record]) -> list[Record]:
        """
        Insert ``records`` into ``table``.
        :return: Inserted records, including generated ids.
        """
        ...

    def update(self, table: str, record_id: Any, patch: Record) -> Record | None:
        """
        Apply ``patch`` to the record identified by ``record_id``.
        :return: The updated record, or None when it does not exist.
        """
        ...

    def delete(self, table: str, filters: dict[str, Any]) -> int:
        """
        Delete records matching ``filters``.
        :return: Number of deleted records.
        """
        ...

    def atomic(self) -> AbstractContextManager:
        """
        Return a context manager running the enclosed operations as one unit.
        """
        ...
