"""Weak, read-only projection over one result column.

A ValueView remembers the row generation of its Statement at the moment
it was produced. Stepping, resetting or finalizing the Statement moves the
generation on, after which every read raises StaleValueError instead of
touching memory the engine may already have reused.

Conversions follow the engine's own coercion rules and never check the
dynamic type: ``as_int()`` on a TEXT value '42' returns 42, on 'abc'
returns 0. Use the typed getters on Statement when a mismatch must fail.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from sqlite_handles.adapters.outbound import read_bytes
from sqlite_handles.domain.errors import StaleValueError
from sqlite_handles.domain.value_objects import ColumnType

if TYPE_CHECKING:
    from sqlite_handles.application.statement import Statement


class ValueView:
    """Non-owning view of column ``column`` at the statement's current row."""

    def __init__(self, statement: Statement, column: int, generation: int) -> None:
        self._statement = statement
        self._column = column
        self._generation = generation

    @property
    def column(self) -> int:
        """0-based column index this view reads."""
        return self._column

    @property
    def is_valid(self) -> bool:
        """Check if the statement is still on the row this view was made for."""
        return self._statement._is_current(self._generation)

    def _handle(self) -> int:
        if not self.is_valid:
            raise StaleValueError()
        return self._statement._handle

    @property
    def type(self) -> ColumnType:
        """Dynamic type of the value."""
        handle = self._handle()
        return ColumnType.from_code(self._statement._lib.column_type(handle, self._column))

    @property
    def size(self) -> int:
        """Size of the value in bytes."""
        handle = self._handle()
        return self._statement._lib.column_bytes(handle, self._column)

    def as_int(self) -> int:
        handle = self._handle()
        return self._statement._lib.column_int(handle, self._column)

    def as_int64(self) -> int:
        handle = self._handle()
        return self._statement._lib.column_int64(handle, self._column)

    def as_double(self) -> float:
        handle = self._handle()
        return self._statement._lib.column_double(handle, self._column)

    def as_text(self) -> str | None:
        """Text form of the value, or None for NULL."""
        handle = self._handle()
        lib = self._statement._lib
        pointer = lib.column_text(handle, self._column)
        if not pointer:
            return None
        return read_bytes(pointer, lib.column_bytes(handle, self._column)).decode(
            "utf-8", errors="replace"
        )

    def as_blob(self) -> bytes:
        """Copy of the value's bytes (empty for NULL or zero-length blobs)."""
        handle = self._handle()
        lib = self._statement._lib
        pointer = lib.column_blob(handle, self._column)
        return read_bytes(pointer, lib.column_bytes(handle, self._column))

    def value(self) -> Any:
        """The value as the Python type matching its dynamic type."""
        column_type = self.type
        if column_type == ColumnType.INTEGER:
            return self.as_int64()
        if column_type == ColumnType.FLOAT:
            return self.as_double()
        if column_type == ColumnType.TEXT:
            return self.as_text()
        if column_type == ColumnType.BLOB:
            return self.as_blob()
        return None

    def __repr__(self) -> str:
        state = "valid" if self.is_valid else "stale"
        return f"ValueView(column={self._column}, {state})"
