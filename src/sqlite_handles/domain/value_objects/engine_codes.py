"""Numeric constants of the SQLite C interface.

Only the values the wrapper inspects are named here; anything else the
engine returns is carried through as a plain integer.
"""

from __future__ import annotations

from enum import IntEnum, IntFlag


class ResultCode(IntEnum):
    """Primary result codes returned by engine calls."""

    OK = 0
    ERROR = 1
    INTERNAL = 2
    PERM = 3
    ABORT = 4
    BUSY = 5
    LOCKED = 6
    NOMEM = 7
    READONLY = 8
    INTERRUPT = 9
    IOERR = 10
    CORRUPT = 11
    NOTFOUND = 12
    FULL = 13
    CANTOPEN = 14
    PROTOCOL = 15
    EMPTY = 16
    SCHEMA = 17
    TOOBIG = 18
    CONSTRAINT = 19
    MISMATCH = 20
    MISUSE = 21
    NOLFS = 22
    AUTH = 23
    FORMAT = 24
    RANGE = 25
    NOTADB = 26
    NOTICE = 27
    WARNING = 28
    ROW = 100
    DONE = 101

    @classmethod
    def describe(cls, code: int) -> str:
        """Return the symbolic name for a (possibly extended) result code."""
        try:
            return cls(code & 0xFF).name
        except ValueError:
            return f"UNKNOWN({code})"


class ColumnType(IntEnum):
    """Dynamic type of a result value at the current row.

    Values 1..5 match the engine's fundamental datatype codes; ERROR is
    reported for anything outside that range.
    """

    ERROR = 0
    INTEGER = 1
    FLOAT = 2
    TEXT = 3
    BLOB = 4
    NULL = 5

    @classmethod
    def from_code(cls, code: int) -> ColumnType:
        """Map a raw datatype code, folding unknown codes into ERROR."""
        if cls.INTEGER <= code <= cls.NULL:
            return cls(code)
        return cls.ERROR

    @property
    def kind(self) -> str:
        """Human readable kind used in type-mismatch messages."""
        return _KIND_NAMES[self]


_KIND_NAMES = {
    ColumnType.ERROR: "error",
    ColumnType.INTEGER: "int",
    ColumnType.FLOAT: "float",
    ColumnType.TEXT: "string",
    ColumnType.BLOB: "blob",
    ColumnType.NULL: "null",
}


class OpenFlag(IntFlag):
    """Flags accepted by sqlite3_open_v2."""

    READONLY = 0x00000001
    READWRITE = 0x00000002
    CREATE = 0x00000004
    URI = 0x00000040
    MEMORY = 0x00000080
    NOMUTEX = 0x00008000
    FULLMUTEX = 0x00010000


class TextEncoding(IntEnum):
    """Text encodings for function registration."""

    UTF8 = 1


FUNCTION_DETERMINISTIC = 0x000000800
"""Function flag OR-ed into the text encoding for deterministic functions."""

MEMORY_DATABASE = ":memory:"
"""Filename the engine interprets as a private transient store."""

MAIN_SCHEMA = "main"
"""Schema name of the primary database attached to a handle."""
