"""Prepared statement handle.

A Statement owns exactly one ``sqlite3_stmt*``. It is created by
Connection.prepare_statement and finalized by its Connection; it cannot be
copied, deep-copied or pickled, so no second owner can outlive it.

Parameters are addressed by 1-based position, result columns by 0-based
position. Either can also be addressed by an alias registered with
set_input_alias / set_output_alias. Aliases are checked against the
statement only when used: an unknown alias raises KeyNotFoundError, a
known alias pointing outside the statement raises the same
OutOfRangeError as the equivalent positional call.

Usage:
    stmt = conn.prepare_statement("insert", "INSERT INTO t VALUES (?, ?)")
    stmt.set_input_alias("name", 1)
    stmt.bind("name", "x")
    stmt.bind(2, 1.5)
    stmt.step()
    stmt.reset()
"""

from __future__ import annotations

import ctypes
from types import MappingProxyType
from typing import Any, Mapping, NoReturn

from sqlite_handles.adapters.outbound import SQLITE_TRANSIENT, NativeLibrary, read_bytes
from sqlite_handles.application.value_view import ValueView
from sqlite_handles.domain.errors import (
    EngineError,
    FinalizedStatementError,
    KeyNotFoundError,
    NoRowError,
    OutOfRangeError,
    PrepareError,
    TypeMismatchError,
)
from sqlite_handles.domain.value_objects import (
    ColumnIndex,
    ColumnRef,
    ColumnType,
    ParameterIndex,
    ParameterRef,
    ResultCode,
    StatementState,
)

INT32_MIN, INT32_MAX = -(2**31), 2**31 - 1
INT64_MIN, INT64_MAX = -(2**63), 2**63 - 1


class Statement:
    """Owner of one prepared statement.

    Attributes:
        key: The key this statement is stored under in its Connection.
        sql: The SQL text of the compiled statement.
        trailing_sql: Text after the first statement that was not compiled.
    """

    def __init__(self, library: NativeLibrary, db: int, key: str, sql: str) -> None:
        """Compile ``sql`` against the handle ``db``.

        Raises:
            PrepareError: If the engine rejects the SQL or it holds no statement.
        """
        self._lib = library
        self._db = db
        self.key = key
        self._handle: int | None = None
        self._state = StatementState.PREPARED
        self._generation = 0
        self._has_bindings = False
        self._input_aliases: dict[str, int] = {}
        self._output_aliases: dict[str, int] = {}

        encoded = sql.encode("utf-8")
        buffer = ctypes.create_string_buffer(encoded)
        handle = ctypes.c_void_p()
        tail = ctypes.c_void_p()
        rc = library.prepare_v2(
            db, buffer, len(encoded) + 1, ctypes.byref(handle), ctypes.byref(tail)
        )
        if rc != ResultCode.OK:
            raise PrepareError(rc, library.errmsg_text(db))
        if not handle.value:
            raise PrepareError(ResultCode.ERROR, "SQL text contains no statement")

        self._handle = handle.value
        consumed = tail.value - ctypes.addressof(buffer) if tail.value else len(encoded)
        self.sql = encoded[:consumed].decode("utf-8").strip()
        self.trailing_sql = encoded[consumed:].decode("utf-8").strip()

    # --- Ownership ------------------------------------------------------------------

    def __copy__(self) -> NoReturn:
        raise TypeError("Statement handles cannot be copied")

    def __deepcopy__(self, memo: dict[int, Any]) -> NoReturn:
        raise TypeError("Statement handles cannot be copied")

    def __reduce_ex__(self, protocol: int) -> NoReturn:
        raise TypeError("Statement handles cannot be pickled")

    def _finalize(self) -> None:
        """Release the native handle. Only the owning Connection calls this."""
        if self._handle is None:
            return
        # The return code repeats the last step error, which was already raised.
        self._lib.finalize(self._handle)
        self._handle = None
        self._input_aliases.clear()
        self._output_aliases.clear()
        self._generation += 1
        self._state = StatementState.FINALIZED

    @property
    def is_finalized(self) -> bool:
        """Check if the native handle has been released."""
        return self._handle is None

    @property
    def state(self) -> StatementState:
        """Current lifecycle state."""
        return self._state

    def _require_handle(self) -> int:
        if self._handle is None:
            raise FinalizedStatementError(f"statement {self.key!r} has been finalized")
        return self._handle

    def _is_current(self, generation: int) -> bool:
        return self._handle is not None and self._state.has_row() and generation == self._generation

    def _raise_engine_error(self, rc: int) -> NoReturn:
        message = self._lib.errmsg_text(self._db)
        if rc == ResultCode.RANGE:
            raise OutOfRangeError(message)
        raise EngineError(rc, message)

    # --- Aliases --------------------------------------------------------------------

    def set_input_alias(self, alias: str, index: int) -> None:
        """Name a 1-based parameter position. The index is not validated here."""
        self._require_handle()
        self._input_aliases[alias] = ParameterIndex(index)

    def set_output_alias(self, alias: str, index: int) -> None:
        """Name a 0-based result column. The index is not validated here."""
        self._require_handle()
        self._output_aliases[alias] = ColumnIndex(index)

    @property
    def input_aliases(self) -> Mapping[str, int]:
        return MappingProxyType(self._input_aliases)

    @property
    def output_aliases(self) -> Mapping[str, int]:
        return MappingProxyType(self._output_aliases)

    def _parameter_index(self, param: ParameterRef) -> int:
        if isinstance(param, str):
            try:
                return self._input_aliases[param]
            except KeyError:
                raise KeyNotFoundError("input alias", param) from None
        return param

    def _column_index(self, column: ColumnRef) -> int:
        if isinstance(column, str):
            try:
                return self._output_aliases[column]
            except KeyError:
                raise KeyNotFoundError("output alias", column) from None
        return column

    def _checked_column(self, column: ColumnRef) -> tuple[int, int]:
        """Resolve a column reference and check it lies inside the result."""
        handle = self._require_handle()
        index = self._column_index(column)
        if not 0 <= index < self._lib.column_count(handle):
            raise OutOfRangeError()
        return handle, index

    def _row_column(self, column: ColumnRef) -> tuple[int, int]:
        """Like _checked_column, and also require a current row."""
        handle, index = self._checked_column(column)
        if not self._state.has_row():
            raise NoRowError(f"statement {self.key!r} has no current row")
        return handle, index

    # --- Binding --------------------------------------------------------------------

    def bind(self, param: ParameterRef, value: Any) -> None:
        """Bind ``value`` choosing the engine type from its Python type.

        None binds NULL, bool/int a 64-bit integer, float a double, str
        UTF-8 text and bytes-like objects a blob.

        Raises:
            TypeMismatchError: If the value has no engine representation.
            OverflowError: If an integer does not fit in 64 bits.
        """
        if value is None:
            self.bind_null(param)
        elif isinstance(value, (bool, int)):
            self.bind_int64(param, int(value))
        elif isinstance(value, float):
            self.bind_double(param, value)
        elif isinstance(value, str):
            self.bind_text(param, value)
        elif isinstance(value, (bytes, bytearray, memoryview)):
            self.bind_blob(param, value)
        else:
            raise TypeMismatchError(
                "bindable value",
                type(value).__name__,
                message=f"Cannot bind value of type {type(value).__name__}",
            )

    def bind_text(self, param: ParameterRef, value: str) -> None:
        handle = self._require_handle()
        index = self._parameter_index(param)
        data = value.encode("utf-8")
        self._after_bind(self._lib.bind_text(handle, index, data, len(data), SQLITE_TRANSIENT))

    def bind_int(self, param: ParameterRef, value: int) -> None:
        """Bind through the engine's 32-bit integer entry point."""
        if not INT32_MIN <= value <= INT32_MAX:
            raise OverflowError(f"{value} does not fit in a 32-bit integer")
        handle = self._require_handle()
        index = self._parameter_index(param)
        self._after_bind(self._lib.bind_int(handle, index, value))

    def bind_int64(self, param: ParameterRef, value: int) -> None:
        if not INT64_MIN <= value <= INT64_MAX:
            raise OverflowError(f"{value} does not fit in a 64-bit integer")
        handle = self._require_handle()
        index = self._parameter_index(param)
        self._after_bind(self._lib.bind_int64(handle, index, value))

    def bind_double(self, param: ParameterRef, value: float) -> None:
        handle = self._require_handle()
        index = self._parameter_index(param)
        self._after_bind(self._lib.bind_double(handle, index, float(value)))

    def bind_blob(
        self,
        param: ParameterRef,
        data: bytes | bytearray | memoryview,
        size: int | None = None,
    ) -> None:
        """Bind the first ``size`` bytes of ``data`` (all of it by default)."""
        payload = bytes(data)
        if size is None:
            size = len(payload)
        elif not 0 <= size <= len(payload):
            raise ValueError(f"blob size {size} outside 0..{len(payload)}")
        handle = self._require_handle()
        index = self._parameter_index(param)
        self._after_bind(self._lib.bind_blob(handle, index, payload, size, SQLITE_TRANSIENT))

    def bind_null(self, param: ParameterRef) -> None:
        handle = self._require_handle()
        index = self._parameter_index(param)
        self._after_bind(self._lib.bind_null(handle, index))

    def _after_bind(self, rc: int) -> None:
        if rc != ResultCode.OK:
            self._raise_engine_error(rc)
        self._has_bindings = True
        if self._state == StatementState.PREPARED:
            self._state = StatementState.BOUND

    def parameter_count(self) -> int:
        """Number of parameter slots (the largest parameter index)."""
        return self._lib.bind_parameter_count(self._require_handle())

    # --- Execution ------------------------------------------------------------------

    def step(self) -> bool:
        """Advance one row.

        Returns:
            True if a row is available, False once execution is complete.
            After False, further calls keep returning False until reset().

        Raises:
            EngineError: If the engine reports a failure. The statement is
                then FAILED and the next step() executes it again.
        """
        handle = self._require_handle()
        if self._state == StatementState.DONE:
            return False

        rc = self._lib.step(handle)
        self._generation += 1
        if rc == ResultCode.ROW:
            self._state = StatementState.HAS_ROW
            return True
        if rc == ResultCode.DONE:
            self._state = StatementState.DONE
            return False
        self._state = StatementState.FAILED
        raise EngineError(rc, self._lib.errmsg_text(self._db))

    def reset(self) -> None:
        """Rewind to the start, keeping the current bindings."""
        handle = self._require_handle()
        # The return code repeats the last step error, which was already raised.
        self._lib.reset(handle)
        self._generation += 1
        self._state = StatementState.BOUND if self._has_bindings else StatementState.PREPARED

    def clear(self) -> None:
        """Set every parameter back to NULL without moving the cursor."""
        handle = self._require_handle()
        rc = self._lib.clear_bindings(handle)
        if rc != ResultCode.OK:
            self._raise_engine_error(rc)
        self._has_bindings = False

    # --- Result columns -------------------------------------------------------------

    def get_type(self, column: ColumnRef) -> ColumnType:
        """Dynamic type of the value in ``column`` at the current row."""
        handle, index = self._row_column(column)
        return ColumnType.from_code(self._lib.column_type(handle, index))

    def get_size(self, column: ColumnRef) -> int:
        """Byte length of the value in ``column`` at the current row."""
        handle, index = self._row_column(column)
        return self._lib.column_bytes(handle, index)

    def _expect(self, column: ColumnRef, expected: ColumnType) -> tuple[int, int]:
        handle, index = self._row_column(column)
        actual = ColumnType.from_code(self._lib.column_type(handle, index))
        if actual != expected:
            raise TypeMismatchError(expected.kind, actual.kind)
        return handle, index

    def get_string(self, column: ColumnRef) -> str:
        handle, index = self._expect(column, ColumnType.TEXT)
        pointer = self._lib.column_text(handle, index)
        data = read_bytes(pointer, self._lib.column_bytes(handle, index))
        return data.decode("utf-8", errors="replace")

    def get_int(self, column: ColumnRef) -> int:
        """Integer value through the engine's 32-bit accessor (truncates)."""
        handle, index = self._expect(column, ColumnType.INTEGER)
        return self._lib.column_int(handle, index)

    def get_int64(self, column: ColumnRef) -> int:
        handle, index = self._expect(column, ColumnType.INTEGER)
        return self._lib.column_int64(handle, index)

    def get_double(self, column: ColumnRef) -> float:
        handle, index = self._expect(column, ColumnType.FLOAT)
        return self._lib.column_double(handle, index)

    def get_blob(self, column: ColumnRef) -> bytes:
        """Copy of the blob in ``column``; safe to keep after the next step."""
        handle, index = self._expect(column, ColumnType.BLOB)
        pointer = self._lib.column_blob(handle, index)
        return read_bytes(pointer, self._lib.column_bytes(handle, index))

    def get_column(self, column: ColumnRef) -> ValueView:
        """Untyped view of ``column``, valid until the next step/reset."""
        _, index = self._row_column(column)
        return ValueView(self, index, self._generation)

    # --- Metadata -------------------------------------------------------------------

    def column_count(self) -> int:
        return self._lib.column_count(self._require_handle())

    def _metadata(self, function_name: str, column: ColumnRef) -> str | None:
        handle, index = self._checked_column(column)
        function = getattr(self._lib, function_name)
        if function is None:
            raise EngineError(
                ResultCode.ERROR,
                "column metadata is not available in this SQLite build",
            )
        raw = function(handle, index)
        return raw.decode("utf-8") if raw is not None else None

    def database_name(self, column: ColumnRef) -> str | None:
        """Schema the column's value originates from (None for expressions)."""
        return self._metadata("column_database_name", column)

    def table_name(self, column: ColumnRef) -> str | None:
        """Table the column's value originates from (None for expressions)."""
        return self._metadata("column_table_name", column)

    def column_name(self, column: ColumnRef) -> str | None:
        """Origin column name inside its table (None for expressions)."""
        return self._metadata("column_origin_name", column)

    def result_name(self, column: ColumnRef) -> str | None:
        """Name of the result column as the query labels it (its AS name)."""
        return self._metadata("column_name", column)

    def declared_type(self, column: ColumnRef) -> str | None:
        """Declared type of the origin column (None for expressions)."""
        return self._metadata("column_decltype", column)

    def __repr__(self) -> str:
        return f"Statement(key={self.key!r}, state={self._state.name}, sql={self.sql!r})"
