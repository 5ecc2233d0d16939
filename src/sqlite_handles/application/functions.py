"""Python callables exposed to SQL as user-defined functions.

Each registration wraps the callable in ctypes trampolines that convert
``sqlite3_value*`` arguments to Python values and the Python result back
through ``sqlite3_result_*``. An exception raised by the callable is
reported to the engine with sqlite3_result_error, so it surfaces from
Statement.step() or Connection.raw_exec() as an engine error.

The Connection keeps every registration object alive for as long as the
function is registered on its handle; the engine only holds raw pointers
to the trampolines.
"""

from __future__ import annotations

import ctypes
from typing import Any, Callable, Protocol

from sqlite_handles.adapters.outbound import (
    FINAL_FUNC,
    SCALAR_FUNC,
    SQLITE_TRANSIENT,
    NativeLibrary,
    read_bytes,
)
from sqlite_handles.application.statement import INT64_MAX, INT64_MIN
from sqlite_handles.domain.value_objects import ColumnType


class Aggregate(Protocol):
    """Per-group accumulator created by an aggregate factory."""

    def step(self, *args: Any) -> None: ...

    def finalize(self) -> Any: ...


def to_python(library: NativeLibrary, value: int) -> Any:
    """Convert one ``sqlite3_value*`` argument to a Python value."""
    value_type = ColumnType.from_code(library.value_type(value))
    if value_type == ColumnType.INTEGER:
        return library.value_int64(value)
    if value_type == ColumnType.FLOAT:
        return library.value_double(value)
    if value_type == ColumnType.TEXT:
        pointer = library.value_text(value)
        return read_bytes(pointer, library.value_bytes(value)).decode("utf-8", errors="replace")
    if value_type == ColumnType.BLOB:
        pointer = library.value_blob(value)
        return read_bytes(pointer, library.value_bytes(value))
    return None


def set_result(library: NativeLibrary, context: int, result: Any) -> None:
    """Report a Python return value as the function's SQL result."""
    if result is None:
        library.result_null(context)
    elif isinstance(result, (bool, int)):
        if not INT64_MIN <= result <= INT64_MAX:
            raise OverflowError(f"{result} does not fit in a 64-bit integer")
        library.result_int64(context, int(result))
    elif isinstance(result, float):
        library.result_double(context, result)
    elif isinstance(result, str):
        data = result.encode("utf-8")
        library.result_text(context, data, len(data), SQLITE_TRANSIENT)
    elif isinstance(result, (bytes, bytearray, memoryview)):
        data = bytes(result)
        library.result_blob(context, data, len(data), SQLITE_TRANSIENT)
    else:
        raise TypeError(f"unsupported result type {type(result).__name__}")


def set_error(library: NativeLibrary, context: int, error: Exception) -> None:
    """Report a Python exception as the function's SQL error."""
    message = f"{type(error).__name__}: {error}".encode("utf-8")
    library.result_error(context, message, len(message))


def _arguments(library: NativeLibrary, argc: int, argv: Any) -> list[Any]:
    return [to_python(library, argv[i]) for i in range(argc)]


class ScalarFunction:
    """Registration record for a scalar function."""

    def __init__(
        self,
        library: NativeLibrary,
        name: str,
        n_args: int,
        func: Callable[..., Any],
    ) -> None:
        self._lib = library
        self.name = name
        self.n_args = n_args
        self._func = func
        self.callback = SCALAR_FUNC(self._invoke)

    def _invoke(self, context: int, argc: int, argv: Any) -> None:
        try:
            set_result(self._lib, context, self._func(*_arguments(self._lib, argc, argv)))
        except Exception as e:
            set_error(self._lib, context, e)


class AggregateFunction:
    """Registration record for an aggregate function.

    The engine gives every aggregate invocation a zeroed scratch area
    (sqlite3_aggregate_context). The first step stores a fresh id there and
    maps it to a new accumulator from ``factory``; the final callback pops
    it. Groups that never saw a row get a fresh accumulator at finalize.
    """

    def __init__(
        self,
        library: NativeLibrary,
        name: str,
        n_args: int,
        factory: Callable[[], Aggregate],
    ) -> None:
        self._lib = library
        self.name = name
        self.n_args = n_args
        self._factory = factory
        self._accumulators: dict[int, Aggregate] = {}
        self._next_id = 1
        self.step_callback = SCALAR_FUNC(self._step)
        self.final_callback = FINAL_FUNC(self._final)

    @property
    def active_groups(self) -> int:
        """Number of accumulators not yet finalized."""
        return len(self._accumulators)

    def _slot(self, context: int, allocate: bool) -> ctypes.c_int64 | None:
        size = ctypes.sizeof(ctypes.c_int64) if allocate else 0
        pointer = self._lib.aggregate_context(context, size)
        if not pointer:
            return None
        return ctypes.cast(pointer, ctypes.POINTER(ctypes.c_int64)).contents

    def _step(self, context: int, argc: int, argv: Any) -> None:
        try:
            slot = self._slot(context, allocate=True)
            if slot is None:
                raise MemoryError("aggregate context allocation failed")
            if slot.value == 0:
                slot.value = self._next_id
                self._next_id += 1
                self._accumulators[slot.value] = self._factory()
            self._accumulators[slot.value].step(*_arguments(self._lib, argc, argv))
        except Exception as e:
            set_error(self._lib, context, e)

    def _final(self, context: int) -> None:
        slot = self._slot(context, allocate=False)
        accumulator = None
        if slot is not None and slot.value:
            accumulator = self._accumulators.pop(slot.value, None)
        try:
            if accumulator is None:
                accumulator = self._factory()
            set_result(self._lib, context, accumulator.finalize())
        except Exception as e:
            set_error(self._lib, context, e)
