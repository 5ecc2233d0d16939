"""ctypes adapter over the libsqlite3 C interface.

This outbound adapter is the only module that knows the engine is a shared
library. It locates libsqlite3, declares the signature of every function
the wrapper calls and hands out a single NativeLibrary per process.

Discovery order:
    1. engine.library_path from configuration
    2. ctypes.util.find_library("sqlite3")
    3. the shared object behind the interpreter's own _sqlite3 extension
       (symbols resolve through its dependencies when it links libsqlite3
       dynamically, or from the extension itself when linked statically)

Functions that only exist in some builds (64-bit change counters, column
provenance) are exposed as None when missing.
"""

from __future__ import annotations

import ctypes
import ctypes.util
from functools import lru_cache
from typing import Any, Callable, Iterator

from sqlite_handles.domain.errors import LibraryNotFoundError
from sqlite_handles.infrastructure.config import get_config
from sqlite_handles.infrastructure.logging import get_logger


logger = get_logger(__name__)

c_int = ctypes.c_int
c_int64 = ctypes.c_int64
c_double = ctypes.c_double
c_char_p = ctypes.c_char_p
c_void_p = ctypes.c_void_p

SQLITE_TRANSIENT = c_void_p(-1)
"""Destructor sentinel telling the engine to take its own copy of the data."""

# Callback signatures for user-defined functions.
SCALAR_FUNC = ctypes.CFUNCTYPE(None, c_void_p, c_int, ctypes.POINTER(c_void_p))
FINAL_FUNC = ctypes.CFUNCTYPE(None, c_void_p)

# name -> (restype, argtypes)
_SIGNATURES: dict[str, tuple[Any, list[Any]]] = {
    "sqlite3_libversion": (c_char_p, []),
    # Handle lifecycle
    "sqlite3_open_v2": (c_int, [c_char_p, ctypes.POINTER(c_void_p), c_int, c_char_p]),
    "sqlite3_close": (c_int, [c_void_p]),
    "sqlite3_busy_timeout": (c_int, [c_void_p, c_int]),
    # Diagnostics
    "sqlite3_errcode": (c_int, [c_void_p]),
    "sqlite3_extended_errcode": (c_int, [c_void_p]),
    "sqlite3_errmsg": (c_char_p, [c_void_p]),
    "sqlite3_errstr": (c_char_p, [c_int]),
    # Counters
    "sqlite3_changes": (c_int, [c_void_p]),
    "sqlite3_total_changes": (c_int, [c_void_p]),
    "sqlite3_last_insert_rowid": (c_int64, [c_void_p]),
    # Raw execution
    "sqlite3_exec": (c_int, [c_void_p, c_char_p, c_void_p, c_void_p, c_void_p]),
    # Statement lifecycle
    "sqlite3_prepare_v2": (
        c_int,
        [c_void_p, c_char_p, c_int, ctypes.POINTER(c_void_p), ctypes.POINTER(c_void_p)],
    ),
    "sqlite3_finalize": (c_int, [c_void_p]),
    "sqlite3_step": (c_int, [c_void_p]),
    "sqlite3_reset": (c_int, [c_void_p]),
    "sqlite3_clear_bindings": (c_int, [c_void_p]),
    "sqlite3_next_stmt": (c_void_p, [c_void_p, c_void_p]),
    "sqlite3_sql": (c_char_p, [c_void_p]),
    # Binding
    "sqlite3_bind_parameter_count": (c_int, [c_void_p]),
    "sqlite3_bind_int": (c_int, [c_void_p, c_int, c_int]),
    "sqlite3_bind_int64": (c_int, [c_void_p, c_int, c_int64]),
    "sqlite3_bind_double": (c_int, [c_void_p, c_int, c_double]),
    "sqlite3_bind_null": (c_int, [c_void_p, c_int]),
    "sqlite3_bind_text": (c_int, [c_void_p, c_int, c_char_p, c_int, c_void_p]),
    "sqlite3_bind_blob": (c_int, [c_void_p, c_int, c_char_p, c_int, c_void_p]),
    # Result columns
    "sqlite3_column_count": (c_int, [c_void_p]),
    "sqlite3_column_type": (c_int, [c_void_p, c_int]),
    "sqlite3_column_bytes": (c_int, [c_void_p, c_int]),
    "sqlite3_column_int": (c_int, [c_void_p, c_int]),
    "sqlite3_column_int64": (c_int64, [c_void_p, c_int]),
    "sqlite3_column_double": (c_double, [c_void_p, c_int]),
    "sqlite3_column_text": (c_void_p, [c_void_p, c_int]),
    "sqlite3_column_blob": (c_void_p, [c_void_p, c_int]),
    "sqlite3_column_name": (c_char_p, [c_void_p, c_int]),
    "sqlite3_column_decltype": (c_char_p, [c_void_p, c_int]),
    # Online backup
    "sqlite3_backup_init": (c_void_p, [c_void_p, c_char_p, c_void_p, c_char_p]),
    "sqlite3_backup_step": (c_int, [c_void_p, c_int]),
    "sqlite3_backup_finish": (c_int, [c_void_p]),
    # User-defined functions
    "sqlite3_create_function_v2": (
        c_int,
        [c_void_p, c_char_p, c_int, c_int, c_void_p, c_void_p, c_void_p, c_void_p, c_void_p],
    ),
    "sqlite3_aggregate_context": (c_void_p, [c_void_p, c_int]),
    "sqlite3_value_type": (c_int, [c_void_p]),
    "sqlite3_value_int64": (c_int64, [c_void_p]),
    "sqlite3_value_double": (c_double, [c_void_p]),
    "sqlite3_value_text": (c_void_p, [c_void_p]),
    "sqlite3_value_blob": (c_void_p, [c_void_p]),
    "sqlite3_value_bytes": (c_int, [c_void_p]),
    "sqlite3_result_null": (None, [c_void_p]),
    "sqlite3_result_int64": (None, [c_void_p, c_int64]),
    "sqlite3_result_double": (None, [c_void_p, c_double]),
    "sqlite3_result_text": (None, [c_void_p, c_char_p, c_int, c_void_p]),
    "sqlite3_result_blob": (None, [c_void_p, c_char_p, c_int, c_void_p]),
    "sqlite3_result_error": (None, [c_void_p, c_char_p, c_int]),
}

_OPTIONAL_SIGNATURES: dict[str, tuple[Any, list[Any]]] = {
    "sqlite3_changes64": (c_int64, [c_void_p]),
    "sqlite3_total_changes64": (c_int64, [c_void_p]),
    # Only present when built with SQLITE_ENABLE_COLUMN_METADATA
    "sqlite3_column_database_name": (c_char_p, [c_void_p, c_int]),
    "sqlite3_column_table_name": (c_char_p, [c_void_p, c_int]),
    "sqlite3_column_origin_name": (c_char_p, [c_void_p, c_int]),
}


class NativeLibrary:
    """Typed view over a loaded libsqlite3.

    Every required C function is an attribute named after it without the
    ``sqlite3_`` prefix (``lib.prepare_v2(...)``). Optional functions are
    None when the build does not export them.

    Attributes:
        path: Where the library was loaded from.
    """

    def __init__(self, cdll: ctypes.CDLL, path: str) -> None:
        self._cdll = cdll
        self.path = path

        for name, (restype, argtypes) in _SIGNATURES.items():
            func = getattr(cdll, name)
            func.restype = restype
            func.argtypes = argtypes
            setattr(self, name.removeprefix("sqlite3_"), func)

        for name, (restype, argtypes) in _OPTIONAL_SIGNATURES.items():
            func = getattr(cdll, name, None)
            if func is not None:
                func.restype = restype
                func.argtypes = argtypes
            setattr(self, name.removeprefix("sqlite3_"), func)

    @property
    def version(self) -> str:
        """The engine's version string, e.g. '3.45.1'."""
        return self.libversion().decode("ascii")

    @property
    def has_column_metadata(self) -> bool:
        """Check if column provenance functions are available."""
        return self.column_origin_name is not None

    def errmsg_text(self, db: int | None) -> str:
        """Decode the last error message recorded on a handle."""
        raw = self.errmsg(db)
        return raw.decode("utf-8", errors="replace") if raw else "unknown error"

    def errstr_text(self, code: int) -> str:
        """Decode the generic English description of a result code."""
        raw = self.errstr(code)
        return raw.decode("utf-8", errors="replace") if raw else f"error code {code}"

    def iter_statements(self, db: int) -> Iterator[int]:
        """Yield every prepared statement still open on a handle."""
        stmt = self.next_stmt(db, None)
        while stmt:
            yield stmt
            stmt = self.next_stmt(db, stmt)


def _candidate_paths(explicit: str | None) -> Iterator[str]:
    if explicit:
        yield explicit
        return

    configured = get_config().engine.library_path
    if configured is not None:
        yield str(configured)
        return

    found = ctypes.util.find_library("sqlite3")
    if found:
        yield found

    try:
        import _sqlite3
    except ImportError:
        return
    module_file = getattr(_sqlite3, "__file__", None)
    if module_file:
        yield module_file


def _try_load(path: str) -> ctypes.CDLL | None:
    try:
        cdll = ctypes.CDLL(path)
    except OSError as e:
        logger.debug("library_load_failed", path=path, error=str(e))
        return None
    if getattr(cdll, "sqlite3_open_v2", None) is None:
        logger.debug("library_missing_symbols", path=path)
        return None
    return cdll


@lru_cache
def load_library(path: str | None = None) -> NativeLibrary:
    """Load libsqlite3 once and return its typed view.

    Args:
        path: Explicit library path; overrides configuration and discovery.

    Returns:
        The shared NativeLibrary for that path.

    Raises:
        LibraryNotFoundError: If no candidate exposes the C interface.
    """
    tried: list[str] = []
    for candidate in _candidate_paths(path):
        tried.append(candidate)
        cdll = _try_load(candidate)
        if cdll is not None:
            library = NativeLibrary(cdll, candidate)
            logger.debug(
                "library_loaded",
                path=candidate,
                version=library.version,
                column_metadata=library.has_column_metadata,
            )
            return library

    raise LibraryNotFoundError(
        f"Could not load libsqlite3 (tried: {', '.join(tried) or 'nothing'})"
    )


def as_function_pointer(callback: Callable[..., Any] | None) -> int | None:
    """Convert a ctypes callback object into a raw pointer argument."""
    if callback is None:
        return None
    return ctypes.cast(callback, c_void_p).value


def read_bytes(pointer: int | None, size: int) -> bytes:
    """Copy ``size`` bytes out of engine-owned memory."""
    if not pointer or size <= 0:
        return b""
    return ctypes.string_at(pointer, size)

