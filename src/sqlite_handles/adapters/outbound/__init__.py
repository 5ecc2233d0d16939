"""Outbound adapters.

Exports:
    - NativeLibrary: Typed ctypes view over libsqlite3
    - load_library: Process-wide cached loader
"""

from sqlite_handles.adapters.outbound.native_library import (
    FINAL_FUNC,
    SCALAR_FUNC,
    SQLITE_TRANSIENT,
    NativeLibrary,
    as_function_pointer,
    load_library,
    read_bytes,
)

__all__ = [
    "NativeLibrary",
    "load_library",
    "as_function_pointer",
    "read_bytes",
    "SQLITE_TRANSIENT",
    "SCALAR_FUNC",
    "FINAL_FUNC",
]
