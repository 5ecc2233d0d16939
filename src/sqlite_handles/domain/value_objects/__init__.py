"""Value objects for the sqlite_handles domain.

Exports:
    Engine codes:
        - ResultCode: Primary result codes of engine calls
        - ColumnType: Dynamic column datatypes (plus ERROR)
        - OpenFlag: sqlite3_open_v2 flags
        - TextEncoding, FUNCTION_DETERMINISTIC: Function registration flags
        - MEMORY_DATABASE, MAIN_SCHEMA: Well-known names

    Statement types:
        - StatementState: Prepared statement lifecycle states
        - ParameterIndex, ColumnIndex: Typed positions
        - ParameterRef, ColumnRef: Position-or-alias references
"""

from sqlite_handles.domain.value_objects.engine_codes import (
    FUNCTION_DETERMINISTIC,
    MAIN_SCHEMA,
    MEMORY_DATABASE,
    ColumnType,
    OpenFlag,
    ResultCode,
    TextEncoding,
)
from sqlite_handles.domain.value_objects.statement_types import (
    ColumnIndex,
    ColumnRef,
    ParameterIndex,
    ParameterRef,
    StatementState,
)

__all__ = [
    # Engine codes
    "ResultCode",
    "ColumnType",
    "OpenFlag",
    "TextEncoding",
    "FUNCTION_DETERMINISTIC",
    "MEMORY_DATABASE",
    "MAIN_SCHEMA",
    # Statement types
    "StatementState",
    "ParameterIndex",
    "ColumnIndex",
    "ParameterRef",
    "ColumnRef",
]
