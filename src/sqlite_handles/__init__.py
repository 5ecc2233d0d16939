"""
sqlite_handles - ownership-disciplined handles over the SQLite C interface

A Connection owns its database handle and a keyed set of prepared
Statements; Statements offer typed binding, typed reads and name aliases
for their parameters and result columns.
"""

__version__ = "0.6.0"

from sqlite_handles.application import (  # noqa: E402
    Connection,
    Statement,
    ValueView,
    library_version,
)
from sqlite_handles.domain.errors import (  # noqa: E402
    AlreadyExistsError,
    BackupError,
    ConnectionClosedError,
    DoesNotExistError,
    EngineError,
    ExecutionError,
    FinalizedStatementError,
    KeyNotFoundError,
    LibraryNotFoundError,
    NoRowError,
    OutOfRangeError,
    PrepareError,
    SQLiteHandlesError,
    StaleValueError,
    TypeMismatchError,
)
from sqlite_handles.domain.value_objects import (  # noqa: E402
    ColumnType,
    ResultCode,
    StatementState,
)

__all__ = [
    "__version__",
    "Connection",
    "Statement",
    "ValueView",
    "library_version",
    "ColumnType",
    "ResultCode",
    "StatementState",
    "SQLiteHandlesError",
    "AlreadyExistsError",
    "DoesNotExistError",
    "EngineError",
    "PrepareError",
    "ExecutionError",
    "BackupError",
    "OutOfRangeError",
    "NoRowError",
    "FinalizedStatementError",
    "StaleValueError",
    "ConnectionClosedError",
    "TypeMismatchError",
    "KeyNotFoundError",
    "LibraryNotFoundError",
]
