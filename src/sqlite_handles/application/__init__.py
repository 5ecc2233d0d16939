"""Application layer for sqlite_handles.

The application layer holds the owning handle types callers work with.

Exports:
    Ownership:
        - Connection: Owner of a database handle and its keyed statements
        - Statement: Owner of one prepared statement
        - ValueView: Weak, row-scoped view of one result column
    Functions:
        - ScalarFunction, AggregateFunction: User-defined function records
        - library_version: Version of the bound SQLite library
"""

from sqlite_handles.application.connection import Connection, library_version
from sqlite_handles.application.functions import AggregateFunction, ScalarFunction
from sqlite_handles.application.statement import Statement
from sqlite_handles.application.value_view import ValueView

__all__ = [
    "Connection",
    "Statement",
    "ValueView",
    "ScalarFunction",
    "AggregateFunction",
    "library_version",
]
