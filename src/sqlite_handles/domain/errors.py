"""Error taxonomy.

Every failure is raised at the call site that detected it. Errors that
originate in the engine carry its numeric result code and its own
diagnostic text.

    SQLiteHandlesError
    ├── AlreadyExistsError        (also FileExistsError)
    ├── DoesNotExistError         (also FileNotFoundError)
    ├── TypeMismatchError         (also TypeError)
    ├── KeyNotFoundError          (also KeyError)
    ├── LibraryNotFoundError      (also OSError)
    └── EngineError(code, message)
        ├── PrepareError
        ├── ExecutionError
        ├── BackupError
        ├── OutOfRangeError
        ├── NoRowError
        ├── FinalizedStatementError
        ├── StaleValueError
        └── ConnectionClosedError
"""

from __future__ import annotations

from sqlite_handles.domain.value_objects import ResultCode


class SQLiteHandlesError(Exception):
    """Base class for every error raised by sqlite_handles."""

    pass


class AlreadyExistsError(SQLiteHandlesError, FileExistsError):
    """Raised when creating a database whose file already exists."""

    def __init__(self, path: str) -> None:
        super().__init__(f"File already exists: {path}")
        self.path = path


class DoesNotExistError(SQLiteHandlesError, FileNotFoundError):
    """Raised when opening a database whose file is missing."""

    def __init__(self, path: str) -> None:
        super().__init__(f"File does not exist: {path}")
        self.path = path


class TypeMismatchError(SQLiteHandlesError, TypeError):
    """Raised when a value does not have the requested type."""

    def __init__(
        self,
        expected: str,
        actual: str | None = None,
        message: str | None = None,
    ) -> None:
        if message is None:
            message = f"Column doesn't contain a {expected}"
            if actual is not None:
                message = f"{message} (found {actual})"
        super().__init__(message)
        self.expected = expected
        self.actual = actual


class KeyNotFoundError(SQLiteHandlesError, KeyError):
    """Raised when a statement key or alias is not registered."""

    def __init__(self, kind: str, key: str) -> None:
        super().__init__(f"{kind} not found: {key!r}")
        self.kind = kind
        self.key = key

    def __str__(self) -> str:
        # KeyError quotes its argument; keep the plain message.
        return str(self.args[0])


class LibraryNotFoundError(SQLiteHandlesError, OSError):
    """Raised when no usable libsqlite3 can be loaded."""

    pass


class EngineError(SQLiteHandlesError):
    """A non-success result code reported by the engine.

    Attributes:
        code: The engine result code (possibly extended).
        message: The engine's diagnostic text.
    """

    def __init__(self, code: int, message: str) -> None:
        super().__init__(message)
        self.code = int(code)
        self.message = message

    @property
    def code_name(self) -> str:
        """Symbolic name of the primary result code."""
        return ResultCode.describe(self.code)

    def __str__(self) -> str:
        return f"{self.message} [{self.code_name}]"


class PrepareError(EngineError):
    """Raised when SQL text cannot be compiled into a statement."""

    pass


class ExecutionError(EngineError):
    """Raised when raw execution of SQL text fails."""

    pass


class BackupError(EngineError):
    """Raised when an online backup (load/save) does not complete."""

    pass


class OutOfRangeError(EngineError):
    """Raised when a parameter or column index is outside the statement."""

    def __init__(self, message: str = "column index out of range") -> None:
        super().__init__(ResultCode.RANGE, message)


class NoRowError(EngineError):
    """Raised when a column is read while the statement has no current row."""

    def __init__(self, message: str = "statement has no current row") -> None:
        super().__init__(ResultCode.MISUSE, message)


class FinalizedStatementError(EngineError):
    """Raised when a statement is used after it was finalized."""

    def __init__(self, message: str = "statement has been finalized") -> None:
        super().__init__(ResultCode.MISUSE, message)


class StaleValueError(EngineError):
    """Raised when a ValueView is read after its statement moved on."""

    def __init__(self, message: str = "value view is no longer valid") -> None:
        super().__init__(ResultCode.MISUSE, message)


class ConnectionClosedError(EngineError):
    """Raised when an operation needs a database handle and none is open."""

    def __init__(self, message: str = "database is not open") -> None:
        super().__init__(ResultCode.MISUSE, message)
