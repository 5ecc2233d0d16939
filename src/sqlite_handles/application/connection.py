"""Database connection - owner of a database handle and its statements.

A Connection exclusively owns one ``sqlite3*`` handle and a keyed set of
prepared Statements. Statements never outlive the handle they were
prepared against: closing the connection, or replacing its handle with
open/create/force_open, finalizes every owned statement first.

Usage:
    from sqlite_handles import Connection

    with Connection() as db:
        db.create()                          # transient in-memory store
        db.raw_exec("CREATE TABLE t(a TEXT, b REAL)")

        insert = db.prepare_statement("insert", "INSERT INTO t VALUES (?, ?)")
        insert.bind(1, "x")
        insert.bind(2, 1.5)
        insert.step()
        insert.reset()

        select = db.prepare_statement("select", "SELECT a, b FROM t")
        while select.step():
            print(select.get_string(0), select.get_double(1))

Thread Safety:
    None. A Connection and its Statements must be used from one thread at
    a time; the wrapper adds no locking of its own.
"""

from __future__ import annotations

import ctypes
import os
from typing import Any, Callable

from sqlite_handles import __version__
from sqlite_handles.adapters.outbound import (
    NativeLibrary,
    as_function_pointer,
    load_library,
)
from sqlite_handles.application.functions import (
    Aggregate,
    AggregateFunction,
    ScalarFunction,
)
from sqlite_handles.application.statement import Statement
from sqlite_handles.domain.errors import (
    AlreadyExistsError,
    BackupError,
    ConnectionClosedError,
    DoesNotExistError,
    EngineError,
    ExecutionError,
    KeyNotFoundError,
)
from sqlite_handles.domain.value_objects import (
    FUNCTION_DETERMINISTIC,
    MAIN_SCHEMA,
    MEMORY_DATABASE,
    OpenFlag,
    ResultCode,
    TextEncoding,
)
from sqlite_handles.infrastructure.config import Config, get_config
from sqlite_handles.infrastructure.logging import get_logger
from sqlite_handles.infrastructure.metrics import MetricsRegistry, get_metrics
from sqlite_handles.infrastructure.tracing import trace_span


logger = get_logger(__name__)

PathLike = str | os.PathLike[str]

_OPEN_FLAGS = OpenFlag.READWRITE | OpenFlag.CREATE


def library_version() -> str:
    """Version string of the SQLite library the wrapper is bound to."""
    return load_library().version


class Connection:
    """Owner of one database handle and the statements prepared against it.

    Attributes:
        path: Location of the open store (":memory:" for transient stores),
            or None while closed.
    """

    def __init__(
        self,
        path: PathLike | None = None,
        *,
        config: Config | None = None,
        library: NativeLibrary | None = None,
        metrics: MetricsRegistry | None = None,
    ) -> None:
        """Create a connection, force-opening ``path`` when given.

        Args:
            path: Store to open (created if absent). None leaves it closed.
            config: Configuration (defaults to the global one).
            library: Loaded engine (defaults to the process-wide one).
            metrics: Metrics registry (defaults to the global one).
        """
        self._config = config or get_config()
        if library is None:
            configured = self._config.engine.library_path
            library = load_library(str(configured) if configured else None)
        self._lib = library
        self._metrics = metrics or get_metrics()
        self._metrics.info.info({"version": __version__, "sqlite_version": library.version})

        self._db: int | None = None
        self.path: str | None = None
        self._statements: dict[str, Statement] = {}
        self._functions: dict[tuple[str, int], ScalarFunction | AggregateFunction] = {}

        if path is not None:
            self.force_open(path)

    # --- Handle lifecycle -----------------------------------------------------------

    @property
    def is_open(self) -> bool:
        """Check if a database handle is held."""
        return self._db is not None

    def force_open(self, path: PathLike) -> None:
        """Open ``path``, creating it if it does not exist."""
        location = os.fspath(path)
        self._install(self._open_handle(location, _OPEN_FLAGS), location)

    def open(self, path: PathLike) -> None:
        """Open an existing store.

        Raises:
            DoesNotExistError: If ``path`` does not exist.
        """
        location = os.fspath(path)
        if not os.path.exists(location):
            raise DoesNotExistError(location)
        self._install(self._open_handle(location, _OPEN_FLAGS), location)

    def create(self, path: PathLike | None = None) -> None:
        """Create a new store, or a transient in-memory one when ``path`` is None.

        Raises:
            AlreadyExistsError: If ``path`` already exists.
        """
        if path is None:
            location = MEMORY_DATABASE
        else:
            location = os.fspath(path)
            if os.path.exists(location):
                raise AlreadyExistsError(location)
        self._install(self._open_handle(location, _OPEN_FLAGS), location)

    def close(self) -> None:
        """Finalize all statements, then release the handle. Idempotent."""
        if self._db is None:
            return
        self._release()

    def _open_handle(self, location: str, flags: int) -> int:
        """Open a new native handle. On failure nothing is left allocated."""
        handle = ctypes.c_void_p()
        rc = self._lib.open_v2(location.encode("utf-8"), ctypes.byref(handle), flags, None)
        if rc != ResultCode.OK:
            if handle.value:
                message = self._lib.errmsg_text(handle.value)
                self._lib.close(handle.value)
            else:
                message = self._lib.errstr_text(rc)
            raise EngineError(rc, message)

        timeout = self._config.engine.busy_timeout_ms
        if timeout:
            self._lib.busy_timeout(handle.value, timeout)
        return handle.value

    def _install(self, handle: int, location: str) -> None:
        if self._db is not None:
            try:
                self._release()
            except EngineError:
                self._lib.close(handle)
                raise
        self._db = handle
        self.path = location
        self._metrics.connections_open.inc()
        logger.debug("database_opened", path=location)

    def _release(self) -> None:
        self.destroy_statements()
        rc = self._lib.close(self._db)
        if rc != ResultCode.OK:
            raise EngineError(rc, self._lib.errmsg_text(self._db))
        self._functions.clear()
        logger.debug("database_closed", path=self.path)
        self._db = None
        self.path = None
        self._metrics.connections_open.dec()

    def _require_db(self) -> int:
        if self._db is None:
            raise ConnectionClosedError()
        return self._db

    def _check(self, rc: int) -> None:
        if rc != ResultCode.OK:
            raise EngineError(rc, self._lib.errmsg_text(self._db))

    def __enter__(self) -> Connection:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def __del__(self) -> None:
        # Last-resort teardown; must not depend on module globals.
        db = getattr(self, "_db", None)
        if db is None:
            return
        for statement in self._statements.values():
            statement._finalize()
            self._metrics.statements_finalized_total.inc()
            self._metrics.statements_open.dec()
        self._statements.clear()
        self._lib.close(db)
        self._db = None
        self._metrics.connections_open.dec()

    # --- Statements -----------------------------------------------------------------

    def prepare_statement(self, key: str, sql: str) -> Statement:
        """Compile ``sql`` and store it under ``key``.

        A statement already stored under ``key`` is finalized and replaced;
        references to it held elsewhere become unusable.

        Returns:
            The newly stored Statement (still owned by this connection).

        Raises:
            PrepareError: If the engine cannot compile ``sql``. Nothing is
                stored and any previous statement under ``key`` survives.
        """
        db = self._require_db()
        statement = Statement(self._lib, db, key, sql)
        self._metrics.statements_prepared_total.inc()
        self._metrics.statements_open.inc()
        if statement.trailing_sql:
            logger.warning("trailing_sql_ignored", key=key, trailing=statement.trailing_sql)

        previous = self._statements.pop(key, None)
        if previous is not None:
            self._finalize(previous)
        self._statements[key] = statement
        logger.debug("statement_prepared", key=key, sql=statement.sql)
        return statement

    def get_statement(self, key: str) -> Statement:
        """Return the statement stored under ``key``.

        Raises:
            KeyNotFoundError: If no statement is stored under ``key``.
        """
        try:
            return self._statements[key]
        except KeyError:
            raise KeyNotFoundError("statement", key) from None

    def has_statement(self, key: str) -> bool:
        return key in self._statements

    def statement_keys(self) -> list[str]:
        return list(self._statements)

    def destroy_statement(self, key: str) -> None:
        """Finalize and forget the statement stored under ``key``.

        Raises:
            KeyNotFoundError: If no statement is stored under ``key``.
        """
        try:
            statement = self._statements.pop(key)
        except KeyError:
            raise KeyNotFoundError("statement", key) from None
        self._finalize(statement)

    def destroy_statements(self) -> None:
        """Finalize and forget every owned statement."""
        while self._statements:
            _, statement = self._statements.popitem()
            self._finalize(statement)

    def _finalize(self, statement: Statement) -> None:
        statement._finalize()
        self._metrics.statements_finalized_total.inc()
        self._metrics.statements_open.dec()
        logger.debug("statement_finalized", key=statement.key)

    def open_statement_count(self) -> int:
        """Number of prepared statements the engine still holds on this handle."""
        return sum(1 for _ in self._lib.iter_statements(self._require_db()))

    # --- Execution ------------------------------------------------------------------

    def raw_exec(self, sql: str) -> int:
        """Run one or more ';'-separated statements without parameters.

        Returns:
            Rows changed by the last statement executed.

        Raises:
            ExecutionError: If any statement fails.
        """
        db = self._require_db()
        with trace_span("sqlite.raw_exec", {"db.statement": sql}, self._lib.version):
            rc = self._lib.exec(db, sql.encode("utf-8"), None, None, None)
        if rc != ResultCode.OK:
            self._metrics.raw_exec_total.labels(status="error").inc()
            raise ExecutionError(rc, self._lib.errmsg_text(db))
        self._metrics.raw_exec_total.labels(status="success").inc()
        return self.changes()

    # --- Backup ---------------------------------------------------------------------

    def load(self, path: PathLike) -> None:
        """Overwrite the live store with the contents of the file ``path``.

        Raises:
            DoesNotExistError: If ``path`` does not exist.
            BackupError: If the copy does not complete.
        """
        db = self._require_db()
        location = os.fspath(path)
        if not os.path.exists(location):
            raise DoesNotExistError(location)
        attributes = {"direction": "load", "path": location}
        with trace_span("sqlite.backup", attributes, self._lib.version):
            self._copy("load", location, OpenFlag.READONLY, lambda peer: (db, peer))

    def save(self, path: PathLike) -> None:
        """Overwrite the file ``path`` (creating it) with the live store.

        Raises:
            BackupError: If the copy does not complete.
        """
        db = self._require_db()
        location = os.fspath(path)
        attributes = {"direction": "save", "path": location}
        with trace_span("sqlite.backup", attributes, self._lib.version):
            self._copy("save", location, _OPEN_FLAGS, lambda peer: (peer, db))

    def _copy(
        self,
        direction: str,
        location: str,
        flags: int,
        endpoints: Callable[[int], tuple[int, int]],
    ) -> None:
        try:
            peer = self._open_handle(location, flags)
        except EngineError as e:
            self._metrics.backups_total.labels(direction=direction, status="error").inc()
            raise BackupError(e.code, e.message) from e

        destination, source = endpoints(peer)
        try:
            self._backup(destination, source)
        except BackupError:
            self._metrics.backups_total.labels(direction=direction, status="error").inc()
            raise
        finally:
            self._lib.close(peer)
        self._metrics.backups_total.labels(direction=direction, status="success").inc()
        logger.debug("backup_completed", direction=direction, path=location)

    def _backup(self, destination: int, source: int) -> None:
        name = MAIN_SCHEMA.encode("ascii")
        backup = self._lib.backup_init(destination, name, source, name)
        if not backup:
            raise BackupError(
                self._lib.errcode(destination), self._lib.errmsg_text(destination)
            )
        step_rc = self._lib.backup_step(backup, -1)
        finish_rc = self._lib.backup_finish(backup)
        if step_rc != ResultCode.DONE:
            # backup_finish records the step failure on the destination handle
            if self._lib.errcode(destination) != ResultCode.OK:
                message = self._lib.errmsg_text(destination)
            else:
                message = self._lib.errstr_text(step_rc)
            raise BackupError(step_rc, message)
        if finish_rc != ResultCode.OK:
            raise BackupError(finish_rc, self._lib.errmsg_text(destination))

    # --- User-defined functions -----------------------------------------------------

    def scalar_function(
        self,
        name: str,
        n_args: int,
        func: Callable[..., Any],
        *,
        deterministic: bool = False,
    ) -> None:
        """Expose ``func`` to SQL as ``name`` taking ``n_args`` arguments (-1: any)."""
        entry = ScalarFunction(self._lib, name, n_args, func)
        self._register(entry, deterministic, as_function_pointer(entry.callback), None, None)

    def aggregate_function(
        self,
        name: str,
        n_args: int,
        factory: Callable[[], Aggregate],
        *,
        deterministic: bool = False,
    ) -> None:
        """Expose an aggregate to SQL.

        ``factory()`` must return a fresh object with ``step(*args)`` and
        ``finalize()`` for every group the aggregate is computed over.
        """
        entry = AggregateFunction(self._lib, name, n_args, factory)
        self._register(
            entry,
            deterministic,
            None,
            as_function_pointer(entry.step_callback),
            as_function_pointer(entry.final_callback),
        )

    def delete_function(self, name: str, n_args: int = -1) -> None:
        """Remove a function registered under ``name`` and ``n_args``."""
        db = self._require_db()
        rc = self._lib.create_function_v2(
            db, name.encode("utf-8"), n_args, TextEncoding.UTF8, None, None, None, None, None
        )
        self._check(rc)
        self._functions.pop((name.lower(), n_args), None)
        logger.debug("function_deleted", name=name, n_args=n_args)

    def _register(
        self,
        entry: ScalarFunction | AggregateFunction,
        deterministic: bool,
        func: int | None,
        step: int | None,
        final: int | None,
    ) -> None:
        db = self._require_db()
        flags = TextEncoding.UTF8 | (FUNCTION_DETERMINISTIC if deterministic else 0)
        rc = self._lib.create_function_v2(
            db, entry.name.encode("utf-8"), entry.n_args, flags, None, func, step, final, None
        )
        self._check(rc)
        self._functions[(entry.name.lower(), entry.n_args)] = entry
        logger.debug("function_registered", name=entry.name, n_args=entry.n_args)

    # --- Counters and diagnostics ---------------------------------------------------

    def changes(self) -> int:
        """Rows changed by the most recently completed statement."""
        db = self._require_db()
        if self._lib.changes64 is not None:
            return self._lib.changes64(db)
        return self._lib.changes(db)

    def total_changes(self) -> int:
        """Rows changed since the handle was opened."""
        db = self._require_db()
        if self._lib.total_changes64 is not None:
            return self._lib.total_changes64(db)
        return self._lib.total_changes(db)

    def last_insert_rowid(self) -> int:
        return self._lib.last_insert_rowid(self._require_db())

    def error_code(self) -> int:
        """Primary result code of the last failed engine call on this handle."""
        return self._lib.errcode(self._require_db())

    def extended_error_code(self) -> int:
        return self._lib.extended_errcode(self._require_db())

    def error_msg(self) -> str:
        """Engine message describing the last failure on this handle."""
        return self._lib.errmsg_text(self._require_db())

    def __repr__(self) -> str:
        state = self.path if self._db is not None else "closed"
        return f"Connection({state!r}, statements={len(self._statements)})"
