"""Unit tests for Statement."""

from __future__ import annotations

import copy
import pickle

import pytest

from sqlite_handles.adapters.outbound import load_library
from sqlite_handles.application import Connection, Statement
from sqlite_handles.domain.errors import (
    EngineError,
    FinalizedStatementError,
    KeyNotFoundError,
    NoRowError,
    OutOfRangeError,
    PrepareError,
    TypeMismatchError,
)
from sqlite_handles.domain.value_objects import ColumnType, ResultCode, StatementState


requires_column_metadata = pytest.mark.skipif(
    not load_library().has_column_metadata,
    reason="SQLite built without column metadata",
)


@pytest.mark.unit
class TestPrepare:
    """Tests for statement compilation."""

    def test_prepare(self, people: Connection) -> None:
        stmt = people.prepare_statement("q", "SELECT name FROM people")

        assert stmt.key == "q"
        assert stmt.sql == "SELECT name FROM people"
        assert stmt.trailing_sql == ""
        assert stmt.state == StatementState.PREPARED

    def test_syntax_error(self, connection: Connection) -> None:
        with pytest.raises(PrepareError, match="syntax error") as exc_info:
            connection.prepare_statement("bad", "SELEKT 1")

        assert exc_info.value.code == ResultCode.ERROR

    def test_empty_sql(self, connection: Connection) -> None:
        """Text without a statement cannot be prepared."""
        with pytest.raises(PrepareError, match="contains no statement"):
            connection.prepare_statement("empty", "   ")

    def test_only_first_statement_compiled(self, connection: Connection) -> None:
        stmt = connection.prepare_statement("two", "SELECT 1; SELECT 2")

        assert stmt.sql == "SELECT 1;"
        assert stmt.trailing_sql == "SELECT 2"

    def test_parameter_and_column_count(self, people: Connection) -> None:
        insert = people.prepare_statement("i", "INSERT INTO people(name, score) VALUES (?, ?)")
        select = people.prepare_statement("s", "SELECT id, name, score FROM people")

        assert insert.parameter_count() == 2
        assert insert.column_count() == 0
        assert select.parameter_count() == 0
        assert select.column_count() == 3

    def test_cannot_be_copied(self, connection: Connection) -> None:
        """Statements have exactly one owner."""
        stmt = connection.prepare_statement("q", "SELECT 1")

        with pytest.raises(TypeError):
            copy.copy(stmt)
        with pytest.raises(TypeError):
            copy.deepcopy(stmt)
        with pytest.raises(TypeError):
            pickle.dumps(stmt)


@pytest.mark.unit
class TestBinding:
    """Tests for parameter binding."""

    @pytest.fixture
    def insert(self, people: Connection) -> Statement:
        return people.prepare_statement(
            "insert", "INSERT INTO people(id, name, score, photo) VALUES (?, ?, ?, ?)"
        )

    def _row(self, conn: Connection, row_id: int) -> tuple:
        stmt = conn.prepare_statement("check", "SELECT name, score, photo FROM people WHERE id = ?")
        stmt.bind(1, row_id)
        assert stmt.step()
        return tuple(stmt.get_column(i).value() for i in range(3))

    def test_bind_dispatch(self, people: Connection, insert: Statement) -> None:
        """The engine type follows the Python type of the value."""
        insert.bind(1, 10)
        insert.bind(2, "grace")
        insert.bind(3, 8.0)
        insert.bind(4, b"\x00\xff")

        assert insert.state == StatementState.BOUND
        assert insert.step() is False
        assert self._row(people, 10) == ("grace", 8.0, b"\x00\xff")

    def test_bind_none_and_bool(self, people: Connection, insert: Statement) -> None:
        insert.bind(1, 50)
        insert.bind(2, None)
        insert.bind(3, True)
        insert.bind(4, bytearray(b"z"))
        insert.step()

        # REAL affinity stores the bound integer 1 as 1.0
        assert self._row(people, 50) == (None, 1.0, b"z")

    def test_bind_typed(self, people: Connection, insert: Statement) -> None:
        insert.bind_int(1, 20)
        insert.bind_text(2, "héllo")
        insert.bind_double(3, 1.25)
        insert.bind_null(4)
        insert.step()

        assert self._row(people, 20) == ("héllo", 1.25, None)

    def test_bind_int64(self, people: Connection, insert: Statement) -> None:
        insert.bind_int64(1, 2**40)
        insert.step()

        stmt = people.prepare_statement("max", "SELECT max(id) FROM people")
        stmt.step()
        assert stmt.get_int64(0) == 2**40

    def test_bind_blob_prefix(self, people: Connection, insert: Statement) -> None:
        insert.bind(1, 30)
        insert.bind_blob(4, b"abcdef", 3)
        insert.step()

        assert self._row(people, 30)[2] == b"abc"

    def test_bind_blob_size_too_large(self, insert: Statement) -> None:
        with pytest.raises(ValueError):
            insert.bind_blob(4, b"abc", 4)

    def test_bind_unsupported_type(self, insert: Statement) -> None:
        with pytest.raises(TypeMismatchError, match="Cannot bind value of type object"):
            insert.bind(1, object())

    def test_bind_integer_overflow(self, insert: Statement) -> None:
        with pytest.raises(OverflowError):
            insert.bind(1, 2**63)
        with pytest.raises(OverflowError):
            insert.bind_int(1, 2**31)

    def test_bind_out_of_range(self, insert: Statement) -> None:
        with pytest.raises(OutOfRangeError):
            insert.bind(5, 1)
        with pytest.raises(OutOfRangeError):
            insert.bind(0, 1)

    def test_clear_nulls_bindings(self, people: Connection, insert: Statement) -> None:
        insert.bind(1, 40)
        insert.bind(2, "temp")
        insert.clear()
        insert.bind(1, 40)
        insert.step()

        assert self._row(people, 40) == (None, None, None)


@pytest.mark.unit
class TestStepping:
    """Tests for step/reset."""

    def test_iterate_rows(self, people: Connection) -> None:
        stmt = people.prepare_statement("q", "SELECT id FROM people ORDER BY id")

        ids = []
        while stmt.step():
            assert stmt.state == StatementState.HAS_ROW
            ids.append(stmt.get_int(0))

        assert ids == [1, 2]
        assert stmt.state == StatementState.DONE

    def test_step_after_done_is_idempotent(self, people: Connection) -> None:
        stmt = people.prepare_statement("q", "SELECT id FROM people WHERE id = 1")

        assert stmt.step() is True
        assert stmt.step() is False
        assert stmt.step() is False

    def test_reset_reruns(self, people: Connection) -> None:
        stmt = people.prepare_statement("q", "SELECT name FROM people WHERE id = ?")
        stmt.bind(1, 2)
        stmt.step()
        stmt.step()

        stmt.reset()

        assert stmt.state == StatementState.BOUND
        assert stmt.step() is True
        assert stmt.get_string(0) == "linus"

    def test_reset_without_bindings(self, connection: Connection) -> None:
        stmt = connection.prepare_statement("q", "SELECT 1")
        stmt.step()
        stmt.reset()

        assert stmt.state == StatementState.PREPARED

    def test_step_error(self, people: Connection) -> None:
        """A failed step never reports completion; stepping again re-executes."""
        stmt = people.prepare_statement("dup", "INSERT INTO people(id) VALUES (1)")

        with pytest.raises(EngineError, match="UNIQUE constraint failed") as exc_info:
            stmt.step()

        assert exc_info.value.code & 0xFF == ResultCode.CONSTRAINT
        assert stmt.state == StatementState.FAILED
        with pytest.raises(EngineError, match="UNIQUE constraint failed"):
            stmt.step()

    def test_retry_after_error(self, connection: Connection) -> None:
        """A statement that failed once runs again on the next step."""
        calls = []

        def flaky() -> int:
            calls.append(1)
            if len(calls) == 1:
                raise RuntimeError("transient")
            return 7

        connection.raw_exec("CREATE TABLE t(a)")
        connection.scalar_function("flaky", 0, flaky)
        insert = connection.prepare_statement("insert", "INSERT INTO t VALUES (flaky())")

        with pytest.raises(EngineError, match="transient"):
            insert.step()
        assert insert.step() is False
        assert insert.state == StatementState.DONE

        count = connection.prepare_statement("count", "SELECT count(*), max(a) FROM t")
        assert count.step()
        assert (count.get_int(0), count.get_int(1)) == (1, 7)
        assert len(calls) == 2

    def test_clear_keeps_cursor(self, people: Connection) -> None:
        """clear() nulls bindings without rewinding the running query."""
        stmt = people.prepare_statement("q", "SELECT id FROM people WHERE id >= ? ORDER BY id")
        stmt.bind(1, 1)
        assert stmt.step()
        assert stmt.get_int(0) == 1

        stmt.clear()

        assert stmt.state == StatementState.HAS_ROW
        assert stmt.step()
        assert stmt.get_int(0) == 2
        assert stmt.step() is False

    def test_read_without_row(self, people: Connection) -> None:
        stmt = people.prepare_statement("q", "SELECT name FROM people")

        with pytest.raises(NoRowError):
            stmt.get_string(0)

        while stmt.step():
            pass
        with pytest.raises(NoRowError):
            stmt.get_column(0)


@pytest.mark.unit
class TestGetters:
    """Tests for typed column reads."""

    @pytest.fixture
    def row(self, people: Connection) -> Statement:
        stmt = people.prepare_statement("row", "SELECT id, name, score, photo FROM people WHERE id = ?")
        stmt.bind(1, 1)
        assert stmt.step()
        return stmt

    def test_typed_reads(self, row: Statement) -> None:
        assert row.get_int(0) == 1
        assert row.get_int64(0) == 1
        assert row.get_string(1) == "ada"
        assert row.get_double(2) == 9.5
        assert row.get_blob(3) == b"\x01\x02"

    def test_types_and_sizes(self, row: Statement) -> None:
        assert row.get_type(0) == ColumnType.INTEGER
        assert row.get_type(1) == ColumnType.TEXT
        assert row.get_type(2) == ColumnType.FLOAT
        assert row.get_type(3) == ColumnType.BLOB
        assert row.get_size(1) == 3
        assert row.get_size(3) == 2

    def test_type_mismatch(self, row: Statement) -> None:
        with pytest.raises(TypeMismatchError, match="doesn't contain a string"):
            row.get_string(0)
        with pytest.raises(TypeMismatchError):
            row.get_int(1)
        with pytest.raises(TypeMismatchError):
            row.get_double(0)

    def test_null_is_a_mismatch(self, people: Connection) -> None:
        stmt = people.prepare_statement("q", "SELECT photo FROM people WHERE id = 2")
        stmt.step()

        assert stmt.get_type(0) == ColumnType.NULL
        with pytest.raises(TypeMismatchError, match=r"found null"):
            stmt.get_blob(0)

    def test_blob_survives_step(self, row: Statement) -> None:
        """get_blob returns an owned copy."""
        data = row.get_blob(3)
        row.step()

        assert data == b"\x01\x02"

    def test_out_of_range(self, row: Statement) -> None:
        with pytest.raises(OutOfRangeError):
            row.get_int(4)
        with pytest.raises(OutOfRangeError):
            row.get_column(-1)


@pytest.mark.unit
class TestAliases:
    """Tests for input and output aliases."""

    def test_aliases(self, people: Connection) -> None:
        stmt = people.prepare_statement("q", "SELECT name, score FROM people WHERE id = ?")
        stmt.set_input_alias("id", 1)
        stmt.set_output_alias("name", 0)
        stmt.set_output_alias("score", 1)

        stmt.bind("id", 2)
        assert stmt.step()

        assert stmt.get_string("name") == "linus"
        assert stmt.get_double("score") == 7.25
        assert stmt.get_column("score").as_double() == 7.25
        assert dict(stmt.input_aliases) == {"id": 1}
        assert dict(stmt.output_aliases) == {"name": 0, "score": 1}

    def test_alias_overwrite(self, connection: Connection) -> None:
        """Registering an alias again points it at the new index."""
        stmt = connection.prepare_statement("q", "SELECT 1, 2")
        stmt.set_output_alias("x", 0)
        stmt.set_output_alias("x", 1)
        stmt.step()

        assert stmt.get_int("x") == 2

    def test_unknown_alias(self, connection: Connection) -> None:
        stmt = connection.prepare_statement("q", "SELECT ?")

        with pytest.raises(KeyNotFoundError, match="input alias"):
            stmt.bind("missing", 1)

        stmt.step()
        with pytest.raises(KeyNotFoundError, match="output alias"):
            stmt.get_int("missing")

    def test_alias_validated_on_use(self, connection: Connection) -> None:
        """Aliases may point anywhere; using a bad one is a range error."""
        stmt = connection.prepare_statement("q", "SELECT ?")
        stmt.set_input_alias("far", 9)
        stmt.set_output_alias("far", 9)

        with pytest.raises(OutOfRangeError):
            stmt.bind("far", 1)

        stmt.step()
        with pytest.raises(OutOfRangeError):
            stmt.get_type("far")


@pytest.mark.unit
class TestMetadata:
    """Tests for result column metadata."""

    def test_result_name_and_declared_type(self, people: Connection) -> None:
        stmt = people.prepare_statement("q", "SELECT name AS who, score + 1 FROM people")

        assert stmt.result_name(0) == "who"
        assert stmt.declared_type(0) == "TEXT"
        assert stmt.declared_type(1) is None

    @requires_column_metadata
    def test_origin(self, people: Connection) -> None:
        stmt = people.prepare_statement("q", "SELECT name AS who, 1 FROM people")

        assert stmt.database_name(0) == "main"
        assert stmt.table_name(0) == "people"
        assert stmt.column_name(0) == "name"
        assert stmt.table_name(1) is None

    def test_metadata_out_of_range(self, people: Connection) -> None:
        stmt = people.prepare_statement("q", "SELECT name FROM people")

        with pytest.raises(OutOfRangeError):
            stmt.result_name(1)


@pytest.mark.unit
class TestFinalized:
    def test_use_after_destroy(self, connection: Connection) -> None:
        stmt = connection.prepare_statement("q", "SELECT 1")
        connection.destroy_statement("q")

        assert stmt.is_finalized
        assert stmt.state == StatementState.FINALIZED
        with pytest.raises(FinalizedStatementError):
            stmt.step()
        with pytest.raises(FinalizedStatementError):
            stmt.bind(1, 1)
