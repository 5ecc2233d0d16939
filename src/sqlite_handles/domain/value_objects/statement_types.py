"""Statement lifecycle states and index types."""

from __future__ import annotations

from enum import Enum, auto
from typing import NewType, Union


ParameterIndex = NewType("ParameterIndex", int)
"""1-based position of a bound parameter ('?' placeholder)."""

ColumnIndex = NewType("ColumnIndex", int)
"""0-based position of a result column."""

ParameterRef = Union[int, str]
"""A parameter position or an input alias registered on the statement."""

ColumnRef = Union[int, str]
"""A column position or an output alias registered on the statement."""


class StatementState(Enum):
    """Prepared statement lifecycle.

    State machine:

        PREPARED ──bind──> BOUND ──step──> HAS_ROW ──step──> HAS_ROW | DONE
                                              │                    │
                                              └──────reset─────────┘
                                                       │
                                                       v
                                        BOUND (or PREPARED if never bound)

        A step that raises an engine error moves to FAILED. Stepping again
        re-executes from the first row with the current bindings.

        clear() keeps the current state and nulls every binding.
        finalize() moves any state to FINALIZED, which is terminal.
    """

    PREPARED = auto()
    """Compiled, nothing bound yet."""

    BOUND = auto()
    """At least one parameter bound; not executing."""

    HAS_ROW = auto()
    """The last step produced a row that can be read."""

    DONE = auto()
    """Execution ran to completion; step() keeps reporting it until reset()."""

    FAILED = auto()
    """The last step raised an engine error; the next step re-executes."""

    FINALIZED = auto()
    """Native handle released. Any further use is an error."""

    def is_executing(self) -> bool:
        """Check if the statement sits between its first step and a reset."""
        return self in (StatementState.HAS_ROW, StatementState.DONE, StatementState.FAILED)

    def has_row(self) -> bool:
        """Check if column accessors may be used."""
        return self == StatementState.HAS_ROW
