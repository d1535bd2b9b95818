from __future__ import annotations

import pytest
from sqlalchemy import select, text
from sqlalchemy.exc import DBAPIError, OperationalError

from prs_api.services.errors import QueryExecutionError, QueryTimeoutError, Stage
from prs_api.services.executor import Deadline, QueryRunner


class FakeClock:
    def __init__(self, value: float = 100.0) -> None:
        self.value = value

    def __call__(self) -> float:
        return self.value


class DriverError(Exception):
    def __init__(self, message: str, pgcode: str | None = None) -> None:
        super().__init__(message)
        self.pgcode = pgcode


class FakeResult:
    def __init__(self, rows) -> None:
        self._rows = rows

    def mappings(self):
        return self

    def all(self):
        return list(self._rows)


class SteppingClock:
    """Advances by a fixed step on every read."""

    def __init__(self, value: float = 100.0, step: float = 0.001) -> None:
        self.value = value
        self.step = step

    def __call__(self) -> float:
        self.value += self.step
        return self.value


class FakeSession:
    def __init__(self, rows=(), error: Exception | None = None) -> None:
        self.rows = list(rows)
        self.error = error
        self.executed: list = []
        self.rollbacks = 0

    def execute(self, statement):
        self.executed.append(statement)
        if len(self.executed) > 1 and self.error is not None:
            raise self.error
        return FakeResult(self.rows)

    def rollback(self) -> None:
        self.rollbacks += 1


def test_deadline_counts_down_on_its_clock() -> None:
    clock = FakeClock()
    deadline = Deadline.after(2.5, clock=clock)
    assert deadline.remaining_ms() == 2500
    clock.value += 2.0
    assert deadline.remaining_ms() == 500
    assert deadline.check(Stage.PAGINATE) == 500
    clock.value += 1.0
    assert deadline.remaining() == 0.0
    with pytest.raises(QueryTimeoutError) as excinfo:
        deadline.check(Stage.PAGINATE)
    assert excinfo.value.stage is Stage.PAGINATE


def test_runner_sets_statement_timeout_then_rolls_back() -> None:
    session = FakeSession(rows=[{"id": 1}])
    deadline = Deadline.after(1.5, clock=FakeClock())
    [rows] = QueryRunner(session).fetch_many(select(text("1")), deadline=deadline, stage=Stage.PAGINATE)

    assert rows == [{"id": 1}]
    first = session.executed[0].compile()
    assert "set_config" in str(first)
    assert "1500" in first.params.values()
    assert session.rollbacks == 1


def test_cancelled_statement_becomes_timeout() -> None:
    cancelled = DBAPIError("SELECT 1", {}, DriverError("canceling statement", pgcode="57014"))
    session = FakeSession(error=cancelled)
    with pytest.raises(QueryTimeoutError) as excinfo:
        QueryRunner(session).fetch_many(
            select(text("1")), deadline=Deadline.after(5, clock=FakeClock()), stage=Stage.PAGINATE
        )
    assert excinfo.value.stage is Stage.PAGINATE
    assert session.rollbacks == 1


def test_other_database_errors_become_execution_errors() -> None:
    broken = OperationalError("SELECT 1", {}, DriverError("server closed the connection"))
    session = FakeSession(error=broken)
    with pytest.raises(QueryExecutionError) as excinfo:
        QueryRunner(session).fetch_many(
            select(text("1")), deadline=Deadline.after(5, clock=FakeClock()), stage=Stage.CLASSIFY
        )
    assert not isinstance(excinfo.value, QueryTimeoutError)
    assert excinfo.value.stage is Stage.CLASSIFY
    assert "server closed the connection" in excinfo.value.message
    assert session.rollbacks == 1


def test_expired_deadline_never_touches_the_database() -> None:
    clock = FakeClock()
    deadline = Deadline.after(1, clock=clock)
    clock.value += 5
    session = FakeSession()
    with pytest.raises(QueryTimeoutError):
        QueryRunner(session).fetch_many(select(text("1")), deadline=deadline, stage=Stage.PAGINATE)
    assert session.executed == []


def test_statement_timeout_is_never_zero() -> None:
    # 2.9 ms budget and the clock moves 1 ms per read: a second read would leave 0 ms.
    clock = SteppingClock()
    deadline = Deadline(clock.value + 0.0029, clock=clock)
    session = FakeSession(rows=[{"id": 1}])
    QueryRunner(session).fetch_many(select(text("1")), deadline=deadline, stage=Stage.PAGINATE)

    timeout = session.executed[0].compile().params
    assert "0" not in timeout.values()
    assert "1" in timeout.values()


def test_budget_under_a_millisecond_is_a_timeout() -> None:
    clock = SteppingClock(step=0.0)
    deadline = Deadline(clock.value + 0.0004, clock=clock)
    session = FakeSession()
    with pytest.raises(QueryTimeoutError) as excinfo:
        QueryRunner(session).fetch_many(select(text("1")), deadline=deadline, stage=Stage.PAGINATE)
    assert excinfo.value.stage is Stage.PAGINATE
    assert session.executed == []


def test_fetch_many_shares_one_transaction() -> None:
    session = FakeSession(rows=[{"id": 3}])
    results = QueryRunner(session).fetch_many(
        select(text("1")), select(text("2")), deadline=Deadline.after(5, clock=FakeClock()), stage=Stage.PAGINATE
    )
    assert results == [[{"id": 3}], [{"id": 3}]]
    assert len(session.executed) == 3
    assert session.rollbacks == 1
