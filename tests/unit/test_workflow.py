"""آزمون ماشین حالت ورود فهرست با parser/loader/committer ساختگی."""
from __future__ import annotations

from typing import Sequence

import pytest

from fee_roster.core.common.errors import (
    CommitFailedError,
    ReconciliationConfigError,
    RosterParseError,
    WorkflowStateError,
)
from fee_roster.core.common.reasons import ReasonCode
from fee_roster.core.common.types import Action, ChangeRow, FallbackPolicy, Operation
from fee_roster.core.workflow import ImportWorkflow, WorkflowState
from tests.conftest import make_student, row


class FakeLoader:
    def __init__(self, population) -> None:
        self.population = list(population)
        self.calls: list[int] = []

    def __call__(self, year: int):
        self.calls.append(year)
        return [s for s in self.population if s.academic_year == year]


class FakeCommitter:
    def __init__(self, *, fail: bool = False) -> None:
        self.fail = fail
        self.batches: list[tuple[Operation, ...]] = []

    def __call__(self, operations: Sequence[Operation]) -> str:
        self.batches.append(tuple(operations))
        if self.fail:
            raise CommitFailedError(func="commit", message="store rejected batch")
        return "ok"


def _parser_for(rows: Sequence[ChangeRow]):
    return lambda source: list(rows)


def _workflow(rows, population, *, committer=None, parser=None) -> ImportWorkflow:
    return ImportWorkflow(
        parser=parser or _parser_for(rows),
        population_loader=FakeLoader(population),
        committer=committer or FakeCommitter(),
    )


def _ready(wf: ImportWorkflow, *, year: int = 113, policy=FallbackPolicy.REPLACE_SPECIAL_COHORT_ONLY):
    wf.set_target_year(year)
    wf.set_fallback_policy(policy)
    wf.set_source("changes.csv")
    wf.parse()
    return wf.preview()


def test_happy_path_reaches_reported() -> None:
    committer = FakeCommitter()
    wf = _workflow(
        [row("林大同", "501", "601")],
        [make_student("A", "林大同", "501"), make_student("B", "張三", "502")],
        committer=committer,
    )
    result = _ready(wf)

    assert wf.state is WorkflowState.PREVIEWING
    assert wf.can_commit
    summary = wf.commit()

    assert wf.state is WorkflowState.REPORTED
    assert summary.update_count == 1
    assert summary.withdrawal_count == 1
    assert committer.batches == [result.actionable()]
    assert wf.commit_receipt == "ok"
    assert [t.target for t in wf.history][-2:] == [WorkflowState.COMMITTING, WorkflowState.REPORTED]


def test_rejected_commit_returns_to_preview_with_same_operations() -> None:
    committer = FakeCommitter(fail=True)
    wf = _workflow(
        [row("林大同", "501", "601")],
        [make_student("A", "林大同", "501"), make_student("B", "張三", "502")],
        committer=committer,
    )
    result = _ready(wf)
    before = result.actionable()
    assert [op.action for op in before] == [Action.UPDATE, Action.WITHDRAW]

    with pytest.raises(CommitFailedError):
        wf.commit()

    assert wf.state is WorkflowState.PREVIEWING
    assert wf.commit_error == "提交失敗，請重試"
    assert wf.result is result
    assert wf.result.actionable() == before

    committer.fail = False
    wf.commit()
    assert wf.state is WorkflowState.REPORTED
    assert len(committer.batches) == 2


def test_commit_is_rejected_while_committing() -> None:
    wf = _workflow([row("林大同", "501", "601")], [make_student("A", "林大同", "501")])

    def reentrant(operations):
        with pytest.raises(WorkflowStateError):
            wf.commit()
        return "ok"

    wf._committer = reentrant
    _ready(wf)
    wf.commit()
    assert wf.state is WorkflowState.REPORTED


def test_commit_requires_actionable_operations() -> None:
    wf = _workflow([row("林大同", "501", "501")], [make_student("A", "林大同", "501")])
    _ready(wf, policy=FallbackPolicy.IGNORE)
    assert not wf.can_commit
    with pytest.raises(WorkflowStateError):
        wf.commit()


def test_parse_error_returns_to_collecting_input() -> None:
    def failing_parser(source):
        raise RosterParseError(func="read_table", message="缺少必要欄位: name")

    wf = _workflow([], [], parser=failing_parser)
    wf.set_target_year(113)
    wf.set_source("broken.csv")
    wf.parse()

    assert wf.state is WorkflowState.COLLECTING_INPUT
    assert wf.parse_error is not None and "缺少必要欄位" in wf.parse_error
    assert not wf.can_preview


def test_zero_rows_reports_header_hint() -> None:
    wf = _workflow([], [])
    wf.set_source("empty.csv")
    wf.parse()
    assert wf.state is WorkflowState.COLLECTING_INPUT
    assert wf.parse_error == "無有效資料列，請確認欄位名稱需為 name,oldClass,newClass"


def test_parse_without_source_is_rejected() -> None:
    wf = _workflow([], [])
    with pytest.raises(WorkflowStateError):
        wf.parse()


def test_preview_requires_year_and_rows() -> None:
    wf = _workflow([row("甲", "501", "601")], [])
    wf.set_source("x.csv")
    wf.parse()
    with pytest.raises(WorkflowStateError):
        wf.preview()
    wf.set_target_year(113)
    wf.preview()
    assert wf.state is WorkflowState.PREVIEWING


def test_policy_change_reruns_engine_without_refetch() -> None:
    population = [make_student("A", "林大同", "501")]
    loader = FakeLoader(population)
    wf = ImportWorkflow(parser=_parser_for([row("無此人", "501", "601")]), population_loader=loader, committer=FakeCommitter())
    _ready(wf, policy=FallbackPolicy.IGNORE)
    assert wf.result.unlisted[0].action is Action.NONE

    wf.set_fallback_policy("replaceAll")
    assert wf.state is WorkflowState.PREVIEWING
    assert wf.result.unlisted[0].action is Action.UPDATE
    assert loader.calls == [113]


def test_year_change_in_preview_refetches_population() -> None:
    population = [make_student("A", "林大同", "501"), make_student("B", "林大同", "501", academic_year=112)]
    loader = FakeLoader(population)
    wf = ImportWorkflow(parser=_parser_for([row("林大同", "501", "601")]), population_loader=loader, committer=FakeCommitter())
    _ready(wf)
    wf.set_target_year(112)
    assert loader.calls == [113, 112]
    assert wf.result.target_year == 112
    assert wf.result.listed[0].student_id == "B"


class StoreUnavailable(Exception):
    pass


def test_failed_refetch_drops_previous_year_preview() -> None:
    class FlakyLoader(FakeLoader):
        def __call__(self, year: int):
            if year == 114:
                raise StoreUnavailable("database is locked")
            return super().__call__(year)

    committer = FakeCommitter()
    wf = ImportWorkflow(
        parser=_parser_for([row("林大同", "501", "601")]),
        population_loader=FlakyLoader([make_student("A", "林大同", "501")]),
        committer=committer,
    )
    _ready(wf)
    assert wf.can_commit

    with pytest.raises(StoreUnavailable):
        wf.set_target_year(114)

    assert wf.state is WorkflowState.COLLECTING_INPUT
    assert wf.result is None
    assert wf.target_year == 113
    assert not wf.can_commit
    with pytest.raises(WorkflowStateError):
        wf.commit()
    assert committer.batches == []


def test_clearing_year_leaves_preview() -> None:
    wf = _workflow([row("林大同", "501", "601")], [make_student("A", "林大同", "501")])
    _ready(wf)
    wf.set_target_year(None)
    assert wf.state is WorkflowState.COLLECTING_INPUT
    assert wf.result is None


def test_invalid_inputs_raise_config_errors() -> None:
    wf = _workflow([], [])
    with pytest.raises(ReconciliationConfigError):
        wf.set_target_year(0)
    with pytest.raises(ReconciliationConfigError):
        wf.set_fallback_policy("everyone_out")


def test_cancel_discards_session() -> None:
    committer = FakeCommitter()
    wf = _workflow([row("林大同", "501", "601")], [make_student("A", "林大同", "501")], committer=committer)
    _ready(wf)
    wf.cancel()
    assert wf.state is WorkflowState.COLLECTING_INPUT
    assert wf.result is None and wf.rows == () and wf.target_year is None
    assert wf.history == []
    assert committer.batches == []


def test_conflict_preview_keeps_conflicts_out_of_commit() -> None:
    committer = FakeCommitter()
    wf = _workflow(
        [row("王小明", "501", "601")],
        [make_student("A", "王小明", "501"), make_student("B", "王小明", "501"), make_student("C", "林", "401")],
        committer=committer,
    )
    result = _ready(wf, policy=FallbackPolicy.REPLACE_ALL)
    assert {op.reason_code for op in result.listed} == {ReasonCode.NAME_CLASS_CONFLICT}
    wf.commit()
    assert [op.student_id for op in committer.batches[0]] == ["C"]
