from __future__ import annotations

import pytest

hypothesis = pytest.importorskip("hypothesis")
from hypothesis import given, settings  # type: ignore  # noqa: E402
from hypothesis import strategies as st  # type: ignore  # noqa: E402

from fee_roster.core.common.class_codes import is_valid_class_code, promote  # noqa: E402
from fee_roster.core.common.reasons import INVALID_FORMAT_CODES  # noqa: E402
from fee_roster.core.common.types import (  # noqa: E402
    Action,
    ChangeRow,
    FallbackPolicy,
    StudentRecord,
)
from fee_roster.core.qa.invariants import run_all_invariants  # noqa: E402
from fee_roster.core.reconcile import reconcile  # noqa: E402

NAMES = ["王小明", "陳小美", "林大同", "張體育", "李四"]
VALID_CODES = [f"{grade}0{section}" for grade in (4, 5, 6) for section in (1, 2, 7)]
ANY_CODES = VALID_CODES + ["999", "", "5O1", "401 "]

students_strategy = st.lists(
    st.tuples(st.sampled_from(NAMES), st.sampled_from(VALID_CODES), st.sampled_from([112, 113])),
    max_size=12,
).map(
    lambda items: [
        StudentRecord(
            student_id=f"S{index}",
            name=name,
            current_class=code,
            academic_year=year,
        )
        for index, (name, code, year) in enumerate(items)
    ]
)
rows_strategy = st.lists(
    st.builds(
        ChangeRow,
        name=st.sampled_from(NAMES + ["無此人"]),
        old_class=st.sampled_from(ANY_CODES),
        new_class=st.sampled_from(ANY_CODES),
    ),
    max_size=8,
)
policy_strategy = st.sampled_from(list(FallbackPolicy))


@settings(max_examples=80, deadline=None)
@given(rows_strategy, students_strategy, policy_strategy)
def test_every_target_year_student_appears_exactly_once(rows, population, policy) -> None:
    result = reconcile(rows, population, policy, target_year=113)
    ids = [op.student_id for op in result.operations if op.student_id]
    expected = sorted(s.student_id for s in population if s.academic_year == 113)
    assert sorted(ids) == expected
    report = run_all_invariants(result.operations, population_ids=expected)
    assert report.passed, report.violations


@settings(max_examples=80, deadline=None)
@given(rows_strategy, students_strategy, policy_strategy)
def test_invalid_rows_are_never_actionable(rows, population, policy) -> None:
    result = reconcile(rows, population, policy, target_year=113)
    for op in result.listed:
        if op.reason_code in INVALID_FORMAT_CODES:
            assert op.action is Action.NONE
            assert op.student_id == ""
        if op.is_actionable:
            assert is_valid_class_code(op.before_class)
            assert is_valid_class_code(op.after_class)


@settings(max_examples=50, deadline=None)
@given(students_strategy)
def test_ignore_policy_leaves_unlisted_untouched(population) -> None:
    result = reconcile([], population, FallbackPolicy.IGNORE, target_year=113)
    assert all(op.action is Action.NONE for op in result.unlisted)


@settings(max_examples=50, deadline=None)
@given(students_strategy)
def test_replace_all_promotes_non_terminal_grades(population) -> None:
    result = reconcile([], population, FallbackPolicy.REPLACE_ALL, target_year=113)
    for op in result.unlisted:
        if op.before_class[0] != "6":
            assert op.action is Action.UPDATE
            assert op.after_class == promote(op.before_class)
        else:
            assert op.action is Action.NONE


@settings(max_examples=50, deadline=None)
@given(rows_strategy, students_strategy, policy_strategy)
def test_reconcile_is_deterministic(rows, population, policy) -> None:
    first = reconcile(rows, population, policy, target_year=113)
    second = reconcile(list(rows), list(population), policy, target_year=113)
    assert first == second
