from __future__ import annotations

from dataclasses import replace

from fee_roster.core.common.reasons import ReasonCode
from fee_roster.core.common.types import Action, FallbackPolicy, Operation
from fee_roster.core.qa.invariants import (
    RULE_DESCRIPTIONS,
    check_OP_01,
    check_OP_02,
    check_OP_03,
    check_OP_04,
    check_OP_05,
    check_OP_06,
    run_all_invariants,
)
from fee_roster.core.reconcile import reconcile
from tests.conftest import make_student, row


def _op(
    student_id: str,
    action: Action,
    after: str | None,
    code: ReasonCode = ReasonCode.CLASS_UPDATED,
) -> Operation:
    return Operation.build(
        student_id=student_id,
        name=student_id,
        before_class="501",
        after_class=after,
        action=action,
        is_listed=True,
        reason_code=code,
    )


def test_engine_output_passes_all_rules(mixed_population) -> None:
    result = reconcile(
        [row("林大同", "501", "601"), row("無此人", "501", "601")],
        mixed_population,
        FallbackPolicy.REPLACE_SPECIAL_COHORT_ONLY,
        target_year=113,
    )
    population_ids = [s.student_id for s in mixed_population if s.academic_year == 113]
    report = run_all_invariants(result.operations, population_ids=population_ids)
    assert report.passed, report.violations


def test_update_to_same_class_is_flagged() -> None:
    result = check_OP_01([_op("A", Action.UPDATE, "501")])
    assert not result.passed


def test_withdraw_with_target_class_is_flagged() -> None:
    result = check_OP_02([_op("A", Action.WITHDRAW, "601", ReasonCode.UNLISTED_WITHDRAW)])
    assert not result.passed


def test_actionable_without_id_is_flagged() -> None:
    assert not check_OP_03([_op("", Action.UPDATE, "601")]).passed


def test_two_mutations_for_one_student_are_flagged() -> None:
    result = check_OP_04([_op("A", Action.UPDATE, "601"), _op("A", Action.UPDATE, "602")])
    assert not result.passed
    assert result.violations[0].details["count"] == 2


def test_population_coverage_reports_missing_and_unknown() -> None:
    result = check_OP_05([_op("A", Action.UPDATE, "601")], population_ids=["B"])
    messages = sorted(v.message for v in result.violations)
    assert messages == ["operation for unknown student", "student missing from preview"]


def test_tampered_reason_text_is_flagged() -> None:
    good = _op("A", Action.UPDATE, "601")
    bad = replace(good, reason_text="x")
    assert check_OP_06([good]).passed
    assert not check_OP_06([bad]).passed


def test_summary_frame_lists_every_rule() -> None:
    report = run_all_invariants([])
    frame = report.to_summary_frame()
    assert list(frame["rule_id"]) == sorted(RULE_DESCRIPTIONS)
    assert set(frame["status"]) == {"PASS"}


def test_conflict_operations_do_not_break_rules() -> None:
    population = [make_student("A", "王小明", "501"), make_student("B", "王小明", "501")]
    result = reconcile([row("王小明", "501", "601")], population, "ignore", target_year=113)
    assert run_all_invariants(result.operations, population_ids=["A", "B"]).passed
