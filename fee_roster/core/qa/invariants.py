from __future__ import annotations

"""لایهٔ مرکزی QA برای اینورینت‌های عملیات تطبیق فهرست کلاس."""

from collections import Counter
from dataclasses import dataclass
from typing import Callable, Iterable, Mapping, Sequence

import pandas as pd

from fee_roster.core.common.reasons import reason_message
from fee_roster.core.common.types import Action, Operation

RuleId = str

__all__ = [
    "QaViolation",
    "QaRuleResult",
    "QaReport",
    "RULE_DESCRIPTIONS",
    "run_all_invariants",
    "check_OP_01",
    "check_OP_02",
    "check_OP_03",
    "check_OP_04",
    "check_OP_05",
    "check_OP_06",
]


@dataclass(frozen=True)
class QaViolation:
    """نمایش یک تخطی از قانون QA.

    Attributes
    ----------
    rule_id:
        شناسهٔ پایدار قانون (مثلاً ``"QA_RULE_OP_04"``).
    level:
        سطح تخطی؛ در این نسخه فقط ``"error"`` پشتیبانی می‌شود.
    message:
        توضیح خوانا از علت تخطی.
    details:
        دادهٔ ساخت‌یافتهٔ اختیاری برای گزارش‌های اکسل/لاگ.
    """

    rule_id: RuleId
    level: str
    message: str
    details: Mapping[str, object] | None = None


@dataclass(frozen=True)
class QaRuleResult:
    """نتیجهٔ اجرای یک قانون واحد QA."""

    rule_id: RuleId
    passed: bool
    violations: list[QaViolation]


@dataclass(frozen=True)
class QaReport:
    """گزارش نهایی QA برای یک نوبت تطبیق."""

    results: list[QaRuleResult]

    @property
    def violations(self) -> list[QaViolation]:
        merged: list[QaViolation] = []
        for result in self.results:
            merged.extend(result.violations)
        return merged

    @property
    def passed(self) -> bool:
        return all(result.passed for result in self.results)

    def violations_by_rule(self, rule_id: RuleId) -> list[QaViolation]:
        return [
            violation
            for result in self.results
            if result.rule_id == rule_id
            for violation in result.violations
        ]

    def to_summary_frame(self, *, descriptions: Mapping[str, str] | None = None) -> pd.DataFrame:
        """خلاصهٔ قوانین را به‌صورت DataFrame برمی‌گرداند."""

        descriptions = RULE_DESCRIPTIONS if descriptions is None else descriptions
        rows = []
        for result in sorted(self.results, key=lambda item: item.rule_id):
            rows.append(
                {
                    "rule_id": result.rule_id,
                    "description": descriptions.get(result.rule_id, ""),
                    "status": "PASS" if result.passed else "FAIL",
                    "violations_count": len(result.violations),
                }
            )
        return pd.DataFrame(rows, columns=["rule_id", "description", "status", "violations_count"])


RULE_DESCRIPTIONS: Mapping[RuleId, str] = {
    "QA_RULE_OP_01": "update requires a non-empty after_class different from before_class",
    "QA_RULE_OP_02": "withdraw requires after_class to be empty",
    "QA_RULE_OP_03": "update/withdraw requires a student_id",
    "QA_RULE_OP_04": "update/withdraw operations are disjoint by student_id",
    "QA_RULE_OP_05": "every target-year student appears in exactly one operation",
    "QA_RULE_OP_06": "reason_text is derived from reason_code",
}


def _result(rule_id: RuleId, violations: list[QaViolation]) -> QaRuleResult:
    return QaRuleResult(rule_id=rule_id, passed=not violations, violations=violations)


def _violation(rule_id: RuleId, message: str, op: Operation | None = None, **extra: object) -> QaViolation:
    details: dict[str, object] = dict(extra)
    if op is not None:
        details.update({"student_id": op.student_id, "name": op.name, "action": op.action.value})
    return QaViolation(rule_id=rule_id, level="error", message=message, details=details)


def check_OP_01(operations: Sequence[Operation]) -> QaRuleResult:
    rule_id = "QA_RULE_OP_01"
    violations = [
        _violation(rule_id, "update without a distinct target class", op)
        for op in operations
        if op.action is Action.UPDATE
        and (not op.after_class or op.after_class == op.before_class)
    ]
    return _result(rule_id, violations)


def check_OP_02(operations: Sequence[Operation]) -> QaRuleResult:
    rule_id = "QA_RULE_OP_02"
    violations = [
        _violation(rule_id, "withdraw carries a target class", op)
        for op in operations
        if op.action is Action.WITHDRAW and op.after_class is not None
    ]
    return _result(rule_id, violations)


def check_OP_03(operations: Sequence[Operation]) -> QaRuleResult:
    rule_id = "QA_RULE_OP_03"
    violations = [
        _violation(rule_id, "actionable operation without student_id", op)
        for op in operations
        if op.is_actionable and not op.student_id
    ]
    return _result(rule_id, violations)


def check_OP_04(operations: Sequence[Operation]) -> QaRuleResult:
    rule_id = "QA_RULE_OP_04"
    counts = Counter(op.student_id for op in operations if op.is_actionable and op.student_id)
    violations = [
        _violation(rule_id, "student has more than one mutation", student_id=student_id, count=count)
        for student_id, count in sorted(counts.items())
        if count > 1
    ]
    return _result(rule_id, violations)


def check_OP_05(
    operations: Sequence[Operation],
    population_ids: Iterable[str] | None = None,
) -> QaRuleResult:
    rule_id = "QA_RULE_OP_05"
    counts = Counter(op.student_id for op in operations if op.student_id)
    violations = [
        _violation(rule_id, "student appears in more than one operation", student_id=sid, count=count)
        for sid, count in sorted(counts.items())
        if count > 1
    ]
    if population_ids is not None:
        expected = set(population_ids)
        for sid in sorted(expected - set(counts)):
            violations.append(_violation(rule_id, "student missing from preview", student_id=sid))
        for sid in sorted(set(counts) - expected):
            violations.append(_violation(rule_id, "operation for unknown student", student_id=sid))
    return _result(rule_id, violations)


def check_OP_06(operations: Sequence[Operation]) -> QaRuleResult:
    rule_id = "QA_RULE_OP_06"
    violations = [
        _violation(rule_id, "reason_text does not match reason_code", op, reason_code=op.reason_code.value)
        for op in operations
        if op.reason_text != reason_message(op.reason_code, current_class=op.before_class)
    ]
    return _result(rule_id, violations)


_OPERATION_RULES: tuple[Callable[[Sequence[Operation]], QaRuleResult], ...] = (
    check_OP_01,
    check_OP_02,
    check_OP_03,
    check_OP_04,
    check_OP_06,
)


def run_all_invariants(
    operations: Iterable[Operation],
    *,
    population_ids: Iterable[str] | None = None,
) -> QaReport:
    """اجرای تمام قوانین QA روی عملیات یک نوبت.

    ``population_ids`` اختیاری است؛ اگر داده شود پوشش کامل جمعیت سال هدف
    نیز بررسی می‌شود.
    """

    ops = list(operations)
    results = [rule(ops) for rule in _OPERATION_RULES]
    results.append(check_OP_05(ops, population_ids))
    return QaReport(results=sorted(results, key=lambda item: item.rule_id))
