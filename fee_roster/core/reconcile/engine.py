"""موتور تطبیق فهرست تغییر کلاس با جمعیت دانش‌آموزان سال هدف.

ورودی: ردیف‌های خام «نام، کلاس قدیم، کلاس جدید»، جمعیت سال هدف و سیاست
دانش‌آموزان فهرست‌نشده. خروجی: دو لیست مرتب از :class:`Operation` (یکی برای
ردیف‌های فهرست، یکی برای دانش‌آموزان فهرست‌نشده) به‌همراه خلاصهٔ آماری.

مراحل به ترتیب:

1. ساخت :class:`RosterIndex` روی جمعیت سال هدف.
2. اعتبارسنجی مستقل کلاس قدیم و جدید هر ردیف؛ ردیف نامعتبر بدون مراجعه
   به ایندکس به عملیات ``none`` تبدیل می‌شود.
3. جست‌وجوی (نام، کلاس قدیم): صفر، یک یا چند تطبیق.
4. اعمال سیاست جایگزین روی دانش‌آموزانی که دیده نشده‌اند.
5. مرتب‌سازی هر لیست بر اساس شدت دلیل و سپس نام.
6. شمارش خلاصه.

ردیف بد «داده» است و استثنا تولید نمی‌کند؛ فقط نبود سال هدف یا جمعیت
خطای پیکربندی است.
"""

from __future__ import annotations

from collections import Counter
from typing import Iterable, List, Sequence, Set

from fee_roster.core.common.class_codes import DEFAULT_RULES, ClassCodeRules
from fee_roster.core.common.errors import ReconciliationConfigError
from fee_roster.core.common.reasons import INVALID_FORMAT_CODES, ReasonCode
from fee_roster.core.common.types import (
    Action,
    ChangeRow,
    FallbackPolicy,
    Operation,
    ReconciliationResult,
    StudentRecord,
    SummaryStats,
)

from .ranking import sort_operations
from .roster_index import RosterIndex

__all__ = ["reconcile", "summarize"]


def _invalid_format_code(old_valid: bool, new_valid: bool) -> ReasonCode:
    if not old_valid and not new_valid:
        return ReasonCode.INVALID_BOTH_CLASS_FORMAT
    if not old_valid:
        return ReasonCode.INVALID_OLD_CLASS_FORMAT
    return ReasonCode.INVALID_NEW_CLASS_FORMAT


def _row_operation(
    row: ChangeRow,
    reason_code: ReasonCode,
    *,
    after_class: str | None,
) -> Operation:
    return Operation.build(
        student_id="",
        name=row.name,
        before_class=row.old_class,
        after_class=after_class,
        action=Action.NONE,
        is_listed=True,
        reason_code=reason_code,
    )


def _matched_operation(student: StudentRecord, row: ChangeRow) -> Operation:
    """تصمیم برای ردیفی که دقیقاً با یک دانش‌آموز منطبق شده است."""

    if student.current_class != row.old_class:
        action, code = Action.NONE, ReasonCode.OLD_MISMATCH
    elif row.new_class == student.current_class:
        action, code = Action.NONE, ReasonCode.NO_CHANGE
    else:
        action, code = Action.UPDATE, ReasonCode.CLASS_UPDATED
    return Operation.build(
        student_id=student.student_id,
        name=student.name,
        before_class=student.current_class,
        after_class=row.new_class,
        action=action,
        is_listed=True,
        reason_code=code,
    )


def _listed_operations(
    rows: Iterable[ChangeRow],
    index: RosterIndex,
    rules: ClassCodeRules,
    seen: Set[str],
) -> List[Operation]:
    operations: List[Operation] = []
    for row in rows:
        old_valid = rules.is_valid(row.old_class)
        new_valid = rules.is_valid(row.new_class)
        if not (old_valid and new_valid):
            operations.append(
                _row_operation(
                    row,
                    _invalid_format_code(old_valid, new_valid),
                    after_class=row.new_class if new_valid else None,
                )
            )
            continue

        matches = index.lookup(row.name, row.old_class)
        if not matches:
            operations.append(_row_operation(row, ReasonCode.NOT_FOUND, after_class=row.new_class))
            continue

        # هر دانش‌آموز حداکثر یک عملیات در هر نوبت دارد.
        if any(student.student_id in seen for student in matches):
            operations.append(
                _row_operation(row, ReasonCode.DUPLICATE_ROW, after_class=row.new_class)
            )
            continue

        if len(matches) > 1:
            for student in matches:
                operations.append(
                    Operation.build(
                        student_id=student.student_id,
                        name=student.name,
                        before_class=student.current_class,
                        after_class=row.new_class,
                        action=Action.NONE,
                        is_listed=True,
                        reason_code=ReasonCode.NAME_CLASS_CONFLICT,
                    )
                )
                seen.add(student.student_id)
            continue

        student = matches[0]
        operations.append(_matched_operation(student, row))
        seen.add(student.student_id)
    return operations


def _fallback_operation(
    student: StudentRecord,
    policy: FallbackPolicy,
    rules: ClassCodeRules,
) -> Operation:
    """تصمیم سیاست جایگزین برای دانش‌آموزی که در فهرست نیامده است."""

    current = student.current_class
    after: str | None = current
    if policy is FallbackPolicy.REPLACE_ALL:
        after = rules.promote(current)
        if after != current:
            action, code = Action.UPDATE, ReasonCode.UNLISTED_PROMOTED
        else:
            action, code = Action.NONE, ReasonCode.UNLISTED_NO_INFER
    elif policy is FallbackPolicy.REPLACE_SPECIAL_COHORT_ONLY:
        if rules.is_special_cohort(current):
            after = rules.promote(current)
            if after != current:
                action, code = Action.UPDATE, ReasonCode.UNLISTED_PROMOTED
            else:
                action, code = Action.NONE, ReasonCode.UNLISTED_SPORTS_NO_CHANGE
        else:
            after = None
            action, code = Action.WITHDRAW, ReasonCode.UNLISTED_WITHDRAW
    else:
        action, code = Action.NONE, ReasonCode.NO_CHANGE
    return Operation.build(
        student_id=student.student_id,
        name=student.name,
        before_class=current,
        after_class=after,
        action=action,
        is_listed=False,
        reason_code=code,
    )


def summarize(
    listed: Sequence[Operation],
    unlisted: Sequence[Operation],
    *,
    listed_rows: int,
) -> SummaryStats:
    """شمارش عمل‌ها و کدهای دلیل روی هر دو لیست."""

    actions = Counter(op.action for op in (*listed, *unlisted))
    reasons = Counter(op.reason_code for op in (*listed, *unlisted))
    return SummaryStats(
        update_count=actions[Action.UPDATE],
        withdrawal_count=actions[Action.WITHDRAW],
        ignored_count=actions[Action.NONE],
        listed_rows=listed_rows,
        mismatch_count=reasons[ReasonCode.OLD_MISMATCH],
        invalid_class_count=sum(reasons[code] for code in INVALID_FORMAT_CODES),
        conflict_count=reasons[ReasonCode.NAME_CLASS_CONFLICT],
        not_found_count=reasons[ReasonCode.NOT_FOUND],
    )


def _check_preconditions(
    target_year: object,
    population: object,
    fallback_policy: object,
) -> FallbackPolicy:
    if target_year is None:
        raise ReconciliationConfigError(func="reconcile", message="سال هدف تعیین نشده است")
    if isinstance(target_year, bool) or not isinstance(target_year, int) or target_year <= 0:
        raise ReconciliationConfigError(
            func="reconcile", message="سال هدف باید عدد صحیح مثبت باشد", value=target_year
        )
    if population is None:
        raise ReconciliationConfigError(func="reconcile", message="جمعیت دانش‌آموزان در دسترس نیست")
    try:
        return FallbackPolicy.parse(fallback_policy)
    except ValueError as exc:
        raise ReconciliationConfigError(
            func="reconcile", message="سیاست جایگزین نامعتبر است", value=fallback_policy
        ) from exc


def reconcile(
    rows: Sequence[ChangeRow],
    population: Iterable[StudentRecord] | None,
    fallback_policy: FallbackPolicy | str,
    *,
    target_year: int | None,
    rules: ClassCodeRules | None = None,
) -> ReconciliationResult:
    """اجرای یک نوبت کامل تطبیق؛ تابع خالص و دترمینیستیک.

    Args:
        rows: ردیف‌های تغییر کلاس به ترتیب فایل.
        population: دانش‌آموزان سال هدف (رکوردهای سال دیگر نادیده گرفته می‌شوند).
        fallback_policy: سیاست دانش‌آموزان فهرست‌نشده.
        target_year: سال ورودی هدف (عدد صحیح مثبت).
        rules: قواعد کد کلاس؛ پیش‌فرض :data:`DEFAULT_RULES`.

    Returns:
        ReconciliationResult: لیست‌های مرتب و خلاصه.

    Raises:
        ReconciliationConfigError: اگر سال هدف، جمعیت یا سیاست معتبر نباشد.
    """

    policy = _check_preconditions(target_year, population, fallback_policy)
    rules = rules or DEFAULT_RULES
    row_list = list(rows or ())

    index = RosterIndex(int(target_year), population or ())  # type: ignore[arg-type]
    seen: Set[str] = set()
    listed = _listed_operations(row_list, index, rules, seen)
    unlisted = [
        _fallback_operation(student, policy, rules)
        for student in index.population
        if student.student_id not in seen
    ]

    return ReconciliationResult(
        target_year=index.target_year,
        fallback_policy=policy,
        listed=sort_operations(listed),
        unlisted=sort_operations(unlisted),
        summary=summarize(listed, unlisted, listed_rows=len(row_list)),
    )
