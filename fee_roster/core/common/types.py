"""قراردادهای دادهٔ حوزهٔ تطبیق فهرست کلاس (Core-only، بدون I/O).

این ماژول فقط تایپ‌ها را نگه می‌دارد؛ منطق تطبیق در
:mod:`fee_roster.core.reconcile.engine` است. همهٔ ساختارها فقط‌خواندنی‌اند
تا هر نوبت تطبیق خروجی تازه و مستقل تولید کند.

مثال:
    >>> FallbackPolicy.parse("replaceSportsOnly")
    <FallbackPolicy.REPLACE_SPECIAL_COHORT_ONLY: 'replace_special_cohort_only'>
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import StrEnum
from typing import Any, Mapping

from .reasons import ReasonCode, reason_message

__all__ = [
    "Action",
    "FallbackPolicy",
    "StudentRecord",
    "ChangeRow",
    "Operation",
    "SummaryStats",
    "ReconciliationResult",
]


class Action(StrEnum):
    """عمل پیشنهادی برای یک دانش‌آموز."""

    UPDATE = "update"
    WITHDRAW = "withdraw"
    NONE = "none"


class FallbackPolicy(StrEnum):
    """سیاست رفتار با دانش‌آموزانی که در فهرست تغییرات نیامده‌اند."""

    REPLACE_ALL = "replace_all"
    REPLACE_SPECIAL_COHORT_ONLY = "replace_special_cohort_only"
    IGNORE = "ignore"

    @classmethod
    def parse(cls, value: object) -> "FallbackPolicy":
        """تبدیل ورودی متنی (شامل نام‌های قدیمی camelCase) به سیاست.

        Raises:
            ValueError: اگر مقدار هیچ‌یک از سه سیاست شناخته‌شده نباشد.
        """

        if isinstance(value, cls):
            return value
        text = str(value or "").strip()
        resolved = _POLICY_ALIASES.get(text) or _POLICY_ALIASES.get(text.lower())
        if resolved is None:
            allowed = ", ".join(member.value for member in cls)
            raise ValueError(f"Unknown fallback policy {value!r}; expected one of: {allowed}")
        return resolved


_POLICY_ALIASES: Mapping[str, FallbackPolicy] = {
    "replace_all": FallbackPolicy.REPLACE_ALL,
    "replaceAll": FallbackPolicy.REPLACE_ALL,
    "replaceall": FallbackPolicy.REPLACE_ALL,
    "replace_special_cohort_only": FallbackPolicy.REPLACE_SPECIAL_COHORT_ONLY,
    "replaceSpecialCohortOnly": FallbackPolicy.REPLACE_SPECIAL_COHORT_ONLY,
    "replacespecialcohortonly": FallbackPolicy.REPLACE_SPECIAL_COHORT_ONLY,
    "replaceSportsOnly": FallbackPolicy.REPLACE_SPECIAL_COHORT_ONLY,
    "replacesportsonly": FallbackPolicy.REPLACE_SPECIAL_COHORT_ONLY,
    "ignore": FallbackPolicy.IGNORE,
}


@dataclass(frozen=True, slots=True)
class StudentRecord:
    """رکورد دانش‌آموز آن‌گونه که از مخزن خوانده می‌شود.

    موتور تطبیق فقط آن را می‌خواند و هرگز تغییرش نمی‌دهد.
    """

    student_id: str
    name: str
    current_class: str
    academic_year: int
    withdrawn: bool = False
    student_number: str | None = None
    fee_status: str | None = None


@dataclass(frozen=True, slots=True)
class ChangeRow:
    """یک ردیف خام «کلاس قدیم → کلاس جدید» از فایل ورودی."""

    name: str
    old_class: str
    new_class: str


@dataclass(frozen=True, slots=True)
class Operation:
    """واحد خروجی تطبیق برای یک ردیف فهرست یا یک دانش‌آموز فهرست‌نشده."""

    student_id: str
    name: str
    before_class: str
    after_class: str | None
    action: Action
    is_listed: bool
    reason_code: ReasonCode
    reason_text: str = ""

    @classmethod
    def build(
        cls,
        *,
        student_id: str,
        name: str,
        before_class: str,
        after_class: str | None,
        action: Action,
        is_listed: bool,
        reason_code: ReasonCode,
    ) -> "Operation":
        """سازندهٔ استاندارد که متن دلیل را از کد مشتق می‌کند."""

        return cls(
            student_id=student_id,
            name=name,
            before_class=before_class,
            after_class=after_class,
            action=action,
            is_listed=is_listed,
            reason_code=reason_code,
            reason_text=reason_message(reason_code, current_class=before_class),
        )

    @property
    def is_actionable(self) -> bool:
        return self.action in (Action.UPDATE, Action.WITHDRAW)

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["action"] = self.action.value
        payload["reason_code"] = self.reason_code.value
        return payload


@dataclass(frozen=True, slots=True)
class SummaryStats:
    """شمارنده‌های تجمیعی یک نوبت تطبیق (مشتق‌شده، ذخیره نمی‌شود)."""

    update_count: int = 0
    withdrawal_count: int = 0
    ignored_count: int = 0
    listed_rows: int = 0
    mismatch_count: int = 0
    invalid_class_count: int = 0
    conflict_count: int = 0
    not_found_count: int = 0

    def to_dict(self) -> dict[str, int]:
        return asdict(self)


@dataclass(frozen=True, slots=True)
class ReconciliationResult:
    """خروجی کامل یک نوبت تطبیق: دو لیست مرتب و خلاصه."""

    target_year: int
    fallback_policy: FallbackPolicy
    listed: tuple[Operation, ...] = field(default_factory=tuple)
    unlisted: tuple[Operation, ...] = field(default_factory=tuple)
    summary: SummaryStats = field(default_factory=SummaryStats)

    @property
    def operations(self) -> tuple[Operation, ...]:
        return self.listed + self.unlisted

    def actionable(self) -> tuple[Operation, ...]:
        """عملیات update/withdraw که باید به نوشتن دسته‌ای سپرده شوند."""

        return tuple(op for op in self.operations if op.is_actionable)

    @property
    def has_actionable(self) -> bool:
        return any(op.is_actionable for op in self.operations)
