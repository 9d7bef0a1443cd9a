"""مرتب‌سازی دترمینیستیک عملیات پیش‌نمایش بر اساس جدول شدت دلایل."""

from __future__ import annotations

from typing import Iterable, Tuple

from fee_roster.core.common.reasons import severity_rank
from fee_roster.core.common.types import Operation

__all__ = ["operation_sort_key", "sort_operations"]


def operation_sort_key(op: Operation) -> Tuple[int, str]:
    """کلید مرتب‌سازی: رتبهٔ شدت، سپس نام."""

    return severity_rank(op.reason_code), op.name


def sort_operations(operations: Iterable[Operation]) -> Tuple[Operation, ...]:
    """مرتب‌سازی پایدار؛ ردیف‌های هم‌رتبه و هم‌نام ترتیب ورودی را حفظ می‌کنند."""

    return tuple(sorted(operations, key=operation_sort_key))
