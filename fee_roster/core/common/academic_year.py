"""ابزارهای سال تحصیلی (تقویم مینگو/ROC) و شمارهٔ دانش‌آموزی.

سال تحصیلی از ماه اوت آغاز می‌شود؛ سال ورودی (cohort) همان سه رقم اول
شمارهٔ هفت‌رقمی دانش‌آموز است.

مثال::

    >>> from datetime import date
    >>> current_academic_year(date(2024, 9, 1))
    113
    >>> current_academic_year(date(2025, 3, 1))
    113
    >>> grade_label(111, 113)
    '高三'
    >>> school_year_from_student_number("1130042")
    113
"""

from __future__ import annotations

import re
from datetime import date

__all__ = [
    "ROC_OFFSET",
    "current_academic_year",
    "grade_label",
    "format_academic_year_label",
    "format_student_number",
    "is_valid_student_number",
    "school_year_from_student_number",
]

ROC_OFFSET = 1911
_ROLLOVER_MONTH = 8
_STUDENT_NUMBER_RE = re.compile(r"\d{7}")
_GRADE_LABELS: tuple[str, ...] = ("高一", "高二", "高三")


def current_academic_year(today: date | None = None) -> int:
    """سال تحصیلی جاری به تقویم ROC (از اوت به بعد سال جدید)."""

    today = today or date.today()
    if today.month >= _ROLLOVER_MONTH:
        return today.year - ROC_OFFSET
    return today.year - ROC_OFFSET - 1


def grade_label(school_year: int, current_year: int) -> str:
    elapsed = current_year - school_year
    if 0 <= elapsed < len(_GRADE_LABELS):
        return _GRADE_LABELS[elapsed]
    if elapsed < 0:
        return "尚未入學"
    return f"已畢業 {elapsed - len(_GRADE_LABELS) + 1} 年"


def format_academic_year_label(school_year: int, current_year: int) -> str:
    return f"{school_year} 年 ({grade_label(school_year, current_year)})"


def format_student_number(value: object) -> str:
    """پرکردن شمارهٔ دانش‌آموزی با صفرهای پیشرو تا هفت رقم."""

    return str(value).strip().zfill(7)


def is_valid_student_number(value: object) -> bool:
    return isinstance(value, str) and _STUDENT_NUMBER_RE.fullmatch(value) is not None


def school_year_from_student_number(student_number: str) -> int:
    """استخراج سال ورودی از شمارهٔ دانش‌آموزی.

    Raises:
        ValueError: اگر شماره هفت‌رقمی نباشد.
    """

    if not is_valid_student_number(student_number):
        raise ValueError(f"Invalid student number format: {student_number!r}")
    return int(student_number[:3])
