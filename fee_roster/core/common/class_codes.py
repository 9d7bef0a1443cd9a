"""قواعد کد کلاس (Core-only، بدون I/O).

کد کلاس سه‌کاراکتری است: رقم پایه (۴ تا ۶)، جداکنندهٔ ثابت ``0`` و رقم
بخش (۱ تا ۹)؛ مثلاً ``501``. هر شکل دیگری نامعتبر است و اصلاح نمی‌شود
(نه trim، نه تبدیل ارقام تمام‌عرض).

مثال::

    >>> is_valid_class_code("501")
    True
    >>> promote("501")
    '601'
    >>> promote("601")
    '601'
    >>> promote_special_only("407"), promote_special_only("401")
    ('507', '401')
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Iterable

__all__ = [
    "DEFAULT_SPECIAL_COHORT_CODES",
    "ClassCodeRules",
    "DEFAULT_RULES",
    "is_valid_class_code",
    "promote",
    "is_special_cohort",
    "promote_special_only",
]

DEFAULT_SPECIAL_COHORT_CODES: tuple[str, ...] = ("407", "507", "607")
_MIN_GRADE = 4
_MAX_GRADE = 6
_SEPARATOR = "0"


def _build_pattern(min_grade: int, max_grade: int, separator: str) -> re.Pattern[str]:
    if not (0 <= min_grade <= max_grade <= 9):
        raise ValueError(f"invalid grade range: {min_grade}..{max_grade}")
    if len(separator) != 1 or not separator.isdigit():
        raise ValueError(f"separator must be a single digit: {separator!r}")
    return re.compile(rf"[{min_grade}-{max_grade}]{re.escape(separator)}[1-9]")


@dataclass(frozen=True, slots=True)
class ClassCodeRules:
    """مجموعهٔ تغییرناپذیر قواعد کد کلاس.

    Attributes:
        min_grade: کوچک‌ترین رقم پایهٔ مجاز.
        max_grade: پایهٔ پایانی؛ کدهای این پایه ارتقا نمی‌یابند.
        separator: رقم میانی ثابت.
        special_codes: کدهای کلاس ورزشی که مستقل از پایه تعریف شده‌اند.
    """

    min_grade: int = _MIN_GRADE
    max_grade: int = _MAX_GRADE
    separator: str = _SEPARATOR
    special_codes: frozenset[str] = field(
        default_factory=lambda: frozenset(DEFAULT_SPECIAL_COHORT_CODES)
    )
    _pattern: re.Pattern[str] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "_pattern", _build_pattern(self.min_grade, self.max_grade, self.separator)
        )
        object.__setattr__(self, "special_codes", frozenset(self.special_codes))

    @classmethod
    def with_special_codes(cls, codes: Iterable[str], **kwargs: object) -> "ClassCodeRules":
        """ساخت قواعد با مجموعهٔ کدهای ورزشی سفارشی."""

        return cls(special_codes=frozenset(str(code) for code in codes), **kwargs)  # type: ignore[arg-type]

    def is_valid(self, code: object) -> bool:
        """آیا مقدار دقیقاً با شکل کد کلاس منطبق است؟"""

        if not isinstance(code, str):
            return False
        return self._pattern.fullmatch(code) is not None

    def promote(self, code: str) -> str:
        """ارتقای پایه به‌اندازهٔ یک واحد؛ پایهٔ پایانی و کد نامعتبر بدون تغییر."""

        if not self.is_valid(code):
            return code
        grade = int(code[0])
        if grade >= self.max_grade:
            return code
        return f"{grade + 1}{code[1:]}"

    def is_special_cohort(self, code: str) -> bool:
        return code in self.special_codes

    def promote_special_only(self, code: str) -> str:
        return self.promote(code) if self.is_special_cohort(code) else code


DEFAULT_RULES = ClassCodeRules()


def is_valid_class_code(code: object) -> bool:
    """اعتبارسنجی شکل کد با قواعد پیش‌فرض."""

    return DEFAULT_RULES.is_valid(code)


def promote(code: str) -> str:
    """کد کلاس سال بعد (قواعد پیش‌فرض)."""

    return DEFAULT_RULES.promote(code)


def is_special_cohort(code: str) -> bool:
    return DEFAULT_RULES.is_special_cohort(code)


def promote_special_only(code: str) -> str:
    return DEFAULT_RULES.promote_special_only(code)
