"""ایندکس (نام، کلاس) → دانش‌آموزان برای یک سال ورودی.

نام‌ها پیش از کلیدسازی با NFKC و فشرده‌سازی فاصله‌ها یکسان می‌شوند تا
فاصلهٔ تمام‌عرض یا فاصلهٔ اضافی در صفحه‌گسترده تطبیق را نشکند. کد کلاس
هرگز نرمال نمی‌شود.
"""

from __future__ import annotations

import re
import unicodedata
from collections import defaultdict
from typing import Dict, Iterable, Iterator, List, Tuple

from fee_roster.core.common.types import StudentRecord

__all__ = ["normalize_name", "RosterIndex"]

_WHITESPACE_RE = re.compile(r"\s+")

IndexKey = Tuple[str, str]


def normalize_name(name: object) -> str:
    """نرمال‌سازی نام برای کلید ایندکس.

    مثال::

        >>> normalize_name("王　小明 ")
        '王 小明'
    """

    text = unicodedata.normalize("NFKC", str(name or ""))
    return _WHITESPACE_RE.sub(" ", text).strip()


class RosterIndex:
    """نگاشت (نام نرمال، کلاس جاری) به فهرست رکوردهای سال هدف.

    رکوردهای سال‌های دیگر هنگام ساخت کنار گذاشته می‌شوند؛ ترتیب رکوردها
    در هر کلید همان ترتیب ورودی است.
    """

    def __init__(self, target_year: int, students: Iterable[StudentRecord]) -> None:
        self.target_year = target_year
        self._population: List[StudentRecord] = [
            student for student in students if student.academic_year == target_year
        ]
        buckets: Dict[IndexKey, List[StudentRecord]] = defaultdict(list)
        for student in self._population:
            buckets[(normalize_name(student.name), student.current_class)].append(student)
        self._buckets: Dict[IndexKey, Tuple[StudentRecord, ...]] = {
            key: tuple(records) for key, records in buckets.items()
        }

    def lookup(self, name: str, class_code: str) -> Tuple[StudentRecord, ...]:
        """دانش‌آموزان منطبق؛ تهی، یکتا یا چندتایی (تعارض)."""

        return self._buckets.get((normalize_name(name), class_code), ())

    @property
    def population(self) -> Tuple[StudentRecord, ...]:
        return tuple(self._population)

    def __len__(self) -> int:
        return len(self._population)

    def __iter__(self) -> Iterator[StudentRecord]:
        return iter(self._population)
