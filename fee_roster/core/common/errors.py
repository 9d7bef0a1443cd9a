"""تعریف خطاهای دامنه برای هستهٔ تطبیق فهرست کلاس‌ها."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any


class DomainError(Exception):
    """پایهٔ تمام خطاهای دامنه‌ای."""


@dataclass(frozen=True, slots=True)
class BaseDomainError(DomainError):
    """خطای غنی‌شده با زمینه برای دیباگ و گزارش‌گیری.

    Attributes:
        func: نام تابعی که خطا در آن رخ داده است.
        message: توضیح خوانا برای اپراتور.
        value: مقدار خامی که باعث خطا شده است.
    """

    func: str
    message: str = ""
    value: Any | None = None

    def __str__(self) -> str:
        parts: list[str] = [self.message or self.__class__.__name__]
        parts.append(f"(func={self.func}")
        if self.value is not None:
            parts[-1] += f", value={self.value!r}"
        parts[-1] += ")"
        return " ".join(parts)


class ReconciliationConfigError(BaseDomainError):
    """پیش‌شرط تطبیق (سال هدف، جمعیت یا سیاست) برقرار نیست؛ تکرارپذیر نیست."""


class RosterParseError(BaseDomainError):
    """فایل ورودی خوانده نشد یا ستون‌های لازم را ندارد."""


class WorkflowStateError(BaseDomainError):
    """گذار غیرمجاز در ماشین حالت ورود فهرست."""


class CommitFailedError(BaseDomainError):
    """نوشتن دسته‌ای اتمیک شکست خورد؛ هیچ تغییری اعمال نشده است."""


__all__ = [
    "DomainError",
    "BaseDomainError",
    "ReconciliationConfigError",
    "RosterParseError",
    "WorkflowStateError",
    "CommitFailedError",
]
