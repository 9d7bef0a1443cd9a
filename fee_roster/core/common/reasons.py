"""سیستم مرکزی کد/متن دلایل عملیات جابه‌جایی کلاس (Core-only).

این ماژول تنها مرجع :class:`ReasonCode` است؛ متن چینی نمایش‌داده‌شده
به کاربر و ترتیب شدت (برای مرتب‌سازی پیش‌نمایش) هر دو به‌صورت داده
تعریف شده‌اند، نه به‌صورت محاسبهٔ درون‌خطی.

مثال::

    >>> build_reason(ReasonCode.NOT_FOUND)
    LocalizedReason(code=<ReasonCode.NOT_FOUND: 'NOT_FOUND'>, message_zh='找不到對應學生')
    >>> severity_rank(ReasonCode.INVALID_OLD_CLASS_FORMAT) < severity_rank(ReasonCode.CLASS_UPDATED)
    True
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Mapping

__all__ = [
    "ReasonCode",
    "LocalizedReason",
    "SEVERITY_TIERS",
    "INVALID_FORMAT_CODES",
    "build_reason",
    "reason_message",
    "severity_rank",
]


class ReasonCode(StrEnum):
    """کدهای یکتای دلیل برای هر عملیات پیش‌نمایش."""

    INVALID_BOTH_CLASS_FORMAT = "INVALID_BOTH_CLASS_FORMAT"
    INVALID_OLD_CLASS_FORMAT = "INVALID_OLD_CLASS_FORMAT"
    INVALID_NEW_CLASS_FORMAT = "INVALID_NEW_CLASS_FORMAT"
    NAME_CLASS_CONFLICT = "NAME_CLASS_CONFLICT"
    OLD_MISMATCH = "OLD_MISMATCH"
    NOT_FOUND = "NOT_FOUND"
    DUPLICATE_ROW = "DUPLICATE_ROW"
    UNLISTED_WITHDRAW = "UNLISTED_WITHDRAW"
    NO_CHANGE = "NO_CHANGE"
    UNLISTED_NO_INFER = "UNLISTED_NO_INFER"
    UNLISTED_SPORTS_NO_CHANGE = "UNLISTED_SPORTS_NO_CHANGE"
    CLASS_UPDATED = "CLASS_UPDATED"
    UNLISTED_PROMOTED = "UNLISTED_PROMOTED"


@dataclass(frozen=True, slots=True)
class LocalizedReason:
    """متن بومی‌شدهٔ دلیل برای گزارش انسانی."""

    code: ReasonCode
    message_zh: str


_REASON_MESSAGES_ZH: Mapping[ReasonCode, str] = {
    ReasonCode.INVALID_BOTH_CLASS_FORMAT: "舊/新班級格式無效",
    ReasonCode.INVALID_OLD_CLASS_FORMAT: "舊班級格式無效",
    ReasonCode.INVALID_NEW_CLASS_FORMAT: "新班級格式無效",
    ReasonCode.NAME_CLASS_CONFLICT: "同名同班衝突",
    ReasonCode.OLD_MISMATCH: "舊班級不符",
    ReasonCode.NOT_FOUND: "找不到對應學生",
    ReasonCode.DUPLICATE_ROW: "名單中重複列出",
    ReasonCode.UNLISTED_WITHDRAW: "未列出且策略標記已離校",
    ReasonCode.NO_CHANGE: "班級未變更",
    ReasonCode.UNLISTED_NO_INFER: "無法自動推算",
    ReasonCode.UNLISTED_SPORTS_NO_CHANGE: "體育班班級未變",
    ReasonCode.CLASS_UPDATED: "依名單更新班級",
    ReasonCode.UNLISTED_PROMOTED: "依規則自動升級",
}

# متن‌هایی که کلاس فعلی دانش‌آموز را نشان می‌دهند.
_REASON_TEMPLATES_ZH: Mapping[ReasonCode, str] = {
    ReasonCode.OLD_MISMATCH: "舊班級不符(現有: {current_class})",
}

INVALID_FORMAT_CODES: frozenset[ReasonCode] = frozenset(
    {
        ReasonCode.INVALID_BOTH_CLASS_FORMAT,
        ReasonCode.INVALID_OLD_CLASS_FORMAT,
        ReasonCode.INVALID_NEW_CLASS_FORMAT,
    }
)

# ترتیب نمایش: مشکلات نیازمند بررسی انسانی بالا، به‌روزرسانی‌های موفق پایین.
SEVERITY_TIERS: tuple[tuple[ReasonCode, ...], ...] = (
    (
        ReasonCode.INVALID_BOTH_CLASS_FORMAT,
        ReasonCode.INVALID_OLD_CLASS_FORMAT,
        ReasonCode.INVALID_NEW_CLASS_FORMAT,
    ),
    (ReasonCode.NAME_CLASS_CONFLICT,),
    (ReasonCode.OLD_MISMATCH,),
    (ReasonCode.NOT_FOUND, ReasonCode.DUPLICATE_ROW),
    (ReasonCode.UNLISTED_WITHDRAW,),
    (
        ReasonCode.NO_CHANGE,
        ReasonCode.UNLISTED_NO_INFER,
        ReasonCode.UNLISTED_SPORTS_NO_CHANGE,
    ),
    (ReasonCode.CLASS_UPDATED, ReasonCode.UNLISTED_PROMOTED),
)

_SEVERITY_RANK: Mapping[ReasonCode, int] = {
    code: rank for rank, tier in enumerate(SEVERITY_TIERS) for code in tier
}


def reason_message(code: ReasonCode, *, current_class: str | None = None) -> str:
    """برگرداندن متن چینی یک کد دلیل.

    برای کدهایی که قالب دارند، اگر ``current_class`` داده شود کلاس فعلی
    دانش‌آموز در متن درج می‌شود.
    """

    try:
        message = _REASON_MESSAGES_ZH[code]
    except KeyError as exc:
        raise ValueError(f"Reason code '{code}' تعریف نشده است") from exc
    template = _REASON_TEMPLATES_ZH.get(code)
    if template is not None and current_class:
        return template.format(current_class=current_class)
    return message


def build_reason(code: ReasonCode) -> LocalizedReason:
    """ساخت شیء :class:`LocalizedReason` با پیام پایدار."""

    return LocalizedReason(code=code, message_zh=reason_message(code))


def severity_rank(code: ReasonCode) -> int:
    """رتبهٔ شدت کد؛ عدد کوچک‌تر یعنی نیاز بیشتر به توجه."""

    try:
        return _SEVERITY_RANK[code]
    except KeyError as exc:
        raise ValueError(f"Reason code '{code}' در جدول شدت نیست") from exc
