"""بارگذار سیاست فهرست کلاس (Core): سبک، کش‌شونده و تک‌مرجع.

نکتهٔ معماری: اگر I/O باید از Core بیرون بماند، کافی است دادهٔ JSON در
Infra خوانده و به :func:`parse_policy_dict` پاس داده شود. این ماژول هر دو
مسیر را فراهم می‌کند.

نمونهٔ فایل ``config/roster_policy.json``::

    {
      "version": "1.0.0",
      "class_codes": {"min_grade": 4, "max_grade": 6, "separator": "0",
                      "special_cohort_codes": ["407", "507", "607"]},
      "default_fallback_policy": "replace_all",
      "input_columns": {"name": ["name", "姓名"], ...}
    }
"""

from __future__ import annotations

import json
import warnings
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Dict, Literal, Mapping, Optional, Sequence, Tuple

from fee_roster.core.common.class_codes import DEFAULT_SPECIAL_COHORT_CODES, ClassCodeRules
from fee_roster.core.common.types import FallbackPolicy

VersionMismatchMode = Literal["raise", "warn"]

DEFAULT_POLICY_VERSION = "1.0.0"
DEFAULT_POLICY_PATH = Path("config/roster_policy.json")

_REQUIRED_INPUT_FIELDS: tuple[str, ...] = ("name", "old_class", "new_class")
_DEFAULT_INPUT_COLUMNS: Mapping[str, tuple[str, ...]] = {
    "name": ("name", "姓名", "學生姓名"),
    "old_class": ("oldClass", "old_class", "舊班級", "原班級"),
    "new_class": ("newClass", "new_class", "新班級"),
}
_DEFAULT_STUDENT_COLUMNS: Mapping[str, tuple[str, ...]] = {
    "class": ("class", "班級"),
    "student_number": ("studentId", "student_id", "學號"),
    "name": ("name", "姓名"),
    "status": ("status", "繳費狀態"),
}
_DEFAULT_FEE_STATUS = "未繳納"


@dataclass(frozen=True)
class RosterPolicy:
    """پیکربندی فقط‌خواندنی تطبیق فهرست کلاس.

    Attributes:
        version: نسخهٔ Schema فایل سیاست.
        class_rules: قواعد کد کلاس (بازهٔ پایه، جداکننده، کدهای ورزشی).
        default_fallback_policy: سیاست پیش‌فرض برای دانش‌آموزان فهرست‌نشده.
        input_columns: نام‌های مجاز سرستون‌های فایل تغییرات برای هر فیلد.
        student_columns: نام‌های مجاز سرستون‌های فایل ورود دانش‌آموزان.
        default_fee_status: وضعیت شهریهٔ پیش‌فرض هنگام ورود دانش‌آموز.
    """

    version: str
    class_rules: ClassCodeRules
    default_fallback_policy: FallbackPolicy
    input_columns: Mapping[str, Tuple[str, ...]]
    student_columns: Mapping[str, Tuple[str, ...]]
    default_fee_status: str = _DEFAULT_FEE_STATUS


def _ensure_str_tuple(name: str, value: object) -> Tuple[str, ...]:
    if isinstance(value, str) or not isinstance(value, Sequence):
        raise ValueError(f"'{name}' must be a list of strings")
    items = tuple(str(item).strip() for item in value)
    if not items or any(not item for item in items):
        raise ValueError(f"'{name}' must contain non-empty strings")
    return items


def _ensure_int(name: str, value: object) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"'{name}' must be an integer")
    return value


def _normalize_class_codes(raw: object) -> ClassCodeRules:
    if raw is None:
        return ClassCodeRules()
    if not isinstance(raw, Mapping):
        raise ValueError("'class_codes' must be an object")
    min_grade = _ensure_int("class_codes.min_grade", raw.get("min_grade", 4))
    max_grade = _ensure_int("class_codes.max_grade", raw.get("max_grade", 6))
    separator = str(raw.get("separator", "0"))
    special = _ensure_str_tuple(
        "class_codes.special_cohort_codes",
        raw.get("special_cohort_codes", list(DEFAULT_SPECIAL_COHORT_CODES)),
    )
    rules = ClassCodeRules(
        min_grade=min_grade,
        max_grade=max_grade,
        separator=separator,
        special_codes=frozenset(special),
    )
    invalid = sorted(code for code in special if not rules.is_valid(code))
    if invalid:
        raise ValueError(f"special cohort codes do not match class code shape: {invalid}")
    return rules


def _normalize_columns(
    name: str,
    raw: object,
    defaults: Mapping[str, tuple[str, ...]],
    required: Sequence[str],
) -> Dict[str, Tuple[str, ...]]:
    if raw is None:
        return {key: tuple(values) for key, values in defaults.items()}
    if not isinstance(raw, Mapping):
        raise ValueError(f"'{name}' must be an object")
    merged: Dict[str, Tuple[str, ...]] = {key: tuple(values) for key, values in defaults.items()}
    for key, value in raw.items():
        merged[str(key)] = _ensure_str_tuple(f"{name}.{key}", value)
    missing = [key for key in required if key not in merged]
    if missing:
        raise ValueError(f"'{name}' is missing fields: {missing}")
    return merged


def _version_gate(actual: str, expected: Optional[str], mode: VersionMismatchMode) -> None:
    if expected is None or actual == expected:
        return
    message = f"Roster policy version mismatch: expected {expected}, got {actual}"
    if actual.split(".")[0] != expected.split(".")[0]:
        raise ValueError(message + " (major incompatible)")
    if mode == "raise":
        raise ValueError(message)
    warnings.warn(message, RuntimeWarning, stacklevel=3)


def parse_policy_dict(
    data: Mapping[str, object],
    expected_version: Optional[str] = DEFAULT_POLICY_VERSION,
    on_version_mismatch: VersionMismatchMode = "raise",
) -> RosterPolicy:
    """مسیر خالص برای تبدیل dict به :class:`RosterPolicy`."""

    if not isinstance(data, Mapping):
        raise ValueError("roster policy must be a JSON object")
    version = str(data.get("version") or "").strip()
    if not version:
        raise ValueError("roster policy must define 'version'")
    _version_gate(version, expected_version, on_version_mismatch)

    fallback_raw = data.get("default_fallback_policy", FallbackPolicy.REPLACE_ALL.value)
    return RosterPolicy(
        version=version,
        class_rules=_normalize_class_codes(data.get("class_codes")),
        default_fallback_policy=FallbackPolicy.parse(fallback_raw),
        input_columns=_normalize_columns(
            "input_columns", data.get("input_columns"), _DEFAULT_INPUT_COLUMNS, _REQUIRED_INPUT_FIELDS
        ),
        student_columns=_normalize_columns(
            "student_columns",
            data.get("student_columns"),
            _DEFAULT_STUDENT_COLUMNS,
            ("class", "student_number", "name"),
        ),
        default_fee_status=str(data.get("default_fee_status") or _DEFAULT_FEE_STATUS),
    )


def default_policy() -> RosterPolicy:
    """سیاست داخلی پیش‌فرض وقتی فایل پیکربندی در دسترس نیست."""

    return parse_policy_dict({"version": DEFAULT_POLICY_VERSION})


@lru_cache(maxsize=8)
def _load_policy_cached(
    resolved_path: str,
    raw: str,
    mtime_ns: int,
    expected_version: Optional[str],
    on_version_mismatch: VersionMismatchMode,
) -> RosterPolicy:
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid JSON in roster policy file: {resolved_path}") from exc
    return parse_policy_dict(data, expected_version, on_version_mismatch)


def load_roster_policy(
    path: str | Path = DEFAULT_POLICY_PATH,
    *,
    expected_version: Optional[str] = DEFAULT_POLICY_VERSION,
    on_version_mismatch: VersionMismatchMode = "raise",
) -> RosterPolicy:
    """بارگذاری سیاست از فایل JSON و بازگشت ساختار کش‌شونده."""

    policy_path = Path(path)
    try:
        raw = policy_path.read_text(encoding="utf-8")
        mtime_ns = policy_path.stat().st_mtime_ns
    except FileNotFoundError as exc:
        raise FileNotFoundError(f"Roster policy file not found: {policy_path}") from exc

    return _load_policy_cached(
        str(policy_path.resolve()),
        raw,
        mtime_ns,
        expected_version,
        on_version_mismatch,
    )


load_roster_policy.cache_clear = _load_policy_cached.cache_clear  # type: ignore[attr-defined]


__all__ = [
    "DEFAULT_POLICY_PATH",
    "DEFAULT_POLICY_VERSION",
    "RosterPolicy",
    "default_policy",
    "load_roster_policy",
    "parse_policy_dict",
]
