"""خواندن فایل‌های ورودی CSV/Excel در لایهٔ زیرساخت.

این ماژول فقط مسئول تبدیل فایل خام به ردیف‌های متنی است و هیچ منطق
دامنه‌ای ندارد: همهٔ سلول‌ها به‌صورت متن خوانده و trim می‌شوند، ردیف‌هایی
که یکی از فیلدهای لازم آن‌ها خالی است کنار گذاشته می‌شوند و اعتبارسنجی کد
کلاس به موتور تطبیق سپرده می‌شود.
"""

from __future__ import annotations

import io
import logging
import unicodedata
import zipfile
from os import PathLike
from pathlib import Path
from typing import Callable, Dict, List, Mapping, Sequence, Tuple

import pandas as pd

from fee_roster.core.common.academic_year import (
    format_student_number,
    is_valid_student_number,
    school_year_from_student_number,
)
from fee_roster.core.common.errors import RosterParseError
from fee_roster.core.common.types import ChangeRow, StudentRecord
from fee_roster.core.policy_loader import RosterPolicy, default_policy

__all__ = [
    "RosterSource",
    "read_table",
    "resolve_columns",
    "read_change_rows",
    "read_student_rows",
]

RosterSource = str | PathLike[str] | bytes | io.IOBase

_EXCEL_SUFFIXES = frozenset({".xlsx", ".xlsm"})
_ZIP_MAGIC = b"PK\x03\x04"

logger = logging.getLogger(__name__)


def _normalize_header(value: object) -> str:
    text = unicodedata.normalize("NFKC", str(value or "")).strip().lstrip("﻿")
    return text.replace(" ", "").replace("_", "").lower()


def _read_csv(handle: object) -> pd.DataFrame:
    return pd.read_csv(
        handle,  # type: ignore[arg-type]
        dtype=str,
        keep_default_na=False,
        skip_blank_lines=True,
        encoding="utf-8-sig",
    )


def _read_excel(handle: object) -> pd.DataFrame:
    return pd.read_excel(handle, dtype=str, keep_default_na=False, engine="openpyxl")  # type: ignore[arg-type]


def _detect_reader(source: RosterSource) -> Tuple[Callable[[object], pd.DataFrame], object, str]:
    """انتخاب خواننده بر اساس پسوند فایل یا امضای بایت‌ها."""

    if isinstance(source, (bytes, bytearray)):
        payload = bytes(source)
        reader = _read_excel if payload.startswith(_ZIP_MAGIC) else _read_csv
        return reader, io.BytesIO(payload), "<bytes>"
    if isinstance(source, io.IOBase):
        return _read_csv, source, getattr(source, "name", "<stream>")
    path = Path(source)
    if not path.exists():
        raise RosterParseError(func="read_table", message="檔案不存在", value=str(path))
    reader = _read_excel if path.suffix.lower() in _EXCEL_SUFFIXES else _read_csv
    return reader, path, str(path)


def read_table(source: RosterSource) -> pd.DataFrame:
    """خواندن جدول خام با همهٔ سلول‌ها به‌صورت متن.

    Raises:
        RosterParseError: اگر فایل وجود نداشته باشد، خالی باشد یا قابل تجزیه نباشد.
    """

    reader, handle, label = _detect_reader(source)
    try:
        df = reader(handle)
    except pd.errors.EmptyDataError as exc:
        raise RosterParseError(func="read_table", message="檔案沒有內容", value=label) from exc
    except (pd.errors.ParserError, UnicodeDecodeError, zipfile.BadZipFile, ValueError, OSError) as exc:
        raise RosterParseError(func="read_table", message=f"無法解析檔案: {exc}", value=label) from exc
    logger.debug("Read %d raw rows from %s", len(df), label)
    return df


def resolve_columns(
    df: pd.DataFrame,
    aliases: Mapping[str, Sequence[str]],
    required: Sequence[str],
) -> Dict[str, str]:
    """یافتن سرستون واقعی برای هر فیلد منطقی با تطبیق نرمال‌شدهٔ نام‌ها."""

    by_normalized: Dict[str, str] = {}
    for column in df.columns:
        by_normalized.setdefault(_normalize_header(column), str(column))
    resolved: Dict[str, str] = {}
    for field_name, candidates in aliases.items():
        for candidate in candidates:
            match = by_normalized.get(_normalize_header(candidate))
            if match is not None:
                resolved[field_name] = match
                break
    missing = [name for name in required if name not in resolved]
    if missing:
        expected = ", ".join(str(aliases[name][0]) for name in missing if aliases.get(name))
        raise RosterParseError(
            func="resolve_columns",
            message=f"缺少必要欄位: {expected}",
            value=list(map(str, df.columns)),
        )
    return resolved


def _clean(value: object) -> str:
    return "" if value is None else str(value).strip()


def read_change_rows(
    source: RosterSource,
    *,
    policy: RosterPolicy | None = None,
) -> List[ChangeRow]:
    """خواندن فهرست «name, oldClass, newClass» به ترتیب فایل."""

    policy = policy or default_policy()
    df = read_table(source)
    columns = resolve_columns(df, policy.input_columns, ("name", "old_class", "new_class"))
    rows: List[ChangeRow] = []
    dropped = 0
    for record in df.to_dict(orient="records"):
        row = ChangeRow(
            name=_clean(record.get(columns["name"])),
            old_class=_clean(record.get(columns["old_class"])),
            new_class=_clean(record.get(columns["new_class"])),
        )
        if row.name and row.old_class and row.new_class:
            rows.append(row)
        else:
            dropped += 1
    if dropped:
        logger.info("Dropped %d change rows with empty required fields", dropped)
    logger.info("Parsed %d change rows", len(rows))
    return rows


def read_student_rows(
    source: RosterSource,
    *,
    policy: RosterPolicy | None = None,
) -> List[StudentRecord]:
    """خواندن فایل ورود دانش‌آموزان (class, studentId, name[, status]).

    شناسهٔ سند همان شمارهٔ هفت‌رقمی دانش‌آموز است و سال ورودی از سه رقم
    اول آن استخراج می‌شود. ردیف‌های ناقص یا با شمارهٔ نامعتبر رد می‌شوند.
    """

    policy = policy or default_policy()
    df = read_table(source)
    columns = resolve_columns(df, policy.student_columns, ("class", "student_number", "name"))
    records: List[StudentRecord] = []
    skipped = 0
    for raw in df.to_dict(orient="records"):
        number_text = _clean(raw.get(columns["student_number"]))
        class_code = _clean(raw.get(columns["class"]))
        name = _clean(raw.get(columns["name"]))
        if not (number_text and class_code and name):
            skipped += 1
            continue
        number = format_student_number(number_text)
        if not is_valid_student_number(number):
            logger.warning("Skipping student row with invalid number %r", number_text)
            skipped += 1
            continue
        status = _clean(raw.get(columns["status"])) if "status" in columns else ""
        records.append(
            StudentRecord(
                student_id=number,
                name=name,
                current_class=class_code,
                academic_year=school_year_from_student_number(number),
                withdrawn=False,
                student_number=number,
                fee_status=status or policy.default_fee_status,
            )
        )
    if skipped:
        logger.info("Skipped %d incomplete student rows", skipped)
    return records
