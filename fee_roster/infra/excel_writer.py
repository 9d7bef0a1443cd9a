"""خروجی Excel پیش‌نمایش تطبیق (خلاصه، فهرست‌شده‌ها، فهرست‌نشده‌ها، QA)."""

from __future__ import annotations

import contextlib
import logging
import os
import re
import tempfile
from os import PathLike
from pathlib import Path
from typing import Dict, Iterator, Sequence

import pandas as pd

from fee_roster.core.common.types import Operation, ReconciliationResult
from fee_roster.core.qa.invariants import QaReport

__all__ = [
    "OPERATION_COLUMNS",
    "operations_frame",
    "summary_frame",
    "write_xlsx_atomic",
    "write_preview_workbook",
]

logger = logging.getLogger(__name__)

OPERATION_COLUMNS: Sequence[str] = (
    "student_id",
    "name",
    "before_class",
    "after_class",
    "action",
    "is_listed",
    "reason_code",
    "reason_text",
)
_INVALID_SHEET_CHARS = re.compile(r"[\\/*?:\[\]]")


def operations_frame(operations: Sequence[Operation]) -> pd.DataFrame:
    """تبدیل عملیات به DataFrame با ستون‌های ثابت و سلول‌های متنی."""

    df = pd.DataFrame([op.to_dict() for op in operations], columns=list(OPERATION_COLUMNS))
    for column in ("before_class", "after_class"):
        df[column] = df[column].fillna("")
    return df


def summary_frame(result: ReconciliationResult) -> pd.DataFrame:
    rows = [
        {"metric": "target_year", "value": result.target_year},
        {"metric": "fallback_policy", "value": result.fallback_policy.value},
    ]
    rows.extend({"metric": key, "value": value} for key, value in result.summary.to_dict().items())
    return pd.DataFrame(rows, columns=["metric", "value"])


def _safe_sheet_name(name: str, taken: set[str]) -> str:
    base = _INVALID_SHEET_CHARS.sub(" ", (name or "Sheet").strip())[:31] or "Sheet"
    candidate = base
    index = 2
    while candidate in taken:
        suffix = f" ({index})"
        candidate = base[: 31 - len(suffix)] + suffix
        index += 1
    taken.add(candidate)
    return candidate


@contextlib.contextmanager
def _temporary_file_path(*, suffix: str, directory: Path) -> Iterator[Path]:
    fd, name = tempfile.mkstemp(suffix=suffix, dir=directory)
    os.close(fd)
    path = Path(name)
    try:
        yield path
    finally:
        path.unlink(missing_ok=True)


def write_xlsx_atomic(sheets: Dict[str, pd.DataFrame], filepath: Path | str | PathLike[str]) -> Path:
    """نوشتن چند شیت در یک فایل موقت و جایگزینی اتمیک مقصد."""

    target_path = Path(filepath)
    target_path.parent.mkdir(parents=True, exist_ok=True)
    taken: set[str] = set()
    with _temporary_file_path(suffix=".xlsx", directory=target_path.parent) as tmp_path:
        with pd.ExcelWriter(tmp_path, engine="openpyxl") as writer:
            for sheet_name, df in sheets.items():
                safe_name = _safe_sheet_name(str(sheet_name), taken)
                df.to_excel(writer, sheet_name=safe_name, index=False)
                writer.sheets[safe_name].freeze_panes = "A2"
        os.replace(tmp_path, target_path)
    logger.info("Wrote workbook %s (%d sheets)", target_path, len(sheets))
    return target_path


def write_preview_workbook(
    result: ReconciliationResult,
    filepath: Path | str | PathLike[str],
    *,
    qa_report: QaReport | None = None,
) -> Path:
    """ذخیرهٔ پیش‌نمایش یک نوبت تطبیق برای بازبینی پیش از ثبت."""

    sheets: Dict[str, pd.DataFrame] = {
        "summary": summary_frame(result),
        "listed": operations_frame(result.listed),
        "unlisted": operations_frame(result.unlisted),
    }
    if qa_report is not None:
        sheets["qa"] = qa_report.to_summary_frame()
    return write_xlsx_atomic(sheets, filepath)
