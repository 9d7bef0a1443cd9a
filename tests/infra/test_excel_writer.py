from __future__ import annotations

from pathlib import Path

import pandas as pd

from fee_roster.core.common.types import FallbackPolicy
from fee_roster.core.qa.invariants import run_all_invariants
from fee_roster.core.reconcile import reconcile
from fee_roster.infra.excel_writer import (
    OPERATION_COLUMNS,
    operations_frame,
    summary_frame,
    write_preview_workbook,
    write_xlsx_atomic,
)
from tests.conftest import make_student, row


def _result():
    population = [
        make_student("A", "王小明", "501"),
        make_student("B", "王小明", "501"),
        make_student("C", "張體育", "407"),
        make_student("D", "林大同", "502"),
    ]
    return reconcile(
        [row("王小明", "501", "601"), row("陳小美", "501", "999")],
        population,
        FallbackPolicy.REPLACE_SPECIAL_COHORT_ONLY,
        target_year=113,
    )


def test_operations_frame_has_stable_columns() -> None:
    frame = operations_frame(_result().unlisted)
    assert list(frame.columns) == list(OPERATION_COLUMNS)
    withdraw = frame[frame["action"] == "withdraw"].iloc[0]
    assert withdraw["after_class"] == ""
    assert operations_frame(()).empty


def test_summary_frame_contains_counters() -> None:
    frame = summary_frame(_result())
    values = dict(zip(frame["metric"], frame["value"]))
    assert values["target_year"] == 113
    assert values["conflict_count"] == 2
    assert values["invalid_class_count"] == 1


def test_preview_workbook_has_expected_sheets(tmp_path: Path) -> None:
    result = _result()
    target = tmp_path / "out" / "preview.xlsx"
    written = write_preview_workbook(
        result, target, qa_report=run_all_invariants(result.operations)
    )
    assert written == target
    sheets = pd.read_excel(target, sheet_name=None, dtype=str, engine="openpyxl")
    assert list(sheets) == ["summary", "listed", "unlisted", "qa"]
    assert len(sheets["listed"]) == 3
    assert sheets["unlisted"]["student_id"].tolist() == ["D", "C"]
    assert list(tmp_path.joinpath("out").glob("*.xlsx")) == [target]


def test_sheet_names_are_sanitized(tmp_path: Path) -> None:
    target = tmp_path / "names.xlsx"
    frame = pd.DataFrame({"a": [1]})
    write_xlsx_atomic({"bad/name": frame, "bad name": frame}, target)
    names = list(pd.read_excel(target, sheet_name=None, engine="openpyxl"))
    assert names == ["bad name", "bad name (2)"]
