from __future__ import annotations

from pathlib import Path
from typing import Callable

import pytest

from fee_roster.core.common.types import ChangeRow, StudentRecord
from fee_roster.infra.student_store import LocalStudentStore

StudentFactory = Callable[..., StudentRecord]


def make_student(
    student_id: str,
    name: str,
    current_class: str,
    *,
    academic_year: int = 113,
    withdrawn: bool = False,
) -> StudentRecord:
    """ساخت رکورد دانش‌آموز نمونه با سال پیش‌فرض ۱۱۳.

    مثال:
        >>> make_student("S1", "王小明", "501").academic_year
        113
    """

    return StudentRecord(
        student_id=student_id,
        name=name,
        current_class=current_class,
        academic_year=academic_year,
        withdrawn=withdrawn,
        student_number=None,
        fee_status="未繳納",
    )


def row(name: str, old_class: str, new_class: str) -> ChangeRow:
    return ChangeRow(name=name, old_class=old_class, new_class=new_class)


@pytest.fixture
def student() -> StudentFactory:
    return make_student


@pytest.fixture
def change_row() -> Callable[[str, str, str], ChangeRow]:
    return row


@pytest.fixture
def mixed_population() -> list[StudentRecord]:
    """جمعیت سال ۱۱۳ با یک کلاس ورزشی، یک کلاس عادی و یک پایهٔ پایانی."""

    return [
        make_student("S1", "林大同", "501"),
        make_student("S2", "張體育", "407"),
        make_student("S3", "李畢業", "601"),
        make_student("S4", "舊生", "401", academic_year=112),
    ]


@pytest.fixture
def store(tmp_path: Path) -> LocalStudentStore:
    db = LocalStudentStore(tmp_path / "roster.db")
    db.initialize()
    return db
