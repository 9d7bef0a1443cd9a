from __future__ import annotations

from fee_roster.core.reconcile.roster_index import RosterIndex, normalize_name
from tests.conftest import make_student


def test_normalize_name_collapses_whitespace_and_width() -> None:
    assert normalize_name("  王　小明 ") == "王 小明"
    assert normalize_name("王小明") == "王小明"
    assert normalize_name(None) == ""


def test_index_keeps_only_target_year() -> None:
    index = RosterIndex(
        113,
        [make_student("A", "王小明", "501"), make_student("B", "王小明", "501", academic_year=112)],
    )
    assert len(index) == 1
    assert [s.student_id for s in index.lookup("王小明", "501")] == ["A"]


def test_lookup_returns_all_duplicates_in_input_order() -> None:
    index = RosterIndex(
        113,
        [make_student("A", "王小明", "501"), make_student("B", "王小明 ", "501")],
    )
    assert [s.student_id for s in index.lookup("王小明", "501")] == ["A", "B"]


def test_lookup_does_not_normalize_class_codes() -> None:
    index = RosterIndex(113, [make_student("A", "王小明", "501")])
    assert index.lookup("王小明", " 501") == ()
    assert index.lookup("王小明", "601") == ()


def test_population_preserves_order() -> None:
    students = [make_student(f"S{i}", f"n{i}", "401") for i in range(5)]
    index = RosterIndex(113, students)
    assert [s.student_id for s in index] == [s.student_id for s in students]
    assert index.population == tuple(students)
