from __future__ import annotations

import sqlite3
from contextlib import closing
from datetime import datetime, timezone

import pytest

from fee_roster.infra.errors import (
    DatabaseOperationError,
    SchemaVersionMismatchError,
    StudentNotFoundError,
)
from fee_roster.infra.student_store import (
    LocalStudentStore,
    RunRecord,
    StudentMutation,
    StudentStore,
)
from tests.conftest import make_student


def _seed(store: LocalStudentStore) -> None:
    store.upsert_students(
        [
            make_student("1130001", "林大同", "501"),
            make_student("1130002", "張體育", "407"),
            make_student("1120001", "舊生", "601", academic_year=112, withdrawn=True),
        ]
    )


def test_store_satisfies_protocol(store: LocalStudentStore) -> None:
    assert isinstance(store, StudentStore)


def test_initialize_is_idempotent(store: LocalStudentStore) -> None:
    _seed(store)
    store.initialize()
    assert len(store.fetch_students(113)) == 2


def test_schema_version_mismatch_is_reported(store: LocalStudentStore) -> None:
    with closing(sqlite3.connect(store.path)) as conn, conn:
        conn.execute("UPDATE schema_meta SET schema_version = 99 WHERE id = 1")
    with pytest.raises(SchemaVersionMismatchError) as info:
        store.initialize()
    assert info.value.actual_version == 99


def test_fetch_students_filters_by_year_in_insert_order(store: LocalStudentStore) -> None:
    _seed(store)
    records = store.fetch_students(113)
    assert [r.student_id for r in records] == ["1130001", "1130002"]
    assert records[0].current_class == "501"
    assert records[0].withdrawn is False
    assert records[0].fee_status == "未繳納"
    old = store.fetch_students(112)
    assert old[0].withdrawn is True
    assert store.fetch_students(999) == []


def test_upsert_replaces_existing_rows(store: LocalStudentStore) -> None:
    _seed(store)
    store.upsert_students([make_student("1130001", "林大同", "502")])
    assert store.fetch_student("1130001").current_class == "502"
    assert len(store.fetch_students(113)) == 2


def test_apply_batch_updates_and_withdraws(store: LocalStudentStore) -> None:
    _seed(store)
    applied = store.apply_batch(
        [
            StudentMutation("1130001", {"current_class": "601", "withdrawn": False}),
            StudentMutation("1130002", {"withdrawn": True}),
        ]
    )
    assert applied == 2
    first = store.fetch_student("1130001")
    second = store.fetch_student("1130002")
    assert (first.current_class, first.withdrawn) == ("601", False)
    assert (second.current_class, second.withdrawn) == ("407", True)


def test_apply_batch_rolls_back_when_a_student_is_missing(store: LocalStudentStore) -> None:
    _seed(store)
    with pytest.raises(StudentNotFoundError) as info:
        store.apply_batch(
            [
                StudentMutation("1130001", {"current_class": "601"}),
                StudentMutation("9999999", {"withdrawn": True}),
            ]
        )
    assert info.value.student_id == "9999999"
    assert isinstance(info.value, DatabaseOperationError)
    assert store.fetch_student("1130001").current_class == "501"


def test_apply_batch_rejects_unknown_fields(store: LocalStudentStore) -> None:
    _seed(store)
    with pytest.raises(ValueError):
        store.apply_batch([StudentMutation("1130001", {"name": "x"})])


def test_list_academic_years(store: LocalStudentStore) -> None:
    _seed(store)
    frame = store.list_academic_years()
    assert frame["academic_year"].tolist() == [113, 112]
    assert frame["students"].tolist() == [2, 1]
    assert frame["withdrawn"].tolist() == [0, 1]


def test_insert_and_fetch_runs(store: LocalStudentStore) -> None:
    now = datetime.now(timezone.utc)
    run_id = store.insert_run(
        RunRecord(
            run_uuid="run-1",
            started_at=now,
            finished_at=now,
            entrypoint="apply",
            target_year=113,
            fallback_policy="replace_all",
            source_path=None,
            source_hash=None,
            status="success",
            updated_count=3,
            withdrawn_count=1,
            summary_json="{}",
            message="ok",
        )
    )
    rows = store.fetch_runs()
    assert len(rows) == 1
    assert int(rows[0]["id"]) == run_id
    assert rows[0]["started_at"].endswith("Z")
    assert rows[0]["updated_count"] == 3
