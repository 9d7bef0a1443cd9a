# file: fee_roster/infra/student_store.py
"""مخزن محلی SQLite برای رکوردهای دانش‌آموزان و تاریخچهٔ تطبیق.

این ماژول لایهٔ نازکی روی :mod:`sqlite3` است و سه قابلیت مورد نیاز موتور
تطبیق را فراهم می‌کند: خواندن همهٔ رکوردهای یک سال ورودی، نوشتن دسته‌ای
اتمیک (همه یا هیچ) و ثبت تاریخچهٔ اجرا. Schema به‌صورت دترمینیستیک ساخته
می‌شود و نسخهٔ آن در ``schema_meta`` ثبت و اعتبارسنجی می‌شود.

نمونهٔ استفادهٔ سریع:

>>> store = LocalStudentStore(Path("roster.db"))  # doctest: +SKIP
>>> store.initialize()  # doctest: +SKIP
>>> store.fetch_students(113)  # doctest: +SKIP
"""
from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, Iterator, List, Mapping, Protocol, Sequence, runtime_checkable

import pandas as pd

from fee_roster.core.common.types import StudentRecord
from fee_roster.infra.errors import (
    DatabaseOperationError,
    SchemaVersionMismatchError,
    StudentNotFoundError,
)
from fee_roster.infra.sqlite_config import configure_connection

_SCHEMA_VERSION = 1
_ISO_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"

# نگاشت فیلدهای قابل تغییر به ستون‌های جدول students.
_MUTABLE_FIELDS: Mapping[str, str] = {
    "current_class": "class",
    "withdrawn": "withdrawn",
}

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StudentMutation:
    """تغییر «تنظیم فیلد» روی یک رکورد دانش‌آموز در یک دستهٔ اتمیک."""

    student_id: str
    fields: Mapping[str, object]


@dataclass(frozen=True)
class RunRecord:
    """نمایندهٔ ردیف جدول ``reconciliation_runs`` برای یک اجرای ثبت."""

    run_uuid: str
    started_at: datetime
    finished_at: datetime
    entrypoint: str
    target_year: int
    fallback_policy: str
    source_path: str | None
    source_hash: str | None
    status: str
    updated_count: int
    withdrawn_count: int
    summary_json: str | None
    message: str | None


@runtime_checkable
class StudentStore(Protocol):
    """قرارداد مخزن دانش‌آموز که موتور و committer به آن متکی‌اند."""

    def fetch_students(self, academic_year: int) -> List[StudentRecord]:
        """خواندن همهٔ رکوردهای یک سال ورودی."""

    def apply_batch(self, mutations: Sequence[StudentMutation]) -> int:
        """اعمال اتمیک همهٔ تغییرات؛ در صورت خطا هیچ تغییری باقی نمی‌ماند."""


class LocalStudentStore:
    """کلاس مدیریت اتصال و Schema مخزن محلی دانش‌آموزان."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def _open_connection(self) -> sqlite3.Connection:
        """ایجاد اتصال پیکربندی‌شده با PRAGMA های یکسان."""

        self.path.parent.mkdir(parents=True, exist_ok=True)
        return configure_connection(sqlite3.connect(self.path))

    @contextmanager
    def connect(self) -> Iterator[sqlite3.Connection]:
        """اتصال موقت که پس از استفاده بسته می‌شود."""

        conn = self._open_connection()
        try:
            yield conn
        finally:
            conn.close()

    def initialize(self) -> None:
        """ایجاد Schema و اعتبارسنجی نسخه به‌صورت idempotent."""

        try:
            with self.connect() as conn:
                self._ensure_schema_meta_table(conn)
                existing_version = self._get_schema_version(conn)
                if existing_version is None:
                    self._ensure_schema(conn)
                    conn.execute(
                        "INSERT INTO schema_meta (id, schema_version, created_at) VALUES (1, ?, ?)",
                        (_SCHEMA_VERSION, _to_iso(_utcnow())),
                    )
                elif existing_version != _SCHEMA_VERSION:
                    raise SchemaVersionMismatchError(
                        expected_version=_SCHEMA_VERSION,
                        actual_version=existing_version,
                        message="نسخهٔ Schema پایگاه داده با نسخهٔ برنامه هم‌خوان نیست.",
                    )
                self._ensure_schema(conn)
                conn.commit()
        except sqlite3.Error as exc:
            raise DatabaseOperationError("خطا در آماده‌سازی پایگاه داده.") from exc
        logger.debug("Student store schema ensured at %s", self.path)

    # ------------------------------------------------------------------
    # دانش‌آموزان
    # ------------------------------------------------------------------
    def upsert_students(self, records: Iterable[StudentRecord]) -> int:
        """درج یا جایگزینی رکوردها در یک تراکنش؛ تعداد ردیف‌ها را برمی‌گرداند."""

        now = _to_iso(_utcnow())
        payload = [
            (
                record.student_id,
                record.student_number,
                record.name,
                record.current_class,
                int(record.academic_year),
                int(bool(record.withdrawn)),
                record.fee_status,
                now,
            )
            for record in records
        ]
        if not payload:
            logger.debug("No student rows to upsert")
            return 0
        try:
            with self.connect() as conn, conn:
                conn.executemany(
                    """
                    INSERT INTO students (
                        id, student_number, name, class, academic_year,
                        withdrawn, fee_status, updated_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                    ON CONFLICT(id) DO UPDATE SET
                        student_number = excluded.student_number,
                        name = excluded.name,
                        class = excluded.class,
                        academic_year = excluded.academic_year,
                        withdrawn = excluded.withdrawn,
                        fee_status = excluded.fee_status,
                        updated_at = excluded.updated_at
                    """,
                    payload,
                )
        except sqlite3.Error as exc:
            raise DatabaseOperationError("ثبت رکوردهای دانش‌آموز ناکام ماند.") from exc
        logger.info("Upserted %d student rows into %s", len(payload), self.path)
        return len(payload)

    def load_frame(self, academic_year: int | None = None) -> pd.DataFrame:
        """بارگذاری جدول دانش‌آموزان (اختیاری: فقط یک سال) به‌صورت DataFrame."""

        query = "SELECT * FROM students"
        params: tuple[object, ...] = ()
        if academic_year is not None:
            query += " WHERE academic_year = ?"
            params = (int(academic_year),)
        query += " ORDER BY rowid ASC"
        try:
            with self.connect() as conn:
                df = pd.read_sql_query(query, conn, params=params)
        except (sqlite3.Error, pd.errors.DatabaseError) as exc:
            raise DatabaseOperationError("خواندن جدول دانش‌آموزان با خطا روبه‌رو شد.") from exc
        if not df.empty:
            df["academic_year"] = df["academic_year"].astype("int64")
            df["withdrawn"] = df["withdrawn"].astype(bool)
        return df

    def fetch_students(self, academic_year: int) -> List[StudentRecord]:
        """همهٔ رکوردهای یک سال ورودی به ترتیب درج."""

        df = self.load_frame(academic_year)
        records = [_row_to_record(row) for row in df.to_dict(orient="records")]
        logger.debug("Fetched %d students for academic year %s", len(records), academic_year)
        return records

    def fetch_student(self, student_id: str) -> StudentRecord | None:
        with self.connect() as conn:
            row = conn.execute("SELECT * FROM students WHERE id = ?", (student_id,)).fetchone()
        return None if row is None else _row_to_record(dict(row))

    def list_academic_years(self) -> pd.DataFrame:
        """خلاصهٔ سال‌های ورودی موجود: تعداد کل و تعداد ترک‌تحصیل."""

        with self.connect() as conn:
            return pd.read_sql_query(
                """
                SELECT academic_year,
                       COUNT(*) AS students,
                       SUM(withdrawn) AS withdrawn
                FROM students
                GROUP BY academic_year
                ORDER BY academic_year DESC
                """,
                conn,
            )

    def apply_batch(self, mutations: Sequence[StudentMutation]) -> int:
        """اعمال همهٔ تغییرات در یک تراکنش؛ نبود هر رکورد کل دسته را برمی‌گرداند.

        Raises:
            StudentNotFoundError: اگر شناسهٔ یکی از تغییرات در جدول نباشد.
            DatabaseOperationError: برای هر خطای SQLite؛ تراکنش rollback می‌شود.
        """

        if not mutations:
            return 0
        statements = [_mutation_statement(mutation) for mutation in mutations]
        now = _to_iso(_utcnow())
        try:
            with self.connect() as conn, conn:
                for sql, params, student_id in statements:
                    cursor = conn.execute(sql, (*params, now, student_id))
                    if cursor.rowcount != 1:
                        raise StudentNotFoundError(
                            message="رکورد دانش‌آموز برای تغییر دسته‌ای یافت نشد.",
                            student_id=student_id,
                        )
        except sqlite3.Error as exc:
            raise DatabaseOperationError("نوشتن دسته‌ای در SQLite ناکام ماند.") from exc
        logger.info("Applied batch of %d mutations to %s", len(statements), self.path)
        return len(statements)

    # ------------------------------------------------------------------
    # تاریخچه
    # ------------------------------------------------------------------
    def insert_run(self, record: RunRecord) -> int:
        """درج ردیف جدید در جدول ``reconciliation_runs`` و بازگرداندن شناسه."""

        try:
            with self.connect() as conn, conn:
                cursor = conn.execute(
                    """
                    INSERT INTO reconciliation_runs (
                        run_uuid, started_at, finished_at, entrypoint, target_year,
                        fallback_policy, source_path, source_hash, status,
                        updated_count, withdrawn_count, summary_json, message
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        record.run_uuid,
                        _to_iso(record.started_at),
                        _to_iso(record.finished_at),
                        record.entrypoint,
                        record.target_year,
                        record.fallback_policy,
                        record.source_path,
                        record.source_hash,
                        record.status,
                        record.updated_count,
                        record.withdrawn_count,
                        record.summary_json,
                        record.message,
                    ),
                )
                return int(cursor.lastrowid)
        except sqlite3.Error as exc:
            raise DatabaseOperationError("ثبت اجرای جدید در SQLite ناکام ماند.") from exc

    def fetch_runs(self) -> List[sqlite3.Row]:
        """بازیابی همهٔ اجراها به ترتیب زمان."""

        with self.connect() as conn:
            cursor = conn.execute(
                "SELECT * FROM reconciliation_runs ORDER BY started_at ASC, id ASC"
            )
            return cursor.fetchall()

    # ------------------------------------------------------------------
    # Schema
    # ------------------------------------------------------------------
    @staticmethod
    def _ensure_schema_meta_table(conn: sqlite3.Connection) -> None:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS schema_meta (
                id INTEGER PRIMARY KEY CHECK (id = 1),
                schema_version INTEGER NOT NULL,
                created_at TEXT NOT NULL
            );
            """
        )

    @staticmethod
    def _get_schema_version(conn: sqlite3.Connection) -> int | None:
        row = conn.execute("SELECT schema_version FROM schema_meta WHERE id = 1").fetchone()
        return int(row[0]) if row is not None else None

    @staticmethod
    def _ensure_schema(conn: sqlite3.Connection) -> None:
        """ایجاد جداول و ایندکس‌ها (idempotent)."""

        conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS students (
                id TEXT PRIMARY KEY,
                student_number TEXT,
                name TEXT NOT NULL,
                class TEXT NOT NULL,
                academic_year INTEGER NOT NULL,
                withdrawn INTEGER NOT NULL DEFAULT 0 CHECK (withdrawn IN (0, 1)),
                fee_status TEXT,
                updated_at TEXT NOT NULL
            );
            CREATE INDEX IF NOT EXISTS idx_students_year ON students (academic_year);
            CREATE INDEX IF NOT EXISTS idx_students_year_name_class
                ON students (academic_year, name, class);

            CREATE TABLE IF NOT EXISTS reconciliation_runs (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                run_uuid TEXT NOT NULL UNIQUE,
                started_at TEXT NOT NULL,
                finished_at TEXT NOT NULL,
                entrypoint TEXT NOT NULL,
                target_year INTEGER NOT NULL,
                fallback_policy TEXT NOT NULL,
                source_path TEXT,
                source_hash TEXT,
                status TEXT NOT NULL,
                updated_count INTEGER NOT NULL DEFAULT 0,
                withdrawn_count INTEGER NOT NULL DEFAULT 0,
                summary_json TEXT,
                message TEXT
            );
            """
        )


def _mutation_statement(mutation: StudentMutation) -> tuple[str, tuple[object, ...], str]:
    """ساخت UPDATE پارامتری برای یک تغییر؛ فیلدهای ناشناخته رد می‌شوند."""

    if not mutation.student_id:
        raise ValueError("mutation must target a student_id")
    if not mutation.fields:
        raise ValueError(f"mutation for {mutation.student_id!r} has no fields")
    assignments: list[str] = []
    params: list[object] = []
    for field_name, value in mutation.fields.items():
        column = _MUTABLE_FIELDS.get(field_name)
        if column is None:
            raise ValueError(f"Unsupported mutation field: {field_name}")
        assignments.append(f"{column} = ?")
        params.append(int(bool(value)) if field_name == "withdrawn" else value)
    sql = f"UPDATE students SET {', '.join(assignments)}, updated_at = ? WHERE id = ?"
    return sql, tuple(params), mutation.student_id


def _row_to_record(row: Mapping[str, object]) -> StudentRecord:
    def _optional(value: object) -> str | None:
        if value is None or (isinstance(value, float) and pd.isna(value)):
            return None
        return str(value)

    return StudentRecord(
        student_id=str(row["id"]),
        name=str(row["name"]),
        current_class=str(row["class"]),
        academic_year=int(row["academic_year"]),  # type: ignore[arg-type]
        withdrawn=bool(row["withdrawn"]),
        student_number=_optional(row.get("student_number")),
        fee_status=_optional(row.get("fee_status")),
    )


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _to_iso(dt: datetime) -> str:
    """تبدیل datetime به رشتهٔ ISO8601 با پسوند Z."""

    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc)
    return dt.strftime(_ISO_FORMAT)


__all__ = [
    "LocalStudentStore",
    "RunRecord",
    "StudentMutation",
    "StudentStore",
]
