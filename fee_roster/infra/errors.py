"""مدل خطای لایهٔ Infra برای عملیات پایگاه داده."""
from __future__ import annotations

from dataclasses import dataclass


class InfraError(RuntimeError):
    """پایهٔ همهٔ خطاهای لایهٔ زیرساخت."""


@dataclass(eq=True)
class SchemaVersionMismatchError(InfraError):
    """عدم تطابق نسخهٔ Schema پایگاه داده با نسخهٔ مورد انتظار."""

    expected_version: int
    actual_version: int
    message: str

    def __str__(self) -> str:
        return f"{self.message} (expected={self.expected_version}, actual={self.actual_version})"


@dataclass(eq=True)
class DatabaseOperationError(InfraError):
    """خطای کلی عملیات SQLite با پیام خوانا."""

    message: str

    def __str__(self) -> str:
        return self.message


@dataclass(eq=True)
class StudentNotFoundError(DatabaseOperationError):
    """رکورد هدف یک تغییر دسته‌ای در پایگاه داده وجود ندارد."""

    student_id: str = ""

    def __str__(self) -> str:
        return f"{self.message} (student_id={self.student_id})"


__all__ = [
    "InfraError",
    "SchemaVersionMismatchError",
    "DatabaseOperationError",
    "StudentNotFoundError",
]
