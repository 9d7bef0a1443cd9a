"""لایهٔ زیرساختی برای I/O: SQLite، فایل‌های ورودی، Excel و CLI."""

from fee_roster.infra.errors import (
    DatabaseOperationError,
    InfraError,
    SchemaVersionMismatchError,
    StudentNotFoundError,
)
from fee_roster.infra.sqlite_config import configure_connection

__all__ = [
    "DatabaseOperationError",
    "InfraError",
    "SchemaVersionMismatchError",
    "StudentNotFoundError",
    "configure_connection",
]
