"""تنظیمات اتصال SQLite برای پایگاه دانش‌آموزان و تاریخچهٔ ثبت.

ثبت دسته‌ای تغییر کلاس به کلید خارجی و ژورنال WAL تکیه دارد؛ اگر CLI در
حین خواندن پیش‌نمایش توسط فرایند دیگری قفل ببیند، تا ``busy_timeout`` صبر
می‌کند و بعد ``database is locked`` می‌دهد.
"""
from __future__ import annotations

import sqlite3
from typing import Tuple

DEFAULT_BUSY_TIMEOUT_MS = 5000

# ترتیب مهم است: journal_mode باید پیش از اولین تراکنش نوشتن تنظیم شود.
_BASE_PRAGMAS: Tuple[Tuple[str, str], ...] = (
    ("foreign_keys", "ON"),
    ("journal_mode", "WAL"),
    ("synchronous", "NORMAL"),
)
_ALLOWED_PRAGMAS = frozenset(name for name, _ in _BASE_PRAGMAS) | {"busy_timeout"}


def _set_pragma(conn: sqlite3.Connection, name: str, value: str) -> None:
    if name not in _ALLOWED_PRAGMAS:
        raise ValueError(f"Unsupported PRAGMA: {name}")
    conn.execute(f"PRAGMA {name} = {value};")


def configure_connection(
    conn: sqlite3.Connection,
    *,
    busy_timeout_ms: int = DEFAULT_BUSY_TIMEOUT_MS,
) -> sqlite3.Connection:
    """آماده‌سازی اتصال :class:`LocalStudentStore`؛ همان اتصال برگردانده می‌شود."""

    if busy_timeout_ms < 0:
        raise ValueError(f"busy_timeout_ms must be >= 0, got {busy_timeout_ms}")
    conn.row_factory = sqlite3.Row
    for name, value in _BASE_PRAGMAS:
        _set_pragma(conn, name, value)
    _set_pragma(conn, "busy_timeout", str(int(busy_timeout_ms)))
    return conn


__all__ = ["DEFAULT_BUSY_TIMEOUT_MS", "configure_connection"]
