"""موتور تطبیق فهرست تغییر کلاس و ابزارهای وابسته."""

from __future__ import annotations

from .engine import reconcile, summarize
from .ranking import sort_operations
from .roster_index import RosterIndex, normalize_name

__all__ = [
    "RosterIndex",
    "normalize_name",
    "reconcile",
    "sort_operations",
    "summarize",
]
