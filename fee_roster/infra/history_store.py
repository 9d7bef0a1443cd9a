"""ثبت تاریخچهٔ اجراهای تطبیق در پایگاه دادهٔ محلی.

Core از این ماژول بی‌خبر است و فقط CLI آن را پس از ثبت (موفق یا ناموفق)
صدا می‌زند. خطاهای پایگاه داده صرفاً لاگ می‌شوند تا نتیجهٔ ثبت اصلی
تحت تأثیر نوشتن تاریخچه قرار نگیرد.
"""
from __future__ import annotations

import hashlib
import json
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

import pandas as pd

from fee_roster.core.common.types import ReconciliationResult
from fee_roster.infra.errors import InfraError
from fee_roster.infra.student_store import LocalStudentStore, RunRecord

logger = logging.getLogger(__name__)

__all__ = ["RunContext", "build_run_context", "record_reconciliation_run", "runs_frame"]


@dataclass(frozen=True)
class RunContext:
    """اطلاعات پایهٔ یک اجرای ثبت برای درج در تاریخچه."""

    entrypoint: str
    started_at: datetime
    finished_at: datetime
    success: bool
    message: str
    source_path: Path | None


def _hash_file(path: Path | None, *, chunk_size: int = 8192) -> str | None:
    """هش SHA256 فایل ورودی؛ برای مسیر ناموجود None."""

    if path is None or not path.is_file():
        return None
    sha = hashlib.sha256()
    with path.open("rb") as handle:
        for chunk in iter(lambda: handle.read(chunk_size), b""):
            sha.update(chunk)
    return sha.hexdigest()


def build_run_context(
    *,
    entrypoint: str,
    started_at: datetime,
    finished_at: datetime,
    success: bool,
    message: str,
    source_path: Path | None,
) -> RunContext:
    return RunContext(
        entrypoint=entrypoint,
        started_at=started_at.astimezone(timezone.utc),
        finished_at=finished_at.astimezone(timezone.utc),
        success=success,
        message=message,
        source_path=source_path,
    )


def _build_run_record(run_uuid: str, ctx: RunContext, result: ReconciliationResult) -> RunRecord:
    summary = result.summary
    return RunRecord(
        run_uuid=run_uuid,
        started_at=ctx.started_at,
        finished_at=ctx.finished_at,
        entrypoint=ctx.entrypoint,
        target_year=result.target_year,
        fallback_policy=result.fallback_policy.value,
        source_path=str(ctx.source_path) if ctx.source_path else None,
        source_hash=_hash_file(ctx.source_path),
        status="success" if ctx.success else "failed",
        updated_count=summary.update_count if ctx.success else 0,
        withdrawn_count=summary.withdrawal_count if ctx.success else 0,
        summary_json=json.dumps(summary.to_dict(), ensure_ascii=False),
        message=ctx.message,
    )


def record_reconciliation_run(
    *,
    ctx: RunContext,
    result: ReconciliationResult,
    store: LocalStudentStore | None,
    run_uuid: str | None = None,
) -> str | None:
    """ثبت یک اجرا؛ در صورت خطا فقط لاگ می‌شود و None برمی‌گردد."""

    run_uuid = run_uuid or uuid.uuid4().hex
    if store is None:
        logger.info("History store disabled; skipping run_uuid=%s", run_uuid)
        return None
    try:
        store.initialize()
        store.insert_run(_build_run_record(run_uuid, ctx, result))
    except (InfraError, OSError):
        logger.exception("Failed to record reconciliation run (run_uuid=%s)", run_uuid)
        return None
    logger.info("Recorded reconciliation run %s", run_uuid)
    return run_uuid


def runs_frame(store: LocalStudentStore) -> pd.DataFrame:
    """تاریخچهٔ اجراها به‌صورت DataFrame برای نمایش در CLI."""

    rows = [dict(row) for row in store.fetch_runs()]
    columns = [
        "run_uuid",
        "started_at",
        "entrypoint",
        "target_year",
        "fallback_policy",
        "status",
        "updated_count",
        "withdrawn_count",
        "message",
    ]
    if not rows:
        return pd.DataFrame(columns=columns)
    return pd.DataFrame(rows)[columns]
