"""رابط خط فرمان headless برای ورود دانش‌آموزان و تطبیق فهرست کلاس.

همهٔ I/O (خواندن فایل، SQLite، Excel) در این ماژول و ماژول‌های Infra انجام
می‌شود و Core فقط از طریق :class:`ImportWorkflow` صدا زده می‌شود.

مثال::

    >>> from fee_roster.infra import cli
    >>> cli.main(["--db", "roster.db", "preview", "--input", "changes.csv",
    ...           "--year", "113", "--fallback", "replace_all"])  # doctest: +SKIP
"""

from __future__ import annotations

import argparse
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Sequence

import pandas as pd

from fee_roster import __version__
from fee_roster.core.common.academic_year import current_academic_year, grade_label
from fee_roster.core.common.errors import DomainError
from fee_roster.core.common.types import FallbackPolicy, ReconciliationResult
from fee_roster.core.policy_loader import (
    DEFAULT_POLICY_PATH,
    RosterPolicy,
    default_policy,
    load_roster_policy,
)
from fee_roster.core.qa.invariants import run_all_invariants
from fee_roster.core.workflow import ImportWorkflow
from fee_roster.infra import history_store
from fee_roster.infra.batch_committer import BatchCommitter, CommitReceipt
from fee_roster.infra.errors import InfraError
from fee_roster.infra.excel_writer import operations_frame, write_preview_workbook
from fee_roster.infra.logging import (
    APP_LOGGER_NAME,
    DEFAULT_LOGGING_CONFIG,
    LoggingContext,
    configure_logging,
    report_exception,
)
from fee_roster.infra.roster_reader import read_change_rows, read_student_rows
from fee_roster.infra.student_store import LocalStudentStore

_DEFAULT_DB_PATH = Path("fee_roster.db")

logger = logging.getLogger(__name__)

Runner = Callable[[argparse.Namespace, RosterPolicy, LocalStudentStore], int]


def _resolve_policy(args: argparse.Namespace) -> RosterPolicy:
    """سیاست از مسیر صریح؛ در نبود مسیر، فایل پیش‌فرض یا مقادیر داخلی."""

    if args.policy:
        return load_roster_policy(Path(args.policy))
    if DEFAULT_POLICY_PATH.exists():
        return load_roster_policy(DEFAULT_POLICY_PATH)
    logger.debug("No roster policy file found; using built-in defaults")
    return default_policy()


def _init_logging(args: argparse.Namespace) -> LoggingContext | None:
    config_path = Path(args.log_config)
    if not config_path.exists():
        return None
    return configure_logging(
        app_name="fee-roster",
        app_version=__version__,
        logger_name=APP_LOGGER_NAME,
        config_path=config_path,
        log_dir=args.log_dir,
    )


def _print_summary(result: ReconciliationResult) -> None:
    summary = result.summary
    print(f"學年: {result.target_year}  策略: {result.fallback_policy.value}")
    print(
        f"更新 {summary.update_count} | 離校 {summary.withdrawal_count} | "
        f"忽略 {summary.ignored_count} | 名單列數 {summary.listed_rows}"
    )
    print(
        f"舊班級不符 {summary.mismatch_count} | 格式無效 {summary.invalid_class_count} | "
        f"衝突 {summary.conflict_count} | 找不到 {summary.not_found_count}"
    )


def _print_operations(result: ReconciliationResult) -> None:
    for title, operations in (("listed", result.listed), ("unlisted", result.unlisted)):
        if not operations:
            continue
        frame = operations_frame(operations)[
            ["name", "before_class", "after_class", "action", "reason_text"]
        ]
        print(f"--- {title} ({len(operations)}) ---")
        print(frame.to_string(index=False))


def _build_workflow(
    policy: RosterPolicy, store: LocalStudentStore, committer: BatchCommitter
) -> ImportWorkflow:
    return ImportWorkflow(
        parser=lambda source: read_change_rows(source, policy=policy),  # type: ignore[arg-type]
        population_loader=store.fetch_students,
        committer=committer,
        rules=policy.class_rules,
        default_policy=policy.default_fallback_policy,
    )


def _prepare_preview(
    args: argparse.Namespace, policy: RosterPolicy, store: LocalStudentStore
) -> ImportWorkflow | None:
    """اجرای parse و preview؛ در صورت خطای خواندن None برمی‌گرداند."""

    store.initialize()
    workflow = _build_workflow(policy, store, BatchCommitter(store))
    workflow.set_target_year(args.year)
    if args.fallback:
        workflow.set_fallback_policy(args.fallback)
    workflow.set_source(Path(args.input))
    workflow.parse()
    if workflow.parse_error:
        print(f"❌ {workflow.parse_error}", file=sys.stderr)
        return None
    result = workflow.preview()
    _print_summary(result)
    if args.verbose:
        _print_operations(result)
    if args.export:
        report = run_all_invariants(
            result.operations,
            population_ids=[record.student_id for record in store.fetch_students(args.year)],
        )
        path = write_preview_workbook(result, Path(args.export), qa_report=report)
        print(f"پیش‌نمایش ذخیره شد: {path}")
    return workflow


def _run_init_db(args: argparse.Namespace, policy: RosterPolicy, store: LocalStudentStore) -> int:
    store.initialize()
    print(f"پایگاه داده آماده است: {store.path}")
    return 0


def _run_import_students(
    args: argparse.Namespace, policy: RosterPolicy, store: LocalStudentStore
) -> int:
    store.initialize()
    records = read_student_rows(Path(args.input), policy=policy)
    if not records:
        print("❌ 檔案中沒有有效的學生資料", file=sys.stderr)
        return 2
    count = store.upsert_students(records)
    print(f"已匯入 {count} 筆學生資料")
    return 0


def _run_years(args: argparse.Namespace, policy: RosterPolicy, store: LocalStudentStore) -> int:
    store.initialize()
    frame = store.list_academic_years()
    if frame.empty:
        print("尚無學生資料")
        return 0
    current = current_academic_year()
    frame = frame.assign(grade=[grade_label(int(year), current) for year in frame["academic_year"]])
    print(frame.to_string(index=False))
    return 0


def _run_preview(args: argparse.Namespace, policy: RosterPolicy, store: LocalStudentStore) -> int:
    workflow = _prepare_preview(args, policy, store)
    return 0 if workflow is not None else 2


def _run_apply(args: argparse.Namespace, policy: RosterPolicy, store: LocalStudentStore) -> int:
    started_at = datetime.now(timezone.utc)
    workflow = _prepare_preview(args, policy, store)
    if workflow is None:
        return 2
    result = workflow.result
    if result is None or not workflow.can_commit:
        print("沒有需要套用的變更")
        return 0

    success = False
    message = ""
    try:
        workflow.commit()
        receipt = workflow.commit_receipt
        success = True
        if isinstance(receipt, CommitReceipt):
            message = f"updated={receipt.updated} withdrawn={receipt.withdrawn}"
        print(f"✅ 已套用: {message}")
    except DomainError as exc:
        message = str(exc)
        raise
    finally:
        ctx = history_store.build_run_context(
            entrypoint="apply",
            started_at=started_at,
            finished_at=datetime.now(timezone.utc),
            success=success,
            message=message,
            source_path=Path(args.input),
        )
        history_store.record_reconciliation_run(ctx=ctx, result=result, store=store)
    return 0


def _run_history(args: argparse.Namespace, policy: RosterPolicy, store: LocalStudentStore) -> int:
    store.initialize()
    frame = history_store.runs_frame(store)
    if frame.empty:
        print("尚無套用紀錄")
        return 0
    with pd.option_context("display.max_colwidth", 60):
        print(frame.to_string(index=False))
    return 0


_RUNNERS: dict[str, Runner] = {
    "init-db": _run_init_db,
    "import-students": _run_import_students,
    "years": _run_years,
    "preview": _run_preview,
    "apply": _run_apply,
    "history": _run_history,
}


def _add_reconcile_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--input", required=True, help="CSV/XLSX با ستون‌های name,oldClass,newClass")
    parser.add_argument("--year", required=True, type=int, help="سال ورودی هدف (تقویم ROC)")
    parser.add_argument(
        "--fallback",
        default=None,
        help=(
            "سیاست دانش‌آموزان فهرست‌نشده (پیش‌فرض از policy): "
            + ", ".join(item.value for item in FallbackPolicy)
            + "؛ نام‌های قدیمی replaceAll و replaceSportsOnly نیز پذیرفته می‌شوند"
        ),
    )
    parser.add_argument("--export", default=None, help="مسیر Excel پیش‌نمایش")
    parser.add_argument("--verbose", action="store_true", help="چاپ فهرست عملیات")


def _build_parser() -> argparse.ArgumentParser:
    """پارسر با زیرفرمان‌های مدیریت دانش‌آموز و تطبیق."""

    parser = argparse.ArgumentParser(prog="fee-roster", description="Class roster reconciliation CLI")
    parser.add_argument("--db", default=str(_DEFAULT_DB_PATH), help="مسیر فایل SQLite")
    parser.add_argument("--policy", default=None, help="مسیر roster_policy.json")
    parser.add_argument(
        "--log-config", default=str(DEFAULT_LOGGING_CONFIG), help="مسیر پیکربندی YAML لاگ"
    )
    parser.add_argument("--log-dir", default=None, help="پوشهٔ فایل‌های لاگ")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="ساخت Schema پایگاه داده")

    import_cmd = sub.add_parser("import-students", help="ورود دانش‌آموزان از CSV/XLSX")
    import_cmd.add_argument("--input", required=True, help="فایل با ستون‌های class,studentId,name")

    sub.add_parser("years", help="فهرست سال‌های ورودی موجود")

    preview_cmd = sub.add_parser("preview", help="پیش‌نمایش تطبیق بدون نوشتن")
    _add_reconcile_args(preview_cmd)

    apply_cmd = sub.add_parser("apply", help="پیش‌نمایش و ثبت اتمیک تغییرات")
    _add_reconcile_args(apply_cmd)

    sub.add_parser("history", help="تاریخچهٔ اجراهای ثبت")
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """نقطهٔ ورود CLI؛ خروجی ۰ به معنای موفقیت است."""

    parser = _build_parser()
    args = parser.parse_args(argv)
    context = _init_logging(args)
    store = LocalStudentStore(Path(args.db))
    try:
        policy = _resolve_policy(args)
        return _RUNNERS[args.command](args, policy, store)
    except (DomainError, InfraError, FileNotFoundError, ValueError) as exc:
        logger.error("Command %s failed: %s", args.command, exc)
        print(f"❌ {exc}", file=sys.stderr)
        return 2
    except Exception as exc:
        if context is None:
            raise
        report_path = report_exception(logging.getLogger(APP_LOGGER_NAME), context, exc)
        print(f"❌ 未預期的錯誤: {exc} (報告: {report_path})", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
