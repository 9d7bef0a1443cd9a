"""ماشین حالت ورود فهرست تغییر کلاس.

حالت‌ها: ``COLLECTING_INPUT → PARSING → PREVIEWING → COMMITTING → REPORTED``.
این کنترل‌گر فقط تابع خالص :func:`reconcile` را صدا می‌زند و همهٔ I/O
(خواندن فایل، واکشی جمعیت، نوشتن دسته‌ای) از طریق callableهای تزریق‌شده
انجام می‌شود تا Core بدون وابستگی به Infra بماند.

مثال::

    >>> wf = ImportWorkflow(parser=read_rows, population_loader=load, committer=commit)  # doctest: +SKIP
    >>> wf.set_target_year(113); wf.set_source("changes.csv")  # doctest: +SKIP
    >>> wf.parse(); wf.preview(); wf.commit()  # doctest: +SKIP
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Callable, List, Sequence, Tuple

from fee_roster.core.common.class_codes import ClassCodeRules
from fee_roster.core.common.errors import (
    CommitFailedError,
    ReconciliationConfigError,
    RosterParseError,
    WorkflowStateError,
)
from fee_roster.core.common.types import (
    ChangeRow,
    FallbackPolicy,
    Operation,
    ReconciliationResult,
    StudentRecord,
    SummaryStats,
)
from fee_roster.core.reconcile.engine import reconcile

__all__ = [
    "WorkflowState",
    "ParserFn",
    "PopulationLoaderFn",
    "CommitterFn",
    "Transition",
    "ImportWorkflow",
]

ParserFn = Callable[[object], Sequence[ChangeRow]]
PopulationLoaderFn = Callable[[int], Sequence[StudentRecord]]
CommitterFn = Callable[[Sequence[Operation]], object]

_EMPTY_ROWS_MESSAGE = "無有效資料列，請確認欄位名稱需為 name,oldClass,newClass"
_COMMIT_FAILED_MESSAGE = "提交失敗，請重試"


class WorkflowState(StrEnum):
    COLLECTING_INPUT = "collecting_input"
    PARSING = "parsing"
    PREVIEWING = "previewing"
    COMMITTING = "committing"
    REPORTED = "reported"


@dataclass(frozen=True, slots=True)
class Transition:
    """یک گذار ثبت‌شده برای ردیابی."""

    source: WorkflowState
    target: WorkflowState


class ImportWorkflow:
    """کنترل‌گر صریح مراحل ورود فهرست.

    پیش‌نمایش هرگز به‌صورت افزایشی وصله نمی‌شود؛ هر تغییر سال یا سیاست
    در حالت PREVIEWING موتور را از ابتدا اجرا می‌کند. جمعیت در ورود به
    PREVIEWING یک‌بار خوانده می‌شود (snapshot) و تا تغییر سال هدف ثابت
    می‌ماند.
    """

    def __init__(
        self,
        *,
        parser: ParserFn,
        population_loader: PopulationLoaderFn,
        committer: CommitterFn,
        rules: ClassCodeRules | None = None,
        default_policy: FallbackPolicy = FallbackPolicy.REPLACE_ALL,
    ) -> None:
        self._parser = parser
        self._population_loader = population_loader
        self._committer = committer
        self._rules = rules
        self._default_policy = default_policy
        self.history: List[Transition] = []
        self._reset_state()

    # ------------------------------------------------------------------
    # وضعیت
    # ------------------------------------------------------------------
    def _reset_state(self) -> None:
        self.state = WorkflowState.COLLECTING_INPUT
        self.target_year: int | None = None
        self.fallback_policy: FallbackPolicy = self._default_policy
        self.source: object | None = None
        self.rows: Tuple[ChangeRow, ...] = ()
        self.parse_error: str | None = None
        self.commit_error: str | None = None
        self.result: ReconciliationResult | None = None
        self.summary: SummaryStats | None = None
        self.commit_receipt: object | None = None
        self._snapshot: Tuple[StudentRecord, ...] | None = None
        self._snapshot_year: int | None = None

    def _move(self, target: WorkflowState) -> None:
        self.history.append(Transition(source=self.state, target=target))
        self.state = target

    def _require(self, func: str, *allowed: WorkflowState) -> None:
        if self.state not in allowed:
            raise WorkflowStateError(
                func=func,
                message=f"عملیات در حالت {self.state.value} مجاز نیست",
                value=self.state.value,
            )

    @property
    def can_preview(self) -> bool:
        return (
            self.state in (WorkflowState.COLLECTING_INPUT, WorkflowState.PREVIEWING)
            and self.target_year is not None
            and bool(self.rows)
        )

    @property
    def can_commit(self) -> bool:
        return (
            self.state is WorkflowState.PREVIEWING
            and self.result is not None
            and self.result.has_actionable
        )

    # ------------------------------------------------------------------
    # ورودی‌ها
    # ------------------------------------------------------------------
    def set_target_year(self, year: int | None) -> None:
        """تنظیم سال هدف؛ در حالت پیش‌نمایش، موتور دوباره اجرا می‌شود."""

        self._require("set_target_year", WorkflowState.COLLECTING_INPUT, WorkflowState.PREVIEWING)
        if year is not None and (isinstance(year, bool) or not isinstance(year, int) or year <= 0):
            raise ReconciliationConfigError(
                func="set_target_year", message="سال هدف باید عدد صحیح مثبت باشد", value=year
            )
        if self.state is not WorkflowState.PREVIEWING:
            self.target_year = year
        elif year is None:
            self.target_year = None
            self._leave_preview()
        else:
            self._run_engine(year=year, refresh=year != self._snapshot_year)

    def set_fallback_policy(self, policy: FallbackPolicy | str) -> None:
        self._require(
            "set_fallback_policy", WorkflowState.COLLECTING_INPUT, WorkflowState.PREVIEWING
        )
        try:
            parsed = FallbackPolicy.parse(policy)
        except ValueError as exc:
            raise ReconciliationConfigError(
                func="set_fallback_policy", message="سیاست جایگزین نامعتبر است", value=policy
            ) from exc
        if self.state is WorkflowState.PREVIEWING:
            self._run_engine(policy=parsed, refresh=False)
        else:
            self.fallback_policy = parsed

    def set_source(self, source: object | None) -> None:
        """ثبت مرجع فایل ورودی؛ ردیف‌های قبلی کنار گذاشته می‌شوند."""

        self._require("set_source", WorkflowState.COLLECTING_INPUT, WorkflowState.PREVIEWING)
        if self.state is WorkflowState.PREVIEWING:
            self._leave_preview()
        self.source = source
        self.rows = ()
        self.parse_error = None

    # ------------------------------------------------------------------
    # مراحل
    # ------------------------------------------------------------------
    def parse(self) -> Tuple[ChangeRow, ...]:
        """خواندن ردیف‌ها با parser تزریق‌شده و بازگشت به جمع‌آوری ورودی."""

        self._require("parse", WorkflowState.COLLECTING_INPUT)
        if self.source is None or self.source == "" or self.source == b"":
            raise WorkflowStateError(func="parse", message="فایل ورودی انتخاب نشده است")
        self._move(WorkflowState.PARSING)
        self.parse_error = None
        try:
            rows = tuple(self._parser(self.source))
        except RosterParseError as exc:
            self.rows = ()
            self.parse_error = f"解析失敗: {exc.message or exc}"
            self._move(WorkflowState.COLLECTING_INPUT)
            return self.rows
        except Exception:
            self._move(WorkflowState.COLLECTING_INPUT)
            raise
        if not rows:
            self.rows = ()
            self.parse_error = _EMPTY_ROWS_MESSAGE
        else:
            self.rows = rows
        self._move(WorkflowState.COLLECTING_INPUT)
        return self.rows

    def preview(self) -> ReconciliationResult:
        """ورود (یا ورود دوباره) به پیش‌نمایش با snapshot تازه از جمعیت."""

        self._require("preview", WorkflowState.COLLECTING_INPUT, WorkflowState.PREVIEWING)
        if self.target_year is None:
            raise WorkflowStateError(func="preview", message="سال هدف تعیین نشده است")
        if not self.rows:
            raise WorkflowStateError(func="preview", message="هیچ ردیف معتبری خوانده نشده است")
        result = self._run_engine(year=self.target_year, refresh=True)
        if self.state is not WorkflowState.PREVIEWING:
            self._move(WorkflowState.PREVIEWING)
        return result

    def commit(self) -> SummaryStats:
        """ارسال عملیات update/withdraw به committer به‌صورت یک دستهٔ اتمیک.

        Raises:
            WorkflowStateError: اگر در حالت پیش‌نمایش نباشیم، commit دیگری در
                جریان باشد یا عملیات قابل اعمالی وجود نداشته باشد.
            CommitFailedError: پس از بازگشت به PREVIEWING، برای اطلاع فراخواننده.
        """

        if self.state is WorkflowState.COMMITTING:
            raise WorkflowStateError(func="commit", message="ثبت قبلی هنوز در جریان است")
        self._require("commit", WorkflowState.PREVIEWING)
        if self.result is None or not self.result.has_actionable:
            raise WorkflowStateError(func="commit", message="عملیات قابل اعمالی وجود ندارد")

        self._move(WorkflowState.COMMITTING)
        self.commit_error = None
        try:
            receipt = self._committer(self.result.actionable())
        except CommitFailedError:
            self.commit_error = _COMMIT_FAILED_MESSAGE
            self._move(WorkflowState.PREVIEWING)
            raise
        except Exception:
            self._move(WorkflowState.PREVIEWING)
            raise
        self.commit_receipt = receipt
        self.summary = self.result.summary
        self._move(WorkflowState.REPORTED)
        return self.summary

    def cancel(self) -> None:
        """رهاکردن نشست پیش از ثبت؛ هیچ اثر جانبی ندارد."""

        if self.state is WorkflowState.COMMITTING:
            raise WorkflowStateError(func="cancel", message="در حین ثبت نمی‌توان لغو کرد")
        self._reset_state()
        self.history.clear()

    reset = cancel

    # ------------------------------------------------------------------
    # داخلی
    # ------------------------------------------------------------------
    def _leave_preview(self) -> None:
        self.result = None
        self.commit_error = None
        self._move(WorkflowState.COLLECTING_INPUT)

    def _run_engine(
        self,
        *,
        year: int | None = None,
        policy: FallbackPolicy | None = None,
        refresh: bool,
    ) -> ReconciliationResult:
        """اجرای دوبارهٔ موتور؛ وضعیت فقط پس از موفقیت کامل جایگزین می‌شود.

        اگر واکشی جمعیت یا موتور شکست بخورد، پیش‌نمایش قبلی دیگر معتبر
        نیست: نتیجه پاک و به جمع‌آوری ورودی بازگشت داده می‌شود.
        """

        year = self.target_year if year is None else year
        policy = self.fallback_policy if policy is None else policy
        try:
            snapshot = self._snapshot
            if refresh or snapshot is None or self._snapshot_year != year:
                loaded = self._population_loader(year)  # type: ignore[arg-type]
                snapshot = None if loaded is None else tuple(loaded)
            result = reconcile(
                self.rows,
                snapshot,
                policy,
                target_year=year,
                rules=self._rules,
            )
        except Exception:
            if self.state is WorkflowState.PREVIEWING:
                self._leave_preview()
            raise
        self.target_year = year
        self.fallback_policy = policy
        self._snapshot = snapshot
        self._snapshot_year = year
        self.result = result
        self.commit_error = None
        return result
