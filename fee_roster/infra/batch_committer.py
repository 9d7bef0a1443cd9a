"""اعمال اتمیک عملیات تطبیق روی مخزن دانش‌آموزان.

فقط عملیات ``update`` و ``withdraw`` به تغییر تبدیل می‌شوند و همهٔ آن‌ها در
یک دستهٔ همه‌یا‌هیچ به مخزن سپرده می‌شوند. پیش از نوشتن، قواعد QA روی همان
عملیات اجرا می‌شود تا دسته‌ای با هدف تکراری یا شناسهٔ خالی هرگز به پایگاه
داده نرسد.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Sequence

from fee_roster.core.common.errors import CommitFailedError
from fee_roster.core.common.types import Action, Operation
from fee_roster.core.qa.invariants import (
    check_OP_01,
    check_OP_02,
    check_OP_03,
    check_OP_04,
)
from fee_roster.infra.errors import InfraError, StudentNotFoundError
from fee_roster.infra.logging_ext import log_step
from fee_roster.infra.student_store import StudentMutation, StudentStore

__all__ = ["CommitReceipt", "BatchCommitter", "build_mutations"]

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class CommitReceipt:
    """خلاصهٔ یک ثبت موفق."""

    updated: int
    withdrawn: int

    @property
    def total(self) -> int:
        return self.updated + self.withdrawn

    def to_dict(self) -> Dict[str, int]:
        return {"updated": self.updated, "withdrawn": self.withdrawn}


def build_mutations(operations: Sequence[Operation]) -> List[StudentMutation]:
    """تبدیل عملیات قابل اعمال به تغییرات مخزن به همان ترتیب ورودی."""

    mutations: List[StudentMutation] = []
    for op in operations:
        if op.action is Action.UPDATE:
            fields = {"current_class": op.after_class, "withdrawn": False}
        elif op.action is Action.WITHDRAW:
            fields = {"withdrawn": True}
        else:
            continue
        mutations.append(StudentMutation(student_id=op.student_id, fields=fields))
    return mutations


class BatchCommitter:
    """committer قابل تزریق به :class:`ImportWorkflow`.

    نمونه callable است تا مستقیماً به‌عنوان ``committer`` داده شود.
    """

    def __init__(self, store: StudentStore) -> None:
        self._store = store

    def __call__(self, operations: Sequence[Operation]) -> CommitReceipt:
        return self.commit(operations)

    def commit(self, operations: Sequence[Operation]) -> CommitReceipt:
        """نوشتن همه یا هیچ.

        Raises:
            CommitFailedError: اگر عملیات قواعد QA را نقض کنند یا مخزن دسته
                را رد کند؛ در هر دو حالت هیچ رکوردی تغییر نکرده است.
        """

        actionable = [op for op in operations if op.is_actionable]
        violations = []
        for check in (check_OP_01, check_OP_02, check_OP_03, check_OP_04):
            violations.extend(check(actionable).violations)
        if violations:
            first = violations[0]
            student_id = (first.details or {}).get("student_id")
            logger.error(
                "Refusing batch: %d QA violations (first: %s %s)",
                len(violations),
                first.rule_id,
                student_id,
            )
            raise CommitFailedError(
                func="commit",
                message=f"دستهٔ نامعتبر: {first.rule_id}",
                value=student_id,
            )

        mutations = build_mutations(actionable)
        updated = sum(1 for op in actionable if op.action is Action.UPDATE)
        withdrawn = len(actionable) - updated
        if not mutations:
            return CommitReceipt(updated=0, withdrawn=0)

        try:
            with log_step(logger, "commit-batch"):
                self._store.apply_batch(mutations)
        except StudentNotFoundError as exc:
            raise CommitFailedError(
                func="commit", message="رکورد هدف یافت نشد", value=exc.student_id
            ) from exc
        except InfraError as exc:
            raise CommitFailedError(func="commit", message=str(exc)) from exc

        receipt = CommitReceipt(updated=updated, withdrawn=withdrawn)
        logger.info("Committed %d updates and %d withdrawals", updated, withdrawn)
        return receipt
