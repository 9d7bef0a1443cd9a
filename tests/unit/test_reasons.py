from __future__ import annotations

import pytest

from fee_roster.core.common.reasons import (
    SEVERITY_TIERS,
    LocalizedReason,
    ReasonCode,
    build_reason,
    reason_message,
    severity_rank,
)


def test_every_reason_has_message_and_rank() -> None:
    for code in ReasonCode:
        assert reason_message(code)
        assert isinstance(severity_rank(code), int)


def test_severity_tiers_cover_each_code_once() -> None:
    flattened = [code for tier in SEVERITY_TIERS for code in tier]
    assert sorted(flattened) == sorted(ReasonCode)
    assert len(flattened) == len(set(flattened))


def test_severity_order_puts_problems_first() -> None:
    ordered = [
        ReasonCode.INVALID_NEW_CLASS_FORMAT,
        ReasonCode.NAME_CLASS_CONFLICT,
        ReasonCode.OLD_MISMATCH,
        ReasonCode.NOT_FOUND,
        ReasonCode.UNLISTED_WITHDRAW,
        ReasonCode.NO_CHANGE,
        ReasonCode.CLASS_UPDATED,
    ]
    ranks = [severity_rank(code) for code in ordered]
    assert ranks == sorted(ranks)
    assert len(set(ranks)) == len(ranks)


def test_build_reason_returns_localized_text() -> None:
    reason = build_reason(ReasonCode.NAME_CLASS_CONFLICT)
    assert reason == LocalizedReason(code=ReasonCode.NAME_CLASS_CONFLICT, message_zh="同名同班衝突")
    assert reason_message(ReasonCode.NO_CHANGE) == "班級未變更"


def test_unknown_code_raises_value_error() -> None:
    with pytest.raises(ValueError):
        reason_message("NOPE")  # type: ignore[arg-type]
    with pytest.raises(ValueError):
        severity_rank("NOPE")  # type: ignore[arg-type]


def test_old_mismatch_text_names_current_class() -> None:
    assert reason_message(ReasonCode.OLD_MISMATCH, current_class="502") == "舊班級不符(現有: 502)"
    assert reason_message(ReasonCode.OLD_MISMATCH) == "舊班級不符"
    assert reason_message(ReasonCode.NO_CHANGE, current_class="502") == "班級未變更"
