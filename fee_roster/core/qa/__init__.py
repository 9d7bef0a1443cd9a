"""قوانین QA برای عملیات تولیدشده توسط موتور تطبیق."""

from .invariants import QaReport, run_all_invariants

__all__ = ["QaReport", "run_all_invariants"]
