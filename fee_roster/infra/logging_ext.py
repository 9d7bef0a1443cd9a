"""ابزارک logging مرحله‌ای برای عملیات پرهزینهٔ Infra."""

from __future__ import annotations

from contextlib import contextmanager
from logging import Logger
from time import perf_counter
from typing import Iterator

__all__ = ["log_step"]


@contextmanager
def log_step(logger: Logger, step: str) -> Iterator[None]:
    """ثبت شروع و پایان یک مرحله همراه با زمان سپری‌شده."""

    started = perf_counter()
    logger.info("step %s started", step)
    try:
        yield
    except Exception:
        logger.exception("step %s failed", step)
        raise
    logger.info("step %s finished in %.3fs", step, perf_counter() - started)
