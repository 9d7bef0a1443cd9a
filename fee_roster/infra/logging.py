"""راه‌اندازی logging از روی پیکربندی YAML و ثبت گزارش خطای نشست."""
from __future__ import annotations

import getpass
import logging
import logging.config
import os
import traceback
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import yaml

DEFAULT_LOGGING_CONFIG = Path("config/logging.yaml")
DEFAULT_LOG_DIR = Path("logs")
APP_LOGGER_NAME = "fee_roster"


@dataclass(slots=True, frozen=True)
class LoggingContext:
    """اطلاعات نشست CLI که به هر رکورد لاگ و گزارش خطا افزوده می‌شود."""

    application: str
    version: str
    session_id: str
    user: str
    pid: int
    log_dir: Path
    error_dir: Path

    def new_error_id(self) -> str:
        return f"{self.session_id[:12]}-{uuid.uuid4().hex[:8]}"

    def write_error_report(self, *, error_id: str, message: str, traceback_text: str) -> Path:
        """نوشتن گزارش متنی خطا در ``error_dir`` و بازگرداندن مسیر آن."""

        timestamp = datetime.now(timezone.utc)
        self.error_dir.mkdir(parents=True, exist_ok=True)
        report_path = self.error_dir / f"{error_id}-{timestamp:%Y%m%dT%H%M%SZ}.log"
        lines = [
            f"application={self.application}",
            f"version={self.version}",
            f"session_id={self.session_id}",
            f"error_id={error_id}",
            f"user={self.user}",
            f"pid={self.pid}",
            f"timestamp={timestamp.isoformat().replace('+00:00', 'Z')}",
            "",
            message.strip(),
            "",
            traceback_text.strip(),
            "",
        ]
        report_path.write_text("\n".join(lines), encoding="utf-8")
        return report_path


class SessionContextFilter(logging.Filter):
    """افزودن شناسهٔ نشست و کاربر به رکوردها برای فرمت‌دهی در YAML."""

    def __init__(self, context: LoggingContext) -> None:
        super().__init__(name="")
        self._context = context

    def filter(self, record: logging.LogRecord) -> bool:
        record.session_id = getattr(record, "session_id", self._context.session_id)
        record.user = getattr(record, "user", self._context.user)
        record.application = getattr(record, "application", self._context.application)
        record.app_version = getattr(record, "app_version", self._context.version)
        record.error_id = getattr(record, "error_id", "")
        return True


def _attach_filter(target: logging.Logger, filter_obj: logging.Filter) -> None:
    if not any(isinstance(item, SessionContextFilter) for item in target.filters):
        target.addFilter(filter_obj)
    for handler in target.handlers:
        if not any(isinstance(item, SessionContextFilter) for item in handler.filters):
            handler.addFilter(filter_obj)


def _prepare_file_handlers(config: dict[str, Any], log_directory: Path | None) -> None:
    """انتقال فایل handlerها به ``log_directory`` و ساخت پوشهٔ والد آن‌ها."""

    handlers = config.get("handlers", {})
    if not isinstance(handlers, dict):
        return
    for handler_cfg in handlers.values():
        if not isinstance(handler_cfg, dict) or not handler_cfg.get("filename"):
            continue
        file_path = Path(str(handler_cfg["filename"])).expanduser()
        if log_directory is not None and not file_path.is_absolute():
            file_path = log_directory / file_path.name
        file_path = file_path.resolve()
        file_path.parent.mkdir(parents=True, exist_ok=True)
        handler_cfg["filename"] = str(file_path)


def setup_logging(
    config_path: str | Path = DEFAULT_LOGGING_CONFIG,
    log_dir: str | Path | None = None,
) -> None:
    """اعمال پیکربندی YAML با :func:`logging.config.dictConfig`.

    Raises:
        FileNotFoundError: اگر فایل پیکربندی وجود نداشته باشد.
        ValueError: اگر محتوای YAML نگاشت نباشد.
    """

    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"logging config not found: {path}")
    with path.open("r", encoding="utf-8") as handle:
        data: Any = yaml.safe_load(handle)
    if not isinstance(data, dict):
        raise ValueError("logging config must be a mapping")

    log_directory = Path(log_dir).expanduser().resolve() if log_dir else None
    _prepare_file_handlers(data, log_directory)
    logging.config.dictConfig(data)


def configure_logging(
    *,
    app_name: str,
    app_version: str,
    logger_name: str = APP_LOGGER_NAME,
    config_path: str | Path = DEFAULT_LOGGING_CONFIG,
    log_dir: str | Path | None = None,
) -> LoggingContext:
    """پیکربندی کامل logging برای یک نشست CLI.

    Args:
        app_name: نام برنامه برای درج در گزارش‌ها.
        app_version: نسخهٔ برنامه.
        logger_name: نام logger ریشهٔ بسته.
        config_path: مسیر پیکربندی YAML.
        log_dir: پوشهٔ فایل‌های لاگ؛ پیش‌فرض ``logs``.

    Returns:
        LoggingContext: کانتکست نشست برای تولید گزارش خطا.
    """

    log_directory = Path(log_dir or DEFAULT_LOG_DIR).expanduser().resolve()
    log_directory.mkdir(parents=True, exist_ok=True)
    setup_logging(config_path, log_directory)

    context = LoggingContext(
        application=app_name,
        version=app_version,
        session_id=uuid.uuid4().hex,
        user=getpass.getuser(),
        pid=os.getpid(),
        log_dir=log_directory,
        error_dir=log_directory / "errors",
    )
    filter_obj = SessionContextFilter(context)
    _attach_filter(logging.getLogger(), filter_obj)
    _attach_filter(logging.getLogger(logger_name), filter_obj)
    logging.captureWarnings(True)
    return context


def report_exception(
    logger: logging.Logger,
    context: LoggingContext,
    exc: BaseException,
) -> Path:
    """ثبت خطای پیش‌بینی‌نشده در لاگ و نوشتن گزارش آن روی دیسک.

    Returns:
        Path: مسیر فایل گزارش در ``context.error_dir``.
    """

    error_id = context.new_error_id()
    report_path = context.write_error_report(
        error_id=error_id,
        message=f"{type(exc).__name__}: {exc}",
        traceback_text="".join(traceback.format_exception(type(exc), exc, exc.__traceback__)),
    )
    logger.critical(
        "Unhandled exception (report: %s)",
        report_path,
        exc_info=(type(exc), exc, exc.__traceback__),
        extra={"error_id": error_id},
    )
    return report_path


__all__ = [
    "APP_LOGGER_NAME",
    "DEFAULT_LOGGING_CONFIG",
    "LoggingContext",
    "SessionContextFilter",
    "configure_logging",
    "report_exception",
    "setup_logging",
]
