"""日志配置模块：统一输出格式，并为每条日志附带请求 ID 与当前操作的字典编码。"""

import json
import logging
import logging.config
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime
from typing import Iterator, Optional

from .config import get_settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - [%(request_id)s] [%(dictionary_code)s] %(message)s"

_request_id_ctx: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
_dictionary_code_ctx: ContextVar[Optional[str]] = ContextVar("dictionary_code", default=None)


class _ZonedFormatter(logging.Formatter):
    """按配置时区渲染时间戳。"""

    def formatTime(self, record: logging.LogRecord, datefmt: Optional[str] = None) -> str:  # noqa: N802
        moment = datetime.fromtimestamp(record.created, get_settings().timezone_info)
        if datefmt:
            return moment.strftime(datefmt)
        return moment.isoformat(sep=" ", timespec="milliseconds")


class ColorFormatter(_ZonedFormatter):
    """终端彩色输出：警告及以上级别高亮显示。"""

    RESET = "\033[0m"
    LEVEL_COLORS = {
        logging.DEBUG: "\033[36m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[41m",
    }

    def __init__(self, fmt: str, datefmt: Optional[str] = None, use_colors: Optional[bool] = None) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt)
        self.use_colors = sys.stderr.isatty() if use_colors is None else use_colors

    def format(self, record: logging.LogRecord) -> str:
        rendered = super().format(record)
        color = self.LEVEL_COLORS.get(record.levelno) if self.use_colors else None
        return f"{color}{rendered}{self.RESET}" if color else rendered


class JsonFormatter(_ZonedFormatter):
    """每行一个 JSON 对象，便于日志平台按字典编码检索导入过程。"""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": self.formatTime(record),
            "logger": record.name,
            "level": record.levelname,
            "msg": record.getMessage(),
            "request_id": getattr(record, "request_id", None),
            "dictionary_code": getattr(record, "dictionary_code", None),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


class LogContextFilter(logging.Filter):
    """把上下文变量中的请求 ID 与字典编码写入每条 LogRecord。"""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = _request_id_ctx.get()
        record.dictionary_code = _dictionary_code_ctx.get()
        return True


def setup_logging() -> None:
    """初始化日志系统：控制台 + 按天滚动的文件输出，``LOG_JSON`` 开启结构化格式。"""
    settings = get_settings()
    settings.log_directory.mkdir(parents=True, exist_ok=True)
    use_json = bool(settings.log_json)
    handler_defaults = {"level": settings.log_level, "filters": ["context"]}
    app_handlers = {"handlers": ["console", "file"], "level": settings.log_level, "propagate": False}

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "filters": {"context": {"()": "app.packages.dictionary.core.logger.LogContextFilter"}},
            "formatters": {
                "color": {"()": "app.packages.dictionary.core.logger.ColorFormatter", "fmt": LOG_FORMAT},
                "plain": {"()": "app.packages.dictionary.core.logger._ZonedFormatter", "fmt": LOG_FORMAT},
                "json": {"()": "app.packages.dictionary.core.logger.JsonFormatter"},
            },
            "handlers": {
                "console": {
                    **handler_defaults,
                    "class": "logging.StreamHandler",
                    "formatter": "json" if use_json else "color",
                },
                "file": {
                    **handler_defaults,
                    "class": "logging.handlers.TimedRotatingFileHandler",
                    "formatter": "json" if use_json else "plain",
                    "filename": str(settings.log_file_path),
                    "when": "midnight",
                    "backupCount": 14,
                    "encoding": "utf-8",
                    "delay": True,
                },
            },
            "loggers": {
                "app": dict(app_handlers),
                "uvicorn": dict(app_handlers),
                "uvicorn.access": dict(app_handlers),
            },
            "root": {"handlers": ["console", "file"], "level": settings.log_level},
        }
    )


logger = logging.getLogger("app")


def set_request_id(request_id: Optional[str]) -> None:
    _request_id_ctx.set(request_id)


@contextmanager
def bind_dictionary_code(dictionary_code: str) -> Iterator[None]:
    """在代码块内的日志中标注正在操作的字典。"""
    token = _dictionary_code_ctx.set(dictionary_code)
    try:
        yield
    finally:
        _dictionary_code_ctx.reset(token)
