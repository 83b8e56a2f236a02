"""
core/log.py — 统一日志

• trace_id 存于 ContextVar，由过滤器注入每条 record
• 格式: 时间 [级别] [trace_id] 模块.函数:行号 - 消息
• Webhook 以 orderId 作为 trace_id，同一笔支付的所有日志可直接 grep

    from core.log import get_logger, trace_ctx
    logger = get_logger(__name__)

    with trace_ctx(order_id):
        logger.info("event=payment.webhook.receive | order_id=%s", order_id)
"""

import logging
import logging.handlers
import sys
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Generator, Optional

import colorlog

from core.config import cfg

_trace_id_var: ContextVar[str] = ContextVar("trace_id", default="-")

# orderId 形如 ORDER_1735689600000_abcd1234，保留完整长度
_TRACE_ID_MAX = 40


def _new_trace_id() -> str:
    return uuid.uuid4().hex[:8]


def _clean_trace_id(tid: Optional[str]) -> str:
    return str(tid or "").strip()[:_TRACE_ID_MAX] or _new_trace_id()


def set_trace_id(tid: Optional[str] = None) -> str:
    tid = _clean_trace_id(tid)
    _trace_id_var.set(tid)
    return tid


def get_trace_id() -> str:
    return _trace_id_var.get()


@contextmanager
def trace_ctx(trace_id: Optional[str] = None) -> Generator[str, None, None]:
    """在 with 块内使用给定 trace_id，退出时恢复上一个值。"""
    token = _trace_id_var.set(_clean_trace_id(trace_id))
    try:
        yield _trace_id_var.get()
    finally:
        _trace_id_var.reset(token)


_FMT = "%(asctime)s [%(levelname)-5s] [%(trace_id)s] %(name)s.%(funcName)s:%(lineno)d - %(message)s"
_DATE_FMT = "%Y-%m-%d %H:%M:%S"
_LOG_COLORS = {
    "DEBUG": "cyan",
    "INFO": "green",
    "WARNING": "yellow",
    "ERROR": "red",
    "CRITICAL": "red,bg_white",
}


def _resolve_level(name: str) -> int:
    level = logging.getLevelName(str(name or "INFO").upper())
    return level if isinstance(level, int) else logging.INFO


class _TraceIdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.trace_id = _trace_id_var.get()
        return True


_trace_filter = _TraceIdFilter()

# uvicorn --reload 会重复导入本模块，用标记保证 handler 只注册一次
_APP_HANDLER_MARKER = "_is_app_log_handler"


def _setup_app_logging() -> None:
    root = logging.getLogger()
    if any(getattr(h, _APP_HANDLER_MARKER, False) for h in root.handlers):
        return

    level = _resolve_level(cfg.get("log.level", "INFO"))
    root.setLevel(level)

    ch = colorlog.StreamHandler(stream=sys.stdout)
    ch.setFormatter(colorlog.ColoredFormatter("%(log_color)s" + _FMT, datefmt=_DATE_FMT, log_colors=_LOG_COLORS))
    ch.setLevel(level)
    ch.addFilter(_trace_filter)
    setattr(ch, _APP_HANDLER_MARKER, True)
    root.addHandler(ch)

    log_file = str(cfg.get("log.file", "") or "").strip()
    if log_file:
        fh = logging.handlers.RotatingFileHandler(
            f"{log_file}.log",
            maxBytes=5 * 1024 * 1024,
            backupCount=7,
            encoding="utf-8",
        )
        fh.setLevel(level)
        fh.setFormatter(logging.Formatter(_FMT, datefmt=_DATE_FMT))
        fh.addFilter(_trace_filter)
        setattr(fh, _APP_HANDLER_MARKER, True)
        root.addHandler(fh)


_setup_app_logging()


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
