"""
core/events.py — 结构化事件日志

格式：event=xxx | key=val | key=val

支付回调的每一次状态迁移都对应一个事件，运维告警依赖这些事件名：
  payment.webhook.receive → verify → confirm → decode → apply
  任一提前结束的分支记为 payment.webhook.reject（reason 区分原因），
  入库失败记为 payment.webhook.persist_fail（需人工对账）。

    log_event(logger, E.PAYMENT_WEBHOOK_REJECT, level="warning",
              reason="bad_signature", order_id="ORDER_1_abcd")
    # → event=payment.webhook.reject | reason=bad_signature | order_id=ORDER_1_abcd
"""

import logging
from typing import Any


class E:
    """结构化事件类型常量。"""

    # ── 支付创建 Payment ───────────────────────────────────────────────────────
    PAYMENT_CREATE_START = "payment.create.start"
    PAYMENT_CREATE_COMPLETE = "payment.create.complete"
    PAYMENT_CREATE_FAIL = "payment.create.fail"

    # ── 支付回调 Webhook ───────────────────────────────────────────────────────
    PAYMENT_WEBHOOK_RECEIVE = "payment.webhook.receive"
    PAYMENT_WEBHOOK_VERIFY = "payment.webhook.verify"
    PAYMENT_WEBHOOK_CONFIRM = "payment.webhook.confirm"
    PAYMENT_WEBHOOK_DECODE = "payment.webhook.decode"
    PAYMENT_WEBHOOK_APPLY = "payment.webhook.apply"
    PAYMENT_WEBHOOK_REJECT = "payment.webhook.reject"
    PAYMENT_WEBHOOK_PERSIST_FAIL = "payment.webhook.persist_fail"
    PAYMENT_WEBHOOK_CONFIG_MISSING = "payment.webhook.config_missing"

    # ── 订阅 Subscription ──────────────────────────────────────────────────────
    SUBSCRIPTION_UPSERT = "subscription.upsert"
    SUBSCRIPTION_QUERY = "subscription.query"

    # ── 认证 Auth ──────────────────────────────────────────────────────────────
    AUTH_TOKEN_VERIFY = "auth.token.verify"

    # ── 系统 System ────────────────────────────────────────────────────────────
    SYSTEM_STARTUP = "system.startup"
    SYSTEM_DB_INIT = "system.db_init"


def log_event(
    logger: logging.Logger,
    event: str,
    level: str = "info",
    **fields: Any,
) -> None:
    parts = [f"event={event}"]
    for k, v in fields.items():
        sv = v if isinstance(v, str) else str(v)
        # 截断超长字段，避免单行日志过大
        if len(sv) > 300:
            sv = sv[:297] + "..."
        parts.append(f"{k}={sv}")
    getattr(logger, level)(" | ".join(parts), stacklevel=2)
