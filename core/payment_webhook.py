"""
Payverse 支付回调处理

流程（每一步对应 core.events 中的一个事件）：
    RECEIVED → SIGNATURE_VERIFIED → PAYMENT_SUCCESS_CONFIRMED
             → RESERVATION_DECODED → SUBSCRIPTION_APPLIED

提前结束的分支：签名不符 / 支付失败 / mallReserved 异常 / 写库失败。
Payverse 把任何非 SUCCESS 应答当作“需要重试”，因此除密钥未配置外，
所有分支对外都返回同一个 {"receiveResult": "SUCCESS"}；
区别只体现在 WebhookResult.outcome 和日志里。
"""
import enum
import json
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Optional, Union

from core.billing_service import (
    RESULT_CODE_SUCCESS,
    RENEWAL_POLICY_EXTEND,
    compute_period,
    decode_reservation,
    utcnow,
)
from core.errors import (
    AuthenticationError,
    BusinessRejection,
    ConfigurationError,
    DataIntegrityError,
    PersistenceError,
)
from core.events import log_event, E
from core.log import get_logger, trace_ctx
from core.payverse import PaymentSettings
from core.signature import build_webhook_signature, signatures_match
from core.subscription_store import SubscriptionStore

logger = get_logger(__name__)

ACK_BODY = {"receiveResult": "SUCCESS"}
CONFIG_ERROR_BODY = {"receiveResult": "FAIL", "error": "Payment system not configured"}


class Outcome(str, enum.Enum):
    ACCEPTED = "accepted"
    REJECTED_AUTH = "rejected_auth"
    REJECTED_BUSINESS = "rejected_business"
    REJECTED_DATA = "rejected_data"
    PERSISTENCE_FAILED = "persistence_failed"


@dataclass
class WebhookResult:
    outcome: Outcome
    order_id: str = ""
    user_id: str = ""
    detail: str = ""
    record: Any = None

    @property
    def applied(self) -> bool:
        return self.outcome == Outcome.ACCEPTED


class PaymentWebhookHandler:
    def __init__(
        self,
        settings: PaymentSettings,
        store: SubscriptionStore,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.settings = settings
        self.store = store
        self.clock = clock

    def _require_secret(self) -> str:
        secret = self.settings.secret_key
        if not secret:
            log_event(logger, E.PAYMENT_WEBHOOK_CONFIG_MISSING, level="error", key="payverse.secret_key")
            raise ConfigurationError("Payment system not configured")
        return secret

    def handle_raw(self, body: Union[bytes, str]) -> WebhookResult:
        """HTTP 入口：先检查密钥，再解析报文。只有 ConfigurationError 会向外抛出。"""
        self._require_secret()
        # 嵌套过深的 JSON 会触发 RecursionError，同样按坏报文处理
        try:
            payload = json.loads(body or b"")
        except (ValueError, UnicodeDecodeError, RecursionError) as e:
            log_event(logger, E.PAYMENT_WEBHOOK_REJECT, level="warning", reason="bad_body", error=e)
            return WebhookResult(Outcome.REJECTED_DATA, detail=f"body 不是合法 JSON: {e}")
        return self.handle(payload)

    def handle(self, payload: Any) -> WebhookResult:
        secret = self._require_secret()
        if not isinstance(payload, dict):
            log_event(logger, E.PAYMENT_WEBHOOK_REJECT, level="warning", reason="bad_body", type=type(payload).__name__)
            return WebhookResult(Outcome.REJECTED_DATA, detail="body 不是 JSON 对象")

        order_id = str(payload.get("orderId") or "")
        with trace_ctx(order_id or None):
            log_event(
                logger, E.PAYMENT_WEBHOOK_RECEIVE,
                order_id=order_id,
                mid=payload.get("mid"),
                amount=payload.get("amount"),
                result_code=payload.get("resultCode"),
                result_msg=payload.get("resultMsg"),
            )
            try:
                return self._process(payload, order_id, secret)
            except AuthenticationError as e:
                log_event(logger, E.PAYMENT_WEBHOOK_REJECT, level="error", reason="bad_signature", order_id=order_id)
                return WebhookResult(Outcome.REJECTED_AUTH, order_id=order_id, detail=str(e))
            except BusinessRejection as e:
                log_event(
                    logger, E.PAYMENT_WEBHOOK_REJECT, level="warning",
                    reason="payment_failed", order_id=order_id, result_code=payload.get("resultCode"), detail=e,
                )
                return WebhookResult(Outcome.REJECTED_BUSINESS, order_id=order_id, detail=str(e))
            except DataIntegrityError as e:
                log_event(
                    logger, E.PAYMENT_WEBHOOK_REJECT, level="error",
                    reason="bad_reservation", order_id=order_id, mall_reserved=payload.get("mallReserved"), detail=e,
                )
                return WebhookResult(Outcome.REJECTED_DATA, order_id=order_id, detail=str(e))

    def _process(self, payload: Dict[str, Any], order_id: str, secret: str) -> WebhookResult:
        expected = build_webhook_signature(
            payload.get("mid"),
            payload.get("orderId"),
            payload.get("amount"),
            payload.get("resultCode"),
            secret,
        )
        if not signatures_match(expected, payload.get("signature")):
            raise AuthenticationError("Invalid signature")
        log_event(logger, E.PAYMENT_WEBHOOK_VERIFY, order_id=order_id)

        result_code = payload.get("resultCode")
        if result_code != RESULT_CODE_SUCCESS:
            raise BusinessRejection(str(payload.get("resultMsg") or f"resultCode={result_code}"))
        log_event(logger, E.PAYMENT_WEBHOOK_CONFIRM, order_id=order_id)

        reservation = decode_reservation(payload.get("mallReserved"))
        log_event(
            logger, E.PAYMENT_WEBHOOK_DECODE,
            order_id=order_id, user_id=reservation.user_id, tier=reservation.tier, months=reservation.months,
        )

        try:
            record = self._apply(reservation)
        except DataIntegrityError:
            raise
        except Exception as e:
            # 用户已付款但未开通：只能靠日志告警人工补单，不能让 Payverse 重试
            logger.exception(
                "event=%s | order_id=%s | user_id=%s | plan=%s | months=%s",
                E.PAYMENT_WEBHOOK_PERSIST_FAIL, order_id, reservation.user_id, reservation.tier, reservation.months,
            )
            return WebhookResult(
                Outcome.PERSISTENCE_FAILED,
                order_id=order_id,
                user_id=reservation.user_id,
                detail=str(e),
            )

        log_event(
            logger, E.PAYMENT_WEBHOOK_APPLY,
            order_id=order_id,
            user_id=reservation.user_id,
            plan=reservation.tier,
            expires_at=record.expires_at.isoformat() if record is not None and record.expires_at else "",
        )
        return WebhookResult(Outcome.ACCEPTED, order_id=order_id, user_id=reservation.user_id, record=record)

    def _apply(self, reservation):
        now = self.clock()
        current_expires_at: Optional[datetime] = None
        if self.settings.renewal_policy == RENEWAL_POLICY_EXTEND:
            current = self.store.get(reservation.user_id)
            current_expires_at = current.expires_at if current is not None else None
        try:
            started_at, expires_at = compute_period(
                now,
                reservation.months,
                current_expires_at=current_expires_at,
                policy=self.settings.renewal_policy,
            )
        except (ValueError, OverflowError) as e:
            raise DataIntegrityError(f"订阅区间越界: months={reservation.months} ({e})") from e
        record = self.store.upsert(
            reservation.user_id,
            plan=reservation.tier,
            started_at=started_at,
            expires_at=expires_at,
            updated_at=now,
        )
        if record is None:
            raise PersistenceError("upsert 未返回记录")
        return record
