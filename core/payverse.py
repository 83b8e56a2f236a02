"""
Payverse 支付渠道：配置快照 + 创建支付。

创建支付时把 {tier, months, userId} 编码进 mallReserved，
Payverse 在异步回调中原样带回，由 core.payment_webhook 解析后开通订阅。
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Optional

import requests

from core.billing_service import (
    RESULT_CODE_SUCCESS,
    RENEWAL_POLICY_OVERWRITE,
    encode_reservation,
    new_order_id,
    normalize_renewal_policy,
    utcnow,
)
from core.config import Config, env_bool
from core.errors import ConfigurationError, PaymentProviderError, PaymentRequestError
from core.events import log_event, E
from core.log import get_logger
from core.plan_service import PREMIUM_TIER, get_plan_price
from core.signature import build_request_signature

logger = get_logger(__name__)

PAYVERSE_PRODUCTION_URL = "https://api.payverse.io/v1/payment/create"
PAYVERSE_SANDBOX_URL = "https://sandbox-api.payverse.io/v1/payment/create"

NOT_CONFIGURED_MESSAGE = "Payment system not configured. Please contact support."


@dataclass(frozen=True)
class PaymentSettings:
    """进程启动时读取一次，之后只读。"""

    secret_key: str = ""
    mid: str = ""
    client_key: str = ""
    production: bool = False
    site_url: str = ""
    webhook_url: str = ""
    timeout_seconds: int = 20
    renewal_policy: str = RENEWAL_POLICY_OVERWRITE

    @classmethod
    def from_config(cls, config: Config) -> "PaymentSettings":
        site_url = str(config.get("site.url", "") or "").strip().rstrip("/")
        return cls(
            secret_key=str(config.get("payverse.secret_key", "") or "").strip(),
            mid=str(config.get("payverse.mid", "") or "").strip(),
            client_key=str(config.get("payverse.client_key", "") or "").strip(),
            production=env_bool(config.get("payverse.production", False)),
            site_url=site_url,
            webhook_url=str(config.get("payverse.webhook_url", "") or "").strip(),
            timeout_seconds=max(1, int(config.get("payverse.timeout_seconds", 20) or 20)),
            renewal_policy=normalize_renewal_policy(config.get("billing.renewal_policy", RENEWAL_POLICY_OVERWRITE)),
        )

    @property
    def api_url(self) -> str:
        return PAYVERSE_PRODUCTION_URL if self.production else PAYVERSE_SANDBOX_URL

    @property
    def return_url(self) -> str:
        return f"{self.site_url}/pricing?payment=complete"


def _buyer_name(email: str) -> str:
    local = str(email or "").split("@")[0].strip()
    return local or "User"


def _read_json_best_effort(resp: requests.Response) -> Dict[str, Any]:
    try:
        data = resp.json()
    except ValueError:
        return {"_raw": resp.text[:500]}
    return data if isinstance(data, dict) else {"_raw": data}


class PaymentInitiator:
    def __init__(
        self,
        settings: PaymentSettings,
        http: Optional[requests.Session] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.settings = settings
        self.http = http or requests.Session()
        self.clock = clock

    def build_request(self, user_id: str, email: str, tier: str, months: Any) -> Dict[str, Any]:
        if isinstance(months, bool) or not isinstance(months, int):
            raise PaymentRequestError("Invalid tier or months")
        amount = get_plan_price(tier, months) if tier == PREMIUM_TIER else None
        if amount is None:
            raise PaymentRequestError("Invalid tier or months")

        s = self.settings
        if not (s.mid and s.client_key and s.secret_key):
            raise ConfigurationError(NOT_CONFIGURED_MESSAGE)

        order_id = new_order_id(user_id, self.clock())
        return {
            "mid": s.mid,
            "orderId": order_id,
            "amount": amount,
            "goodsName": f"TOPIKBOT Premium {months}개월",
            "buyerName": _buyer_name(email),
            "buyerEmail": email or "",
            "returnUrl": s.return_url,
            "webhookUrl": s.webhook_url,
            "mallReserved": encode_reservation(tier, months, user_id),
            "signature": build_request_signature(s.mid, order_id, amount, s.secret_key),
        }

    def create_payment(self, user_id: str, email: str, tier: str, months: Any) -> Dict[str, Any]:
        body = self.build_request(user_id, email, tier, months)
        order_id = body["orderId"]
        log_event(
            logger, E.PAYMENT_CREATE_START,
            order_id=order_id, amount=body["amount"], tier=tier, months=months, user_id=user_id,
        )
        try:
            resp = self.http.post(
                self.settings.api_url,
                json=body,
                headers={"Content-Type": "application/json", "X-Client-Key": self.settings.client_key},
                timeout=self.settings.timeout_seconds,
            )
        except requests.RequestException as e:
            log_event(logger, E.PAYMENT_CREATE_FAIL, level="error", order_id=order_id, error=e)
            raise PaymentProviderError("Payment creation failed") from e

        data = _read_json_best_effort(resp)
        result_code = str(data.get("resultCode") or "")
        if not resp.ok or result_code != RESULT_CODE_SUCCESS:
            log_event(
                logger, E.PAYMENT_CREATE_FAIL, level="error",
                order_id=order_id, http_status=resp.status_code, result_code=result_code, response=data,
            )
            raise PaymentProviderError(
                str(data.get("resultMsg") or "Payment creation failed"),
                result_code=result_code,
                status_code=resp.status_code,
            )

        payment_url = str(data.get("paymentUrl") or "")
        log_event(logger, E.PAYMENT_CREATE_COMPLETE, order_id=order_id, payment_url=payment_url)
        return {"success": True, "paymentUrl": payment_url, "orderId": order_id}
