from functools import lru_cache
from typing import Dict

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, Field

from core.auth import get_current_user
from core.config import cfg
from core.db import DB
from core.errors import BillingError, ConfigurationError, PaymentProviderError, PaymentRequestError, PersistenceError
from core.events import log_event, E
from core.log import get_logger
from core.payment_webhook import ACK_BODY, CONFIG_ERROR_BODY, PaymentWebhookHandler
from core.payverse import PaymentInitiator, PaymentSettings
from core.plan_service import get_billing_catalog, get_subscription_summary
from core.subscription_store import SubscriptionStore, serialize_subscription
from .base import success_response, error_response

logger = get_logger(__name__)

router = APIRouter(prefix="/payment", tags=["支付订阅"])

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "authorization, x-client-info, apikey, content-type",
}


class CreatePaymentRequest(BaseModel):
    tier: str = Field(default="", max_length=20)
    months: int = Field(default=0)


@lru_cache(maxsize=1)
def get_payment_settings() -> PaymentSettings:
    return PaymentSettings.from_config(cfg)


def get_subscription_store() -> SubscriptionStore:
    return SubscriptionStore(DB.get_session)


def get_webhook_handler(
    settings: PaymentSettings = Depends(get_payment_settings),
    store: SubscriptionStore = Depends(get_subscription_store),
) -> PaymentWebhookHandler:
    return PaymentWebhookHandler(settings=settings, store=store)


def get_payment_initiator(settings: PaymentSettings = Depends(get_payment_settings)) -> PaymentInitiator:
    return PaymentInitiator(settings=settings)


def _json(content: Dict, status_code: int = 200) -> JSONResponse:
    return JSONResponse(content=content, status_code=status_code, headers=CORS_HEADERS)


@router.options("/{path:path}", include_in_schema=False)
async def payment_preflight(path: str):
    return Response(status_code=200, headers=CORS_HEADERS)


@router.post("/webhook", summary="Payverse 支付回调")
async def payment_webhook(request: Request, handler: PaymentWebhookHandler = Depends(get_webhook_handler)):
    body = await request.body()
    try:
        result = handler.handle_raw(body)
    except ConfigurationError:
        return _json(CONFIG_ERROR_BODY, status_code=500)
    logger.info("回调处理结束: outcome=%s order_id=%s", result.outcome.value, result.order_id)
    # 无论处理结果如何都应答 SUCCESS，避免 Payverse 重试
    return _json(ACK_BODY)


@router.post("/create", summary="创建支付")
def create_payment(
    payload: CreatePaymentRequest,
    current_user: dict = Depends(get_current_user),
    initiator: PaymentInitiator = Depends(get_payment_initiator),
):
    try:
        result = initiator.create_payment(
            user_id=current_user["id"],
            email=current_user.get("email", ""),
            tier=payload.tier,
            months=payload.months,
        )
    except (PaymentRequestError, ConfigurationError, PaymentProviderError) as e:
        log_event(logger, E.PAYMENT_CREATE_FAIL, level="warning", user_id=current_user["id"], error=e)
        return _json({"success": False, "error": str(e) or "Payment creation failed"}, status_code=400)
    except BillingError:
        logger.exception("创建支付异常")
        return _json({"success": False, "error": "Payment creation failed"}, status_code=400)
    return _json(result)


@router.get("/subscription", summary="获取当前用户订阅状态")
def get_my_subscription(
    current_user: dict = Depends(get_current_user),
    store: SubscriptionStore = Depends(get_subscription_store),
):
    try:
        record = store.get(current_user["id"])
    except PersistenceError as e:
        logger.exception("查询订阅失败")
        return _json(error_response(code=500, message=str(e)), status_code=500)
    log_event(logger, E.SUBSCRIPTION_QUERY, user_id=current_user["id"], found=record is not None)
    data = get_subscription_summary(record)
    data["record"] = serialize_subscription(record)
    return _json(success_response(data))


@router.get("/catalog", summary="获取付费套餐目录")
async def payment_catalog():
    return _json(success_response(get_billing_catalog()))
