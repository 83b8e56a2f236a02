import json
from typing import Any

from fastapi import APIRouter, FastAPI, Request
from fastapi.responses import JSONResponse, Response

from apis.payment import CORS_HEADERS, router as payment_router
from core.config import cfg, VERSION, API_BASE
from core.db import DB
from core.events import log_event, E
from core.log import get_logger, get_trace_id, set_trace_id

logger = get_logger(__name__)


class UnicodeJSONResponse(JSONResponse):
    """不转义非 ASCII 字符（越南语 / 韩语文案原样输出）"""
    def render(self, content: Any) -> bytes:
        return json.dumps(
            content,
            ensure_ascii=False,
            allow_nan=False,
            indent=None,
            separators=(",", ":"),
        ).encode("utf-8")


app = FastAPI(
    title="LUKATO Billing API",
    description="LUKATO 付费订阅与 Payverse 支付回调服务",
    version=VERSION,
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json",
    default_response_class=UnicodeJSONResponse,
)


@app.middleware("http")
async def add_custom_header(request: Request, call_next):
    set_trace_id(request.headers.get("X-Request-Id"))
    response = await call_next(request)
    response.headers["X-Request-Id"] = get_trace_id()
    for key, value in CORS_HEADERS.items():
        response.headers.setdefault(key, value)
    response.headers["X-Version"] = VERSION
    response.headers["Server"] = cfg.get("app_name", "LUKATO")
    return response


api_router = APIRouter(prefix=f"{API_BASE}")
api_router.include_router(payment_router)
app.include_router(api_router)


@app.options("/{path:path}", include_in_schema=False)
async def preflight(path: str):
    return Response(status_code=200, headers=CORS_HEADERS)


@app.on_event("startup")
async def ensure_tables():
    try:
        DB.create_tables()
    except Exception:
        logger.exception("建表失败")
    log_event(logger, E.SYSTEM_STARTUP, version=VERSION, api_base=API_BASE)


@app.get("/healthz", include_in_schema=False)
async def healthz():
    return {"status": "ok", "version": VERSION}
