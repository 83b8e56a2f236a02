"""
Bearer JWT 认证。

前端登录后持有的 access token（Supabase 兼容：sub = 用户 id，email，role），
以 HS256 和 auth.jwt_secret 校验；audience 配置为空时不校验。
"""
from typing import Dict, Optional

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from core.config import cfg
from core.events import log_event, E
from core.log import get_logger

logger = get_logger(__name__)

ALGORITHM = str(cfg.get("auth.jwt_algorithm", "HS256") or "HS256")

bearer_scheme = HTTPBearer(auto_error=False)


def _jwt_secret() -> str:
    return str(cfg.get("auth.jwt_secret", "") or "")


def decode_token(token: str, secret: Optional[str] = None, audience: Optional[str] = None) -> Dict[str, str]:
    secret = secret if secret is not None else _jwt_secret()
    if not secret:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Authentication not configured")
    audience = audience if audience is not None else str(cfg.get("auth.jwt_audience", "") or "")
    options = {"verify_aud": bool(audience)}
    try:
        payload = jwt.decode(
            token,
            secret,
            algorithms=[ALGORITHM],
            audience=audience or None,
            options=options,
        )
    except jwt.PyJWTError as e:
        log_event(logger, E.AUTH_TOKEN_VERIFY, level="warning", ok=False, error=e)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized") from e

    user_id = str(payload.get("sub") or "").strip()
    if not user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    return {
        "id": user_id,
        "email": str(payload.get("email") or ""),
        "role": str(payload.get("role") or "authenticated"),
    }


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Dict[str, str]:
    if credentials is None or not credentials.credentials:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="No authorization header")
    return decode_token(credentials.credentials)
