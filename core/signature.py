"""
Payverse 签名

回调签名：  SHA512(mid + orderId + amount + resultCode + secretKey)
下单签名：  SHA512(mid + orderId + amount + secretKey)
结果均为小写十六进制，共 128 个字符。
"""
import hashlib
import secrets
from typing import Any


def sha512_hex(text: str) -> str:
    return hashlib.sha512(text.encode("utf-8")).hexdigest()


def _text(value: Any) -> str:
    """按 JS 模板字符串的方式把字段拼进签名串。"""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def build_webhook_signature(mid: Any, order_id: Any, amount: Any, result_code: Any, secret_key: str) -> str:
    return sha512_hex(f"{_text(mid)}{_text(order_id)}{_text(amount)}{_text(result_code)}{secret_key}")


def build_request_signature(mid: Any, order_id: Any, amount: Any, secret_key: str) -> str:
    return sha512_hex(f"{_text(mid)}{_text(order_id)}{_text(amount)}{secret_key}")


def signatures_match(expected: str, received: Any) -> bool:
    if not isinstance(received, str) or not received:
        return False
    return secrets.compare_digest(expected.encode("utf-8"), received.encode("utf-8"))
