import calendar
import json
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple

from core.errors import DataIntegrityError


RESULT_CODE_SUCCESS = "0000"

RENEWAL_POLICY_OVERWRITE = "overwrite"
RENEWAL_POLICY_EXTEND = "extend"
RENEWAL_POLICIES = {RENEWAL_POLICY_OVERWRITE, RENEWAL_POLICY_EXTEND}

# 单笔预约最多 100 年，避免 add_months 越过 datetime 年份上限
MAX_RESERVATION_MONTHS = 1200


@dataclass(frozen=True)
class Reservation:
    tier: str
    months: int
    user_id: str

    def to_payload(self) -> Dict[str, Any]:
        return {"tier": self.tier, "months": self.months, "userId": self.user_id}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def add_months(dt: datetime, months: int) -> datetime:
    """按自然月推进；目标月份没有该日期时取当月最后一天（1/31 + 1 月 = 2/28 或 2/29）。"""
    month_index = dt.month - 1 + int(months)
    year = dt.year + month_index // 12
    month = month_index % 12 + 1
    day = min(dt.day, calendar.monthrange(year, month)[1])
    return dt.replace(year=year, month=month, day=day)


def normalize_renewal_policy(policy: str) -> str:
    value = str(policy or "").strip().lower()
    return value if value in RENEWAL_POLICIES else RENEWAL_POLICY_OVERWRITE


def _as_utc(dt: Optional[datetime]) -> Optional[datetime]:
    if dt is not None and dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def compute_period(
    now: datetime,
    months: int,
    current_expires_at: Optional[datetime] = None,
    policy: str = RENEWAL_POLICY_OVERWRITE,
) -> Tuple[datetime, datetime]:
    """
    计算本次支付对应的订阅区间 (started_at, expires_at)。

    overwrite: 从 now 开始，覆盖旧区间（未到期部分作废）
    extend:    旧区间未到期时从旧到期时间续上
    """
    start = now
    current = _as_utc(current_expires_at)
    if normalize_renewal_policy(policy) == RENEWAL_POLICY_EXTEND and current and current > now:
        start = current
    return start, add_months(start, months)


def new_order_id(user_id: str, now: Optional[datetime] = None) -> str:
    now = now or utcnow()
    millis = int(now.timestamp() * 1000)
    return f"ORDER_{millis}_{str(user_id or '')[:8]}"


def encode_reservation(tier: str, months: int, user_id: str) -> str:
    return json.dumps(Reservation(tier=tier, months=months, user_id=user_id).to_payload(), separators=(",", ":"))


def _parse_months(value: Any) -> int:
    if isinstance(value, bool):
        raise DataIntegrityError(f"months 非法: {value!r}")
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    if isinstance(value, str) and value.strip().isdigit():
        value = int(value.strip())
    if not isinstance(value, int) or value <= 0:
        raise DataIntegrityError(f"months 非法: {value!r}")
    if value > MAX_RESERVATION_MONTHS:
        raise DataIntegrityError(f"months 超出上限 {MAX_RESERVATION_MONTHS}: {value}")
    return value


def decode_reservation(raw: Any) -> Reservation:
    """解析回调中原样带回的 mallReserved；任何缺失/格式错误都抛 DataIntegrityError。"""
    if not isinstance(raw, str) or not raw.strip():
        raise DataIntegrityError("mallReserved 缺失")
    try:
        data = json.loads(raw)
    except (ValueError, RecursionError) as e:
        raise DataIntegrityError(f"mallReserved 不是合法 JSON: {e}") from e
    if not isinstance(data, dict):
        raise DataIntegrityError("mallReserved 不是 JSON 对象")

    tier = data.get("tier")
    months = data.get("months")
    user_id = data.get("userId")
    if not tier or not months or not user_id:
        raise DataIntegrityError(f"mallReserved 缺少必需字段: {sorted(k for k in ('tier', 'months', 'userId') if not data.get(k))}")
    return Reservation(tier=str(tier).strip(), months=_parse_months(months), user_id=str(user_id).strip())
