from datetime import datetime, timezone
from typing import Dict, List, Optional


DEFAULT_PLAN_TIER = "free"
PREMIUM_TIER = "premium"

# 价格单位：越南盾（VND）
PLAN_PRICES_VND: Dict[str, Dict[int, int]] = {
    PREMIUM_TIER: {
        1: 299000,
        6: 1500000,   # 约 8 折
        12: 2500000,  # 约 6 折
    },
}

PLAN_DEFINITIONS: Dict[str, Dict] = {
    "free": {
        "tier": "free",
        "label": "Free",
        "description": "Basic vocabulary drills and daily practice",
        "highlights": [
            "Daily vocabulary drills",
            "Limited reading and listening practice",
        ],
    },
    PREMIUM_TIER: {
        "tier": PREMIUM_TIER,
        "label": "Premium",
        "description": "Full access to mock TOPIK exams, games and AI tutoring",
        "highlights": [
            "Unlimited mock TOPIK exams",
            "All word games and dubbing practice",
            "AI tutor and writing correction",
        ],
    },
}


def normalize_plan_tier(tier: str) -> str:
    value = str(tier or "").strip().lower()
    return value if value in PLAN_DEFINITIONS else DEFAULT_PLAN_TIER


def get_plan_definition(tier: str) -> Dict:
    return PLAN_DEFINITIONS[normalize_plan_tier(tier)]


def get_plan_price(tier: str, months: int) -> Optional[int]:
    """返回 None 表示该套餐/时长不可购买。"""
    table = PLAN_PRICES_VND.get(str(tier or "").strip().lower())
    if not table or isinstance(months, bool):
        return None
    try:
        return table.get(int(months))
    except (TypeError, ValueError):
        return None


def get_billing_catalog() -> List[Dict]:
    data = []
    for tier, prices in PLAN_PRICES_VND.items():
        plan = get_plan_definition(tier)
        data.append(
            {
                "tier": tier,
                "label": plan["label"],
                "description": plan["description"],
                "highlights": plan["highlights"],
                "currency": "VND",
                "options": [
                    {
                        "months": months,
                        "amount": amount,
                        "monthly_amount": amount // months,
                    }
                    for months, amount in sorted(prices.items())
                ],
            }
        )
    return data


def _aware(dt: Optional[datetime]) -> Optional[datetime]:
    # SQLite 读回的时间不带时区，统一视为 UTC
    if dt is not None and dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def get_subscription_summary(record, now: Optional[datetime] = None) -> Dict:
    now = _aware(now) or datetime.now(timezone.utc)
    if record is None:
        return {
            "plan": DEFAULT_PLAN_TIER,
            "active": False,
            "started_at": None,
            "expires_at": None,
            "days_remaining": 0,
        }
    started_at = _aware(record.started_at)
    expires_at = _aware(record.expires_at)
    active = bool(expires_at and expires_at > now)
    days_remaining = 0
    if active:
        days_remaining = max(0, (expires_at - now).days)
    return {
        "plan": record.plan if active else DEFAULT_PLAN_TIER,
        "subscribed_plan": record.plan,
        "active": active,
        "started_at": started_at.isoformat() if started_at else None,
        "expires_at": expires_at.isoformat() if expires_at else None,
        "days_remaining": days_remaining,
    }
