"""
订阅存储：user_subscriptions 表，每个 user_id 一行。

写入统一走 upsert(user_id)。PostgreSQL / SQLite 使用原生
INSERT ... ON CONFLICT (user_id) DO UPDATE，由数据库保证并发重复回调只留一行；
其他方言退化为会话内先查后写。
"""
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy import select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from core.errors import PersistenceError
from core.events import log_event, E
from core.log import get_logger
from core.models.user_subscription import UserSubscription

logger = get_logger(__name__)

_NATIVE_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def serialize_subscription(item: UserSubscription) -> dict:
    if not item:
        return {}
    return {
        "user_id": item.user_id,
        "plan": item.plan,
        "started_at": item.started_at.isoformat() if item.started_at else None,
        "expires_at": item.expires_at.isoformat() if item.expires_at else None,
        "updated_at": item.updated_at.isoformat() if item.updated_at else None,
    }


class SubscriptionStore:
    """按请求打开会话；session_factory 通常是 DB.get_session。"""

    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory

    def get(self, user_id: str) -> Optional[UserSubscription]:
        user = str(user_id or "").strip()
        if not user:
            return None
        session = self._session_factory()
        try:
            return session.execute(
                select(UserSubscription).where(UserSubscription.user_id == user)
            ).scalar_one_or_none()
        except SQLAlchemyError as e:
            raise PersistenceError(f"读取订阅失败: {e}") from e
        finally:
            session.close()

    def upsert(
        self,
        user_id: str,
        plan: str,
        started_at: datetime,
        expires_at: datetime,
        updated_at: datetime,
    ) -> UserSubscription:
        user = str(user_id or "").strip()
        if not user:
            raise PersistenceError("user_id 不能为空")
        values = {
            "plan": plan,
            "started_at": started_at,
            "expires_at": expires_at,
            "updated_at": updated_at,
        }
        session = self._session_factory()
        try:
            insert = _NATIVE_INSERTS.get(session.get_bind().dialect.name)
            if insert is not None:
                stmt = insert(UserSubscription).values(user_id=user, created_at=updated_at, **values)
                stmt = stmt.on_conflict_do_update(index_elements=[UserSubscription.user_id], set_=values)
                session.execute(stmt)
            else:
                item = session.execute(
                    select(UserSubscription).where(UserSubscription.user_id == user)
                ).scalar_one_or_none()
                if item is None:
                    item = UserSubscription(user_id=user, created_at=updated_at)
                    session.add(item)
                for key, value in values.items():
                    setattr(item, key, value)
            session.commit()
            record = session.execute(
                select(UserSubscription)
                .where(UserSubscription.user_id == user)
                .execution_options(populate_existing=True)
            ).scalar_one()
        except SQLAlchemyError as e:
            session.rollback()
            raise PersistenceError(f"写入订阅失败: {e}") from e
        finally:
            session.close()
        log_event(logger, E.SUBSCRIPTION_UPSERT, user_id=user, plan=plan, expires_at=expires_at.isoformat())
        return record
