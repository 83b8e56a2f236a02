from .base import Base, Column, String, Integer, DateTime


class UserSubscription(Base):
    """每个用户一行，user_id 唯一，所有写入都按 user_id upsert。"""

    __tablename__ = "user_subscriptions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), unique=True, index=True, nullable=False)
    plan = Column(String(32), nullable=False, default="premium")
    started_at = Column(DateTime(timezone=True), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True))
    updated_at = Column(DateTime(timezone=True))
