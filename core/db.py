"""
core/db.py — 数据库会话

    from core.db import DB
    session = DB.get_session()
    try:
        ...
    finally:
        session.close()

连接串取 cfg "db"，默认本地 SQLite。测试可直接构造 Db("sqlite://")，
内存库使用 StaticPool，保证同一进程内所有会话看到同一份数据。
"""
import os
from typing import Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from core.config import cfg
from core.log import get_logger
from core.events import log_event, E
from core.models.base import Base

logger = get_logger(__name__)

DEFAULT_DB_URL = "sqlite:///data/db.db"


def _is_memory_sqlite(url: str) -> bool:
    return url in ("sqlite://", "sqlite:///:memory:")


class Db:
    def __init__(self, url: Optional[str] = None):
        self.url = str(url or cfg.get("db", DEFAULT_DB_URL) or DEFAULT_DB_URL)
        self._engine: Optional[Engine] = None
        self._session_factory = None

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            kwargs = {"pool_pre_ping": True}
            if self.url.startswith("sqlite"):
                kwargs["connect_args"] = {"check_same_thread": False}
                if _is_memory_sqlite(self.url):
                    kwargs["poolclass"] = StaticPool
                else:
                    path = self.url.split("///", 1)[-1]
                    folder = os.path.dirname(path)
                    if folder:
                        os.makedirs(folder, exist_ok=True)
            self._engine = create_engine(self.url, **kwargs)
        return self._engine

    def get_session(self) -> Session:
        if self._session_factory is None:
            self._session_factory = sessionmaker(bind=self.engine, expire_on_commit=False)
        return self._session_factory()

    def create_tables(self) -> None:
        # 注册全部模型到 Base.metadata
        import core.models  # noqa: F401

        Base.metadata.create_all(self.engine)
        log_event(logger, E.SYSTEM_DB_INIT, dialect=self.engine.dialect.name)

    def dispose(self) -> None:
        if self._engine is not None:
            self._engine.dispose()
        self._engine = None
        self._session_factory = None


DB = Db()
