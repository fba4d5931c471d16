# backend/database.py
import logging
import threading
from contextlib import contextmanager
from typing import Dict, Hashable, Iterator, Optional

from fastapi import Request
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

logger = logging.getLogger(__name__)

Base = declarative_base()


def normalize_url(url: str) -> str:
    # SQLAlchemy requires postgresql:// (hosting providers hand out postgres://)
    if url and url.startswith("postgres://"):
        url = url.replace("postgres://", "postgresql://", 1)
    return url


def register_models() -> None:
    # Import every model module so its table is declared on Base.metadata
    import models.users  # noqa: F401
    import models.product  # noqa: F401
    import models.warehouse  # noqa: F401
    import models.inventory  # noqa: F401
    import models.stock  # noqa: F401
    import models.alert  # noqa: F401
    import models.log  # noqa: F401


class KeyedLock:
    """Process-local mutex per key, e.g. one per (product, warehouse) pair."""

    def __init__(self):
        self._guard = threading.Lock()
        # key -> [lock, number of holders and waiters]
        self._locks: Dict[Hashable, list] = {}

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        with self._guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = self._locks[key] = [threading.Lock(), 0]
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            # The last user of a key drops its lock
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[key]


# Explicit persistence handle: constructed by the app factory (or a test),
# opened at startup and closed at shutdown.
class Database:
    def __init__(self, url: str, echo: bool = False):
        self.url = normalize_url(url)
        self.echo = echo
        self.engine: Optional[Engine] = None
        self.SessionLocal: Optional[sessionmaker] = None
        self.locks = KeyedLock()

    @property
    def is_open(self) -> bool:
        return self.engine is not None

    def open(self) -> "Database":
        if self.is_open:
            return self

        kwargs = {"echo": self.echo}
        if self.url.startswith("sqlite"):
            kwargs["connect_args"] = {"check_same_thread": False}  # SQLite only
            if self.url in ("sqlite://", "sqlite:///:memory:"):
                # In-memory database lives only as long as its single connection
                kwargs["poolclass"] = StaticPool
        else:
            kwargs["pool_pre_ping"] = True

        self.engine = create_engine(self.url, **kwargs)
        self.SessionLocal = sessionmaker(
            autocommit=False, autoflush=False, expire_on_commit=False, bind=self.engine
        )
        logger.info("Database opened (%s)", self.engine.url.render_as_string(hide_password=True))
        return self

    def close(self) -> None:
        if self.engine is not None:
            self.engine.dispose()
            logger.info("Database closed")
        self.engine = None
        self.SessionLocal = None

    def create_all(self) -> None:
        register_models()
        Base.metadata.create_all(bind=self.engine)

    def drop_all(self) -> None:
        register_models()
        Base.metadata.drop_all(bind=self.engine)

    def session(self) -> Session:
        if self.SessionLocal is None:
            raise RuntimeError("Database is not open")
        return self.SessionLocal()

    def ping(self) -> bool:
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return True
        except Exception:
            logger.exception("Database health check failed")
            return False


def get_database(request: Request) -> Database:
    return request.app.state.database


def get_db(request: Request):
    db = get_database(request).session()
    try:
        yield db
    finally:
        db.close()
