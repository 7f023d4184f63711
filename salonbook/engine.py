"""
Process-level wiring for the scheduling engine.

The surrounding request layer builds one ``SchedulingEngine`` at startup,
opens a session per request, and calls ``close()`` at shutdown:

    engine = SchedulingEngine.from_config()
    with engine.session() as db:
        engine.appointments(db).create_appointment(org_id, data, actor_id)
    engine.close()
"""

import logging
from contextlib import contextmanager
from typing import Iterator, Optional

import redis
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from . import config, models  # noqa: F401  (registers tables on Base)
from .cache import Cache, CacheCoordinator
from .database import Base, build_engine, build_session_factory
from .domain.appointments.service import AppointmentService
from .domain.members.service import MemberService
from .domain.shifts.service import ShiftService
from .redis_client import create_redis_client

logger = logging.getLogger(__name__)


def configure_logging(level: Optional[str] = None) -> None:
    logging.basicConfig(
        level=level or config.LOG_LEVEL,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    # Reduce verbosity of third-party libraries
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


class SchedulingEngine:
    """Owns the database engine and the cache handle for the process lifetime"""

    def __init__(self, db_engine: Engine, cache: Cache):
        self.db_engine = db_engine
        self.session_factory: sessionmaker = build_session_factory(db_engine)
        self.cache = cache
        self.coordinator = CacheCoordinator(cache)

    @classmethod
    def from_config(cls, create_tables: bool = True) -> "SchedulingEngine":
        logger.info("Scheduling engine starting up...")
        db_engine = build_engine()

        if create_tables:
            Base.metadata.create_all(bind=db_engine, checkfirst=True)
            logger.info("Database tables created successfully")

        redis_client = None
        if config.CACHE_ENABLED:
            try:
                redis_client = create_redis_client()
            except redis.RedisError as e:
                # The cache only buys latency; run without it
                logger.warning(f"Redis connection failed - caching disabled: {e}")
        else:
            logger.info("Caching disabled by configuration")

        return cls(db_engine, Cache(redis_client))

    @contextmanager
    def session(self) -> Iterator[Session]:
        db = self.session_factory()
        try:
            yield db
        finally:
            db.close()

    def appointments(self, db: Session) -> AppointmentService:
        return AppointmentService(db, self.coordinator)

    def shifts(self, db: Session) -> ShiftService:
        return ShiftService(db, self.coordinator)

    def members(self, db: Session) -> MemberService:
        return MemberService(db, self.coordinator)

    def health_check(self) -> dict:
        return {"cache": self.cache.health_check()}

    def close(self) -> None:
        logger.info("Scheduling engine shutting down...")
        self.cache.close()
        self.db_engine.dispose()
