import logging
import time

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

from . import config

logger = logging.getLogger(__name__)

Base = declarative_base()


def build_engine(database_url: str | None = None) -> Engine:
    """Create a SQLAlchemy engine with pooling for server databases"""
    url = database_url or config.DATABASE_URL

    try:
        if url.startswith("sqlite"):
            engine = create_engine(url, connect_args={"check_same_thread": False}, echo=False)
        else:
            engine = create_engine(
                url,
                pool_pre_ping=True,  # Test connections before using
                pool_recycle=config.DB_POOL_RECYCLE,
                pool_size=config.DB_POOL_SIZE,
                max_overflow=config.DB_MAX_OVERFLOW,
                pool_timeout=config.DB_POOL_TIMEOUT,
                echo=False,  # Don't log all SQL (use slow query logging instead)
            )
            logger.info(
                f"📊 Connection pool: size={config.DB_POOL_SIZE}, "
                f"max_overflow={config.DB_MAX_OVERFLOW}, timeout={config.DB_POOL_TIMEOUT}s"
            )
        logger.info("✅ Database engine created successfully")
    except Exception as e:
        logger.error(f"❌ Failed to create database engine: {e}")
        raise

    if config.DB_LOG_SLOW_QUERIES:
        _install_slow_query_logging(engine)

    return engine


def _install_slow_query_logging(engine: Engine) -> None:
    @event.listens_for(engine, "before_cursor_execute")
    def before_cursor_execute(conn, _cursor, statement, _parameters, context, _executemany):
        conn.info.setdefault("query_start_time", []).append(time.time())

    @event.listens_for(engine, "after_cursor_execute")
    def after_cursor_execute(conn, _cursor, statement, _parameters, context, _executemany):
        total = time.time() - conn.info["query_start_time"].pop(-1)
        if total > config.DB_SLOW_QUERY_THRESHOLD:
            logger.warning(f"🐌 Slow query ({total:.2f}s): {statement[:200]}...")


def build_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)
