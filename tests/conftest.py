import fnmatch
from datetime import date

import pytest
import redis
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from salonbook.cache import Cache, CacheCoordinator
from salonbook.database import Base
from salonbook.models import Member, MemberService, Service

ORG = "org_1"
OTHER_ORG = "org_2"

# A Monday
MONDAY = date(2024, 6, 3)


class FakeRedis:
    """In-memory stand-in for the subset of redis.Redis the cache uses"""

    def __init__(self):
        self.store: dict[str, str] = {}
        self.ttls: dict[str, int] = {}
        self.closed = False

    def get(self, key: str) -> str | None:
        return self.store.get(key)

    def setex(self, key: str, ttl: int, value: str) -> bool:
        self.store[key] = value
        self.ttls[key] = ttl
        return True

    def delete(self, *keys: str) -> int:
        return sum(1 for key in keys if self.store.pop(key, None) is not None)

    def scan_iter(self, match: str = "*", count: int = 10):
        return iter([key for key in list(self.store) if fnmatch.fnmatchcase(key, match)])

    def ping(self) -> bool:
        return True

    def info(self) -> dict:
        return {"keyspace_hits": 3, "keyspace_misses": 1, "used_memory_human": "1M"}

    def close(self) -> None:
        self.closed = True


class BrokenRedis:
    """Every call fails like a dropped connection"""

    def _fail(self, *args, **kwargs):
        raise redis.ConnectionError("connection refused")

    get = setex = delete = scan_iter = ping = info = _fail

    def close(self) -> None:
        pass


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    yield session
    session.close()


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def coordinator(fake_redis):
    return CacheCoordinator(Cache(fake_redis))


@pytest.fixture
def member(db):
    member = Member(
        org_id=ORG,
        username="alex",
        email="alex@example.com",
        working_hours={
            name: {"start": "09:00", "end": "17:00", "breaks": []}
            for name in ("monday", "tuesday", "wednesday", "thursday", "friday")
        },
    )
    db.add(member)
    db.commit()
    return member


@pytest.fixture
def haircut(db, member):
    service = Service(org_id=ORG, name="Haircut", duration=60, price=45.0)
    db.add(service)
    db.flush()
    db.add(MemberService(org_id=ORG, member_id=member.id, service_id=service.id))
    db.commit()
    return service


@pytest.fixture
def coloring(db):
    """A service no member is linked to"""
    service = Service(org_id=ORG, name="Coloring", duration=90, price=120.0)
    db.add(service)
    db.commit()
    return service
