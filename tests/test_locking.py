import threading
from unittest.mock import MagicMock

import pytest

from salonbook.domain.scheduling import locking
from salonbook.domain.scheduling.locking import (
    LOCK_STRIPES,
    advisory_key,
    lock_name,
    lock_stripe,
    resource_lock,
)


def make_session(dialect: str) -> MagicMock:
    session = MagicMock()
    session.get_bind.return_value.dialect.name = dialect
    return session


def test_advisory_key_is_stable_signed_64_bit():
    name = lock_name("appointment", "org_1", 42)

    assert name == "appointment:org_1:42"
    assert advisory_key(name) == advisory_key(name)
    assert advisory_key(name) != advisory_key(lock_name("shift", "org_1", 42))
    assert -(2**63) <= advisory_key(name) < 2**63


def test_postgres_takes_transaction_advisory_lock():
    session = make_session("postgresql")

    with resource_lock(session, "org_1", 1, "appointment"):
        pass

    session.execute.assert_called_once()
    session.rollback.assert_not_called()


def test_sqlite_uses_only_the_local_lock():
    session = make_session("sqlite")

    with resource_lock(session, "org_1", 1, "appointment"):
        pass

    session.execute.assert_not_called()


def test_exception_rolls_back_and_releases():
    session = make_session("sqlite")

    with pytest.raises(RuntimeError):
        with resource_lock(session, "org_1", 2, "shift"):
            raise RuntimeError("boom")

    session.rollback.assert_called_once()
    # Released: re-entering does not block
    with resource_lock(session, "org_1", 2, "shift"):
        pass


def test_writers_for_the_same_member_are_serialized():
    session = make_session("sqlite")
    entered = threading.Event()

    def contender():
        with resource_lock(session, "org_1", 3, "appointment"):
            entered.set()

    with resource_lock(session, "org_1", 3, "appointment"):
        thread = threading.Thread(target=contender)
        thread.start()
        assert not entered.wait(timeout=0.2)

    thread.join(timeout=2)
    assert entered.is_set()


def test_lock_pool_is_bounded():
    session = make_session("sqlite")

    for member in range(1000):
        with resource_lock(session, "org_1", member, "appointment"):
            pass

    assert len(locking._local_locks) == LOCK_STRIPES
    assert {lock_stripe(lock_name("appointment", "org_1", m)) for m in range(1000)} <= set(
        range(LOCK_STRIPES)
    )


def test_different_members_do_not_block_each_other():
    session = make_session("sqlite")
    entered = threading.Event()
    held = lock_stripe(lock_name("appointment", "org_1", 4))
    other = next(
        member
        for member in range(5, 5000)
        if lock_stripe(lock_name("appointment", "org_1", member)) != held
    )

    def other_member():
        with resource_lock(session, "org_1", other, "appointment"):
            entered.set()

    with resource_lock(session, "org_1", 4, "appointment"):
        thread = threading.Thread(target=other_member)
        thread.start()
        assert entered.wait(timeout=2)

    thread.join(timeout=2)
