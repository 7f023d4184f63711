import os
import threading
import time as clock
from datetime import datetime, time, timedelta, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from salonbook import models
from salonbook.cache import Cache, CacheCoordinator
from salonbook.database import Base
from salonbook.domain.appointments.schemas import AppointmentCreate, AppointmentUpdate
from salonbook.domain.appointments.service import AppointmentService
from salonbook.domain.members.service import MemberService
from salonbook.domain.scheduling.filters import AppointmentFilters
from salonbook.models import Appointment, IntervalStatus, Member, Service
from salonbook.shared.errors import ConflictError, NotFoundError, ValidationError
from salonbook.shared.validators import utcnow

from .conftest import MONDAY, ORG, OTHER_ORG


def at(hour, minute=0):
    return datetime.combine(MONDAY, time(hour, minute))


@pytest.fixture
def service(db, coordinator):
    return AppointmentService(db, coordinator)


def book(service, member, haircut, start, client_id="client-1"):
    return service.create_appointment(
        ORG,
        AppointmentCreate(
            member_id=member.id, service_id=haircut.id, start_time=start, client_id=client_id
        ),
        booked_by="user-1",
    )


def test_create_appointment_uses_service_duration(service, member, haircut):
    appointment = book(service, member, haircut, at(9))

    assert appointment.start_time == at(9)
    assert appointment.end_time == at(10)
    assert appointment.duration == 60
    assert appointment.price == 45.0
    assert appointment.status == IntervalStatus.SCHEDULED


def test_overlapping_booking_is_rejected(service, member, haircut):
    book(service, member, haircut, at(9))

    with pytest.raises(ConflictError) as exc_info:
        book(service, member, haircut, at(9, 30))

    assert exc_info.value.conflicting_start == at(9)


def test_touching_booking_is_accepted(service, member, haircut):
    book(service, member, haircut, at(9))
    second = book(service, member, haircut, at(10))

    assert second.start_time == at(10)


def test_aware_start_is_stored_as_naive_utc(service, member, haircut):
    aware = datetime(2024, 6, 3, 11, 0, tzinfo=timezone(timedelta(hours=2)))

    appointment = book(service, member, haircut, aware)

    assert appointment.start_time == at(9)


def test_unknown_member_and_service(service, member, haircut):
    with pytest.raises(NotFoundError, match="Member not found"):
        service.create_appointment(
            ORG,
            AppointmentCreate(member_id=999, service_id=haircut.id, start_time=at(9)),
            booked_by="user-1",
        )
    with pytest.raises(NotFoundError, match="Service not found"):
        service.create_appointment(
            ORG,
            AppointmentCreate(member_id=member.id, service_id=999, start_time=at(9)),
            booked_by="user-1",
        )


def test_member_must_provide_the_service(service, member, coloring):
    with pytest.raises(ValidationError, match="does not provide"):
        service.create_appointment(
            ORG,
            AppointmentCreate(member_id=member.id, service_id=coloring.id, start_time=at(9)),
            booked_by="user-1",
        )


def test_other_tenant_cannot_see_records(service, member, haircut):
    appointment = book(service, member, haircut, at(9))

    with pytest.raises(NotFoundError):
        service.get_appointment(OTHER_ORG, appointment.id)
    with pytest.raises(NotFoundError):
        service.create_appointment(
            OTHER_ORG,
            AppointmentCreate(member_id=member.id, service_id=haircut.id, start_time=at(12)),
            booked_by="user-1",
        )


def test_blank_tenant_is_rejected(service):
    with pytest.raises(ValidationError):
        service.get_appointment("  ", 1)


def test_cancelled_appointment_frees_the_slot(service, member, haircut):
    first = book(service, member, haircut, at(9))

    cancelled = service.cancel_appointment(ORG, first.id, "Client sick", "user-2")
    replacement = book(service, member, haircut, at(9, 30))

    assert cancelled.status == IntervalStatus.CANCELLED
    assert cancelled.cancelled_at is not None
    assert cancelled.cancelled_by == "user-2"
    assert replacement.start_time == at(9, 30)


def test_terminal_appointments_cannot_be_rescheduled(service, member, haircut):
    appointment = book(service, member, haircut, at(9))
    service.update_appointment(ORG, appointment.id, AppointmentUpdate(status=IntervalStatus.COMPLETED))

    with pytest.raises(ValidationError):
        service.reschedule_appointment(ORG, appointment.id, at(14))

    # Notes stay editable
    updated = service.update_appointment(ORG, appointment.id, AppointmentUpdate(notes="Paid cash"))
    assert updated.notes == "Paid cash"


def test_reschedule_ignores_its_own_interval(service, member, haircut):
    appointment = book(service, member, haircut, at(9))

    moved = service.reschedule_appointment(ORG, appointment.id, at(9, 30))

    assert (moved.start_time, moved.end_time) == (at(9, 30), at(10, 30))


def test_reschedule_into_another_booking_conflicts(service, member, haircut):
    book(service, member, haircut, at(9))
    later = book(service, member, haircut, at(11))

    with pytest.raises(ConflictError):
        service.reschedule_appointment(ORG, later.id, at(9, 30))

    assert service.get_appointment(ORG, later.id).start_time == at(11)


def test_detail_cache_is_dropped_on_update(service, member, haircut, fake_redis):
    appointment = book(service, member, haircut, at(9))
    service.get_appointment(ORG, appointment.id)
    assert f"appointment:{ORG}:id:{appointment.id}" in fake_redis.store

    service.cancel_appointment(ORG, appointment.id, "No longer needed", "user-1")

    assert service.get_appointment(ORG, appointment.id).status == IntervalStatus.CANCELLED


def test_list_appointments_with_filters(service, member, haircut):
    book(service, member, haircut, at(9))
    book(service, member, haircut, at(10), client_id=None)
    book(service, member, haircut, at(9) + timedelta(days=1))

    walk_ins = service.list_appointments(ORG, AppointmentFilters(walk_in=True))
    monday = service.list_appointments(
        ORG, AppointmentFilters(start_date=MONDAY, end_date=MONDAY), limit=1
    )

    assert walk_ins.total == 1
    assert monday.total == 2
    assert monday.total_pages == 2
    assert len(monday.items) == 1
    assert monday.items[0].start_time == at(9)


def test_filters_reject_inverted_range():
    with pytest.raises(ValidationError):
        AppointmentFilters(start_date=MONDAY, end_date=MONDAY - timedelta(days=1))


def test_upcoming_appointments(service, member, haircut):
    book(service, member, haircut, at(9))
    book(service, member, haircut, at(9) + timedelta(days=10))

    upcoming = service.get_member_upcoming_appointments(ORG, member.id, days=7, now=at(8))

    assert [a.start_time for a in upcoming] == [at(9)]


def test_availability_reflects_bookings(service, member, haircut):
    book(service, member, haircut, at(10))

    slots = service.check_member_availability(ORG, member.id, haircut.id, MONDAY)
    by_start = {s.start.time(): s.available for s in slots}

    assert by_start[time(9, 0)] is True
    assert by_start[time(9, 30)] is False
    assert by_start[time(11, 0)] is True
    assert slots[-1].end == at(17)


def test_booking_drops_cached_availability(service, member, haircut, fake_redis):
    before = service.check_member_availability(ORG, member.id, haircut.id, MONDAY)
    assert any(":availability:" in key for key in fake_redis.store)

    book(service, member, haircut, at(9))
    after = service.check_member_availability(ORG, member.id, haircut.id, MONDAY)

    assert before[0].available is True
    assert after[0].available is False


def test_working_hours_change_drops_cached_availability(db, coordinator, service, member, haircut):
    service.check_member_availability(ORG, member.id, haircut.id, MONDAY)

    MemberService(db, coordinator).update_working_hours(
        ORG, member.id, {"monday": {"start": "12:00", "end": "14:00"}}, "user-1"
    )
    slots = service.check_member_availability(ORG, member.id, haircut.id, MONDAY)

    assert slots[0].start == at(12)
    assert len(slots) == 3


def test_cancelling_while_moving_skips_the_conflict_check(service, member, haircut):
    book(service, member, haircut, at(9))
    later = book(service, member, haircut, at(11))

    cancelled = service.update_appointment(
        ORG,
        later.id,
        AppointmentUpdate(start_time=at(9, 30), status=IntervalStatus.CANCELLED),
    )

    assert cancelled.status == IntervalStatus.CANCELLED
    assert (cancelled.start_time, cancelled.end_time) == (at(9, 30), at(10, 30))


@pytest.fixture
def tokyo_clock():
    """Run with a server clock well away from UTC"""
    if not hasattr(clock, "tzset"):
        pytest.skip("time.tzset is not available on this platform")
    previous = os.environ.get("TZ")
    os.environ["TZ"] = "Asia/Tokyo"
    clock.tzset()
    yield
    if previous is None:
        os.environ.pop("TZ", None)
    else:
        os.environ["TZ"] = previous
    clock.tzset()


def test_upcoming_defaults_to_utc_now(tokyo_clock, service, member, haircut):
    soon = (utcnow() + timedelta(hours=2)).replace(second=0, microsecond=0)
    book(service, member, haircut, soon)

    upcoming = service.get_member_upcoming_appointments(ORG, member.id, days=1)

    assert [a.start_time for a in upcoming] == [soon]


def test_cancelled_at_is_stored_in_utc(tokyo_clock, service, member, haircut):
    appointment = book(service, member, haircut, at(9))

    cancelled = service.cancel_appointment(ORG, appointment.id, "Client sick", "user-2")

    assert abs(cancelled.cancelled_at - utcnow()) < timedelta(minutes=1)


def test_concurrent_overlapping_bookings_commit_once(tmp_path):
    engine = create_engine(
        f"sqlite:///{os.path.join(tmp_path, 'race.db')}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    with factory() as db:
        member = Member(org_id=ORG, username="alex")
        haircut = Service(org_id=ORG, name="Haircut", duration=60, price=45.0)
        db.add_all([member, haircut])
        db.flush()
        db.add(models.MemberService(org_id=ORG, member_id=member.id, service_id=haircut.id))
        db.commit()
        member_id, service_id = member.id, haircut.id

    barrier = threading.Barrier(2)
    outcomes = []

    def attempt(start):
        with factory() as db:
            appointments = AppointmentService(db, CacheCoordinator(Cache(None)))
            data = AppointmentCreate(member_id=member_id, service_id=service_id, start_time=start)
            barrier.wait()
            try:
                appointments.create_appointment(ORG, data, booked_by="user-1")
                outcomes.append("booked")
            except ConflictError:
                outcomes.append("conflict")

    threads = [threading.Thread(target=attempt, args=(start,)) for start in (at(9), at(9, 30))]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)

    with factory() as db:
        rows = db.query(Appointment).count()
    engine.dispose()

    assert sorted(outcomes) == ["booked", "conflict"]
    assert rows == 1
