"""Tests for completion recording and the history read side."""

from decimal import Decimal

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from booking.core.errors import (
    AlreadyRecordedError,
    InvalidTransitionError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from booking.models.appointment import Appointment, AppointmentCreate
from booking.models.enums import AppointmentStatus
from booking.models.history import CompletionCreate, HistoryRecord, ProductUsage
from booking.services import history_service
from booking.services.appointment_service import (
    change_status,
    create_appointment,
    delete_appointment,
)
from booking.services.history_service import (
    get_company_history_stats,
    get_history_for_appointment,
    list_history,
    record_completion,
)
from tests.conftest import NOW


async def _confirmed(session, world, **overrides):
    values = dict(
        company_id=7,
        service_id=3,
        appointment_date="2030-01-10",
        appointment_time="09:00",
    )
    values.update(overrides)
    appointment = await create_appointment(session, world.customer, AppointmentCreate(**values), now=NOW)
    return await change_status(session, world.admin, appointment.id, AppointmentStatus.CONFIRMED)


async def _history_count(session) -> int:
    result = await session.execute(select(func.count()).select_from(HistoryRecord))
    return result.scalar_one()


async def test_completing_writes_exactly_one_history_record(session, world):
    appointment = await _confirmed(session, world, staff_id=11)
    completion = CompletionCreate(
        products_used=[ProductUsage(product_id=5, quantity=2)],
        total_cost=Decimal("40.00"),
        notes="Used the good shampoo",
    )
    completed = await change_status(
        session, world.owner, appointment.id, AppointmentStatus.COMPLETED, completion
    )
    assert completed.status is AppointmentStatus.COMPLETED
    assert await _history_count(session) == 1

    record = await get_history_for_appointment(session, world.customer, appointment.id)
    assert record.products_used == [{"product_id": 5, "quantity": 2}]
    assert record.total_cost == Decimal("40.00")
    assert record.staff_id == 11
    assert record.customer_id == 4
    assert record.notes == "Used the good shampoo"

    with pytest.raises(AlreadyRecordedError):
        await record_completion(session, world.owner, appointment.id)
    assert await _history_count(session) == 1


async def test_record_completion_marks_appointment_completed(session, world):
    appointment = await _confirmed(session, world)
    record = await record_completion(session, world.admin, appointment.id, total_cost="12.5")
    assert record.total_cost == Decimal("12.50")
    assert record.products_used == []
    assert appointment.status is AppointmentStatus.COMPLETED


async def test_pending_appointment_cannot_be_completed(session, world):
    appointment = await create_appointment(
        session,
        world.customer,
        AppointmentCreate(company_id=7, service_id=3, appointment_date="2030-01-10", appointment_time="09:00"),
        now=NOW,
    )
    with pytest.raises(InvalidTransitionError):
        await record_completion(session, world.owner, appointment.id)
    assert await _history_count(session) == 0


async def test_missing_appointment(session, world):
    with pytest.raises(NotFoundError):
        await record_completion(session, world.admin, 4242)


@pytest.mark.parametrize(
    "products,cost,error",
    [
        ([ProductUsage(product_id=6)], Decimal("1.00"), ValidationError),
        ([ProductUsage(product_id=999)], Decimal("1.00"), NotFoundError),
        ([ProductUsage(product_id=5, quantity=0)], Decimal("1.00"), ValidationError),
        ([], Decimal("-1.00"), ValidationError),
        ([], "a lot", ValidationError),
    ],
)
async def test_invalid_completion_leaves_appointment_confirmed(session, world, products, cost, error):
    appointment = await _confirmed(session, world)
    with pytest.raises(error):
        await record_completion(session, world.owner, appointment.id, products, cost)
    assert appointment.status is AppointmentStatus.CONFIRMED
    assert await _history_count(session) == 0


@pytest.mark.parametrize("who", ["customer", "staff", "other_owner"])
async def test_only_owner_or_admin_can_complete(session, world, who):
    appointment = await _confirmed(session, world, staff_id=11)
    with pytest.raises(PermissionDeniedError):
        await record_completion(session, getattr(world, who), appointment.id)


async def test_failed_history_write_does_not_complete_appointment(session, world, monkeypatch):
    """A history row that appears between the check and the write rolls the status back too."""
    appointment = await _confirmed(session, world)
    session.add(
        HistoryRecord(
            appointment_id=appointment.id,
            customer_id=appointment.customer_id,
            company_id=appointment.company_id,
            service_id=appointment.service_id,
        )
    )
    await session.commit()

    async def nothing_recorded(*args, **kwargs):
        return None

    monkeypatch.setattr(history_service, "get_history_by_appointment_id", nothing_recorded)
    with pytest.raises(AlreadyRecordedError):
        await change_status(session, world.owner, appointment.id, AppointmentStatus.COMPLETED)

    await session.rollback()
    await session.refresh(appointment)
    assert appointment.status is AppointmentStatus.CONFIRMED
    assert await _history_count(session) == 1


async def test_history_for_appointment_is_scoped(session, world):
    appointment = await _confirmed(session, world)
    with pytest.raises(NotFoundError):
        await get_history_for_appointment(session, world.customer, appointment.id)

    await record_completion(session, world.owner, appointment.id)
    with pytest.raises(PermissionDeniedError):
        await get_history_for_appointment(session, world.other_customer, appointment.id)
    with pytest.raises(PermissionDeniedError):
        await get_history_for_appointment(session, world.other_owner, appointment.id)


async def test_list_history_is_role_scoped(session, world):
    first = await _confirmed(session, world, staff_id=11)
    second = await _confirmed(session, world, company_id=8, service_id=10)
    await record_completion(session, world.admin, first.id, total_cost=Decimal("10.00"))
    await record_completion(session, world.admin, second.id, total_cost=Decimal("20.00"))

    async def appointment_ids(principal, **kwargs):
        return {r.appointment_id for r in await list_history(session, principal, **kwargs)}

    assert await appointment_ids(world.admin) == {first.id, second.id}
    assert await appointment_ids(world.owner) == {first.id}
    assert await appointment_ids(world.other_owner) == {second.id}
    assert await appointment_ids(world.staff) == {first.id}
    assert await appointment_ids(world.customer) == {first.id, second.id}
    assert await appointment_ids(world.other_customer) == set()
    assert len(await list_history(session, world.admin, limit=1)) == 1
    assert len(await list_history(session, world.admin, offset=2)) == 0


async def test_company_history_stats(session, world):
    first = await _confirmed(session, world)
    second = await _confirmed(session, world, appointment_time="10:00")
    await record_completion(session, world.owner, first.id, total_cost=Decimal("40.00"))
    await record_completion(session, world.owner, second.id, total_cost=Decimal("20.00"))

    stats = await get_company_history_stats(session, world.owner, company_id=7)
    assert stats.total_completions == 2
    assert stats.total_revenue == Decimal("60.00")
    assert stats.average_cost == Decimal("30.00")
    assert stats.unique_customers == 1

    # Owner of a single company does not need to name it
    empty = await get_company_history_stats(session, world.other_owner)
    assert empty.company_id == 8
    assert empty.total_completions == 0

    with pytest.raises(ValidationError):
        await get_company_history_stats(session, world.owner)
    with pytest.raises(PermissionDeniedError):
        await get_company_history_stats(session, world.customer, company_id=7)


async def test_deleting_appointment_removes_its_history(session, world):
    appointment = await _confirmed(session, world)
    await record_completion(session, world.owner, appointment.id)
    await delete_appointment(session, world.admin, appointment.id)
    assert await _history_count(session) == 0


async def test_status_change_to_completed_twice_is_an_invalid_transition(session, world):
    appointment = await _confirmed(session, world)
    await change_status(session, world.owner, appointment.id, AppointmentStatus.COMPLETED)
    with pytest.raises(InvalidTransitionError) as exc_info:
        await change_status(session, world.owner, appointment.id, AppointmentStatus.COMPLETED)
    assert exc_info.value.details == {"from": "completed", "to": "completed"}
    assert await _history_count(session) == 1


async def test_second_of_two_concurrent_completions_is_already_recorded(engine, session, world, monkeypatch):
    """The loser read the appointment as confirmed and saw no history before the winner committed."""
    appointment = await _confirmed(session, world)
    await session.commit()

    real_lookup = history_service.get_history_by_appointment_id
    lookups = []

    async def first_lookup_misses(s, appointment_id):
        lookups.append(appointment_id)
        if len(lookups) == 1:
            return None
        return await real_lookup(s, appointment_id)

    maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with maker() as other:
        stale = await other.get(Appointment, appointment.id)
        assert stale.status is AppointmentStatus.CONFIRMED

        await record_completion(session, world.owner, appointment.id, total_cost=Decimal("15.00"))
        await session.commit()

        monkeypatch.setattr(history_service, "get_history_by_appointment_id", first_lookup_misses)
        with pytest.raises(AlreadyRecordedError):
            await change_status(other, world.admin, appointment.id, AppointmentStatus.COMPLETED)
        await other.rollback()

    assert len(lookups) == 2
    assert await _history_count(session) == 1
