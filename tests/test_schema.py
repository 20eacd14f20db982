"""Tests for table-level constraints and enum column types."""

import warnings
from decimal import Decimal

import pytest
from sqlalchemy import select, text
from sqlalchemy.exc import IntegrityError, SAWarning

from booking.models.appointment import Appointment, AppointmentCreate
from booking.models.enums import AppointmentStatus, Role
from booking.models.history import HistoryRecord
from booking.models.user import User
from booking.services.appointment_service import create_appointment
from tests.conftest import NOW


async def _booked(session, world) -> Appointment:
    appointment = await create_appointment(
        session,
        world.customer,
        AppointmentCreate(company_id=7, service_id=3, appointment_date="2030-01-10", appointment_time="09:00"),
        now=NOW,
    )
    await session.commit()
    return appointment


async def test_status_outside_known_codes_is_rejected(session, world):
    appointment = await _booked(session, world)
    with pytest.raises(IntegrityError):
        await session.execute(
            text("UPDATE appointments SET status = 9 WHERE id = :id"), {"id": appointment.id}
        )
    await session.rollback()


async def test_negative_history_cost_is_rejected(session, world):
    appointment = await _booked(session, world)
    session.add(
        HistoryRecord(
            appointment_id=appointment.id,
            customer_id=appointment.customer_id,
            company_id=appointment.company_id,
            service_id=appointment.service_id,
            total_cost=Decimal("-1.00"),
        )
    )
    with pytest.raises(IntegrityError):
        await session.flush()
    await session.rollback()


async def test_enum_columns_are_cacheable(session, world):
    await _booked(session, world)
    with warnings.catch_warnings():
        warnings.simplefilter("error", SAWarning)
        pending = await session.execute(
            select(Appointment).where(Appointment.status == AppointmentStatus.PENDING)
        )
        admins = await session.execute(select(User).where(User.role == Role.ADMIN))
    assert len(pending.scalars().all()) == 1
    assert [u.id for u in admins.scalars().all()] == [1]
