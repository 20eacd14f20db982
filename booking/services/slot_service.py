import re
from datetime import date, datetime, time
from zoneinfo import ZoneInfo

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from booking.core.config import settings
from booking.core.errors import ValidationError
from booking.models.appointment import Appointment
from booking.models.enums import ACTIVE_STATUSES

_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_TIME_RE = re.compile(r"^([01]?[0-9]|2[0-3]):[0-5][0-9]$")


def parse_appointment_date(value: str) -> date:
    """Parse YYYY-MM-DD."""
    if not value or not _DATE_RE.match(value):
        raise ValidationError("Invalid date format. Use YYYY-MM-DD")
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise ValidationError("Invalid date format. Use YYYY-MM-DD") from None


def parse_appointment_time(value: str) -> time:
    """Parse H:MM / HH:MM to minute precision."""
    if not value or not _TIME_RE.match(value):
        raise ValidationError("Invalid time format. Use HH:MM")
    hours, minutes = value.split(":")
    return time(int(hours), int(minutes))


def format_appointment_time(t: time) -> str:
    return t.strftime("%H:%M")


def booking_now() -> datetime:
    """Current time in the booking timezone."""
    return datetime.now(ZoneInfo(settings.booking_timezone))


def ensure_future(d: date, t: time, now: datetime | None = None) -> None:
    tz = ZoneInfo(settings.booking_timezone)
    slot_start = datetime.combine(d, t, tzinfo=tz)
    current = now or booking_now()
    if current.tzinfo is None:
        current = current.replace(tzinfo=tz)
    if slot_start <= current:
        raise ValidationError("Appointment date and time must be in the future")


async def count_active_in_slot(
    session: AsyncSession,
    company_id: int,
    service_id: int,
    appointment_date: date,
    appointment_time: time,
    exclude_appointment_id: int | None = None,
) -> int:
    q = select(func.count()).select_from(Appointment).where(
        Appointment.company_id == company_id,
        Appointment.service_id == service_id,
        Appointment.appointment_date == appointment_date,
        Appointment.appointment_time == appointment_time,
        Appointment.status.in_(ACTIVE_STATUSES),
    )
    if exclude_appointment_id is not None:
        q = q.where(Appointment.id != exclude_appointment_id)
    result = await session.execute(q)
    return result.scalar_one()


async def is_slot_available(
    session: AsyncSession,
    company_id: int,
    service_id: int,
    appointment_date: date,
    appointment_time: time,
    exclude_appointment_id: int | None = None,
) -> bool:
    """True when no pending/confirmed appointment holds this company/service/date/time.

    Not staff-aware: the same staff member may hold two services at the same time.
    """
    count = await count_active_in_slot(
        session,
        company_id,
        service_id,
        appointment_date,
        appointment_time,
        exclude_appointment_id=exclude_appointment_id,
    )
    return count == 0
