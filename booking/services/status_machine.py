from datetime import UTC, datetime

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from booking.core.errors import InvalidTransitionError
from booking.models.appointment import Appointment
from booking.models.enums import AppointmentStatus

# Every status has an explicit row; terminal statuses map to nothing
ALLOWED_STATUS_TRANSITIONS: dict[AppointmentStatus, frozenset[AppointmentStatus]] = {
    AppointmentStatus.PENDING: frozenset({AppointmentStatus.CONFIRMED, AppointmentStatus.CANCELLED}),
    AppointmentStatus.CONFIRMED: frozenset({AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED}),
    AppointmentStatus.COMPLETED: frozenset(),
    AppointmentStatus.CANCELLED: frozenset(),
}


def allowed_transitions(status: AppointmentStatus) -> frozenset[AppointmentStatus]:
    return ALLOWED_STATUS_TRANSITIONS[status]


def can_transition(from_status: AppointmentStatus, to_status: AppointmentStatus) -> bool:
    return to_status in ALLOWED_STATUS_TRANSITIONS[from_status]


def is_terminal(status: AppointmentStatus) -> bool:
    return not ALLOWED_STATUS_TRANSITIONS[status]


def ensure_transition(from_status: AppointmentStatus, to_status: AppointmentStatus) -> None:
    if not can_transition(from_status, to_status):
        raise InvalidTransitionError(
            f"Cannot change status from {from_status.wire} to {to_status.wire}",
            {"from": from_status.wire, "to": to_status.wire},
        )


async def apply_transition(
    session: AsyncSession, appointment: Appointment, requested: AppointmentStatus
) -> AppointmentStatus:
    """Write ``requested`` only if the stored status is still the one that was read.

    Returns the previous status. A concurrent writer that got there first leaves zero
    matching rows, which is reported as an invalid transition from the status it wrote.
    """
    appointment_id = appointment.id
    previous = appointment.status
    ensure_transition(previous, requested)
    result = await session.execute(
        update(Appointment)
        .where(Appointment.id == appointment_id, Appointment.status == previous)
        .values(status=requested, updated_at=datetime.now(UTC).replace(tzinfo=None))
        .execution_options(synchronize_session=False)
    )
    await session.refresh(appointment)
    if result.rowcount != 1:
        current = appointment.status
        raise InvalidTransitionError(
            f"Appointment status changed to {current.wire} by another request",
            {"from": current.wire, "to": requested.wire},
        )
    return previous
