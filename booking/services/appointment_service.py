import logging
from datetime import date, datetime

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from booking.core.errors import (
    InactiveResourceError,
    InvalidTransitionError,
    NotFoundError,
    SlotConflictError,
    ValidationError,
)
from booking.models.appointment import (
    Appointment,
    AppointmentCreate,
    AppointmentStats,
    AppointmentUpdate,
)
from booking.models.directory import Staff
from booking.models.enums import AppointmentStatus, CompanyStatus, Role, ServiceStatus
from booking.models.history import CompletionCreate, HistoryRecord
from booking.services.access import AccessScope, Principal, resolve_scope
from booking.services.directory import get_company, get_service, get_staff, get_user
from booking.services.history_service import complete_with_history
from booking.services.slot_service import (
    ensure_future,
    is_slot_available,
    parse_appointment_date,
    parse_appointment_time,
)
from booking.services.status_machine import apply_transition, ensure_transition, is_terminal

logger = logging.getLogger(__name__)


async def _load_appointment(session: AsyncSession, appointment_id: int) -> Appointment:
    appointment = await session.get(Appointment, appointment_id)
    if appointment is None:
        raise NotFoundError("Appointment", appointment_id)
    return appointment


async def _load_staff_for_company(session: AsyncSession, staff_id: int, company_id: int) -> Staff:
    staff = await get_staff(session, staff_id)
    if staff is None:
        raise NotFoundError("Staff", staff_id)
    if staff.company_id != company_id:
        raise ValidationError("Staff member does not work for the specified company")
    return staff


async def _flush_slot_write(session: AsyncSession, appointment: Appointment) -> None:
    """Flush a booking write; the active-slot index turns a lost race into a conflict."""
    # Attributes are unreadable once the flush has failed
    slot = (
        appointment.company_id,
        appointment.service_id,
        appointment.appointment_date,
        appointment.appointment_time,
    )
    session.add(appointment)
    try:
        await session.flush()
    except IntegrityError as e:
        logger.warning(
            "Active slot already taken: company=%s service=%s %s %s (%s)", *slot, e.orig
        )
        raise SlotConflictError() from e
    await session.refresh(appointment)


async def create_appointment(
    session: AsyncSession,
    principal: Principal,
    data: AppointmentCreate,
    now: datetime | None = None,
) -> Appointment:
    appointment_date = parse_appointment_date(data.appointment_date)
    appointment_time = parse_appointment_time(data.appointment_time)
    ensure_future(appointment_date, appointment_time, now)

    customer_id = data.customer_id or principal.user_id
    scope = await resolve_scope(session, principal)
    scope.ensure(
        scope.can_create_for(data.company_id, customer_id),
        "You cannot book this appointment",
    )
    if customer_id != principal.user_id and await get_user(session, customer_id) is None:
        raise NotFoundError("Customer", customer_id)

    company = await get_company(session, data.company_id)
    if company is None:
        raise NotFoundError("Company", data.company_id)
    if company.status != CompanyStatus.ACTIVE:
        raise InactiveResourceError("Cannot book appointment with inactive company")

    service = await get_service(session, data.service_id)
    if service is None:
        raise NotFoundError("Service", data.service_id)
    if service.status != ServiceStatus.ACTIVE:
        raise InactiveResourceError("Cannot book inactive service")
    if service.company_id != company.id:
        raise ValidationError("Service does not belong to the specified company")

    if data.staff_id is not None:
        await _load_staff_for_company(session, data.staff_id, company.id)

    if not await is_slot_available(
        session, company.id, service.id, appointment_date, appointment_time
    ):
        raise SlotConflictError()

    appointment = Appointment(
        customer_id=customer_id,
        company_id=company.id,
        service_id=service.id,
        staff_id=data.staff_id,
        appointment_date=appointment_date,
        appointment_time=appointment_time,
        status=AppointmentStatus.PENDING,
        notes=data.notes,
    )
    await _flush_slot_write(session, appointment)
    logger.info(
        "Appointment %s created: customer=%s company=%s service=%s at %s %s",
        appointment.id,
        customer_id,
        company.id,
        service.id,
        appointment_date,
        appointment_time,
    )
    return appointment


async def get_appointment(
    session: AsyncSession, principal: Principal, appointment_id: int
) -> Appointment:
    appointment = await _load_appointment(session, appointment_id)
    scope = await resolve_scope(session, principal)
    scope.ensure(scope.can_read(appointment), "Access denied")
    return appointment


async def list_appointments(
    session: AsyncSession,
    principal: Principal,
    status: AppointmentStatus | None = None,
    from_date: date | None = None,
) -> list[Appointment]:
    """Admin: all; owner: own companies; staff: every staff record held; customer: own."""
    scope = await resolve_scope(session, principal)
    q = scope.apply(select(Appointment))
    if status is not None:
        q = q.where(Appointment.status == status)
    if from_date is not None:
        q = q.where(Appointment.appointment_date >= from_date)
    q = q.order_by(
        Appointment.appointment_date.desc(),
        Appointment.appointment_time.desc(),
        Appointment.id.desc(),
    )
    result = await session.execute(q)
    return list(result.scalars().all())


async def update_appointment(
    session: AsyncSession,
    principal: Principal,
    appointment_id: int,
    data: AppointmentUpdate,
    now: datetime | None = None,
) -> Appointment:
    """Reschedule and/or edit notes and staff assignment. Status is not changed here."""
    appointment = await _load_appointment(session, appointment_id)
    scope = await resolve_scope(session, principal)
    scope.ensure(
        scope.can_read(appointment) and scope.can_mutate(appointment),
        "Permission denied",
    )
    if is_terminal(appointment.status):
        raise InvalidTransitionError(
            f"Cannot modify a {appointment.status.wire} appointment",
            {"status": appointment.status.wire},
        )

    new_date = (
        parse_appointment_date(data.appointment_date)
        if data.appointment_date
        else appointment.appointment_date
    )
    new_time = (
        parse_appointment_time(data.appointment_time)
        if data.appointment_time
        else appointment.appointment_time
    )
    slot_changed = (new_date, new_time) != (appointment.appointment_date, appointment.appointment_time)
    if slot_changed:
        ensure_future(new_date, new_time, now)
        if not await is_slot_available(
            session,
            appointment.company_id,
            appointment.service_id,
            new_date,
            new_time,
            exclude_appointment_id=appointment.id,
        ):
            raise SlotConflictError()

    # An explicit null unassigns; an omitted field leaves the assignment alone
    if "staff_id" in data.model_fields_set:
        if data.staff_id is not None:
            await _load_staff_for_company(session, data.staff_id, appointment.company_id)
        appointment.staff_id = data.staff_id
    if data.notes is not None:
        appointment.notes = data.notes
    appointment.appointment_date = new_date
    appointment.appointment_time = new_time
    appointment.touch()
    await _flush_slot_write(session, appointment)
    if slot_changed:
        logger.info("Appointment %s rescheduled to %s %s", appointment.id, new_date, new_time)
    return appointment


async def _set_status(
    session: AsyncSession, scope: AccessScope, appointment: Appointment, requested: AppointmentStatus
) -> Appointment:
    previous = await apply_transition(session, appointment, requested)
    logger.info(
        "Appointment %s status %s -> %s by user %s",
        appointment.id,
        previous.wire,
        requested.wire,
        scope.principal.user_id,
    )
    return appointment


async def change_status(
    session: AsyncSession,
    principal: Principal,
    appointment_id: int,
    requested: AppointmentStatus,
    completion: CompletionCreate | None = None,
) -> Appointment:
    """Owner/admin status change. Moving to COMPLETED also writes the history record."""
    appointment = await _load_appointment(session, appointment_id)
    scope = await resolve_scope(session, principal)
    scope.ensure(
        scope.can_read(appointment) and scope.can_change_status(appointment),
        "Permission denied. Only company owners can update appointment status",
    )
    ensure_transition(appointment.status, requested)
    if requested is AppointmentStatus.COMPLETED:
        completion = completion or CompletionCreate()
        await complete_with_history(
            session,
            scope,
            appointment,
            completion.products_used,
            completion.total_cost,
            completion.notes,
        )
        return appointment
    return await _set_status(session, scope, appointment, requested)


async def cancel_appointment(
    session: AsyncSession, principal: Principal, appointment_id: int
) -> Appointment:
    """Cancel with mutate rights only, so customers and assigned staff can cancel too."""
    appointment = await _load_appointment(session, appointment_id)
    scope = await resolve_scope(session, principal)
    scope.ensure(
        scope.can_read(appointment) and scope.can_mutate(appointment),
        "Permission denied",
    )
    return await _set_status(session, scope, appointment, AppointmentStatus.CANCELLED)


async def delete_appointment(
    session: AsyncSession, principal: Principal, appointment_id: int
) -> None:
    """Hard delete; the history record, if any, goes with it."""
    appointment = await _load_appointment(session, appointment_id)
    scope = await resolve_scope(session, principal)
    scope.ensure(
        scope.can_read(appointment) and scope.can_mutate(appointment),
        "Permission denied",
    )
    await session.execute(delete(HistoryRecord).where(HistoryRecord.appointment_id == appointment.id))
    await session.delete(appointment)
    await session.flush()
    logger.info("Appointment %s deleted by user %s", appointment_id, principal.user_id)


async def get_appointment_stats(
    session: AsyncSession, principal: Principal, company_id: int | None = None
) -> AppointmentStats:
    """Counts per status. Admin: everything (or one company); owner: own companies."""
    scope = await resolve_scope(session, principal)
    if company_id is not None:
        scope.ensure(scope.can_view_company(company_id), "Access denied")
    else:
        scope.ensure(scope.role in (Role.ADMIN, Role.OWNER), "Access denied")

    q = select(Appointment.status, func.count()).select_from(Appointment)
    if company_id is not None:
        q = q.where(Appointment.company_id == company_id)
    else:
        q = scope.apply(q)
    q = q.group_by(Appointment.status)
    result = await session.execute(q)

    stats = AppointmentStats()
    for status, count in result.all():
        setattr(stats, AppointmentStatus(status).wire, count)
        stats.total += count
    return stats
