import logging
from collections.abc import Sequence
from decimal import Decimal, InvalidOperation

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from booking.core.config import settings
from booking.core.errors import (
    AlreadyRecordedError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from booking.models.appointment import Appointment
from booking.models.enums import AppointmentStatus
from booking.models.history import CompanyHistoryStats, HistoryRecord, ProductUsage
from booking.services.access import AccessScope, Principal, resolve_scope
from booking.services.directory import get_product
from booking.services.status_machine import apply_transition, ensure_transition

logger = logging.getLogger(__name__)

_CENTS = Decimal("0.01")


def _to_money(value: Decimal | float | int | str) -> Decimal:
    try:
        amount = Decimal(str(value)).quantize(_CENTS)
    except (InvalidOperation, ValueError):
        raise ValidationError("total_cost must be a number") from None
    if amount < 0:
        raise ValidationError("total_cost cannot be negative")
    return amount


async def get_history_by_appointment_id(
    session: AsyncSession, appointment_id: int
) -> HistoryRecord | None:
    result = await session.execute(
        select(HistoryRecord).where(HistoryRecord.appointment_id == appointment_id)
    )
    return result.scalar_one_or_none()


async def _validate_products(
    session: AsyncSession, company_id: int, products_used: Sequence[ProductUsage]
) -> list[dict]:
    usages: list[dict] = []
    for usage in products_used:
        if usage.quantity <= 0:
            raise ValidationError(
                f"Quantity for product {usage.product_id} must be positive",
                {"product_id": usage.product_id},
            )
        product = await get_product(session, usage.product_id)
        if product is None:
            raise NotFoundError("Product", usage.product_id)
        if product.company_id != company_id:
            raise ValidationError(
                f"Product with ID {usage.product_id} does not belong to the appointment's company",
                {"product_id": usage.product_id},
            )
        usages.append({"product_id": usage.product_id, "quantity": usage.quantity})
    return usages


async def complete_with_history(
    session: AsyncSession,
    scope: AccessScope,
    appointment: Appointment,
    products_used: Sequence[ProductUsage],
    total_cost: Decimal | float | int | str,
    notes: str | None,
) -> HistoryRecord:
    """Flip the appointment to COMPLETED and write its history row.

    Both changes sit in the caller's transaction and commit or roll back together.
    """
    scope.ensure(
        scope.can_read(appointment) and scope.can_change_status(appointment),
        "Only the company owner or an admin can complete an appointment",
    )
    if await get_history_by_appointment_id(session, appointment.id) is not None:
        raise AlreadyRecordedError(appointment.id)
    ensure_transition(appointment.status, AppointmentStatus.COMPLETED)
    usages = await _validate_products(session, appointment.company_id, products_used)
    cost = _to_money(total_cost)

    appointment_id = appointment.id
    record = HistoryRecord(
        appointment_id=appointment_id,
        customer_id=appointment.customer_id,
        company_id=appointment.company_id,
        staff_id=appointment.staff_id,
        service_id=appointment.service_id,
        products_used=usages,
        total_cost=cost,
        notes=notes,
    )
    try:
        await apply_transition(session, appointment, AppointmentStatus.COMPLETED)
    except InvalidTransitionError:
        # Lost to a concurrent completion rather than a cancel
        if await get_history_by_appointment_id(session, appointment_id) is not None:
            raise AlreadyRecordedError(appointment_id) from None
        raise
    session.add(record)
    try:
        await session.flush()
    except IntegrityError as e:
        logger.warning("Concurrent history write for appointment %s: %s", appointment_id, e.orig)
        raise AlreadyRecordedError(appointment_id) from e
    await session.refresh(record)
    logger.info(
        "Appointment %s completed by user %s: %d product line(s), total %s",
        appointment_id,
        scope.principal.user_id,
        len(usages),
        cost,
    )
    return record


async def record_completion(
    session: AsyncSession,
    principal: Principal,
    appointment_id: int,
    products_used: Sequence[ProductUsage] = (),
    total_cost: Decimal | float | int | str = Decimal("0.00"),
    notes: str | None = None,
) -> HistoryRecord:
    appointment = await session.get(Appointment, appointment_id)
    if appointment is None:
        raise NotFoundError("Appointment", appointment_id)
    scope = await resolve_scope(session, principal)
    return await complete_with_history(
        session, scope, appointment, products_used, total_cost, notes
    )


async def get_history_for_appointment(
    session: AsyncSession, principal: Principal, appointment_id: int
) -> HistoryRecord:
    appointment = await session.get(Appointment, appointment_id)
    if appointment is None:
        raise NotFoundError("Appointment", appointment_id)
    scope = await resolve_scope(session, principal)
    scope.ensure(scope.can_read(appointment), "You do not have permission to view this history")
    record = await get_history_by_appointment_id(session, appointment_id)
    if record is None:
        raise NotFoundError("History record for appointment", appointment_id)
    return record


async def list_history(
    session: AsyncSession,
    principal: Principal,
    limit: int | None = None,
    offset: int = 0,
) -> list[HistoryRecord]:
    """History visible to the principal, newest completion first."""
    limit = min(limit or settings.default_history_page_size, settings.max_history_page_size)
    scope = await resolve_scope(session, principal)
    q = scope.apply(select(HistoryRecord), HistoryRecord)
    q = q.order_by(HistoryRecord.completed_at.desc(), HistoryRecord.id.desc()).limit(limit).offset(max(offset, 0))
    result = await session.execute(q)
    return list(result.scalars().all())


def _resolve_company_id(scope: AccessScope, company_id: int | None) -> int:
    if company_id is None:
        if len(scope.company_ids) == 1:
            return next(iter(scope.company_ids))
        raise ValidationError("company_id is required")
    return company_id


async def get_company_history_stats(
    session: AsyncSession, principal: Principal, company_id: int | None = None
) -> CompanyHistoryStats:
    scope = await resolve_scope(session, principal)
    company_id = _resolve_company_id(scope, company_id)
    scope.ensure(scope.can_view_company(company_id), "Access denied")
    result = await session.execute(
        select(
            func.count(HistoryRecord.id),
            func.coalesce(func.sum(HistoryRecord.total_cost), 0),
            func.coalesce(func.avg(HistoryRecord.total_cost), 0),
            func.count(func.distinct(HistoryRecord.customer_id)),
        ).where(HistoryRecord.company_id == company_id)
    )
    total, revenue, average, customers = result.one()
    return CompanyHistoryStats(
        company_id=company_id,
        total_completions=int(total or 0),
        total_revenue=Decimal(str(revenue)).quantize(_CENTS),
        average_cost=Decimal(str(average)).quantize(_CENTS),
        unique_customers=int(customers or 0),
    )
