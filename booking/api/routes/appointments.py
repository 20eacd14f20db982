import logging
from datetime import date

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from booking.api.deps import get_current_principal
from booking.api.schemas.appointment import StatusChangeRequest
from booking.core.db import get_session
from booking.models.appointment import (
    Appointment,
    AppointmentCreate,
    AppointmentPublic,
    AppointmentStats,
    AppointmentUpdate,
)
from booking.models.enums import AppointmentStatus
from booking.models.history import CompletionCreate
from booking.services.access import Principal
from booking.services.appointment_service import (
    cancel_appointment,
    change_status,
    create_appointment,
    delete_appointment,
    get_appointment,
    get_appointment_stats,
    list_appointments,
    update_appointment,
)
from booking.services.slot_service import format_appointment_time
from booking.services.status_machine import allowed_transitions

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/appointments", tags=["appointments"])


def _to_public(a: Appointment) -> AppointmentPublic:
    return AppointmentPublic(
        id=a.id,
        customer_id=a.customer_id,
        company_id=a.company_id,
        service_id=a.service_id,
        staff_id=a.staff_id,
        appointment_date=a.appointment_date,
        appointment_time=format_appointment_time(a.appointment_time),
        status=a.status.wire,
        allowed_transitions=sorted(s.wire for s in allowed_transitions(a.status)),
        notes=a.notes,
        created_at=a.created_at,
        updated_at=a.updated_at,
    )


@router.post("", response_model=AppointmentPublic, status_code=status.HTTP_201_CREATED)
async def book_appointment(
    body: AppointmentCreate,
    session: AsyncSession = Depends(get_session),
    principal: Principal = Depends(get_current_principal),
) -> AppointmentPublic:
    appointment = await create_appointment(session, principal, body)
    return _to_public(appointment)


@router.get("", response_model=list[AppointmentPublic])
async def list_visible_appointments(
    status_param: str | None = Query(None, alias="status"),
    from_date: date | None = Query(None, alias="from_date"),
    session: AsyncSession = Depends(get_session),
    principal: Principal = Depends(get_current_principal),
) -> list[AppointmentPublic]:
    """Role-scoped listing: what the caller sees depends on their effective role."""
    status_filter = AppointmentStatus.from_wire(status_param) if status_param else None
    appointments = await list_appointments(session, principal, status=status_filter, from_date=from_date)
    return [_to_public(a) for a in appointments]


@router.get("/stats", response_model=AppointmentStats)
async def appointment_stats(
    company_id: int | None = Query(None),
    session: AsyncSession = Depends(get_session),
    principal: Principal = Depends(get_current_principal),
) -> AppointmentStats:
    return await get_appointment_stats(session, principal, company_id=company_id)


@router.get("/{appointment_id}", response_model=AppointmentPublic)
async def read_appointment(
    appointment_id: int,
    session: AsyncSession = Depends(get_session),
    principal: Principal = Depends(get_current_principal),
) -> AppointmentPublic:
    return _to_public(await get_appointment(session, principal, appointment_id))


@router.put("/{appointment_id}", response_model=AppointmentPublic)
async def reschedule_appointment(
    appointment_id: int,
    body: AppointmentUpdate,
    session: AsyncSession = Depends(get_session),
    principal: Principal = Depends(get_current_principal),
) -> AppointmentPublic:
    return _to_public(await update_appointment(session, principal, appointment_id, body))


@router.put("/{appointment_id}/status", response_model=AppointmentPublic)
async def update_appointment_status(
    appointment_id: int,
    body: StatusChangeRequest,
    session: AsyncSession = Depends(get_session),
    principal: Principal = Depends(get_current_principal),
) -> AppointmentPublic:
    requested = AppointmentStatus.from_wire(body.status)
    completion = None
    if requested is AppointmentStatus.COMPLETED:
        completion = CompletionCreate(
            products_used=body.products_used,
            total_cost=body.total_cost,
            notes=body.completion_notes,
        )
    appointment = await change_status(session, principal, appointment_id, requested, completion)
    return _to_public(appointment)


@router.post("/{appointment_id}/cancel", response_model=AppointmentPublic)
async def cancel_my_appointment(
    appointment_id: int,
    session: AsyncSession = Depends(get_session),
    principal: Principal = Depends(get_current_principal),
) -> AppointmentPublic:
    return _to_public(await cancel_appointment(session, principal, appointment_id))


@router.delete("/{appointment_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_appointment(
    appointment_id: int,
    session: AsyncSession = Depends(get_session),
    principal: Principal = Depends(get_current_principal),
) -> None:
    await delete_appointment(session, principal, appointment_id)
