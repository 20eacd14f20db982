from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from booking.api.deps import get_current_principal
from booking.api.schemas.history import RecordCompletionRequest
from booking.core.db import get_session
from booking.models.history import (
    CompanyHistoryStats,
    HistoryRecord,
    HistoryRecordPublic,
    ProductUsage,
)
from booking.services.access import Principal
from booking.services.history_service import (
    get_company_history_stats,
    get_history_for_appointment,
    list_history,
    record_completion,
)

router = APIRouter(prefix="/history", tags=["history"])


def _to_public(h: HistoryRecord) -> HistoryRecordPublic:
    return HistoryRecordPublic(
        id=h.id,
        appointment_id=h.appointment_id,
        customer_id=h.customer_id,
        company_id=h.company_id,
        staff_id=h.staff_id,
        service_id=h.service_id,
        products_used=[ProductUsage(**p) for p in h.products_used or []],
        total_cost=h.total_cost,
        notes=h.notes,
        completed_at=h.completed_at,
    )


@router.post("", response_model=HistoryRecordPublic, status_code=status.HTTP_201_CREATED)
async def complete_appointment(
    body: RecordCompletionRequest,
    session: AsyncSession = Depends(get_session),
    principal: Principal = Depends(get_current_principal),
) -> HistoryRecordPublic:
    """Record services rendered and products consumed; marks the appointment completed."""
    record = await record_completion(
        session,
        principal,
        body.appointment_id,
        products_used=body.products_used,
        total_cost=body.total_cost,
        notes=body.notes,
    )
    return _to_public(record)


@router.get("", response_model=list[HistoryRecordPublic])
async def list_visible_history(
    limit: int | None = Query(None, ge=1),
    offset: int = Query(0, ge=0),
    session: AsyncSession = Depends(get_session),
    principal: Principal = Depends(get_current_principal),
) -> list[HistoryRecordPublic]:
    records = await list_history(session, principal, limit=limit, offset=offset)
    return [_to_public(r) for r in records]


@router.get("/stats", response_model=CompanyHistoryStats)
async def company_history_stats(
    company_id: int | None = Query(None),
    session: AsyncSession = Depends(get_session),
    principal: Principal = Depends(get_current_principal),
) -> CompanyHistoryStats:
    return await get_company_history_stats(session, principal, company_id=company_id)


@router.get("/appointment/{appointment_id}", response_model=HistoryRecordPublic)
async def history_for_appointment(
    appointment_id: int,
    session: AsyncSession = Depends(get_session),
    principal: Principal = Depends(get_current_principal),
) -> HistoryRecordPublic:
    return _to_public(await get_history_for_appointment(session, principal, appointment_id))
