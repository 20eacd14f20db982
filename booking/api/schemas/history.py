from decimal import Decimal

from pydantic import BaseModel

from booking.models.history import ProductUsage


class RecordCompletionRequest(BaseModel):
    appointment_id: int
    products_used: list[ProductUsage] = []
    total_cost: Decimal = Decimal("0.00")
    notes: str | None = None
