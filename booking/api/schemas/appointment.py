from decimal import Decimal

from pydantic import BaseModel

from booking.models.history import ProductUsage


class StatusChangeRequest(BaseModel):
    status: str
    # Only read when status is "completed"
    products_used: list[ProductUsage] = []
    total_cost: Decimal = Decimal("0.00")
    completion_notes: str | None = None
