from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import JSON, CheckConstraint, Column, ForeignKey, Integer
from sqlmodel import Field, SQLModel


def _utc_naive_now() -> datetime:
    return datetime.now(UTC).replace(tzinfo=None)


class HistoryRecord(SQLModel, table=True):
    """Immutable record of a completed appointment; at most one per appointment."""

    __tablename__ = "appointment_history"
    __table_args__ = (CheckConstraint("total_cost >= 0", name="ck_appointment_history_total_cost"),)
    id: int | None = Field(default=None, primary_key=True)
    appointment_id: int = Field(
        sa_column=Column(
            Integer,
            ForeignKey("appointments.id", ondelete="CASCADE"),
            nullable=False,
            unique=True,
            index=True,
        )
    )
    customer_id: int = Field(foreign_key="users.id", index=True)
    company_id: int = Field(foreign_key="companies.id", index=True)
    staff_id: int | None = Field(default=None, foreign_key="staff.id")
    service_id: int = Field(foreign_key="services.id")
    products_used: list[dict] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    total_cost: Decimal = Field(default=Decimal("0.00"), max_digits=10, decimal_places=2)
    notes: str | None = None
    completed_at: datetime = Field(default_factory=_utc_naive_now, index=True)


class ProductUsage(SQLModel):
    product_id: int
    quantity: int = 1


class CompletionCreate(SQLModel):
    products_used: list[ProductUsage] = []
    total_cost: Decimal = Decimal("0.00")
    notes: str | None = None


class HistoryRecordPublic(SQLModel):
    id: int
    appointment_id: int
    customer_id: int
    company_id: int
    staff_id: int | None = None
    service_id: int
    products_used: list[ProductUsage]
    total_cost: Decimal
    notes: str | None = None
    completed_at: datetime


class CompanyHistoryStats(SQLModel):
    company_id: int
    total_completions: int = 0
    total_revenue: Decimal = Decimal("0.00")
    average_cost: Decimal = Decimal("0.00")
    unique_customers: int = 0
