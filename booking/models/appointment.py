from datetime import UTC, date, datetime, time

from sqlalchemy import CheckConstraint, Column, Index, text
from sqlmodel import Field, SQLModel

from booking.models.enums import AppointmentStatus, AppointmentStatusType


def _utc_naive_now() -> datetime:
    """Naive UTC for TIMESTAMP WITHOUT TIME ZONE columns."""
    return datetime.now(UTC).replace(tzinfo=None)


# Partial predicate for the active-slot index: PENDING (0) and CONFIRMED (1)
ACTIVE_SLOT_PREDICATE = "status IN (0, 1)"


class Appointment(SQLModel, table=True):
    __tablename__ = "appointments"
    __table_args__ = (
        # At most one pending/confirmed booking per company/service/date/time
        Index(
            "uq_appointments_active_slot",
            "company_id",
            "service_id",
            "appointment_date",
            "appointment_time",
            unique=True,
            postgresql_where=text(ACTIVE_SLOT_PREDICATE),
            sqlite_where=text(ACTIVE_SLOT_PREDICATE),
        ),
        CheckConstraint("status BETWEEN 0 AND 3", name="ck_appointments_status"),
    )

    id: int | None = Field(default=None, primary_key=True)
    customer_id: int = Field(foreign_key="users.id", index=True)
    company_id: int = Field(foreign_key="companies.id", index=True)
    service_id: int = Field(foreign_key="services.id", index=True)
    staff_id: int | None = Field(default=None, foreign_key="staff.id", index=True)
    appointment_date: date = Field(index=True)
    appointment_time: time
    status: AppointmentStatus = Field(
        default=AppointmentStatus.PENDING,
        sa_column=Column(AppointmentStatusType(), nullable=False, index=True),
    )
    notes: str | None = None
    created_at: datetime = Field(default_factory=_utc_naive_now)
    updated_at: datetime = Field(default_factory=_utc_naive_now)

    def touch(self) -> None:
        self.updated_at = _utc_naive_now()


class AppointmentCreate(SQLModel):
    """Booking request as received; date and time are still raw strings."""

    company_id: int
    service_id: int
    appointment_date: str
    appointment_time: str
    staff_id: int | None = None
    notes: str | None = None
    customer_id: int | None = None


class AppointmentUpdate(SQLModel):
    appointment_date: str | None = None
    appointment_time: str | None = None
    notes: str | None = None
    staff_id: int | None = None


class AppointmentPublic(SQLModel):
    id: int
    customer_id: int
    company_id: int
    service_id: int
    staff_id: int | None = None
    appointment_date: date
    appointment_time: str
    status: str
    allowed_transitions: list[str]
    notes: str | None = None
    created_at: datetime
    updated_at: datetime


class AppointmentStats(SQLModel):
    total: int = 0
    pending: int = 0
    confirmed: int = 0
    completed: int = 0
    cancelled: int = 0
