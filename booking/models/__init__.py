from booking.models.user import User, UserPublic
from booking.models.refresh_token import RefreshToken
from booking.models.directory import Company, Product, Service, Staff
from booking.models.appointment import (
    Appointment,
    AppointmentCreate,
    AppointmentPublic,
    AppointmentStats,
    AppointmentUpdate,
)
from booking.models.history import (
    CompanyHistoryStats,
    CompletionCreate,
    HistoryRecord,
    HistoryRecordPublic,
    ProductUsage,
)

__all__ = [
    "User",
    "UserPublic",
    "RefreshToken",
    "Company",
    "Product",
    "Service",
    "Staff",
    "Appointment",
    "AppointmentCreate",
    "AppointmentPublic",
    "AppointmentStats",
    "AppointmentUpdate",
    "CompanyHistoryStats",
    "CompletionCreate",
    "HistoryRecord",
    "HistoryRecordPublic",
    "ProductUsage",
]
