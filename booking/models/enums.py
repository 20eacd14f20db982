"""Closed enums shared by the models, services and API.

Statuses and roles are persisted as small integers. The database adapter is
``AppointmentStatusType`` / ``RoleType``; the wire adapter is ``.wire`` / ``from_wire``.
Nothing else converts between representations.
"""

from enum import Enum, IntEnum

from sqlalchemy import SmallInteger
from sqlalchemy.types import TypeDecorator

from booking.core.errors import ValidationError


class AppointmentStatus(IntEnum):
    PENDING = 0
    CONFIRMED = 1
    COMPLETED = 2
    CANCELLED = 3

    @property
    def wire(self) -> str:
        return self.name.lower()

    @classmethod
    def from_wire(cls, value: str) -> "AppointmentStatus":
        try:
            return cls[value.strip().upper()]
        except (KeyError, AttributeError):
            allowed = ", ".join(s.wire for s in cls)
            raise ValidationError(f"Invalid status. Must be one of: {allowed}") from None


# Statuses that hold a slot
ACTIVE_STATUSES: tuple[AppointmentStatus, ...] = (
    AppointmentStatus.PENDING,
    AppointmentStatus.CONFIRMED,
)


class Role(IntEnum):
    """Lower value means more privilege."""

    ADMIN = 0
    OWNER = 1
    STAFF = 2
    CUSTOMER = 3

    @property
    def wire(self) -> str:
        return self.name.lower()

    @classmethod
    def from_wire(cls, value: str) -> "Role":
        try:
            return cls[value.strip().upper()]
        except (KeyError, AttributeError):
            allowed = ", ".join(r.wire for r in cls)
            raise ValidationError(f"Invalid role. Must be one of: {allowed}") from None


class CompanyStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    PENDING = "pending"


class ServiceStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class StaffStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    SUSPENDED = "suspended"
    TERMINATED = "terminated"


class _IntEnumType(TypeDecorator):
    impl = SmallInteger
    cache_ok = True
    enum_class: type[IntEnum]

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return int(self.enum_class(value))

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return self.enum_class(value)


class AppointmentStatusType(_IntEnumType):
    cache_ok = True
    enum_class = AppointmentStatus


class RoleType(_IntEnumType):
    cache_ok = True
    enum_class = Role
