"""Who may see and change which appointments.

A ``Principal`` is built once per request from the persisted user and the optional
``switched_role`` claim of the access token. ``resolve_scope`` then loads the
principal's companies and staff records so that every permission check afterwards is a
pure function of the scope and the appointment row.
"""

import logging
from dataclasses import dataclass, field
from typing import Union

from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel.sql.expression import Select, SelectOfScalar

from booking.core.errors import PermissionDeniedError
from booking.models.appointment import Appointment
from booking.models.enums import Role
from booking.models.history import HistoryRecord
from booking.services.directory import find_companies_by_owner, find_staff_by_user_id

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Persisted:
    role: Role

    @property
    def current(self) -> Role:
        return self.role

    @property
    def is_switched(self) -> bool:
        return False


@dataclass(frozen=True)
class Downgraded:
    original: Role
    role: Role

    @property
    def current(self) -> Role:
        return self.role

    @property
    def is_switched(self) -> bool:
        return True


EffectiveRole = Union[Persisted, Downgraded]


def can_switch_role(current: Role, target: Role) -> bool:
    """Only a downgrade (towards less privilege) is allowed."""
    return current < target


def available_switch_roles(current: Role) -> list[Role]:
    return [r for r in Role if can_switch_role(current, r)]


def effective_role_for(persisted: Role, switched: Role | None) -> EffectiveRole:
    if switched is None:
        return Persisted(persisted)
    if not can_switch_role(persisted, switched):
        raise PermissionDeniedError(
            f"Cannot switch from {persisted.wire} to {switched.wire}",
            {"role": persisted.wire, "target": switched.wire},
        )
    return Downgraded(original=persisted, role=switched)


@dataclass(frozen=True)
class Principal:
    user_id: int
    persisted_role: Role
    effective: EffectiveRole

    @property
    def role(self) -> Role:
        return self.effective.current

    @classmethod
    def of(cls, user_id: int, persisted_role: Role, switched: Role | None = None) -> "Principal":
        return cls(user_id, persisted_role, effective_role_for(persisted_role, switched))


@dataclass(frozen=True)
class AccessScope:
    principal: Principal
    company_ids: frozenset[int] = field(default_factory=frozenset)
    staff_ids: frozenset[int] = field(default_factory=frozenset)

    @property
    def role(self) -> Role:
        return self.principal.role

    def _owns(self, row: Appointment | HistoryRecord) -> bool:
        role = self.role
        if role is Role.ADMIN:
            return True
        if role is Role.OWNER:
            return row.company_id in self.company_ids
        if role is Role.STAFF:
            return row.staff_id is not None and row.staff_id in self.staff_ids
        if role is Role.CUSTOMER:
            return row.customer_id == self.principal.user_id
        raise ValueError(f"Unhandled role: {role!r}")

    def can_read(self, appointment: Appointment | HistoryRecord) -> bool:
        return self._owns(appointment)

    def can_mutate(self, appointment: Appointment) -> bool:
        return self._owns(appointment)

    def can_change_status(self, appointment: Appointment) -> bool:
        role = self.role
        if role is Role.ADMIN:
            return True
        if role is Role.OWNER:
            return appointment.company_id in self.company_ids
        if role in (Role.STAFF, Role.CUSTOMER):
            return False
        raise ValueError(f"Unhandled role: {role!r}")

    def can_create_for(self, company_id: int, customer_id: int) -> bool:
        role = self.role
        if role is Role.ADMIN:
            return True
        if role is Role.OWNER:
            return company_id in self.company_ids
        if role is Role.STAFF:
            return False
        if role is Role.CUSTOMER:
            return customer_id == self.principal.user_id
        raise ValueError(f"Unhandled role: {role!r}")

    def can_view_company(self, company_id: int) -> bool:
        role = self.role
        if role is Role.ADMIN:
            return True
        if role is Role.OWNER:
            return company_id in self.company_ids
        if role in (Role.STAFF, Role.CUSTOMER):
            return False
        raise ValueError(f"Unhandled role: {role!r}")

    def apply(self, statement: Select | SelectOfScalar, model: type[Appointment] | type[HistoryRecord] = Appointment):
        """Narrow a select over ``model`` to the rows this scope may read."""
        role = self.role
        if role is Role.ADMIN:
            return statement
        if role is Role.OWNER:
            return statement.where(model.company_id.in_(sorted(self.company_ids)))
        if role is Role.STAFF:
            return statement.where(model.staff_id.in_(sorted(self.staff_ids)))
        if role is Role.CUSTOMER:
            return statement.where(model.customer_id == self.principal.user_id)
        raise ValueError(f"Unhandled role: {role!r}")

    def ensure(self, allowed: bool, message: str = "Permission denied") -> None:
        if not allowed:
            logger.warning(
                "Permission denied: user_id=%s role=%s reason=%s",
                self.principal.user_id,
                self.role.wire,
                message,
            )
            raise PermissionDeniedError(message)


async def resolve_scope(session: AsyncSession, principal: Principal) -> AccessScope:
    """Load the company and staff memberships the effective role needs."""
    role = principal.role
    if role is Role.OWNER:
        companies = await find_companies_by_owner(session, principal.user_id)
        return AccessScope(principal, company_ids=frozenset(c.id for c in companies))
    if role is Role.STAFF:
        records = await find_staff_by_user_id(session, principal.user_id)
        return AccessScope(principal, staff_ids=frozenset(s.id for s in records))
    if role in (Role.ADMIN, Role.CUSTOMER):
        return AccessScope(principal)
    raise ValueError(f"Unhandled role: {role!r}")
