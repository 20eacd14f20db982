"""Tests for role switching and role-scoped access."""

import itertools
from datetime import date, time

import pytest

from booking.core.errors import PermissionDeniedError
from booking.models.appointment import Appointment
from booking.models.enums import Role
from booking.services.access import (
    AccessScope,
    Downgraded,
    Persisted,
    Principal,
    available_switch_roles,
    can_switch_role,
    resolve_scope,
)


def _appointment(**overrides) -> Appointment:
    values = dict(
        id=100,
        customer_id=4,
        company_id=7,
        service_id=3,
        staff_id=11,
        appointment_date=date(2030, 1, 10),
        appointment_time=time(9, 0),
    )
    values.update(overrides)
    return Appointment(**values)


@pytest.mark.parametrize("current,target", list(itertools.product(Role, repeat=2)))
def test_can_switch_role_only_downgrades(current, target):
    assert can_switch_role(current, target) == (current.value < target.value)


def test_switch_examples():
    assert available_switch_roles(Role.ADMIN) == [Role.OWNER, Role.STAFF, Role.CUSTOMER]
    assert not can_switch_role(Role.STAFF, Role.ADMIN)
    assert available_switch_roles(Role.CUSTOMER) == []


def test_principal_effective_role():
    plain = Principal.of(1, Role.ADMIN)
    assert plain.effective == Persisted(Role.ADMIN)
    assert plain.role is Role.ADMIN

    switched = Principal.of(1, Role.ADMIN, Role.CUSTOMER)
    assert switched.effective == Downgraded(original=Role.ADMIN, role=Role.CUSTOMER)
    assert switched.role is Role.CUSTOMER
    assert switched.persisted_role is Role.ADMIN


def test_principal_rejects_escalation():
    with pytest.raises(PermissionDeniedError):
        Principal.of(3, Role.STAFF, Role.ADMIN)


def test_admin_scope_allows_everything():
    scope = AccessScope(Principal.of(1, Role.ADMIN))
    appt = _appointment(company_id=8, customer_id=5, staff_id=None)
    assert scope.can_read(appt)
    assert scope.can_mutate(appt)
    assert scope.can_change_status(appt)


def test_owner_scope_is_limited_to_own_companies():
    scope = AccessScope(Principal.of(2, Role.OWNER), company_ids=frozenset({7}))
    assert scope.can_change_status(_appointment())
    assert not scope.can_read(_appointment(company_id=8))
    assert scope.can_create_for(7, customer_id=4)
    assert not scope.can_create_for(8, customer_id=4)


def test_staff_scope_reads_assigned_but_cannot_change_status():
    scope = AccessScope(Principal.of(3, Role.STAFF), staff_ids=frozenset({11, 12}))
    assert scope.can_read(_appointment(staff_id=11))
    assert scope.can_read(_appointment(staff_id=12, company_id=8))
    assert scope.can_mutate(_appointment(staff_id=11))
    assert not scope.can_change_status(_appointment(staff_id=11))
    assert not scope.can_read(_appointment(staff_id=17))
    assert not scope.can_read(_appointment(staff_id=None))


def test_customer_scope_sees_only_own():
    scope = AccessScope(Principal.of(4, Role.CUSTOMER))
    assert scope.can_read(_appointment())
    assert not scope.can_read(_appointment(customer_id=5))
    assert not scope.can_change_status(_appointment())
    assert scope.can_create_for(8, customer_id=4)
    assert not scope.can_create_for(8, customer_id=5)


def test_downgraded_admin_is_treated_as_customer():
    scope = AccessScope(Principal.of(1, Role.ADMIN, Role.CUSTOMER))
    assert not scope.can_read(_appointment(customer_id=4))
    assert scope.can_read(_appointment(customer_id=1))


def test_ensure_raises_permission_denied():
    scope = AccessScope(Principal.of(4, Role.CUSTOMER))
    with pytest.raises(PermissionDeniedError):
        scope.ensure(scope.can_change_status(_appointment()))


async def test_resolve_scope_loads_memberships(session, world):
    owner_scope = await resolve_scope(session, world.owner)
    assert owner_scope.company_ids == frozenset({7, 9})

    staff_scope = await resolve_scope(session, world.staff)
    assert staff_scope.staff_ids == frozenset({11, 12})

    customer_scope = await resolve_scope(session, world.customer)
    assert customer_scope.company_ids == frozenset()
    assert customer_scope.staff_ids == frozenset()
