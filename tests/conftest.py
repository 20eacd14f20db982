"""Pytest configuration and fixtures."""

import os

# Settings are read at import time; point them at a throwaway database first
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("BOOKING_TIMEZONE", "UTC")

from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel

import booking.models  # noqa: F401 - register tables
from booking.core.db import get_session
from booking.core.security import create_access_token, hash_password
from booking.main import app
from booking.models.directory import Company, Product, Service, Staff
from booking.models.enums import CompanyStatus, Role, ServiceStatus
from booking.models.user import User
from booking.services.access import Principal

# Test database URL (in-memory SQLite for unit tests)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

# Fixed clock for service-level tests
NOW = datetime(2026, 1, 1, 12, 0, tzinfo=UTC)
PASSWORD = "correct horse battery staple"


@pytest.fixture
async def engine():
    """Create test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
async def session(engine):
    """Create test database session."""
    async_session = async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False
    )

    async with async_session() as session:
        yield session
        await session.rollback()


@dataclass
class World:
    admin: Principal
    owner: Principal
    other_owner: Principal
    staff: Principal
    other_staff: Principal
    customer: Principal
    other_customer: Principal


@pytest.fixture
async def world(session) -> World:
    """Two companies, their services, staff and products, and one user per role.

    Company 7 (owner 2) offers active service 3 and inactive service 4; staff record 11
    (user 3) and 17 (user 16) work there; product 5 belongs to it. Company 8 (owner 6)
    offers service 10 and product 6; user 3 also staffs it as record 12. Company 9 is
    owned by user 2 but not yet active.
    """
    hashed = hash_password(PASSWORD)
    session.add_all(
        [
            User(id=1, email="admin@example.com", role=Role.ADMIN, hashed_password=hashed),
            User(id=2, email="owner@example.com", role=Role.OWNER, hashed_password=hashed),
            User(id=3, email="staff@example.com", role=Role.STAFF),
            User(id=4, email="customer@example.com", role=Role.CUSTOMER, hashed_password=hashed),
            User(id=5, email="other.customer@example.com", role=Role.CUSTOMER),
            User(id=6, email="other.owner@example.com", role=Role.OWNER),
            User(id=16, email="other.staff@example.com", role=Role.STAFF),
        ]
    )
    await session.flush()
    session.add_all(
        [
            Company(id=7, name="Cut & Co", owner_id=2, status=CompanyStatus.ACTIVE),
            Company(id=8, name="Nail Bar", owner_id=6, status=CompanyStatus.ACTIVE),
            Company(id=9, name="Opening Soon", owner_id=2, status=CompanyStatus.PENDING),
        ]
    )
    await session.flush()
    session.add_all(
        [
            Service(id=3, company_id=7, name="Haircut", price=Decimal("25.00")),
            Service(id=4, company_id=7, name="Perm", status=ServiceStatus.INACTIVE),
            Service(id=10, company_id=8, name="Manicure", price=Decimal("30.00")),
            Service(id=20, company_id=9, name="Shave"),
            Staff(id=11, user_id=3, company_id=7),
            Staff(id=12, user_id=3, company_id=8),
            Staff(id=17, user_id=16, company_id=7),
            Product(id=5, company_id=7, name="Shampoo", price=Decimal("8.00")),
            Product(id=6, company_id=8, name="Polish", price=Decimal("5.00")),
        ]
    )
    await session.commit()
    return World(
        admin=Principal.of(1, Role.ADMIN),
        owner=Principal.of(2, Role.OWNER),
        other_owner=Principal.of(6, Role.OWNER),
        staff=Principal.of(3, Role.STAFF),
        other_staff=Principal.of(16, Role.STAFF),
        customer=Principal.of(4, Role.CUSTOMER),
        other_customer=Principal.of(5, Role.CUSTOMER),
    )


@pytest.fixture
async def client(engine, world):
    """HTTP client whose requests run against the test database."""
    maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async def override_get_session():
        async with maker() as s:
            try:
                yield s
                await s.commit()
            except Exception:
                await s.rollback()
                raise

    app.dependency_overrides[get_session] = override_get_session
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


def auth_headers(user_id: int, switched_role: Role | None = None) -> dict[str, str]:
    token = create_access_token(
        user_id, switched_role=switched_role.wire if switched_role is not None else None
    )
    return {"Authorization": f"Bearer {token}"}
