"""Lookups against the collaborator record stores (companies, services, staff, products)."""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from booking.models.directory import Company, Product, Service, Staff
from booking.models.user import User


async def get_company(session: AsyncSession, company_id: int) -> Company | None:
    return await session.get(Company, company_id)


async def find_companies_by_owner(session: AsyncSession, user_id: int) -> list[Company]:
    result = await session.execute(select(Company).where(Company.owner_id == user_id))
    return list(result.scalars().all())


async def get_service(session: AsyncSession, service_id: int) -> Service | None:
    return await session.get(Service, service_id)


async def get_staff(session: AsyncSession, staff_id: int) -> Staff | None:
    return await session.get(Staff, staff_id)


async def find_staff_by_user_id(session: AsyncSession, user_id: int) -> list[Staff]:
    """All staff records of a person; one per company they work for."""
    result = await session.execute(select(Staff).where(Staff.user_id == user_id))
    return list(result.scalars().all())


async def get_product(session: AsyncSession, product_id: int) -> Product | None:
    return await session.get(Product, product_id)


async def get_user(session: AsyncSession, user_id: int) -> User | None:
    return await session.get(User, user_id)
