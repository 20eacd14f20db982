"""Read models for the collaborator subsystems (companies, services, staff, products).

Their CRUD lives elsewhere; the booking core only reads these rows.
"""

from decimal import Decimal

from sqlmodel import Field, SQLModel

from booking.models.enums import CompanyStatus, ServiceStatus, StaffStatus


class Company(SQLModel, table=True):
    __tablename__ = "companies"
    id: int | None = Field(default=None, primary_key=True)
    name: str
    owner_id: int = Field(foreign_key="users.id", index=True)
    status: CompanyStatus = Field(default=CompanyStatus.PENDING)


class Service(SQLModel, table=True):
    __tablename__ = "services"
    id: int | None = Field(default=None, primary_key=True)
    company_id: int = Field(foreign_key="companies.id", index=True)
    name: str
    price: Decimal = Field(default=Decimal("0.00"), max_digits=10, decimal_places=2)
    status: ServiceStatus = Field(default=ServiceStatus.ACTIVE)


class Staff(SQLModel, table=True):
    __tablename__ = "staff"
    id: int | None = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="users.id", index=True)
    company_id: int = Field(foreign_key="companies.id", index=True)
    status: StaffStatus = Field(default=StaffStatus.ACTIVE)


class Product(SQLModel, table=True):
    __tablename__ = "products"
    id: int | None = Field(default=None, primary_key=True)
    company_id: int = Field(foreign_key="companies.id", index=True)
    name: str
    price: Decimal = Field(default=Decimal("0.00"), max_digits=10, decimal_places=2)
