from sqlalchemy import Column
from sqlmodel import Field, SQLModel

from booking.models.enums import Role, RoleType


class UserBase(SQLModel):
    email: str = Field(unique=True, index=True)
    full_name: str | None = None


class User(UserBase, table=True):
    __tablename__ = "users"
    id: int | None = Field(default=None, primary_key=True)
    hashed_password: str | None = None
    role: Role = Field(
        default=Role.CUSTOMER,
        sa_column=Column(RoleType(), nullable=False, default=Role.CUSTOMER),
    )


class UserPublic(SQLModel):
    id: int
    email: str
    full_name: str | None = None
    role: str
    effective_role: str
    is_role_switched: bool
    available_roles: list[str]
