from typing import List, Optional
from datetime import datetime
from sqlmodel import SQLModel, Field
from pydantic import EmailStr, StringConstraints
from typing_extensions import Annotated

from norruva.db.schema import Role


class UserRead(SQLModel):
    id: str
    email: str
    full_name: str
    company_id: str
    roles: List[Role]
    circularity_credits: int
    created_at: datetime
    updated_at: datetime


class UserCreate(SQLModel):
    """DTO for admin-driven user provisioning."""
    email: Annotated[EmailStr, StringConstraints(to_lower=True)] = Field(
        description="Unique email address of the user.",
        max_length=255
    )
    full_name: str = Field(
        min_length=1,
        max_length=100,
        description="Display name."
    )
    company_id: str
    roles: List[Role] = Field(min_length=1)


class UserUpdate(SQLModel):
    full_name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    company_id: Optional[str] = None
    roles: Optional[List[Role]] = Field(default=None, min_length=1)


class UserProfileUpdate(SQLModel):
    """Self-service edit. Roles and company are not editable here."""
    full_name: str = Field(min_length=1, max_length=100)
