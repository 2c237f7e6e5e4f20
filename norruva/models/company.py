from typing import Optional
from sqlmodel import SQLModel, Field


class CompanyCreate(SQLModel):
    name: str = Field(min_length=1, max_length=200)
    industry: Optional[str] = Field(default=None, max_length=100)


class CompanyUpdate(SQLModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    industry: Optional[str] = Field(default=None, max_length=100)
