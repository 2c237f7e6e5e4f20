from typing import List, Optional
from sqlmodel import SQLModel, Field

from norruva.db.schema import ComplianceRules, TicketStatus


class CompliancePathCreate(SQLModel):
    name: str = Field(min_length=1, max_length=200)
    description: str = ""
    category: str = Field(min_length=1, max_length=100)
    jurisdiction: Optional[str] = None
    regulations: List[str] = []
    rules: ComplianceRules = ComplianceRules()


class CompliancePathUpdate(SQLModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = None
    category: Optional[str] = None
    jurisdiction: Optional[str] = None
    regulations: Optional[List[str]] = None
    rules: Optional[ComplianceRules] = None


class ServiceTicketCreate(SQLModel):
    product_id: str
    customer_name: str = Field(min_length=1, max_length=200)
    issue: str = Field(min_length=1, max_length=5000)
    status: TicketStatus = TicketStatus.OPEN


class ServiceTicketUpdate(SQLModel):
    customer_name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    issue: Optional[str] = Field(default=None, min_length=1, max_length=5000)
    status: Optional[TicketStatus] = None


class ServiceTicketStatusUpdate(SQLModel):
    status: TicketStatus
