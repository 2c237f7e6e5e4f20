from typing import List, Optional
from datetime import datetime
from sqlmodel import SQLModel, Field
from pydantic import AnyHttpUrl

from norruva.db.schema import ApiKeyStatus, WebhookStatus


# ==========================================================================
# API KEYS
# ==========================================================================

class ApiKeyCreate(SQLModel):
    label: str = Field(min_length=1, max_length=100)
    scopes: List[str] = []


class ApiKeyUpdate(SQLModel):
    label: Optional[str] = Field(default=None, min_length=1, max_length=100)
    scopes: Optional[List[str]] = None


class ApiKeyRead(SQLModel):
    """Never exposes the secret hash; `token` is the masked display form."""
    id: str
    user_id: str
    label: str
    scopes: List[str]
    token: str
    status: ApiKeyStatus
    last_used: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class ApiKeyCreated(SQLModel):
    key: ApiKeyRead
    raw_token: str = Field(description="Shown exactly once. Store it securely.")


# ==========================================================================
# WEBHOOKS
# ==========================================================================

class WebhookCreate(SQLModel):
    url: AnyHttpUrl
    events: List[str] = Field(min_length=1)
    status: WebhookStatus = WebhookStatus.ACTIVE


class WebhookUpdate(SQLModel):
    url: Optional[AnyHttpUrl] = None
    events: Optional[List[str]] = None
    status: Optional[WebhookStatus] = None
