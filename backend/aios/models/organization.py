"""Organizations and the users that belong to them."""

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlmodel import Field, SQLModel


def _new_id() -> str:
    return str(uuid.uuid4())


class Organization(SQLModel, table=True):
    __tablename__ = "organizations"

    id: str = Field(default_factory=_new_id, primary_key=True)
    name: str
    org_code: str = Field(index=True, unique=True)  # "ORG-XXXXX"

    # Defaults applied to employees without an explicit override
    default_can_use_rag: Optional[bool] = None
    default_can_upload_docs: Optional[bool] = None
    default_can_edit_docs: Optional[bool] = None
    default_can_delete_docs: Optional[bool] = None
    default_can_view_analytics: Optional[bool] = None
    default_can_invite_users: Optional[bool] = None
    default_daily_prompt_limit: Optional[int] = None

    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class User(SQLModel, table=True):
    __tablename__ = "users"

    id: str = Field(primary_key=True)  # auth provider user id
    email: str = Field(index=True)
    first_name: str = ""
    role: str = Field(default="employee")  # "admin" | "employee"
    organization_id: Optional[str] = Field(default=None, foreign_key="organizations.id")

    # Per-user overrides; None falls back to the organization default
    can_use_rag: Optional[bool] = None
    can_upload_docs: Optional[bool] = None
    can_edit_docs: Optional[bool] = None
    can_delete_docs: Optional[bool] = None
    can_view_analytics: Optional[bool] = None
    can_invite_users: Optional[bool] = None
    daily_prompt_limit: Optional[int] = None

    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
