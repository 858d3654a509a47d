"""Organization lifecycle: code validation, creation, joining and defaults."""

import logging

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlmodel import Session

from aios.api.deps import error_detail, get_current_user
from aios.core.config import settings
from aios.core.database import get_session
from aios.core.errors import NotFoundError
from aios.models import Organization, User
from aios.services import organizations
from aios.services.auth import AuthUser
from aios.services.permissions import load_user_context

router = APIRouter()
logger = logging.getLogger(__name__)


class AdminCode(BaseModel):
    admin_code: str = ""


class OrgCode(BaseModel):
    org_code: str = ""


class OrganizationCreate(BaseModel):
    name: str
    admin_code: str
    first_name: str = ""


class OrganizationJoin(BaseModel):
    org_code: str
    first_name: str = ""


class DefaultsUpdate(BaseModel):
    default_can_use_rag: bool | None = None
    default_can_upload_docs: bool | None = None
    default_can_edit_docs: bool | None = None
    default_can_delete_docs: bool | None = None
    default_can_view_analytics: bool | None = None
    default_can_invite_users: bool | None = None
    default_daily_prompt_limit: int | None = Field(default=None, ge=0)


def _org_dict(org: Organization) -> dict:
    return {"id": org.id, "name": org.name, "org_code": org.org_code}


def _member_context(session: Session, user: AuthUser) -> tuple[User, Organization]:
    try:
        return load_user_context(session, user.id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=error_detail("user_not_found", str(e)))


@router.post("/validate-admin-code")
async def validate_admin_code(body: AdminCode):
    return {"valid": body.admin_code == settings.admin_secret_code}


@router.post("/organizations/validate")
async def validate_org_code(body: OrgCode, session: Session = Depends(get_session)):
    org = organizations.find_by_code(session, body.org_code) if body.org_code.strip() else None
    if org is None:
        return {"valid": False}
    return {"valid": True, "org_id": org.id, "org_name": org.name}


@router.post("/organizations")
async def create_organization(
    body: OrganizationCreate,
    user: AuthUser = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    if body.admin_code != settings.admin_secret_code:
        raise HTTPException(status_code=403, detail=error_detail("invalid_admin_code", "Incorrect admin code"))
    if not body.name.strip():
        raise HTTPException(status_code=400, detail=error_detail("invalid_organization", "Name is required"))

    org = organizations.create_organization(session, body.name.strip())
    organizations.upsert_member(session, user.id, user.email or "", "admin", org.id, body.first_name)
    return {"organization": _org_dict(org)}


@router.post("/organizations/join")
async def join_organization(
    body: OrganizationJoin,
    user: AuthUser = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    try:
        org = organizations.require_by_code(session, body.org_code)
    except NotFoundError:
        raise HTTPException(
            status_code=404,
            detail=error_detail("organization_not_found", "Organization not found (invalid code)"),
        )

    existing = session.get(User, user.id)
    if existing is not None and existing.role == "admin":
        raise HTTPException(
            status_code=400,
            detail=error_detail("invalid_join", "Admins cannot join another organization"),
        )

    organizations.upsert_member(session, user.id, user.email or "", "employee", org.id, body.first_name)
    logger.info(f"User {user.id} joined org {org.org_code}")
    return {"organization": _org_dict(org)}


@router.get("/organizations/me/defaults")
async def get_defaults(user: AuthUser = Depends(get_current_user), session: Session = Depends(get_session)):
    _, org = _member_context(session, user)
    return {"organization": _org_dict(org), "defaults": organizations.organization_defaults(org)}


@router.patch("/organizations/me/defaults")
async def update_defaults(
    body: DefaultsUpdate,
    user: AuthUser = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    member, org = _member_context(session, user)
    if member.role != "admin":
        raise HTTPException(status_code=403, detail=error_detail("permission_denied", "Admin role required"))

    for field, value in body.model_dump(exclude_unset=True).items():
        setattr(org, field, value)
    session.add(org)
    session.commit()
    session.refresh(org)
    return {"organization": _org_dict(org), "defaults": organizations.organization_defaults(org)}
