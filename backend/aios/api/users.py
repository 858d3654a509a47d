"""User signup/linking and permission management."""

import logging

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlmodel import Session

from aios.api.deps import error_detail, get_current_user
from aios.core.config import settings
from aios.core.database import get_session
from aios.core.errors import NotFoundError
from aios.models import User
from aios.services import organizations
from aios.services.auth import AuthUser
from aios.services.permissions import CAPABILITIES, get_effective_permissions, load_user_context, resolve_permissions

router = APIRouter()
logger = logging.getLogger(__name__)


class PermissionsUpdate(BaseModel):
    can_use_rag: bool | None = None
    can_upload_docs: bool | None = None
    can_edit_docs: bool | None = None
    can_delete_docs: bool | None = None
    can_view_analytics: bool | None = None
    can_invite_users: bool | None = None
    daily_prompt_limit: int | None = Field(default=None, ge=0)


class SignupRequest(BaseModel):
    email: str = ""
    first_name: str = ""
    role: str = ""
    company_name: str | None = None
    admin_code: str | None = None
    org_code: str | None = None


class LinkAuthRequest(BaseModel):
    user_id: str = ""
    email: str = ""
    first_name: str = ""
    role: str = "employee"
    organization_id: str | None = None


def _overrides(user: User) -> dict:
    return {field: getattr(user, field) for field in (*CAPABILITIES, "daily_prompt_limit")}


@router.get("/me/permissions")
async def my_permissions(user: AuthUser = Depends(get_current_user), session: Session = Depends(get_session)):
    try:
        permissions = get_effective_permissions(session, user.id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=error_detail("user_not_found", str(e)))
    return permissions.to_dict()


@router.patch("/{user_id}/permissions")
async def update_permissions(
    user_id: str,
    body: PermissionsUpdate,
    current: AuthUser = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    try:
        admin, admin_org = load_user_context(session, current.id)
    except NotFoundError as e:
        raise HTTPException(status_code=403, detail=error_detail("user_not_found", str(e)))
    if admin.role != "admin":
        raise HTTPException(status_code=403, detail=error_detail("permission_denied", "Admin role required"))

    target = session.get(User, user_id)
    if target is None or target.organization_id != admin_org.id:
        raise HTTPException(status_code=404, detail=error_detail("user_not_found", f"User '{user_id}' not found"))

    # Explicit nulls clear an override so the organization default applies again
    changes = body.model_dump(exclude_unset=True)
    for field, value in changes.items():
        setattr(target, field, value)
    session.add(target)
    session.commit()
    session.refresh(target)
    logger.info(f"Permissions updated for user {user_id}: {changes}")

    return {
        "user_id": target.id,
        "overrides": _overrides(target),
        "effective": resolve_permissions(target, admin_org).to_dict(),
    }


@router.post("/signup")
async def signup(body: SignupRequest, session: Session = Depends(get_session)):
    """Pre-auth signup step: validates the role codes and prepares the profile to link."""
    if not body.email or not body.first_name or body.role not in ("admin", "employee"):
        raise HTTPException(
            status_code=400,
            detail=error_detail("invalid_signup", "email, first_name and a valid role are required"),
        )

    org_code = None
    if body.role == "admin":
        if not body.company_name or not body.admin_code:
            raise HTTPException(
                status_code=400,
                detail=error_detail("invalid_signup", "Company name and admin code are required for admins"),
            )
        if body.admin_code != settings.admin_secret_code:
            raise HTTPException(status_code=403, detail=error_detail("invalid_admin_code", "Incorrect admin code"))
        org = organizations.create_organization(session, body.company_name)
        org_code = org.org_code
    else:
        if not body.org_code:
            raise HTTPException(
                status_code=400,
                detail=error_detail("invalid_signup", "Organization code is required for employees"),
            )
        try:
            org = organizations.require_by_code(session, body.org_code)
        except NotFoundError:
            raise HTTPException(
                status_code=404,
                detail=error_detail("organization_not_found", "Organization not found (invalid code)"),
            )
        logger.info(f"Employee joining org: {org.org_code}")

    response = {
        "success": True,
        "role": body.role,
        "temp_user_data": {
            "email": body.email,
            "first_name": body.first_name,
            "role": body.role,
            "organization_id": org.id,
        },
    }
    if org_code:
        response["org_code"] = org_code
    return response


@router.post("/link-auth")
async def link_auth(body: LinkAuthRequest, session: Session = Depends(get_session)):
    """Create the profile row for a freshly registered auth user."""
    if not body.user_id or not body.email or body.role not in ("admin", "employee"):
        raise HTTPException(
            status_code=400,
            detail=error_detail("invalid_link", "user_id, email and a valid role are required"),
        )
    if session.get(User, body.user_id) is not None:
        raise HTTPException(status_code=409, detail=error_detail("user_exists", "User profile already exists"))

    user = User(
        id=body.user_id,
        email=body.email,
        first_name=body.first_name,
        role=body.role,
        organization_id=body.organization_id,
    )
    session.add(user)
    session.commit()
    session.refresh(user)
    logger.info(f"User profile linked: {user.email} ({user.role})")
    return {"success": True, "user": user.model_dump(mode="json")}
