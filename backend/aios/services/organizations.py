"""Organization creation, lookup by join code, and membership."""

import logging
import secrets

from sqlmodel import Session, select

from aios.core.errors import NotFoundError
from aios.models import Organization, User

logger = logging.getLogger(__name__)

# No 0/O/1/I to keep codes readable
ORG_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
MAX_CODE_ATTEMPTS = 10

DEFAULT_FIELDS = (
    "default_can_use_rag",
    "default_can_upload_docs",
    "default_can_edit_docs",
    "default_can_delete_docs",
    "default_can_view_analytics",
    "default_can_invite_users",
    "default_daily_prompt_limit",
)


def generate_org_code() -> str:
    return "ORG-" + "".join(secrets.choice(ORG_CODE_ALPHABET) for _ in range(5))


def normalize_code(org_code: str) -> str:
    return org_code.strip().upper()


def find_by_code(session: Session, org_code: str) -> Organization | None:
    return session.exec(
        select(Organization).where(Organization.org_code == normalize_code(org_code))
    ).first()


def require_by_code(session: Session, org_code: str) -> Organization:
    org = find_by_code(session, org_code)
    if org is None:
        raise NotFoundError("Organization", org_code)
    return org


def create_organization(session: Session, name: str) -> Organization:
    code = generate_org_code()
    for _ in range(MAX_CODE_ATTEMPTS):
        if find_by_code(session, code) is None:
            break
        code = generate_org_code()
    else:
        raise RuntimeError("Could not generate a unique organization code")

    org = Organization(name=name, org_code=code)
    session.add(org)
    session.commit()
    session.refresh(org)
    logger.info(f"Organization created: {name} ({code})")
    return org


def upsert_member(
    session: Session,
    user_id: str,
    email: str,
    role: str,
    organization_id: str,
    first_name: str = "",
) -> User:
    user = session.get(User, user_id)
    if user is None:
        user = User(id=user_id, email=email, first_name=first_name)
    user.role = role
    user.organization_id = organization_id
    if first_name:
        user.first_name = first_name
    session.add(user)
    session.commit()
    session.refresh(user)
    return user


def organization_defaults(org: Organization) -> dict:
    return {field: getattr(org, field) for field in DEFAULT_FIELDS}
