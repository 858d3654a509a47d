"""Effective permission resolution.

Every capability resolves through the same chain:

1. admin role: everything allowed, no daily quota
2. explicit value on the user row
3. the organization's ``default_<capability>``
4. a hard-coded fallback

This is the only place the chain is implemented; routes, guards and the
quota tracker all call :func:`resolve_permissions`.
"""

from dataclasses import asdict, dataclass

from sqlmodel import Session

from aios.core.config import settings
from aios.core.errors import NotFoundError
from aios.models import Organization, User

CAPABILITIES = (
    "can_use_rag",
    "can_upload_docs",
    "can_edit_docs",
    "can_delete_docs",
    "can_view_analytics",
    "can_invite_users",
)

FALLBACK_CAPABILITY = False


@dataclass(frozen=True)
class EffectivePermissions:
    role: str
    can_use_rag: bool
    can_upload_docs: bool
    can_edit_docs: bool
    can_delete_docs: bool
    can_view_analytics: bool
    can_invite_users: bool
    daily_prompt_limit: int | None  # None = unbounded

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    def allows(self, capability: str) -> bool:
        if capability not in CAPABILITIES:
            raise ValueError(f"Unknown capability: {capability}")
        return getattr(self, capability)

    def to_dict(self) -> dict:
        return asdict(self)


def _first_set(*values):
    for value in values:
        if value is not None:
            return value
    return None


def resolve_permissions(user: User, organization: Organization) -> EffectivePermissions:
    if user.role == "admin":
        return EffectivePermissions(
            role="admin",
            **{cap: True for cap in CAPABILITIES},
            daily_prompt_limit=None,
        )

    flags = {
        cap: bool(_first_set(
            getattr(user, cap),
            getattr(organization, f"default_{cap}", None),
            FALLBACK_CAPABILITY,
        ))
        for cap in CAPABILITIES
    }
    limit = _first_set(
        user.daily_prompt_limit,
        getattr(organization, "default_daily_prompt_limit", None),
        settings.default_daily_prompt_limit,
    )
    return EffectivePermissions(role="employee", **flags, daily_prompt_limit=limit)


def load_user_context(session: Session, user_id: str) -> tuple[User, Organization]:
    """Fetch a user and their organization. Missing rows are never treated as granted."""
    user = session.get(User, user_id)
    if user is None:
        raise NotFoundError("User", user_id)

    organization = session.get(Organization, user.organization_id) if user.organization_id else None
    if organization is None:
        raise NotFoundError("Organization", user.organization_id or "")
    return user, organization


def get_effective_permissions(session: Session, user_id: str) -> EffectivePermissions:
    user, organization = load_user_context(session, user_id)
    return resolve_permissions(user, organization)
