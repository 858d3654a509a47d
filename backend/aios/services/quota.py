"""Per-user daily prompt quota.

Usage is keyed by (user, calendar day) where the day is taken in
``settings.quota_timezone`` (UTC by default). Recording usage is best-effort:
a failing write is logged and never fails the request that triggered it.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from zoneinfo import ZoneInfo

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session, select

from aios.core.config import settings
from aios.models import DailyUsage
from aios.services.permissions import EffectivePermissions, get_effective_permissions

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QuotaStatus:
    allowed: bool
    used: int
    limit: int | None  # None = unbounded
    day: str


def today_key(now: datetime | None = None) -> str:
    tz = ZoneInfo(settings.quota_timezone)
    now = now.astimezone(tz) if now else datetime.now(tz)
    return now.date().isoformat()


def get_usage(session: Session, user_id: str, day: str) -> int:
    row = session.exec(
        select(DailyUsage).where(DailyUsage.user_id == user_id, DailyUsage.date == day)
    ).first()
    return row.prompts_count if row else 0


def check_quota(
    session: Session,
    user_id: str,
    day: str | None = None,
    permissions: EffectivePermissions | None = None,
) -> QuotaStatus:
    """Check whether the user may send another prompt today.

    Raises NotFoundError if the user or organization is missing. A database
    error while reading today's usage does not block the user.
    """
    day = day or today_key()
    permissions = permissions or get_effective_permissions(session, user_id)
    limit = permissions.daily_prompt_limit
    if limit is None:
        return QuotaStatus(allowed=True, used=0, limit=None, day=day)

    try:
        used = get_usage(session, user_id, day)
    except SQLAlchemyError as e:
        logger.error(f"Quota check failed for user {user_id}, allowing request: {e}")
        session.rollback()
        return QuotaStatus(allowed=True, used=0, limit=limit, day=day)

    return QuotaStatus(allowed=used < limit, used=used, limit=limit, day=day)


def increment_usage(session: Session, user_id: str, day: str) -> None:
    """Upsert today's counter. Never raises."""
    try:
        row = session.exec(
            select(DailyUsage).where(DailyUsage.user_id == user_id, DailyUsage.date == day)
        ).first()
        if row is None:
            try:
                session.add(DailyUsage(user_id=user_id, date=day, prompts_count=1))
                session.commit()
                return
            except IntegrityError:
                # A concurrent request created the row first
                session.rollback()
                row = session.exec(
                    select(DailyUsage).where(DailyUsage.user_id == user_id, DailyUsage.date == day)
                ).one()
        row.prompts_count += 1
        session.add(row)
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"Failed to record usage for user {user_id} on {day}: {e}")
