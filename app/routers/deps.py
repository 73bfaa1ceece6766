"""
Request-scoped dependencies.
Resolves the acting staff member and guards the cron endpoints.
"""
import logging
import secrets
from typing import Optional

from fastapi import Depends, Header
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.exceptions import AccessDeniedError, AuthenticationError
from app.database import get_db
from app.models.staff import StaffMember

logger = logging.getLogger(__name__)


def get_current_staff(
    x_staff_id: Optional[str] = Header(default=None, alias=settings.staff_id_header),
    db: Session = Depends(get_db)
) -> StaffMember:
    """
    The actor is identified upstream (portal session) and forwarded in the
    staff id header.
    """
    if not x_staff_id:
        raise AuthenticationError(f"Missing {settings.staff_id_header} header")

    staff = db.query(StaffMember).filter(StaffMember.staff_id == x_staff_id).first()
    if staff is None:
        logger.warning(f"Authentication failed: unknown staff id {x_staff_id}")
        raise AuthenticationError("Unknown staff member")
    if not staff.active:
        raise AccessDeniedError("Staff member is inactive")
    return staff


def require_cron_secret(authorization: Optional[str] = Header(default=None)):
    expected = f"Bearer {settings.cron_secret}"
    if not authorization or not secrets.compare_digest(authorization, expected):
        logger.warning("Rejected cron call with missing or invalid secret")
        raise AuthenticationError("Invalid cron secret")
