"""
Installation liveness bookkeeping.
Last sync time and source IP are informational; failures never fail a sync.
"""
from datetime import datetime, timezone
from typing import Callable, Optional

import pytz
import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..models.models import Installation

logger = structlog.get_logger(__name__)


def record_heartbeat(
    db: Session,
    installation_id: int,
    ip: Optional[str],
    at: Optional[datetime] = None,
) -> bool:
    """
    Store the last sync time and source IP for an installation.

    Returns:
        True if the heartbeat was persisted
    """
    at = at or datetime.now(timezone.utc)
    try:
        installation = db.get(Installation, installation_id)
        if installation is None:
            logger.warning("heartbeat_installation_missing", installation_id=installation_id)
            return False
        installation.last_synced_at = at
        installation.last_ip = ip
        db.commit()
        return True
    except SQLAlchemyError as e:
        db.rollback()
        logger.warning("heartbeat_failed", installation_id=installation_id, error=str(e))
        return False


def record_heartbeat_job(session_factory: Callable[[], Session], installation_id: int, ip: Optional[str]) -> None:
    """Background task wrapper; runs after the sync response is sent."""
    db = session_factory()
    try:
        record_heartbeat(db, installation_id, ip)
    finally:
        db.close()


def format_last_synced(dt: Optional[datetime], tz_name: str) -> str:
    """Render a heartbeat time like ``15:04:05 PST Jan 2, 2006`` in the given timezone."""
    if dt is None:
        return ""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=pytz.UTC)
    try:
        tz = pytz.timezone(tz_name)
    except pytz.UnknownTimeZoneError:
        tz = pytz.UTC
    local = dt.astimezone(tz)
    return f"{local:%H:%M:%S %Z %b} {local.day}, {local.year}"
