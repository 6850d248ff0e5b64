"""
Time clock installation provisioning and lookup.
"""
import secrets
from typing import List, Optional

import structlog
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ..config import settings
from ..models.models import Company, Installation
from ..schemas.timeclock import InstallationOut
from .errors import NotFound, Unauthorized
from .filters import empty_filter, parse_filter
from .heartbeat import format_last_synced

logger = structlog.get_logger(__name__)


def generate_token() -> str:
    return secrets.token_urlsafe(settings.installation_token_bytes)


def get_installation_by_token(db: Session, token: str) -> Installation:
    if not token:
        raise NotFound("Installation not found")
    installation = db.scalar(select(Installation).where(Installation.token == token))
    if installation is None:
        raise NotFound("Installation not found")
    return installation


def get_company_installation(db: Session, company: Company, token: str) -> Installation:
    """Resolve an installation token and check it belongs to the caller's company."""
    installation = get_installation_by_token(db, token)
    if installation.company_id != company.id:
        logger.warning(
            "installation_company_mismatch",
            installation_id=installation.id,
            company_id=company.id,
        )
        raise Unauthorized()
    return installation


def list_installations(db: Session, company_id: int) -> List[Installation]:
    return list(db.scalars(
        select(Installation).where(Installation.company_id == company_id).order_by(Installation.id)
    ))


def create_installation(
    db: Session,
    company: Company,
    ip: Optional[str],
    name: str = "",
    employee_filters: Optional[dict] = None,
) -> Installation:
    """
    Provision a new installation.

    Without a name the installation is numbered after the company's existing
    ones. A missing or unusable filter becomes the empty filter, so a fresh
    installation sees no employees until it is configured.
    """
    name_to_use = (name or "").strip()
    if not name_to_use:
        existing = db.scalar(
            select(func.count(Installation.id)).where(Installation.company_id == company.id)
        ) or 0
        name_to_use = settings.installation_default_name.format(n=existing + 1)

    parsed = parse_filter(employee_filters)
    if parsed is None or not parsed.is_configured:
        parsed = empty_filter()

    installation = Installation(
        token=generate_token(),
        company_id=company.id,
        display_name=name_to_use,
        last_ip=ip,
        employee_filters=parsed.model_dump(),
        client_settings={},
    )
    db.add(installation)
    db.commit()
    db.refresh(installation)

    logger.info("installation_created", installation_id=installation.id, company_id=company.id)
    return installation


def installation_to_dict(installation: Installation, company: Optional[Company] = None) -> dict:
    out = InstallationOut.model_validate(installation).model_copy(update={
        "last_synced": format_last_synced(installation.last_synced_at, settings.tz_default),
        "company_name": company.name if company is not None else "",
    })
    return out.model_dump(mode="json")
