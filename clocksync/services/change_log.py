"""
Change log store.
Append-only, per-company ledger of time clock changes. Record ids are
assigned by the database and double as the installations' sync cursor.
"""
from typing import List, Union

import structlog
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..models.models import ChangeRecord, Company
from ..schemas.sync import ChangeKind, ChangePayload, decode_payload
from .errors import NotFound, TransientStoreError

logger = structlog.get_logger(__name__)

# Largest id a BIGINT column can hold
MAX_CHANGE_ID = 2 ** 63 - 1


def append(
    db: Session,
    company_id: int,
    kind: Union[ChangeKind, str],
    payload: Union[ChangePayload, dict],
    commit: bool = True,
) -> ChangeRecord:
    """
    Append a change record for a company.

    Appends for one company are serialized on the company row so that commit
    order matches id order; a reader can never see id N+1 before id N.

    Args:
        db: Database session
        company_id: Owning company (tenant)
        kind: Stored change kind (never SKIP)
        payload: Payload variant or its dict form; validated against ``kind``
        commit: Commit here; pass False to join the caller's transaction

    Returns:
        The persisted ChangeRecord (id assigned)
    """
    kind = ChangeKind(kind)
    if kind is ChangeKind.skip:
        raise ValueError("SKIP changes are synthetic and cannot be stored")
    if isinstance(payload, dict):
        payload = decode_payload(kind, payload)
    elif payload.kind != kind.value:
        raise ValueError(f"payload {payload.kind} does not match change kind {kind.value}")

    try:
        locked = db.execute(
            select(Company.id).where(Company.id == company_id).with_for_update()
        ).scalar_one_or_none()
        if locked is None:
            raise NotFound("Company not found")

        record = ChangeRecord(company_id=company_id, kind=kind.value, data=payload.to_data())
        db.add(record)
        db.flush()
        if commit:
            db.commit()
            db.refresh(record)
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception("store_error", op="append", company_id=company_id, kind=kind.value)
        raise TransientStoreError() from e

    logger.info("change_appended", company_id=company_id, change_id=record.id, kind=kind.value)
    return record


def read_after(db: Session, company_id: int, cursor: int) -> List[ChangeRecord]:
    """
    Return every change for a company with id greater than the cursor.

    Cursors past the head of the log return an empty list.
    """
    cursor = max(int(cursor), 0)
    if cursor >= MAX_CHANGE_ID:
        return []
    try:
        return list(db.scalars(
            select(ChangeRecord)
            .where(ChangeRecord.company_id == company_id, ChangeRecord.id > cursor)
            .order_by(ChangeRecord.id.asc())
        ))
    except SQLAlchemyError as e:
        logger.exception("store_error", op="read_after", company_id=company_id, cursor=cursor)
        raise TransientStoreError() from e


def head(db: Session, company_id: int) -> int:
    """Highest change id for the company, 0 when the log is empty."""
    try:
        return db.scalar(
            select(func.coalesce(func.max(ChangeRecord.id), 0)).where(ChangeRecord.company_id == company_id)
        ) or 0
    except SQLAlchemyError as e:
        logger.exception("store_error", op="head", company_id=company_id)
        raise TransientStoreError() from e
