"""Item ledger - append-only record of accepted scans.

Inserts and batch deletes lock the owning session row first, so the
ownership check, the SKU lock and the write happen atomically. Global serial
uniqueness is ultimately the database's unique index; the pre-check here only
produces a friendlier error for the common case.
"""
from typing import Iterable, List, Optional, Tuple

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from inbound import clock
from inbound.config import settings
from inbound.database import atomic
from inbound.errors import DuplicateSerialError, SkuMismatchError, ValidationError
from inbound.models.item import InboundItem
from inbound.normalize import to_code, to_int, to_text
from inbound.services.sessions import (
    lock_session,
    require_operator,
    require_owner,
    require_session_id,
)

logger = structlog.get_logger(__name__)


def check_sku(locked_sku: Optional[str], sku: str) -> None:
    """Raise if a pinned SKU exists and ``sku`` differs from it."""
    pinned = to_code(locked_sku)
    if pinned and pinned != sku:
        raise SkuMismatchError(pinned, sku)


def insert_item(db: Session, session_id, sku, serial_number, operator) -> InboundItem:
    """Save one scan. The first accepted item pins the session's SKU."""
    session_id = to_int(session_id, 0)
    sku = to_code(sku)
    serial_number = to_code(serial_number)
    operator = to_text(operator)

    if session_id <= 0 or not sku or not serial_number or not operator:
        raise ValidationError("sessionId, sku, serialNumber, packedBy are required.")

    try:
        with atomic(db):
            session = lock_session(db, session_id)
            require_owner(session, operator)

            if session.locked_sku:
                check_sku(session.locked_sku, sku)
            else:
                session.locked_sku = sku

            duplicate = (
                db.query(InboundItem.id)
                .filter(InboundItem.serial_number == serial_number)
                .first()
            )
            if duplicate:
                raise DuplicateSerialError(serial_number)

            now = clock.utcnow()
            item = InboundItem(
                session_id=session.id,
                outer_box_id=session.outer_box_id,
                inner_box_id=session.inner_box_id,
                sku=sku,
                serial_number=serial_number,
                packed_by=operator,
                created_at=now,
            )
            db.add(item)
            session.last_seen = now
            db.flush()
    except IntegrityError:
        # Lost a race against a concurrent insert of the same serial
        logger.warning("duplicate_serial_race", session_id=session_id, serial_number=serial_number)
        raise DuplicateSerialError(serial_number)
    except (DuplicateSerialError, SkuMismatchError) as exc:
        logger.info(
            "item_rejected",
            session_id=session_id,
            sku=sku,
            serial_number=serial_number,
            reason=exc.code,
        )
        raise

    logger.info(
        "item_accepted",
        session_id=session_id,
        item_id=item.id,
        sku=sku,
        serial_number=serial_number,
        operator=operator,
    )
    return item


def validate_sku(db: Session, session_id, sku, operator) -> str:
    """Check a SKU against the session's pin without changing it.

    Returns the pinned SKU, or an empty string while nothing is pinned.
    """
    session_id = require_session_id(session_id)
    operator = require_operator(operator)
    sku = to_code(sku)
    if not sku:
        raise ValidationError("sku required.")

    with atomic(db):
        session = lock_session(db, session_id)
        require_owner(session, operator)
        check_sku(session.locked_sku, sku)
        return to_code(session.locked_sku)


def delete_batch_items(
    db: Session, session_id, serial_numbers: Iterable[str], operator
) -> Tuple[int, Optional[str]]:
    """Delete the given (pending) serials of one session.

    Only items owned by the session are touched. When the session ends up
    empty its SKU pin is released. Returns the deleted count and the pin
    left in place.
    """
    session_id = require_session_id(session_id)
    operator = require_operator(operator)
    serials = sorted({to_code(s) for s in serial_numbers or [] if to_code(s)})
    if not serials:
        raise ValidationError("serialNumbers required.")

    with atomic(db):
        session = lock_session(db, session_id)
        require_owner(session, operator)

        deleted = (
            db.query(InboundItem)
            .filter(
                InboundItem.session_id == session_id,
                InboundItem.serial_number.in_(serials),
            )
            .delete(synchronize_session=False)
        )
        remaining = db.query(InboundItem).filter(InboundItem.session_id == session_id).count()
        if remaining == 0:
            session.locked_sku = None
        session.last_seen = clock.utcnow()
        locked_sku = session.locked_sku

    logger.info(
        "batch_deleted",
        session_id=session_id,
        operator=operator,
        requested=len(serials),
        deleted_items=deleted,
        remaining=remaining,
    )
    return deleted, locked_sku


def list_items(
    db: Session,
    outer_box_id: Optional[str] = None,
    inner_box_id: Optional[str] = None,
    sku: Optional[str] = None,
    serial_number: Optional[str] = None,
    limit: int = 50,
) -> List[InboundItem]:
    """Newest-first listing of ledger rows, no locking."""
    query = db.query(InboundItem)
    if to_text(outer_box_id):
        query = query.filter(InboundItem.outer_box_id == to_text(outer_box_id))
    if to_text(inner_box_id):
        query = query.filter(InboundItem.inner_box_id == to_text(inner_box_id))
    if to_code(sku):
        query = query.filter(InboundItem.sku == to_code(sku))
    if to_code(serial_number):
        query = query.filter(InboundItem.serial_number == to_code(serial_number))

    limit = max(1, min(to_int(limit, 50) or 50, settings.ITEM_LIST_MAX_LIMIT))
    return query.order_by(InboundItem.created_at.desc(), InboundItem.id.desc()).limit(limit).all()
