"""Session coordinator - exclusive, resumable claims on inner boxes.

Every read-then-write on a session row runs inside one transaction holding
the row lock (``SELECT ... FOR UPDATE``). That lock is the only
serialization point between operators working on the same inner box.
"""
from dataclasses import dataclass, field
from datetime import timedelta
from typing import List, Optional, Tuple

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from inbound import clock
from inbound.config import settings
from inbound.database import atomic
from inbound.errors import (
    AlreadyCompletedError,
    LockedByOtherError,
    MisconfiguredError,
    NotAllowedError,
    NotInProgressError,
    NotOwnerError,
    QuantityMismatchError,
    SessionNotFoundError,
    ValidationError,
)
from inbound.models.item import InboundItem
from inbound.models.session import InboundSession, SessionStatus
from inbound.normalize import to_int, to_quantity, to_text

logger = structlog.get_logger(__name__)

# A claim that loses the creation race re-runs once against the winner's row
CLAIM_ATTEMPTS = 2


@dataclass
class ClaimResult:
    session: InboundSession
    items: List[InboundItem] = field(default_factory=list)
    created: bool = False
    taken_over_from: Optional[str] = None
    reopened: bool = False


def lease_expired(session: InboundSession, lease_seconds: Optional[float] = None) -> bool:
    """True when the holder has not been seen for longer than the lease."""
    if lease_seconds is None:
        lease_seconds = settings.lease_seconds
    return clock.utcnow() - session.last_seen > timedelta(seconds=lease_seconds)


def lock_session(db: Session, session_id: int) -> InboundSession:
    """Load a session row under an exclusive row lock."""
    session = (
        db.query(InboundSession)
        .filter(InboundSession.id == session_id)
        .with_for_update()
        .first()
    )
    if not session:
        raise SessionNotFoundError(session_id)
    return session


def require_owner(session: InboundSession, operator: str) -> None:
    """Status and ownership preconditions shared by every mutation."""
    if session.status != SessionStatus.IN_PROGRESS:
        raise NotInProgressError(session.status.value)
    if to_text(session.locked_by) != operator:
        raise NotOwnerError(session.locked_by)


def require_operator(operator) -> str:
    operator = to_text(operator)
    if not operator:
        raise ValidationError("packedBy (operator username) is required.")
    return operator


def require_session_id(session_id) -> int:
    session_id = to_int(session_id, 0)
    if session_id <= 0:
        raise ValidationError("Invalid session id.")
    return session_id


def session_items(db: Session, session_id: int) -> List[InboundItem]:
    """All items of a session in insertion order."""
    return (
        db.query(InboundItem)
        .filter(InboundItem.session_id == session_id)
        .order_by(InboundItem.id.asc())
        .all()
    )


def claim_session(
    db: Session,
    outer_box_id,
    inner_box_id,
    expected_qty,
    operator,
    lease_seconds: Optional[float] = None,
) -> ClaimResult:
    """Create, resume or take over the session of an inner box.

    A new session needs ``expected_qty >= 1``. Resuming keeps the stored
    quantity unless a larger one is offered. An abandoned session that still
    holds items is reopened for whoever claims the box next.
    """
    outer = to_text(outer_box_id)
    inner = to_text(inner_box_id)
    operator = to_text(operator)
    qty = to_quantity(expected_qty)

    if not outer or not inner:
        raise ValidationError("outerBoxId and innerBoxId are required.")
    if not operator:
        raise ValidationError("packedBy (operator username) is required.")

    for attempt in range(CLAIM_ATTEMPTS):
        try:
            with atomic(db):
                return _claim_locked(db, outer, inner, qty, operator, lease_seconds)
        except IntegrityError:
            # Another operator created the active row between our lookup and
            # insert; the retry will find and lock it.
            logger.info(
                "claim_create_race",
                outer_box_id=outer,
                inner_box_id=inner,
                operator=operator,
                attempt=attempt + 1,
            )
            if attempt + 1 >= CLAIM_ATTEMPTS:
                raise LockedByOtherError(_current_holder(db, outer, inner))
    raise AssertionError("unreachable")


def _current_holder(db: Session, outer: str, inner: str) -> str:
    session = (
        db.query(InboundSession)
        .filter(
            InboundSession.outer_box_id == outer,
            InboundSession.inner_box_id == inner,
            InboundSession.status == SessionStatus.IN_PROGRESS,
        )
        .first()
    )
    return session.locked_by if session else ""


def _claim_locked(
    db: Session,
    outer: str,
    inner: str,
    qty: int,
    operator: str,
    lease_seconds: Optional[float],
) -> ClaimResult:
    # Latest row for the box. A CONFIRMED row is final, an ABANDONED row that
    # still holds items is reopened, and an empty ABANDONED row (a reset) is
    # history.
    existing = (
        db.query(InboundSession)
        .filter(
            InboundSession.outer_box_id == outer,
            InboundSession.inner_box_id == inner,
        )
        .order_by(InboundSession.id.desc())
        .with_for_update()
        .first()
    )

    now = clock.utcnow()

    reopened = False
    if existing is not None and existing.status == SessionStatus.ABANDONED:
        has_items = (
            db.query(InboundItem.id).filter(InboundItem.session_id == existing.id).first()
        )
        if has_items:
            reopened = True
        else:
            existing = None

    if existing is None:
        if qty < 1:
            raise ValidationError("expectedQty must be >= 1.")
        session = InboundSession(
            outer_box_id=outer,
            inner_box_id=inner,
            expected_qty=qty,
            status=SessionStatus.IN_PROGRESS,
            locked_by=operator,
            locked_at=now,
            last_seen=now,
        )
        db.add(session)
        db.flush()
        logger.info(
            "session_created",
            session_id=session.id,
            outer_box_id=outer,
            inner_box_id=inner,
            expected_qty=qty,
            operator=operator,
        )
        return ClaimResult(session=session, items=[], created=True)

    if existing.status == SessionStatus.CONFIRMED:
        raise AlreadyCompletedError(inner)

    expired = lease_expired(existing, lease_seconds)
    previous_holder = existing.locked_by

    if previous_holder != operator and not expired and not reopened:
        logger.info(
            "claim_blocked",
            session_id=existing.id,
            locked_by=previous_holder,
            operator=operator,
        )
        raise LockedByOtherError(previous_holder)

    taken_over_from = None
    if previous_holder != operator:
        taken_over_from = previous_holder
    if taken_over_from or reopened:
        existing.locked_at = now

    existing.status = SessionStatus.IN_PROGRESS
    existing.locked_by = operator
    existing.last_seen = now
    if qty > existing.expected_qty:
        existing.expected_qty = qty
    db.flush()

    event = "session_resumed"
    if reopened:
        event = "session_reopened"
    elif taken_over_from:
        event = "session_taken_over"

    items = session_items(db, existing.id)
    logger.info(
        event,
        session_id=existing.id,
        operator=operator,
        previous_holder=taken_over_from,
        items=len(items),
    )
    return ClaimResult(
        session=existing, items=items, taken_over_from=taken_over_from, reopened=reopened
    )


def heartbeat(db: Session, session_id, operator) -> None:
    """Refresh last_seen for the holder of an IN_PROGRESS session."""
    session_id = require_session_id(session_id)
    operator = require_operator(operator)

    with atomic(db):
        updated = (
            db.query(InboundSession)
            .filter(
                InboundSession.id == session_id,
                InboundSession.locked_by == operator,
                InboundSession.status == SessionStatus.IN_PROGRESS,
            )
            .update({InboundSession.last_seen: clock.utcnow()}, synchronize_session=False)
        )
    if not updated:
        logger.info("heartbeat_rejected", session_id=session_id, operator=operator)
        raise NotAllowedError(
            "Not allowed (locked by another user or not in progress).", sessionId=session_id
        )


def complete_session(db: Session, session_id, operator) -> Tuple[InboundSession, int, int]:
    """Confirm a session whose scanned count matches its expected quantity.

    Returns the session with the scanned and expected counts.
    """
    session_id = require_session_id(session_id)
    operator = require_operator(operator)

    with atomic(db):
        session = lock_session(db, session_id)
        require_owner(session, operator)

        expected = to_int(session.expected_qty, 0)
        if expected <= 0:
            raise MisconfiguredError("Expected quantity not set.")

        scanned = db.query(InboundItem).filter(InboundItem.session_id == session_id).count()
        if scanned != expected:
            raise QuantityMismatchError(scanned, expected)

        now = clock.utcnow()
        session.status = SessionStatus.CONFIRMED
        session.confirmed_at = now
        session.last_seen = now

    logger.info(
        "session_completed", session_id=session_id, operator=operator, scanned=scanned
    )
    return session, scanned, expected


def abandon_session(db: Session, session_id, operator) -> None:
    """Release the claim without touching the scanned items.

    The next claim on the box reopens this session with its items.
    """
    session_id = require_session_id(session_id)
    operator = require_operator(operator)

    with atomic(db):
        updated = (
            db.query(InboundSession)
            .filter(
                InboundSession.id == session_id,
                InboundSession.locked_by == operator,
                InboundSession.status == SessionStatus.IN_PROGRESS,
            )
            .update(
                {
                    InboundSession.status: SessionStatus.ABANDONED,
                    InboundSession.last_seen: clock.utcnow(),
                },
                synchronize_session=False,
            )
        )
    if not updated:
        raise NotAllowedError("Not allowed.", sessionId=session_id)
    logger.info("session_abandoned", session_id=session_id, operator=operator)


def reset_session(db: Session, session_id, operator) -> int:
    """Delete every item of the session and abandon it.

    The next claim on the same inner box starts a fresh session row.
    Returns the number of deleted items.
    """
    session_id = require_session_id(session_id)
    operator = require_operator(operator)

    with atomic(db):
        session = lock_session(db, session_id)
        if to_text(session.locked_by) != operator:
            raise NotOwnerError(session.locked_by)
        if session.status != SessionStatus.IN_PROGRESS:
            raise NotInProgressError(session.status.value)

        deleted = (
            db.query(InboundItem)
            .filter(InboundItem.session_id == session_id)
            .delete(synchronize_session=False)
        )
        session.status = SessionStatus.ABANDONED
        session.locked_sku = None
        session.last_seen = clock.utcnow()

    logger.info("session_reset", session_id=session_id, operator=operator, deleted_items=deleted)
    return deleted


def get_session(db: Session, session_id) -> Tuple[InboundSession, List[InboundItem]]:
    """Read-only view of a session and its items."""
    session_id = require_session_id(session_id)
    session = db.query(InboundSession).filter(InboundSession.id == session_id).first()
    if not session:
        raise SessionNotFoundError(session_id)
    return session, session_items(db, session_id)
