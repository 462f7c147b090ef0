"""Inbound session routes - claim, heartbeat, complete, abandon, reset."""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from inbound.database import get_db
from inbound.schemas.item import ScannedItem
from inbound.schemas.session import (
    ClaimResponse,
    CompleteResponse,
    OkResponse,
    OperatorRequest,
    ResetResponse,
    SessionClaim,
    SessionResponse,
    SessionWithItems,
    SkuCheck,
    SkuCheckResponse,
)
from inbound.services import ledger, sessions

router = APIRouter(prefix="/inbounds/sessions", tags=["Inbound Sessions"])


def _scanned(items):
    return [ScannedItem(sku=item.sku, serial=item.serial_number) for item in items]


@router.post("/claim", response_model=ClaimResponse)
def claim_session(
    claim: SessionClaim,
    db: Session = Depends(get_db),
):
    """Claim a new inner box, resume our own, or take over an expired one.

    Returns the session and every item already scanned into it, in scan
    order, so the client can rebuild its batch state.
    """
    result = sessions.claim_session(
        db,
        claim.outer_box_id,
        claim.inner_box_id,
        claim.expected_qty,
        claim.packed_by,
    )
    return ClaimResponse(
        session=SessionResponse.model_validate(result.session),
        items=_scanned(result.items),
    )


@router.get("/{session_id}", response_model=SessionWithItems)
def get_session(
    session_id: int,
    db: Session = Depends(get_db),
):
    """Get a session with its scanned items."""
    session, items = sessions.get_session(db, session_id)
    data = SessionResponse.model_validate(session).model_dump()
    return SessionWithItems(**data, items=_scanned(items))


@router.post("/{session_id}/heartbeat", response_model=OkResponse)
def heartbeat(
    session_id: int,
    body: OperatorRequest,
    db: Session = Depends(get_db),
):
    """Keep the lease alive while scanning."""
    sessions.heartbeat(db, session_id, body.packed_by)
    return OkResponse()


@router.post("/{session_id}/validate-sku", response_model=SkuCheckResponse)
def validate_sku(
    session_id: int,
    body: SkuCheck,
    db: Session = Depends(get_db),
):
    """Check a SKU against the session's locked SKU (does not lock it)."""
    locked_sku = ledger.validate_sku(db, session_id, body.sku, body.packed_by)
    return SkuCheckResponse(locked_sku=locked_sku)


@router.post("/{session_id}/complete", response_model=CompleteResponse)
def complete_session(
    session_id: int,
    body: OperatorRequest,
    db: Session = Depends(get_db),
):
    """Confirm the inner box once scanned quantity equals expected quantity."""
    session, scanned, expected = sessions.complete_session(db, session_id, body.packed_by)
    return CompleteResponse(
        session=SessionResponse.model_validate(session),
        scanned=scanned,
        expected=expected,
    )


@router.post("/{session_id}/abandon", response_model=OkResponse)
def abandon_session(
    session_id: int,
    body: OperatorRequest,
    db: Session = Depends(get_db),
):
    """Release the claim, keeping scanned items."""
    sessions.abandon_session(db, session_id, body.packed_by)
    return OkResponse()


@router.post("/{session_id}/reset", response_model=ResetResponse)
def reset_session(
    session_id: int,
    body: OperatorRequest,
    db: Session = Depends(get_db),
):
    """Delete all scanned items and abandon the session."""
    deleted = sessions.reset_session(db, session_id, body.packed_by)
    return ResetResponse(deleted_items=deleted)
