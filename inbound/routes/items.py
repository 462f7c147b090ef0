"""Inbound item routes."""
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from inbound.database import get_db
from inbound.schemas.item import BatchDelete, BatchDeleteResponse, ItemCreate, ItemResponse
from inbound.services import ledger

router = APIRouter(prefix="/inbounds", tags=["Inbound Items"])


@router.get("/", response_model=List[ItemResponse])
def list_items(
    outer_box_id: Optional[str] = Query(None, alias="outerBoxId"),
    inner_box_id: Optional[str] = Query(None, alias="innerBoxId"),
    sku: Optional[str] = Query(None),
    serial_number: Optional[str] = Query(None, alias="serialNumber"),
    limit: int = Query(50, description="Capped at ITEM_LIST_MAX_LIMIT"),
    db: Session = Depends(get_db),
):
    """List scanned items, newest first, optionally filtered."""
    return ledger.list_items(
        db,
        outer_box_id=outer_box_id,
        inner_box_id=inner_box_id,
        sku=sku,
        serial_number=serial_number,
        limit=limit,
    )


@router.post("/items", response_model=ItemResponse, status_code=status.HTTP_201_CREATED)
def create_item(
    item_data: ItemCreate,
    db: Session = Depends(get_db),
):
    """Save one scan (SKU + serial) into the operator's session."""
    return ledger.insert_item(
        db,
        item_data.session_id,
        item_data.sku,
        item_data.serial_number,
        item_data.packed_by,
    )


@router.post("/sessions/{session_id}/items/delete-batch", response_model=BatchDeleteResponse)
def delete_batch_items(
    session_id: int,
    body: BatchDelete,
    db: Session = Depends(get_db),
):
    """Delete the not-yet-confirmed batch of a session by serial number."""
    deleted, locked_sku = ledger.delete_batch_items(
        db, session_id, body.serial_numbers, body.packed_by
    )
    return BatchDeleteResponse(deleted_items=deleted, locked_sku=locked_sku)
