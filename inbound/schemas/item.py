"""Item schemas for request/response validation."""
from datetime import datetime
from typing import List, Optional

from pydantic import Field

from inbound.schemas.base import CamelModel


class ItemCreate(CamelModel):
    """Schema for saving one scan."""
    session_id: int
    sku: str
    serial_number: str
    packed_by: str


class ItemResponse(CamelModel):
    """Schema for a stored ledger row."""
    id: int
    session_id: int
    outer_box_id: str
    inner_box_id: str
    sku: str
    serial_number: str
    packed_by: str
    created_at: datetime


class ScannedItem(CamelModel):
    """Compact item as replayed on claim."""
    sku: str
    serial: str


class BatchDelete(CamelModel):
    """Schema for deleting the pending batch of a session."""
    packed_by: str
    serial_numbers: List[str] = Field(default_factory=list)


class BatchDeleteResponse(CamelModel):
    ok: bool = True
    deleted_items: int
    locked_sku: Optional[str] = None
