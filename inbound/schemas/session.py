"""Session schemas for request/response validation."""
from datetime import datetime
from typing import List, Optional

from inbound.models.session import SessionStatus
from inbound.schemas.base import CamelModel
from inbound.schemas.item import ScannedItem


class SessionClaim(CamelModel):
    """Schema for claiming or resuming an inner box."""
    outer_box_id: str
    inner_box_id: str
    expected_qty: Optional[int] = None  # may be omitted when resuming
    packed_by: str


class OperatorRequest(CamelModel):
    """Body of heartbeat/complete/abandon/reset."""
    packed_by: str


class SkuCheck(CamelModel):
    packed_by: str
    sku: str


class SessionResponse(CamelModel):
    """Schema for session response."""
    id: int
    outer_box_id: str
    inner_box_id: str
    expected_qty: int
    status: SessionStatus
    locked_by: str
    locked_sku: Optional[str] = None
    locked_at: datetime
    last_seen: datetime
    confirmed_at: Optional[datetime] = None


class ClaimResponse(CamelModel):
    session: SessionResponse
    items: List[ScannedItem] = []


class SessionWithItems(SessionResponse):
    items: List[ScannedItem] = []


class CompleteResponse(CamelModel):
    session: SessionResponse
    scanned: int
    expected: int


class SkuCheckResponse(CamelModel):
    ok: bool = True
    locked_sku: str = ""


class OkResponse(CamelModel):
    ok: bool = True


class ResetResponse(CamelModel):
    ok: bool = True
    deleted_items: int
