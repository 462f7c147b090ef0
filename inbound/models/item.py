"""Inbound item model - one accepted scan."""
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey
from sqlalchemy.orm import relationship

from inbound.clock import utcnow
from inbound.database import Base


class InboundItem(Base):
    """A scanned (SKU, serial) pair owned by a session.

    Serial numbers are unique across the whole ledger, not per session.
    """
    __tablename__ = "inbound_items"

    id = Column(Integer, primary_key=True, index=True)
    session_id = Column(
        Integer, ForeignKey("inbound_sessions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    # Snapshot of the box identity for listing without a join
    outer_box_id = Column(String(100), nullable=False, index=True)
    inner_box_id = Column(String(100), nullable=False, index=True)
    sku = Column(String(100), nullable=False, index=True)
    serial_number = Column(String(200), unique=True, index=True, nullable=False)
    packed_by = Column(String(100), nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    # Relationships
    session = relationship("InboundSession", back_populates="items")
