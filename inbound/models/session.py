"""Inbound session model - the claim on one inner box."""
import enum

from sqlalchemy import Column, Integer, String, DateTime, Enum, Index, text
from sqlalchemy.orm import relationship

from inbound.clock import utcnow
from inbound.database import Base


class SessionStatus(str, enum.Enum):
    IN_PROGRESS = "IN_PROGRESS"
    CONFIRMED = "CONFIRMED"
    ABANDONED = "ABANDONED"


class InboundSession(Base):
    """One scanning claim on an (outer box, inner box) pair.

    Only one IN_PROGRESS row may exist per pair. An abandoned row that still
    holds items is reopened by the next claim; an emptied one (after a reset)
    is history and the next claim starts a new row.
    """
    __tablename__ = "inbound_sessions"

    id = Column(Integer, primary_key=True, index=True)
    outer_box_id = Column(String(100), nullable=False, index=True)
    inner_box_id = Column(String(100), nullable=False, index=True)
    expected_qty = Column(Integer, nullable=False, default=0)
    status = Column(Enum(SessionStatus), nullable=False, default=SessionStatus.IN_PROGRESS)
    locked_by = Column(String(100), nullable=False)
    locked_sku = Column(String(100), nullable=True)
    locked_at = Column(DateTime, nullable=False, default=utcnow)
    last_seen = Column(DateTime, nullable=False, default=utcnow)
    confirmed_at = Column(DateTime, nullable=True)

    # Relationships
    items = relationship(
        "InboundItem",
        back_populates="session",
        order_by="InboundItem.id",
        passive_deletes=True,
    )

    __table_args__ = (
        Index(
            "uq_inbound_sessions_active_box",
            "outer_box_id",
            "inner_box_id",
            unique=True,
            postgresql_where=text("status = 'IN_PROGRESS'"),
            sqlite_where=text("status = 'IN_PROGRESS'"),
        ),
    )
