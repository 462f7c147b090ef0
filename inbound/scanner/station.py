"""Operator scan station - drives one operator's inbound work.

Holds the operator name, the outer box being unpacked and the ``ScanTask``
of the inner box currently claimed. Every task is rebuilt from the service's
claim response; nothing local survives a resume.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, List, Optional

import structlog

from inbound import clock
from inbound.errors import InboundError, StateError, ValidationError
from inbound.normalize import to_code, to_quantity, to_text
from inbound.scanner.api import InboundApi
from inbound.scanner.state import ScannedItem, ScanTask
from inbound.services.sku_catalog import SkuCatalog

logger = structlog.get_logger(__name__)


@dataclass
class VerifiedInnerBox:
    inner_box_id: str
    expected_qty: int
    items: List[ScannedItem]
    verified_at: datetime


@dataclass
class OuterBoxRun:
    """Inner boxes confirmed by this station for one outer box."""
    outer_box_id: str
    inner_boxes: List[VerifiedInnerBox] = field(default_factory=list)

    @property
    def products_count(self) -> int:
        return sum(len(b.items) for b in self.inner_boxes)


class ScanStation:
    """One operator working through inner boxes of an outer box."""

    def __init__(
        self,
        api: InboundApi,
        is_valid_sku: Callable[[str], bool],
        batch_size: int = 5,
    ):
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        self.api = api
        self.is_valid_sku = is_valid_sku
        self.batch_size = batch_size
        self.operator = ""
        self.outer_box: Optional[OuterBoxRun] = None
        self.task: Optional[ScanTask] = None

    @classmethod
    def from_settings(cls, api: InboundApi, settings) -> "ScanStation":
        """Station using the configured SKU catalog and batch size."""
        return cls(api, SkuCatalog.from_settings(settings), batch_size=settings.BATCH_SIZE)

    # Operator and outer box

    def set_operator(self, name: str) -> str:
        name = to_text(name)
        if not name:
            raise ValidationError("Username is required.")
        self.operator = name
        return name

    def start_outer_box(self, outer_box_id: str) -> OuterBoxRun:
        """Start a new outer box, or keep the current one if it is the same."""
        outer_box_id = to_text(outer_box_id)
        if not outer_box_id:
            raise ValidationError("Outer Box ID is required.")
        if self.outer_box and self.outer_box.outer_box_id == outer_box_id:
            return self.outer_box
        self.outer_box = OuterBoxRun(outer_box_id=outer_box_id)
        self.task = None
        return self.outer_box

    # Inner box lifecycle

    def begin_inner_box(self, inner_box_id: str, expected_qty) -> ScanTask:
        """Claim (or resume) an inner box and rebuild its state from the ledger."""
        if not self.outer_box:
            raise StateError("Start outer box session first.")
        if not self.operator:
            raise ValidationError("Operator required.")
        inner_box_id = to_text(inner_box_id)
        if not inner_box_id:
            raise ValidationError("Inner Box ID is required.")
        qty = to_quantity(expected_qty)
        if qty < 1:
            raise ValidationError("Quantity must be >= 1.")

        payload = self.api.claim_session(
            self.outer_box.outer_box_id, inner_box_id, qty, self.operator
        )
        self.task = ScanTask.from_claim(payload, self.batch_size)
        logger.info("inner_box_claimed", operator=self.operator, **self.task.summary())
        return self.task

    def _require_task(self) -> ScanTask:
        if not self.task:
            raise StateError("No active session. Please start InnerBox again.")
        return self.task

    def set_sku(self, incoming: str) -> str:
        """Scan the SKU of the next item."""
        task = self._require_task()
        sku = to_code(incoming)
        if not sku:
            raise ValidationError("SKU is required.")
        if not self.is_valid_sku(sku):
            task.reject_sku()
            raise ValidationError(f'Invalid SKU: "{sku}"', sku=sku)

        try:
            task.accept_sku(sku)
            result = self.api.validate_sku(task.session_id, sku, self.operator)
        except InboundError:
            task.reject_sku()
            raise
        pinned = to_code(result.get("lockedSku"))
        if pinned:
            task.locked_sku = pinned
        return sku

    def add_serial(self, incoming: str) -> ScannedItem:
        """Scan a serial for the SKU just entered and save it to the ledger."""
        task = self._require_task()
        serial = task.check_serial(incoming)
        self.api.create_item(task.session_id, task.current_sku, serial, self.operator)
        item = task.record_serial(serial)
        if task.length_anomaly:
            logger.warning(
                "serial_length_anomaly",
                session_id=task.session_id,
                serial=serial,
                baseline=task.baseline_serial_length,
            )
        return item

    def confirm_batch(self) -> int:
        return self._require_task().confirm_batch()

    def reset_batch(self) -> List[ScannedItem]:
        """Delete the pending batch from the ledger and drop it locally."""
        task = self._require_task()
        pending = task.pending_items
        if not pending:
            raise StateError("No pending batch items to reset.")
        result = self.api.delete_batch_items(
            task.session_id, self.operator, [i.serial for i in pending]
        )
        dropped = task.drop_pending(result.get("lockedSku"))
        logger.info(
            "batch_reset",
            session_id=task.session_id,
            dropped=len(dropped),
            deleted=result.get("deletedItems"),
        )
        return dropped

    def heartbeat(self) -> bool:
        """Best-effort lease refresh; failures are reported, never raised."""
        if not self.task or not self.operator:
            return False
        try:
            self.api.heartbeat(self.task.session_id, self.operator)
        except InboundError as exc:
            logger.info("heartbeat_failed", session_id=self.task.session_id, code=exc.code)
            return False
        return True

    def finalize(self) -> VerifiedInnerBox:
        """Complete the session on the service and record the box as verified."""
        task = self._require_task()
        if not task.can_complete:
            raise StateError(
                "Cannot confirm. Please complete scanning first.",
                scanned=task.scanned_count,
                expected=task.expected_qty,
                pending=task.pending_count,
            )
        self.api.complete_session(task.session_id, self.operator)
        task.mark_complete()

        verified = VerifiedInnerBox(
            inner_box_id=task.inner_box_id,
            expected_qty=task.expected_qty,
            items=list(task.items),
            verified_at=clock.utcnow(),
        )
        if self.outer_box:
            self.outer_box.inner_boxes.append(verified)
        self.task = None
        return verified

    def abandon(self) -> None:
        """Release the claim, keeping what was scanned."""
        task = self._require_task()
        self.api.abandon_session(task.session_id, self.operator)
        self.task = None

    def reset_inner_box(self) -> int:
        """Wipe the inner box on the service and forget it locally."""
        deleted = 0
        if self.task:
            result = self.api.reset_session(self.task.session_id, self.operator)
            deleted = int(result.get("deletedItems") or 0)
        self.task = None
        return deleted

    def reset_all(self) -> None:
        self.reset_inner_box()
        self.outer_box = None
