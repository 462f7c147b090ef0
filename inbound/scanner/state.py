"""Scan-batch state machine for one inner box.

Pure client-side state. Nothing here talks to the service; the station feeds
in claim responses and accepted scans, and asks the task what the operator
may do next. The whole state can be rebuilt from ``(items, batch_size)``.
"""
import enum
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from inbound.errors import (
    BatchLockedError,
    DuplicateSerialError,
    ScanLockedError,
    SkuMismatchError,
    StateError,
    ValidationError,
)
from inbound.normalize import to_code, to_int, to_quantity, to_text


class ScanPhase(str, enum.Enum):
    EMPTY = "EMPTY"
    SKU_PENDING = "SKU_PENDING"
    SKU_LOCKED = "SKU_LOCKED"
    SERIAL_ACCEPTED = "SERIAL_ACCEPTED"
    BATCH_FULL = "BATCH_FULL"
    BATCH_CONFIRMED = "BATCH_CONFIRMED"
    COMPLETE = "COMPLETE"


# Phases in which the next scan must be a SKU
AWAITING_SKU = (
    ScanPhase.EMPTY,
    ScanPhase.SKU_PENDING,
    ScanPhase.SERIAL_ACCEPTED,
    ScanPhase.BATCH_CONFIRMED,
)


@dataclass
class ScannedItem:
    sku: str
    serial: str

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "ScannedItem":
        serial = payload.get("serial") or payload.get("serialNumber")
        return cls(sku=to_code(payload.get("sku")), serial=to_code(serial))


@dataclass
class ScanTask:
    """Scanning progress of the inner box currently claimed by this client."""

    session_id: int
    outer_box_id: str
    inner_box_id: str
    expected_qty: int
    batch_size: int
    locked_sku: str = ""
    items: List[ScannedItem] = field(default_factory=list)
    confirmed_count: int = 0
    current_sku: str = ""
    batch_locked: bool = False
    length_anomaly: bool = False
    scan_locked: bool = False
    phase: ScanPhase = ScanPhase.EMPTY

    @classmethod
    def from_claim(cls, payload: Dict[str, Any], batch_size: int) -> "ScanTask":
        """Rehydrate from a claim response; local state is never carried over.

        Whole batches already in the ledger count as confirmed, a trailing
        partial batch is pending and must be confirmed or reset again. The
        serial length guard is replayed over that pending batch.
        """
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        session = payload["session"]
        items = [ScannedItem.from_payload(i) for i in payload.get("items") or []]

        locked_sku = to_code(session.get("lockedSku"))
        if not locked_sku and items:
            locked_sku = items[0].sku

        confirmed = (len(items) // batch_size) * batch_size
        task = cls(
            session_id=to_int(session["id"]),
            outer_box_id=to_text(session.get("outerBoxId")),
            inner_box_id=to_text(session.get("innerBoxId")),
            expected_qty=to_quantity(session.get("expectedQty")),
            batch_size=batch_size,
            locked_sku=locked_sku,
            items=items,
            confirmed_count=confirmed,
        )
        task.phase = ScanPhase.SKU_PENDING if items else ScanPhase.EMPTY

        # A saved serial of the wrong length keeps the batch locked until reset
        baseline = task.baseline_serial_length
        if baseline is not None and any(
            len(i.serial) != baseline for i in task.pending_items
        ):
            task.length_anomaly = True
            task.batch_locked = True
            task.phase = ScanPhase.BATCH_FULL
        return task

    # Counters

    @property
    def scanned_count(self) -> int:
        return len(self.items)

    @property
    def pending_count(self) -> int:
        return max(0, len(self.items) - self.confirmed_count)

    @property
    def pending_items(self) -> List[ScannedItem]:
        return self.items[self.confirmed_count:]

    @property
    def is_batch_full(self) -> bool:
        return self.pending_count >= self.batch_size

    @property
    def total_batches(self) -> int:
        if self.expected_qty <= 0:
            return 0
        return -(-self.expected_qty // self.batch_size)

    @property
    def current_batch_index(self) -> int:
        """1-based index of the batch being filled."""
        total = self.total_batches
        if total <= 0:
            return 1
        return min(self.confirmed_count // self.batch_size + 1, total)

    @property
    def is_last_batch(self) -> bool:
        return self.total_batches > 0 and self.current_batch_index == self.total_batches

    # Gates

    @property
    def needs_sku(self) -> bool:
        return self.phase in AWAITING_SKU

    @property
    def locked(self) -> bool:
        return self.scan_locked or self.batch_locked

    @property
    def can_scan_serial(self) -> bool:
        return (
            self.phase == ScanPhase.SKU_LOCKED
            and bool(self.current_sku)
            and not self.locked
            and self.scanned_count < self.expected_qty
        )

    @property
    def can_confirm_batch(self) -> bool:
        return (
            not self.scan_locked
            and not self.length_anomaly
            and 0 < self.pending_count <= self.batch_size
        )

    @property
    def can_reset_batch(self) -> bool:
        return not self.scan_locked and self.pending_count > 0

    @property
    def can_complete(self) -> bool:
        """Mirrors the service's completion precondition."""
        return (
            self.expected_qty > 0
            and self.scanned_count == self.expected_qty
            and self.pending_count == 0
            and not self.locked
        )

    # Serial length guard

    @property
    def baseline_serial_length(self) -> Optional[int]:
        """Expected serial length, or None while nothing is known yet.

        Once a full batch is confirmed it is the most common length among
        confirmed serials; before that, the length of the first serial of the
        open batch.
        """
        if self.confirmed_count >= self.batch_size:
            lengths = Counter(len(i.serial) for i in self.items[:self.confirmed_count])
            return lengths.most_common(1)[0][0]
        if self.pending_items:
            return len(self.pending_items[0].serial)
        if self.items:
            return len(self.items[0].serial)
        return None

    # Transitions

    def accept_sku(self, sku: str) -> str:
        """Enter the SKU for the next item. Raises when it breaks the pin."""
        if self.scan_locked:
            raise ScanLockedError("Scanning is locked. Complete or reset.")
        sku = to_code(sku)
        if not sku:
            raise ValidationError("SKU is required.")
        if self.locked_sku and sku != self.locked_sku:
            self.current_sku = ""
            if not self.batch_locked:
                self.phase = ScanPhase.SKU_PENDING if self.items else ScanPhase.EMPTY
            raise SkuMismatchError(self.locked_sku, sku)
        self.current_sku = sku
        if not self.batch_locked:
            self.phase = ScanPhase.SKU_LOCKED
        return sku

    def reject_sku(self) -> None:
        self.current_sku = ""
        if self.phase == ScanPhase.SKU_LOCKED:
            self.phase = ScanPhase.SKU_PENDING if self.items else ScanPhase.EMPTY

    def check_serial(self, serial: str) -> str:
        """Client-side guards run before a serial is sent to the ledger."""
        if self.scan_locked:
            raise ScanLockedError("Scanning is locked. Complete or reset.")
        if self.batch_locked:
            raise BatchLockedError(
                "Batch is locked. Confirm or reset the batch.",
                pendingCount=self.pending_count,
                lengthAnomaly=self.length_anomaly,
            )
        serial = to_code(serial)
        if not serial:
            raise ValidationError("Serial number is required.")
        if self.phase != ScanPhase.SKU_LOCKED or not self.current_sku:
            raise StateError("Scan valid SKU first.")
        if serial == self.current_sku:
            raise ValidationError("Serial number cannot be the same as SKU.")
        if any(i.serial == serial for i in self.items):
            raise DuplicateSerialError(serial, f"Duplicate serial in this InnerBox: {serial}")
        if self.scanned_count >= self.expected_qty:
            raise StateError(
                f"Quantity already reached ({self.expected_qty}).",
                expected=self.expected_qty,
            )
        return serial

    def record_serial(self, serial: str, sku: Optional[str] = None) -> ScannedItem:
        """Append a serial the ledger accepted and advance the cycle."""
        baseline = self.baseline_serial_length
        item = ScannedItem(sku=to_code(sku or self.current_sku), serial=to_code(serial))
        self.items.append(item)
        if not self.locked_sku:
            self.locked_sku = item.sku

        # Every item needs a fresh SKU scan
        self.current_sku = ""
        self.phase = ScanPhase.SERIAL_ACCEPTED

        if baseline is not None and len(item.serial) != baseline:
            self.length_anomaly = True
            self.batch_locked = True
        if self.is_batch_full:
            self.batch_locked = True
        if self.batch_locked:
            self.phase = ScanPhase.BATCH_FULL
        return item

    def confirm_batch(self) -> int:
        """Close the pending batch. Returns the number of items confirmed."""
        pending = self.pending_count
        if self.length_anomaly:
            raise BatchLockedError(
                "Serial length changed within the box. Reset the batch.",
                baseline=self.baseline_serial_length,
            )
        if pending <= 0:
            raise StateError("No items to confirm in the current batch.")
        if pending > self.batch_size:
            raise StateError(f"Batch cannot exceed {self.batch_size} items. Reset batch.")
        self.confirmed_count += pending
        self.batch_locked = False
        self.current_sku = ""
        self.phase = ScanPhase.BATCH_CONFIRMED
        return pending

    def drop_pending(self, locked_sku: Optional[str] = None) -> List[ScannedItem]:
        """Forget the pending batch after the ledger deleted it."""
        dropped = self.pending_items
        del self.items[self.confirmed_count:]
        self.batch_locked = False
        self.length_anomaly = False
        self.current_sku = ""
        if self.confirmed_count == 0:
            self.locked_sku = to_code(locked_sku)
        self.phase = ScanPhase.SKU_PENDING if self.items else ScanPhase.EMPTY
        return dropped

    def mark_complete(self) -> None:
        self.scan_locked = True
        self.current_sku = ""
        self.phase = ScanPhase.COMPLETE

    def summary(self) -> Dict[str, Any]:
        return {
            "sessionId": self.session_id,
            "innerBoxId": self.inner_box_id,
            "phase": self.phase.value,
            "scanned": self.scanned_count,
            "expected": self.expected_qty,
            "confirmed": self.confirmed_count,
            "pending": self.pending_count,
            "batchLocked": self.batch_locked,
            "lengthAnomaly": self.length_anomaly,
            "lockedSku": self.locked_sku,
        }
