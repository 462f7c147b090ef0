"""Scan-batch state machine in isolation."""
import pytest

from inbound.errors import (
    BatchLockedError,
    DuplicateSerialError,
    ScanLockedError,
    SkuMismatchError,
    StateError,
    ValidationError,
)
from inbound.scanner.state import ScanPhase, ScanTask


def claim_payload(items=(), expected=10, locked_sku=None):
    return {
        "session": {
            "id": 1,
            "outerBoxId": "OB1",
            "innerBoxId": "IB1",
            "expectedQty": expected,
            "lockedSku": locked_sku,
        },
        "items": [{"sku": sku, "serial": serial} for sku, serial in items],
    }


def new_task(batch_size=5, expected=10, items=()):
    return ScanTask.from_claim(claim_payload(items, expected), batch_size)


def scan(task, serial, sku="A100"):
    task.accept_sku(sku)
    task.check_serial(serial)
    return task.record_serial(serial)


def test_fresh_task_is_empty():
    task = new_task()
    assert task.phase == ScanPhase.EMPTY
    assert task.needs_sku
    assert task.pending_count == 0
    assert task.baseline_serial_length is None
    assert not task.can_complete


def test_sku_then_serial_cycle():
    task = new_task()

    task.accept_sku("a100")
    assert task.phase == ScanPhase.SKU_LOCKED
    assert task.can_scan_serial

    task.record_serial(task.check_serial("sn0001"))
    assert task.phase == ScanPhase.SERIAL_ACCEPTED
    assert task.current_sku == ""
    assert task.locked_sku == "A100"
    assert task.items[0].serial == "SN0001"

    with pytest.raises(StateError):
        task.check_serial("SN0002")


def test_pinned_sku_rejects_other_sku():
    task = new_task()
    scan(task, "SN0001")
    with pytest.raises(SkuMismatchError):
        task.accept_sku("B200")
    assert task.phase == ScanPhase.SKU_PENDING
    assert task.current_sku == ""


def test_client_serial_guards():
    task = new_task(expected=2)
    task.accept_sku("A100")
    with pytest.raises(ValidationError):
        task.check_serial("a100")
    with pytest.raises(ValidationError):
        task.check_serial("   ")

    scan(task, "SN0001")
    task.accept_sku("A100")
    with pytest.raises(DuplicateSerialError):
        task.check_serial("sn0001")

    scan(task, "SN0002")
    task.accept_sku("A100")
    with pytest.raises(StateError):
        task.check_serial("SN0003")


def test_full_batch_locks_until_confirmed():
    task = new_task(batch_size=5, expected=10)
    for n in range(5):
        scan(task, f"SN000{n}")

    assert task.pending_count == 5
    assert task.batch_locked
    assert task.phase == ScanPhase.BATCH_FULL
    task.accept_sku("A100")
    with pytest.raises(BatchLockedError):
        task.check_serial("SN0009")

    assert task.confirm_batch() == 5
    assert task.confirmed_count == 5
    assert task.pending_count == 0
    assert task.phase == ScanPhase.BATCH_CONFIRMED
    assert not task.batch_locked

    for n in range(5, 10):
        scan(task, f"SN000{n}")
    assert task.pending_count == 5
    assert not task.can_complete

    task.confirm_batch()
    assert task.can_complete


def test_confirm_partial_batch():
    task = new_task(batch_size=5, expected=3)
    for n in range(3):
        scan(task, f"SN000{n}")
    assert not task.batch_locked
    assert task.can_confirm_batch
    task.confirm_batch()
    assert task.can_complete


def test_confirm_requires_pending_items():
    task = new_task()
    with pytest.raises(StateError):
        task.confirm_batch()


def test_drop_pending_keeps_confirmed():
    task = new_task(batch_size=2, expected=6)
    scan(task, "SN0001")
    scan(task, "SN0002")
    task.confirm_batch()
    scan(task, "SN0003")

    dropped = task.drop_pending(locked_sku="A100")

    assert [i.serial for i in dropped] == ["SN0003"]
    assert [i.serial for i in task.items] == ["SN0001", "SN0002"]
    assert task.confirmed_count == 2
    assert task.locked_sku == "A100"
    assert task.phase == ScanPhase.SKU_PENDING


def test_drop_first_batch_releases_sku():
    task = new_task()
    scan(task, "SN0001")
    task.drop_pending(locked_sku=None)

    assert task.items == []
    assert task.locked_sku == ""
    assert task.phase == ScanPhase.EMPTY
    task.accept_sku("B200")


def test_serial_length_drift_locks_batch_before_first_full_batch():
    task = new_task()
    scan(task, "SN0001")
    assert task.baseline_serial_length == 6

    scan(task, "SN00002")

    assert task.length_anomaly
    assert task.batch_locked
    assert task.phase == ScanPhase.BATCH_FULL
    with pytest.raises(BatchLockedError):
        task.confirm_batch()
    task.drop_pending()
    assert not task.length_anomaly
    assert not task.batch_locked


def test_baseline_is_mode_of_confirmed_lengths():
    task = new_task(
        batch_size=3,
        items=[("A100", "AAAA1"), ("A100", "AAAA2"), ("A100", "BBB")],
    )
    assert task.confirmed_count == 3
    assert task.baseline_serial_length == 5

    scan(task, "CCC")
    assert task.length_anomaly

    task.drop_pending()
    scan(task, "CCCC1")
    assert not task.length_anomaly


def test_rehydrate_keeps_partial_batch_pending():
    items = [("A100", f"SN000{n}") for n in range(7)]
    task = new_task(batch_size=5, expected=10, items=items)

    assert task.confirmed_count == 5
    assert task.pending_count == 2
    assert task.locked_sku == "A100"
    assert task.phase == ScanPhase.SKU_PENDING
    assert not task.batch_locked


def test_rehydrate_relocks_length_anomaly_in_open_batch():
    task = new_task(items=[("A100", "SN0001"), ("A100", "SN00002")])

    assert task.length_anomaly
    assert task.batch_locked
    assert task.phase == ScanPhase.BATCH_FULL
    assert not task.can_confirm_batch
    with pytest.raises(BatchLockedError):
        task.confirm_batch()

    task.drop_pending()
    assert not task.length_anomaly
    assert not task.batch_locked


def test_rehydrate_checks_open_batch_against_confirmed_lengths():
    items = [("A100", f"SN000{n}") for n in range(5)] + [("A100", "SN-LONG-1")]
    task = new_task(batch_size=5, expected=10, items=items)

    assert task.confirmed_count == 5
    assert task.baseline_serial_length == 6
    assert task.length_anomaly
    assert task.pending_count == 1


def test_rehydrate_prefers_server_pin():
    payload = claim_payload([("A100", "S1")], locked_sku="a100")
    assert ScanTask.from_claim(payload, 5).locked_sku == "A100"


def test_batch_numbering():
    task = new_task(batch_size=5, expected=12)
    assert task.total_batches == 3
    assert task.current_batch_index == 1
    for n in range(5):
        scan(task, f"SN{n:04d}")
    task.confirm_batch()
    assert task.current_batch_index == 2
    assert not task.is_last_batch


def test_complete_locks_scanning():
    task = new_task(batch_size=5, expected=1)
    scan(task, "SN0001")
    task.confirm_batch()
    task.mark_complete()

    assert task.phase == ScanPhase.COMPLETE
    assert not task.can_complete
    with pytest.raises(ScanLockedError):
        task.accept_sku("A100")
