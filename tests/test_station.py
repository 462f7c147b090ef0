"""Scan station driving the real service through the HTTP client."""
import pytest

from inbound.errors import (
    AlreadyCompletedError,
    BatchLockedError,
    LockedByOtherError,
    SkuMismatchError,
    StateError,
    ValidationError,
)
from inbound.scanner import InboundApi, ScanPhase, ScanStation
from inbound.services.sku_catalog import SkuCatalog


@pytest.fixture
def catalog():
    return SkuCatalog(skus=["A100", "B200"])


@pytest.fixture
def station(api, catalog):
    station = ScanStation(api, catalog.is_valid_sku, batch_size=5)
    station.set_operator("alice")
    station.start_outer_box("OB1")
    return station


def scan(station, serial, sku="A100"):
    station.set_sku(sku)
    return station.add_serial(serial)


def test_three_item_box_end_to_end(station, api):
    task = station.begin_inner_box("IB1", 3)
    for serial in ("S1", "S2", "S3"):
        scan(station, serial)

    assert task.pending_count == 3
    station.confirm_batch()
    verified = station.finalize()

    assert verified.inner_box_id == "IB1"
    assert [i.serial for i in verified.items] == ["S1", "S2", "S3"]
    assert station.task is None
    assert station.outer_box.products_count == 3
    assert api.get_session(task.session_id)["status"] == "CONFIRMED"


def test_two_batches_of_five(station, api):
    task = station.begin_inner_box("IB1", 10)
    for n in range(5):
        scan(station, f"SN{n:04d}")

    assert task.batch_locked
    with pytest.raises(BatchLockedError):
        scan(station, "SN9999")

    station.confirm_batch()
    assert task.confirmed_count == 5
    assert task.pending_count == 0

    for n in range(5, 10):
        scan(station, f"SN{n:04d}")
    assert task.pending_count == 5

    station.confirm_batch()
    station.finalize()
    assert len(api.list_items(inner_box_id="IB1")) == 10


def test_invalid_sku_never_reaches_service(station):
    station.begin_inner_box("IB1", 3)
    with pytest.raises(ValidationError):
        station.set_sku("Z999")
    assert station.task.phase == ScanPhase.EMPTY


def test_sku_pinned_by_first_item(station):
    station.begin_inner_box("IB1", 3)
    scan(station, "S1", sku="A100")
    with pytest.raises(SkuMismatchError):
        station.set_sku("B200")


def test_reset_batch_deletes_pending_on_service(station, api):
    task = station.begin_inner_box("IB1", 10)
    for n in range(5):
        scan(station, f"SN{n:04d}")
    station.confirm_batch()
    scan(station, "SN0005")
    scan(station, "SN0006")

    dropped = station.reset_batch()

    assert [i.serial for i in dropped] == ["SN0005", "SN0006"]
    assert task.confirmed_count == 5
    stored = api.get_session(task.session_id)["items"]
    assert [i["serial"] for i in stored] == [f"SN{n:04d}" for n in range(5)]
    # the freed serials can be scanned again
    scan(station, "SN0005")


def test_reset_first_batch_allows_new_sku(station, api):
    task = station.begin_inner_box("IB1", 3)
    scan(station, "S1", sku="A100")
    station.reset_batch()

    assert task.locked_sku == ""
    assert api.get_session(task.session_id)["lockedSku"] is None
    scan(station, "S1", sku="B200")
    assert task.locked_sku == "B200"


def test_length_anomaly_requires_batch_reset(station):
    task = station.begin_inner_box("IB1", 10)
    scan(station, "SN0001")
    scan(station, "SN00002")

    assert task.length_anomaly
    with pytest.raises(BatchLockedError):
        station.confirm_batch()

    station.reset_batch()
    assert task.items == []
    scan(station, "SN0003")


def test_finalize_refuses_unconfirmed_batch(station):
    station.begin_inner_box("IB1", 2)
    scan(station, "S1")
    scan(station, "S2")
    with pytest.raises(StateError):
        station.finalize()


def test_resume_rebuilds_from_service(station, api, client, catalog):
    task = station.begin_inner_box("IB1", 10)
    for n in range(7):
        if n == 5:
            station.confirm_batch()
        scan(station, f"SN{n:04d}")

    # Same operator on a new device: nothing local is reused
    other_device = ScanStation(InboundApi(client=client), catalog.is_valid_sku, batch_size=5)
    other_device.set_operator("alice")
    other_device.start_outer_box("OB1")
    resumed = other_device.begin_inner_box("IB1", 10)

    assert resumed.session_id == task.session_id
    assert resumed.scanned_count == 7
    assert resumed.confirmed_count == 5
    assert resumed.pending_count == 2
    assert resumed.locked_sku == "A100"


def test_handoff_after_lease_expiry(station, client, catalog, fake_clock):
    station.begin_inner_box("IB1", 3)
    scan(station, "S1")

    bob = ScanStation(InboundApi(client=client), catalog.is_valid_sku, batch_size=5)
    bob.set_operator("bob")
    bob.start_outer_box("OB1")
    with pytest.raises(LockedByOtherError) as excinfo:
        bob.begin_inner_box("IB1", 3)
    assert excinfo.value.locked_by == "alice"

    fake_clock.advance(121)
    task = bob.begin_inner_box("IB1", 3)
    assert [i.serial for i in task.items] == ["S1"]

    # alice lost the claim
    assert station.heartbeat() is False
    scan(bob, "S2")
    scan(bob, "S3")
    bob.confirm_batch()
    bob.finalize()

    with pytest.raises(AlreadyCompletedError):
        station.begin_inner_box("IB1", 3)


def test_abandoned_box_is_finished_by_next_operator(station, client, catalog):
    station.begin_inner_box("IB1", 3)
    scan(station, "S1")
    scan(station, "S2")
    station.abandon()
    assert station.task is None

    bob = ScanStation(InboundApi(client=client), catalog.is_valid_sku, batch_size=5)
    bob.set_operator("bob")
    bob.start_outer_box("OB1")
    task = bob.begin_inner_box("IB1", 3)

    assert [i.serial for i in task.items] == ["S1", "S2"]
    assert task.pending_count == 2
    scan(bob, "S3")
    bob.confirm_batch()
    verified = bob.finalize()
    assert [i.serial for i in verified.items] == ["S1", "S2", "S3"]


def test_resume_keeps_length_anomaly_locked(station, client, catalog):
    station.begin_inner_box("IB1", 5)
    scan(station, "SN0001")
    scan(station, "SN00002")
    assert station.task.length_anomaly

    other_device = ScanStation(InboundApi(client=client), catalog.is_valid_sku, batch_size=5)
    other_device.set_operator("alice")
    other_device.start_outer_box("OB1")
    task = other_device.begin_inner_box("IB1", 5)

    assert task.length_anomaly
    with pytest.raises(BatchLockedError):
        other_device.confirm_batch()
    assert len(other_device.reset_batch()) == 2
    assert not task.batch_locked


def test_heartbeat(station):
    assert station.heartbeat() is False
    station.begin_inner_box("IB1", 3)
    assert station.heartbeat() is True


def test_reset_inner_box_frees_box(station, api):
    task = station.begin_inner_box("IB1", 3)
    scan(station, "S1")

    assert station.reset_inner_box() == 1
    assert station.task is None

    fresh = station.begin_inner_box("IB1", 3)
    assert fresh.session_id != task.session_id
    assert fresh.items == []


def test_station_requires_operator_and_outer_box(api, catalog):
    station = ScanStation(api, catalog.is_valid_sku)
    with pytest.raises(StateError):
        station.begin_inner_box("IB1", 3)
    station.start_outer_box("OB1")
    with pytest.raises(ValidationError):
        station.begin_inner_box("IB1", 3)
    station.set_operator("alice")
    with pytest.raises(ValidationError):
        station.begin_inner_box("IB1", 0)


def test_station_from_settings(api, monkeypatch):
    from inbound.config import settings

    monkeypatch.setattr(settings, "SKU_CATALOG", "A100")
    monkeypatch.setattr(settings, "SKU_PATTERN", "SKU-####")
    monkeypatch.setattr(settings, "BATCH_SIZE", 2)

    station = ScanStation.from_settings(api, settings)

    assert station.batch_size == 2
    assert station.is_valid_sku("a100")
    assert station.is_valid_sku("SKU-0001")
    assert not station.is_valid_sku("B200")
