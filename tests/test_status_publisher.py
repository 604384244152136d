import os

import capture.interfaces.status_publisher as status_publisher
from capture.interfaces.status_publisher import (
    CallbackSurface,
    CaptureStatus,
    LabelFileSurface,
    StatusPublisher,
    process_alive,
)
from capture.persistence import StatusStore


def test_publish_reaches_every_surface(publisher):
    a, b = [], []
    publisher.attach(CallbackSurface(a.append), sync=False)
    publisher.attach(CallbackSurface(b.append), sync=False)

    publisher.publish(CaptureStatus.ACTIVE)

    assert a == [CaptureStatus.ACTIVE]
    assert b == [CaptureStatus.ACTIVE]


def test_publish_with_no_surfaces_is_persisted(publisher):
    publisher.publish(CaptureStatus.ACTIVE)
    assert publisher.query_latest() is CaptureStatus.ACTIVE


def test_query_defaults_to_idle(publisher):
    assert publisher.query_latest() is CaptureStatus.IDLE


def test_new_surface_synchronizes_to_latest(publisher):
    publisher.publish(CaptureStatus.ACTIVE)
    seen = []
    publisher.attach(CallbackSurface(seen.append))
    assert seen == [CaptureStatus.ACTIVE]


def test_latest_status_visible_from_other_instance(db_path):
    StatusPublisher(StatusStore(db_path)).publish(CaptureStatus.ACTIVE)
    assert StatusPublisher(StatusStore(db_path)).query_latest() is CaptureStatus.ACTIVE


def test_failing_surface_does_not_block_others(publisher):
    def broken(status):
        raise RuntimeError("widget was removed")

    seen = []
    publisher.attach(CallbackSurface(broken), sync=False)
    publisher.attach(CallbackSurface(seen.append), sync=False)
    publisher.publish(CaptureStatus.IDLE)
    assert seen == [CaptureStatus.IDLE]


def test_detach(publisher):
    seen = []
    surface = CallbackSurface(seen.append)
    publisher.attach(surface, sync=False)
    publisher.detach(surface)
    publisher.detach(surface)
    publisher.publish(CaptureStatus.ACTIVE)
    assert seen == []
    assert publisher.surfaces == []


def test_unknown_persisted_value_reads_as_idle(db_path):
    store = StatusStore(db_path)
    store.save("paused")
    assert StatusPublisher(store).query_latest() is CaptureStatus.IDLE


def test_label_file_surface(tmp_path, publisher):
    label = tmp_path / "bar" / "capture.label"
    publisher.attach(LabelFileSurface(label))
    assert label.read_text() == "Tap to record\n"

    publisher.publish(CaptureStatus.ACTIVE)
    assert label.read_text() == "Recording...\n"
    assert [p.name for p in label.parent.iterdir()] == ["capture.label"]


def test_from_recording():
    assert CaptureStatus.from_recording(True) is CaptureStatus.ACTIVE
    assert CaptureStatus.from_recording(False) is CaptureStatus.IDLE


def test_active_owner_is_publishing_process(publisher):
    assert publisher.active_owner() is None
    publisher.publish(CaptureStatus.ACTIVE)
    assert publisher.active_owner() == os.getpid()
    publisher.publish(CaptureStatus.IDLE)
    assert publisher.active_owner() is None


def test_active_owner_ignores_dead_process(publisher, monkeypatch):
    publisher.store.save(CaptureStatus.ACTIVE.value, owner=999999)
    monkeypatch.setattr(status_publisher, "process_alive", lambda pid: False)
    assert publisher.active_owner() is None
    assert publisher.query_latest() is CaptureStatus.ACTIVE


def test_process_alive():
    assert process_alive(os.getpid())
