"""Tests for the capture session state machine."""

import os
import threading

import pytest

from capture.errors import RecognitionUnavailable
from capture.interfaces.capture_session import (
    CaptureSessionController,
    SessionState,
    TerminationCause,
)
import capture.interfaces.status_publisher as status_publisher
from capture.interfaces.status_publisher import CallbackSurface, CaptureStatus, StatusPublisher
from capture.persistence import PendingQueueStore, StatusStore
from capture.recognition_backends.base import RecognitionError, RecognitionEvent, RecognitionEventType as E
from capture.recognition_backends.mock_backend import ScriptedBackend


def texts(store):
    return [r.text for r in store.read_all()]


def _event(kind, handle_id, text=""):
    return RecognitionEvent(kind, handle_id=handle_id, text=text)


def test_final_result_is_queued_and_controller_returns_idle(controller, backend, store):
    controller.start()
    assert controller.state is SessionState.STARTING

    backend.push(E.READY)
    assert controller.state is SessionState.LISTENING

    backend.push(E.FINAL, text="hello world")
    assert controller.state is SessionState.IDLE
    assert controller.session is None
    assert texts(store) == ["hello world"]
    assert backend.released == 1


def test_repeated_start_keeps_one_session(controller, backend, store):
    controller.start()
    first = controller.session.session_id
    controller.start()
    controller.start()

    assert backend.started == 1
    assert controller.session.session_id == first

    backend.push(E.FINAL, text="only once")
    assert texts(store) == ["only once"]


def test_stop_while_idle_changes_nothing(controller, backend, store, publisher):
    controller.stop()
    controller.stop()
    assert controller.state is SessionState.IDLE
    assert backend.started == 0
    assert store.read_all() == []
    assert publisher.query_latest() is CaptureStatus.IDLE


def test_stop_uses_last_partial(controller, backend, store):
    controller.start()
    backend.push(E.READY)
    backend.push(E.PARTIAL, text="half a")
    backend.push(E.PARTIAL, text="half a thought")
    controller.stop()

    assert controller.state is SessionState.IDLE
    assert texts(store) == ["half a thought"]
    # the cancel we issued must not produce a second result
    assert backend.active_handles() == 0


def test_final_payload_preferred_over_partial(controller, backend, store):
    controller.start()
    backend.push(E.PARTIAL, text="draft")
    backend.push(E.FINAL, text="clean copy")
    assert texts(store) == ["clean copy"]


def test_empty_final_falls_back_to_partial(controller, backend, store):
    controller.start()
    backend.push(E.PARTIAL, text="heard this")
    backend.push(E.FINAL, text="  ")
    assert texts(store) == ["heard this"]


def test_speech_end_finishes_with_partial(controller, backend, store):
    controller.start()
    backend.push(E.READY)
    backend.push(E.SPEECH_START)
    backend.push(E.PARTIAL, text="quiet now")
    backend.push(E.SPEECH_END)
    assert controller.state is SessionState.IDLE
    assert texts(store) == ["quiet now"]


def test_reportable_error_queues_marker(controller, backend, store):
    controller.start()
    backend.push(E.ERROR, error=RecognitionError.PERMISSION_DENIED)

    results = texts(store)
    assert len(results) == 1
    assert results[0].startswith("[Recording error: ")
    assert results[0] == "[Recording error: Microphone permission denied]"


@pytest.mark.parametrize(
    "code", [RecognitionError.NO_SPEECH_DETECTED, RecognitionError.SILENCE_TIMEOUT]
)
def test_benign_error_queues_nothing(controller, backend, store, code):
    controller.start()
    backend.push(E.READY)
    backend.push(E.ERROR, error=code)
    assert controller.state is SessionState.IDLE
    assert store.read_all() == []


def test_error_keeps_partial_and_reports(controller, backend, store):
    controller.start()
    backend.push(E.PARTIAL, text="almost")
    backend.push(E.ERROR, error=RecognitionError.NETWORK_TIMEOUT)
    assert texts(store) == ["almost", "[Recording error: Network timeout]"]


def test_deadline_forces_finish_with_accumulated_text(controller, backend, store, timers):
    controller.start()
    timer = timers.last
    assert timer.started
    assert timer.interval == 120.0

    backend.push(E.READY)
    backend.push(E.PARTIAL, text="long ramble")
    timer.fire()

    assert controller.state is SessionState.IDLE
    assert texts(store) == ["long ramble"]
    assert backend.active_handles() == 0


def test_deadline_after_final_is_discarded(controller, backend, store, timers):
    controller.start()
    timer = timers.last
    backend.push(E.FINAL, text="done")
    assert timer.cancelled

    timer.fire()
    assert texts(store) == ["done"]


def test_stale_deadline_does_not_end_next_session(controller, backend, store, timers):
    controller.start()
    old_timer = timers.last
    backend.push(E.FINAL, text="one")

    controller.start()
    old_timer.fire()
    assert controller.state is SessionState.STARTING

    backend.push(E.FINAL, text="two")
    assert texts(store) == ["one", "two"]


def test_events_after_teardown_are_ignored(controller, backend, store):
    controller.start()
    handle = backend.current
    backend.push(E.FINAL, text="kept")

    controller._on_backend_event(_event(E.FINAL, handle.handle_id, "late"))
    assert texts(store) == ["kept"]


def test_event_from_previous_handle_is_discarded(controller, backend, store):
    controller.start()
    old = backend.current
    controller.stop()
    controller.start()

    controller._on_backend_event(_event(E.FINAL, old.handle_id, "ghost"))
    assert controller.state is SessionState.STARTING
    backend.push(E.FINAL, text="real")
    assert texts(store) == ["real"]


def test_status_published_active_then_idle(controller, backend, publisher):
    seen = []
    publisher.attach(CallbackSurface(seen.append), sync=False)

    controller.start()
    assert publisher.query_latest() is CaptureStatus.ACTIVE
    backend.push(E.FINAL, text="x")

    assert seen == [CaptureStatus.ACTIVE, CaptureStatus.IDLE]
    assert publisher.query_latest() is CaptureStatus.IDLE


def test_unavailable_capability_reports_without_session(store, publisher, timers):
    def missing():
        raise RecognitionUnavailable("no engine")

    controller = CaptureSessionController(missing, store, publisher, timer_factory=timers)
    controller.start()

    assert controller.state is SessionState.IDLE
    assert timers.timers == []
    assert texts(store) == ["[Recording error: Speech recognition not available on this device]"]
    assert publisher.query_latest() is CaptureStatus.IDLE


def test_begin_failure_reports_and_returns_idle(store, publisher, timers):
    class Broken(ScriptedBackend):
        def _start(self, handle):
            raise RuntimeError("mic exploded")

    broken = Broken()
    controller = CaptureSessionController(lambda: broken, store, publisher, timer_factory=timers)
    controller.start()

    assert controller.state is SessionState.IDLE
    assert texts(store) == ["[Recording error: Failed to start recording - mic exploded]"]
    assert timers.last.cancelled
    assert broken.active_handles() == 0
    assert broken.released == 1


def test_error_emitted_during_begin_is_processed_after_start(store, publisher, timers):
    class FailsOnOpen(ScriptedBackend):
        def _start(self, handle):
            super()._start(handle)
            self.emit(handle, RecognitionEvent(E.ERROR, error=RecognitionError.DEVICE_BUSY))

    controller = CaptureSessionController(lambda: FailsOnOpen(), store, publisher, timer_factory=timers)
    controller.start()

    assert controller.state is SessionState.IDLE
    assert texts(store) == ["[Recording error: Recognition service busy]"]


def test_persist_failure_still_returns_idle(controller, backend, store, publisher, monkeypatch):
    def boom(result):
        raise OSError("disk full")

    monkeypatch.setattr(store, "append", boom)
    controller.start()
    backend.push(E.FINAL, text="lost")
    assert controller.state is SessionState.IDLE
    assert publisher.query_latest() is CaptureStatus.IDLE


def test_host_notified_for_each_result(backend, store, publisher, timers):
    notified = []

    class Host:
        def notify_capture_completed(self, result):
            notified.append(result.text)
            raise RuntimeError("host crashed")

    controller = CaptureSessionController(
        lambda: backend, store, publisher, host_channel=Host(), timer_factory=timers
    )
    controller.start()
    backend.push(E.FINAL, text="ping")

    assert notified == ["ping"]
    assert texts(store) == ["ping"]


def test_update_display_republishes(controller, publisher):
    controller.update_display(True)
    assert publisher.query_latest() is CaptureStatus.ACTIVE
    controller.update_display(False)
    assert publisher.query_latest() is CaptureStatus.IDLE


def test_active_status_without_owner_reset_on_startup(backend, store, publisher, timers):
    publisher.store.save(CaptureStatus.ACTIVE.value)
    CaptureSessionController(lambda: backend, store, publisher, timer_factory=timers)
    assert publisher.query_latest() is CaptureStatus.IDLE


def test_active_status_of_dead_process_reset_on_startup(backend, store, publisher, timers, monkeypatch):
    publisher.store.save(CaptureStatus.ACTIVE.value, owner=999999)
    monkeypatch.setattr(status_publisher, "process_alive", lambda pid: False)
    CaptureSessionController(lambda: backend, store, publisher, timer_factory=timers)
    assert publisher.query_latest() is CaptureStatus.IDLE


def test_second_controller_keeps_live_session_status(controller, backend, db_path, timers):
    controller.start()
    assert controller.state is SessionState.STARTING

    other_publisher = StatusPublisher(StatusStore(db_path))
    CaptureSessionController(
        lambda: ScriptedBackend(), PendingQueueStore(db_path), other_publisher, timer_factory=timers
    )

    assert other_publisher.query_latest() is CaptureStatus.ACTIVE
    assert other_publisher.active_owner() == os.getpid()

    backend.push(E.FINAL, text="still mine")
    assert other_publisher.query_latest() is CaptureStatus.IDLE
    assert other_publisher.active_owner() is None


def test_session_snapshot_is_a_copy(controller, backend):
    controller.start()
    snapshot = controller.session
    assert snapshot.deadline == pytest.approx(snapshot.started_at + 120.0)
    snapshot.accumulated_text = "mutating the copy"
    assert controller.session.accumulated_text == ""

    controller.stop()
    assert controller.session is None


def test_shutdown_stops_active_session(controller, backend, store, timers):
    controller.start()
    backend.push(E.PARTIAL, text="unsaved")
    controller.shutdown()
    assert controller.state is SessionState.IDLE
    assert texts(store) == ["unsaved"]


def test_rapid_starts_from_threads_produce_one_result(store, publisher, timers):
    backend = ScriptedBackend(text="threaded", autoplay=True, delay=0.05)
    controller = CaptureSessionController(lambda: backend, store, publisher, timer_factory=timers)

    barrier = threading.Barrier(4)

    def hit():
        barrier.wait()
        controller.start()

    threads = [threading.Thread(target=hit) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert controller.wait_idle(5.0)
    assert texts(store) == ["threaded"]


def test_termination_cause_values():
    assert {c.value for c in TerminationCause} == {"final", "speech_end", "error", "deadline", "stop"}
