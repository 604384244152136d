"""
Capture Session Controller

Owns the single in-flight voice capture. Start/stop commands from the trigger
relay and events from the recognition backend are posted to one inbox and
handled strictly one at a time, in arrival order, by whichever thread holds
the dispatch lock. Every handler checks the current session state (and the
session/handle identity) before acting, so duplicate triggers, a deadline
racing a final result, or events arriving after teardown are simply
discarded.

State machine:

    idle --start--> starting --ready--> listening
    starting|listening --final|speech_end|error|deadline|stop--> finishing
    finishing --persisted--> idle

On the way back to idle the transcript (final text, else the last partial)
is appended to the durable queue; reportable recognition errors append an
``[Recording error: ...]`` marker instead of silently vanishing.
"""

from __future__ import annotations

import logging
import queue
import threading
import time
from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable, List, Optional
from uuid import uuid4

from capture.errors import RecognitionUnavailable
from capture.interfaces.host_channel import HostChannel
from capture.interfaces.status_publisher import CaptureStatus, StatusPublisher
from capture.persistence import DEFAULT_DESTINATION, PendingQueueStore, PendingResult
from capture.recognition_backends.base import (
    RecognitionBackend,
    RecognitionError,
    RecognitionEvent,
    RecognitionEventType,
    RecognitionHandle,
    RecognitionOptions,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_DURATION_S = 120.0
UNAVAILABLE_MESSAGE = "Speech recognition not available on this device"


def error_marker(message: str) -> str:
    return f"[Recording error: {message}]"


class SessionState(Enum):
    IDLE = "idle"
    STARTING = "starting"
    LISTENING = "listening"
    FINISHING = "finishing"


class TerminationCause(Enum):
    FINAL = "final"
    SPEECH_END = "speech_end"
    ERROR = "error"
    DEADLINE = "deadline"
    STOP = "stop"


@dataclass
class CaptureSession:
    session_id: str
    state: SessionState
    started_at: float
    deadline: float
    accumulated_text: str = ""
    final_text: Optional[str] = None
    cause: Optional[TerminationCause] = None
    error: Optional[RecognitionError] = None
    error_message: str = ""


class _Command(Enum):
    START = "start"
    STOP = "stop"


@dataclass(frozen=True)
class _DeadlineExpired:
    session_id: str


BackendFactory = Callable[[], RecognitionBackend]
TimerFactory = Callable[[float, Callable[[], None]], "threading.Timer"]


def _thread_timer(interval: float, fn: Callable[[], None]) -> threading.Timer:
    timer = threading.Timer(interval, fn)
    timer.daemon = True
    return timer


class CaptureSessionController:
    """State machine owning at most one :class:`CaptureSession`."""

    def __init__(
        self,
        backend_factory: BackendFactory,
        store: PendingQueueStore,
        publisher: StatusPublisher,
        host_channel: Optional[HostChannel] = None,
        max_duration_s: float = DEFAULT_MAX_DURATION_S,
        options_factory: Callable[[], RecognitionOptions] = RecognitionOptions,
        destination_hint: str = DEFAULT_DESTINATION,
        timer_factory: TimerFactory = _thread_timer,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.backend_factory = backend_factory
        self.store = store
        self.publisher = publisher
        self.host_channel = host_channel
        self.max_duration_s = max_duration_s
        self.options_factory = options_factory
        self.destination_hint = destination_hint
        self.timer_factory = timer_factory
        self.clock = clock

        self._inbox: "queue.Queue[object]" = queue.Queue()
        self._dispatch_lock = threading.Lock()
        self._idle = threading.Event()
        self._idle.set()

        self._session: Optional[CaptureSession] = None
        self._backend: Optional[RecognitionBackend] = None
        self._handle: Optional[RecognitionHandle] = None
        self._timer = None

        self._reconcile_status()

    # ----- public API -----

    def start(self) -> None:
        self._post(_Command.START)

    def stop(self) -> None:
        self._post(_Command.STOP)

    def update_display(self, is_recording: bool) -> None:
        """Host application asks for the surfaces to show the given state."""
        self.publisher.publish(CaptureStatus.from_recording(is_recording))

    @property
    def state(self) -> SessionState:
        session = self._session
        return session.state if session else SessionState.IDLE

    @property
    def session(self) -> Optional[CaptureSession]:
        """Snapshot of the active session, or None when idle."""
        session = self._session
        return replace(session) if session else None

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        return self._idle.wait(timeout)

    def shutdown(self) -> None:
        if self._session is not None:
            self.stop()
        self._cancel_timer()

    # ----- inbox -----

    def _post(self, item: object) -> None:
        self._inbox.put(item)
        self._pump()

    def _on_backend_event(self, event: RecognitionEvent) -> None:
        self._post(event)

    def _pump(self) -> None:
        # A thread that finds the lock held leaves its item to the holder.
        # The holder re-checks the inbox after releasing so nothing is stranded.
        while True:
            if not self._dispatch_lock.acquire(blocking=False):
                return
            try:
                while True:
                    try:
                        item = self._inbox.get_nowait()
                    except queue.Empty:
                        break
                    try:
                        self._dispatch(item)
                    except Exception:
                        logger.exception(f"Unhandled error while processing {item!r}")
            finally:
                self._dispatch_lock.release()
            if self._inbox.empty():
                return

    def _dispatch(self, item: object) -> None:
        if item is _Command.START:
            self._handle_start()
        elif item is _Command.STOP:
            self._handle_stop()
        elif isinstance(item, _DeadlineExpired):
            self._handle_deadline(item)
        elif isinstance(item, RecognitionEvent):
            self._handle_event(item)
        else:
            logger.warning(f"Ignoring unknown inbox item {item!r}")

    # ----- transitions -----

    def _handle_start(self) -> None:
        if self._session is not None:
            logger.warning(f"Already recording ({self._session.state.value}), ignoring start request")
            return

        try:
            backend = self.backend_factory()
        except RecognitionUnavailable as e:
            logger.error(f"Speech recognition not available: {e}")
            self._append(error_marker(UNAVAILABLE_MESSAGE))
            self.publisher.publish(CaptureStatus.IDLE)
            return

        now = self.clock()
        session = CaptureSession(
            session_id=str(uuid4()),
            state=SessionState.STARTING,
            started_at=now,
            deadline=now + self.max_duration_s,
        )
        self._session = session
        self._backend = backend
        self._idle.clear()
        logger.info(f"Capture session {session.session_id} starting")
        self.publisher.publish(CaptureStatus.ACTIVE)

        self._timer = self.timer_factory(
            self.max_duration_s, lambda: self._post(_DeadlineExpired(session.session_id))
        )
        self._timer.start()

        try:
            self._handle = backend.begin(self.options_factory(), self._on_backend_event)
        except Exception as e:
            logger.error(f"Failed to start listening: {e}")
            self._finish(
                TerminationCause.ERROR,
                error=RecognitionError.INTERNAL_CLIENT_FAULT,
                error_message=f"Failed to start recording - {e}",
            )

    def _handle_stop(self) -> None:
        if self._session is None or self._session.state is SessionState.FINISHING:
            logger.debug("Stop requested while idle, ignoring")
            return
        logger.info(f"Capture session {self._session.session_id} stop requested")
        self._finish(TerminationCause.STOP)

    def _handle_deadline(self, item: _DeadlineExpired) -> None:
        session = self._session
        if session is None or session.session_id != item.session_id:
            return
        logger.info(f"Capture session {session.session_id} reached the {self.max_duration_s:.0f}s limit")
        self._finish(TerminationCause.DEADLINE)

    def _handle_event(self, event: RecognitionEvent) -> None:
        session = self._session
        handle = self._handle
        if session is None or session.state is SessionState.FINISHING:
            logger.debug(f"Discarding {event.type.value} received with no active session")
            return
        if handle is not None and event.handle_id and event.handle_id != handle.handle_id:
            logger.debug(f"Discarding {event.type.value} from stale handle {event.handle_id}")
            return

        kind = event.type
        if kind is RecognitionEventType.READY:
            if session.state is SessionState.STARTING:
                session.state = SessionState.LISTENING
                logger.info(f"Capture session {session.session_id} listening")
        elif kind is RecognitionEventType.SPEECH_START:
            logger.debug("Speech started")
        elif kind is RecognitionEventType.PARTIAL:
            session.state = SessionState.LISTENING
            session.accumulated_text = event.text
        elif kind is RecognitionEventType.FINAL:
            self._finish(TerminationCause.FINAL, final_text=event.text)
        elif kind is RecognitionEventType.SPEECH_END:
            self._finish(TerminationCause.SPEECH_END)
        elif kind is RecognitionEventType.ERROR:
            self._finish(
                TerminationCause.ERROR,
                error=event.error or RecognitionError.UNKNOWN,
                error_message=event.error_message,
            )
        elif kind is RecognitionEventType.CANCELLED:
            # Cancelled by someone other than us; treat like a stop.
            self._finish(TerminationCause.STOP)

    def _finish(
        self,
        cause: TerminationCause,
        final_text: Optional[str] = None,
        error: Optional[RecognitionError] = None,
        error_message: str = "",
    ) -> None:
        session = self._session
        if session is None:
            return
        session.state = SessionState.FINISHING
        session.cause = cause
        session.final_text = final_text
        session.error = error
        session.error_message = error_message or (error.message if error else "")

        self._cancel_timer()
        self._cancel_backend()

        text = final_text if final_text and final_text.strip() else session.accumulated_text
        text = (text or "").strip()

        appended: List[PendingResult] = []
        if text:
            result = self._append(text)
            if result is not None:
                appended.append(result)
        if cause is TerminationCause.ERROR and error is not None and error.reportable:
            result = self._append(error_marker(session.error_message))
            if result is not None:
                appended.append(result)
        elif error is not None:
            logger.info(f"Capture ended without speech ({error.value}), nothing to report")

        logger.info(
            f"Capture session {session.session_id} finished ({cause.value}), "
            f"{len(appended)} result(s) queued"
        )
        self._session = None
        self._handle = None
        self._backend = None
        self.publisher.publish(CaptureStatus.IDLE)
        self._idle.set()

        if self.host_channel is not None:
            for result in appended:
                try:
                    self.host_channel.notify_capture_completed(result)
                except Exception as e:
                    logger.debug(f"Host notify failed: {e}")

    # ----- helpers -----

    def _append(self, text: str) -> Optional[PendingResult]:
        result = PendingResult.create(text, destination_hint=self.destination_hint)
        try:
            self.store.append(result)
        except Exception:
            logger.exception(f"Failed to persist capture result {result.id}")
            return None
        logger.info(f"Saved pending result {result.id}")
        return result

    def _cancel_timer(self) -> None:
        timer, self._timer = self._timer, None
        if timer is not None:
            timer.cancel()

    def _cancel_backend(self) -> None:
        if self._backend is None or self._handle is None:
            return
        try:
            self._backend.cancel(self._handle)
        except Exception as e:
            logger.warning(f"Recognition cancel failed: {e}")

    def _reconcile_status(self) -> None:
        if self.publisher.query_latest() is not CaptureStatus.ACTIVE:
            return
        owner = self.publisher.active_owner()
        if owner is not None:
            logger.info(f"Capture already active in process {owner}, leaving status as is")
            return
        logger.warning("Found stale active status from a previous process, resetting to idle")
        self.publisher.publish(CaptureStatus.IDLE)
