"""
Recognition Backend Contract

Every speech recognition engine is wrapped behind the same small contract so
the session controller never sees engine specifics:

    handle = backend.begin(options, listener)
    ...                       # listener receives RecognitionEvent objects
    backend.cancel(handle)    # idempotent, safe after completion

A backend delivers events for one handle to exactly one listener. Once a
terminal event (final, error, cancelled) has been delivered nothing more is
emitted for that handle, and the audio device has been released.
"""

from __future__ import annotations

import locale
import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, Optional
from uuid import uuid4

logger = logging.getLogger(__name__)


class RecognitionEventType(Enum):
    READY = "ready"
    SPEECH_START = "speech_start"
    SPEECH_END = "speech_end"
    PARTIAL = "partial"
    FINAL = "final"
    ERROR = "error"
    CANCELLED = "cancelled"


TERMINAL_EVENTS = frozenset(
    {RecognitionEventType.FINAL, RecognitionEventType.ERROR, RecognitionEventType.CANCELLED}
)


class RecognitionError(Enum):
    """Error codes surfaced by recognition engines."""

    PERMISSION_DENIED = "permission-denied"
    DEVICE_BUSY = "device-busy"
    NETWORK_UNAVAILABLE = "network-unavailable"
    NETWORK_TIMEOUT = "network-timeout"
    INTERNAL_CLIENT_FAULT = "internal-client-fault"
    AUDIO_FAULT = "audio-fault"
    SERVER_FAULT = "server-fault"
    UNKNOWN = "unknown"
    NO_SPEECH_DETECTED = "no-speech-detected"
    SILENCE_TIMEOUT = "silence-timeout"

    @property
    def message(self) -> str:
        return _ERROR_MESSAGES[self]

    @property
    def reportable(self) -> bool:
        """Benign endings (nothing was said) are not shown to the user."""
        return self not in (RecognitionError.NO_SPEECH_DETECTED, RecognitionError.SILENCE_TIMEOUT)


_ERROR_MESSAGES: Dict[RecognitionError, str] = {
    RecognitionError.PERMISSION_DENIED: "Microphone permission denied",
    RecognitionError.DEVICE_BUSY: "Recognition service busy",
    RecognitionError.NETWORK_UNAVAILABLE: "Network error",
    RecognitionError.NETWORK_TIMEOUT: "Network timeout",
    RecognitionError.INTERNAL_CLIENT_FAULT: "Client error",
    RecognitionError.AUDIO_FAULT: "Audio recording error",
    RecognitionError.SERVER_FAULT: "Server error",
    RecognitionError.UNKNOWN: "Unknown error",
    RecognitionError.NO_SPEECH_DETECTED: "No speech detected",
    RecognitionError.SILENCE_TIMEOUT: "Speech timeout",
}


@dataclass(frozen=True)
class RecognitionEvent:
    type: RecognitionEventType
    handle_id: str = ""
    text: str = ""
    error: Optional[RecognitionError] = None
    detail: str = ""

    @property
    def is_terminal(self) -> bool:
        return self.type in TERMINAL_EVENTS

    @property
    def error_message(self) -> str:
        if self.detail:
            return self.detail
        return self.error.message if self.error else ""


def _system_language() -> Optional[str]:
    lang, _encoding = locale.getlocale()
    return lang


@dataclass
class RecognitionOptions:
    """Options passed to :meth:`RecognitionBackend.begin`."""

    silence_timeout_s: float = 8.0
    language: Optional[str] = field(default_factory=_system_language)
    partial_results: bool = True


Listener = Callable[[RecognitionEvent], None]


@dataclass
class RecognitionHandle:
    handle_id: str
    options: RecognitionOptions
    listener: Listener
    terminal: bool = False


class RecognitionBackend:
    """Base class implementing handle bookkeeping for concrete engines.

    Subclasses implement ``_start`` (acquire the device, begin recognition)
    and ``_release`` (free the device). ``_release`` runs exactly once per
    handle, on whichever exit path comes first.
    """

    name = "base"

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._handles: Dict[str, RecognitionHandle] = {}

    @classmethod
    def is_available(cls) -> bool:
        return True

    def begin(self, options: RecognitionOptions, listener: Listener) -> RecognitionHandle:
        handle = RecognitionHandle(handle_id=str(uuid4()), options=options, listener=listener)
        with self._lock:
            self._handles[handle.handle_id] = handle
        logger.debug(f"{self.name}: begin handle {handle.handle_id}")
        try:
            self._start(handle)
        except Exception:
            with self._lock:
                already_terminal = handle.terminal
                handle.terminal = True
                self._handles.pop(handle.handle_id, None)
            if not already_terminal:
                try:
                    self._release(handle)
                except Exception as e:
                    logger.error(f"{self.name}: failed to release audio device: {e}")
            raise
        return handle

    def cancel(self, handle: Optional[RecognitionHandle]) -> None:
        if handle is None:
            return
        self.emit(handle, RecognitionEvent(RecognitionEventType.CANCELLED))

    def emit(self, handle: RecognitionHandle, event: RecognitionEvent) -> bool:
        """Deliver ``event`` for ``handle`` unless the handle is already terminal."""
        with self._lock:
            if handle.terminal:
                return False
            if event.is_terminal:
                handle.terminal = True
                self._handles.pop(handle.handle_id, None)
        if event.handle_id != handle.handle_id:
            event = RecognitionEvent(
                event.type,
                handle_id=handle.handle_id,
                text=event.text,
                error=event.error,
                detail=event.detail,
            )
        if event.is_terminal:
            try:
                self._release(handle)
            except Exception as e:
                logger.error(f"{self.name}: failed to release audio device: {e}")
        handle.listener(event)
        return True

    def active_handles(self) -> int:
        with self._lock:
            return len(self._handles)

    def _start(self, handle: RecognitionHandle) -> None:
        raise NotImplementedError

    def _release(self, handle: RecognitionHandle) -> None:
        pass
