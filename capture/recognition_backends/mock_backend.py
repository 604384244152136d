from __future__ import annotations

import threading
import time
from typing import Iterable, List, Optional

from .base import (
    RecognitionBackend,
    RecognitionError,
    RecognitionEvent,
    RecognitionEventType,
    RecognitionHandle,
)


def default_script(text: str) -> List[RecognitionEvent]:
    return [
        RecognitionEvent(RecognitionEventType.READY),
        RecognitionEvent(RecognitionEventType.SPEECH_START),
        RecognitionEvent(RecognitionEventType.PARTIAL, text=text),
        RecognitionEvent(RecognitionEventType.SPEECH_END),
        RecognitionEvent(RecognitionEventType.FINAL, text=text),
    ]


class ScriptedBackend(RecognitionBackend):
    """Replay a fixed event script for any capture.

    This backend doesn't depend on any external libraries. With
    ``autoplay`` the script is replayed on a background thread, one event per
    ``delay`` seconds; otherwise callers drive the session with :meth:`push`.
    It's useful for testing and development.
    """

    name = "Scripted"

    def __init__(
        self,
        text: str = "mock transcript",
        script: Optional[Iterable[RecognitionEvent]] = None,
        autoplay: bool = False,
        delay: float = 0.0,
    ) -> None:
        super().__init__()
        self.text = text
        self.script = list(script) if script is not None else default_script(text)
        self.autoplay = autoplay
        self.delay = delay
        self.current: Optional[RecognitionHandle] = None
        self.started = 0
        self.released = 0

    def _start(self, handle: RecognitionHandle) -> None:
        self.current = handle
        self.started += 1
        if self.autoplay:
            threading.Thread(target=self._play, args=(handle,), daemon=True).start()

    def _release(self, handle: RecognitionHandle) -> None:
        self.released += 1

    def _play(self, handle: RecognitionHandle) -> None:
        for event in self.script:
            if self.delay:
                time.sleep(self.delay)
            if handle.terminal:
                return
            self.emit(handle, event)

    def push(
        self,
        event_type: RecognitionEventType,
        text: str = "",
        error: Optional[RecognitionError] = None,
    ) -> bool:
        """Emit one event on the most recent handle."""
        if self.current is None:
            return False
        return self.emit(self.current, RecognitionEvent(event_type, text=text, error=error))
