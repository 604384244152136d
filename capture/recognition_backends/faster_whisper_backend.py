"""
Microphone recognition backend built on faster-whisper.

Audio is captured with a sounddevice InputStream while a monitor thread
watches the signal level. Speech is gated with a plain RMS threshold:
the first voiced block announces ``speech_start``; once the trailing silence
exceeds ``silence_timeout_s`` the whole recording is transcribed and emitted
as the final result. While speech continues a partial transcript of everything heard
so far is produced every ``partial_interval`` seconds.

Dependencies:
- sounddevice for audio capture
- numpy for audio data processing
- faster_whisper for transcription
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import numpy as np
import sounddevice as sd
from faster_whisper import WhisperModel

from .base import (
    RecognitionBackend,
    RecognitionError,
    RecognitionEvent,
    RecognitionEventType,
    RecognitionHandle,
)

logger = logging.getLogger(__name__)


@dataclass
class _Capture:
    stream: Optional[sd.InputStream] = None
    frames: List[np.ndarray] = field(default_factory=list)
    started_at: float = 0.0
    voiced_at: float = 0.0
    speech_started: bool = False
    stop: threading.Event = field(default_factory=threading.Event)


class FasterWhisperBackend(RecognitionBackend):
    """Whisper implementation using `faster_whisper` on the default microphone."""

    name = "FasterWhisper"

    def __init__(
        self,
        model_name: str = "small",
        sample_rate: int = 16000,
        speech_threshold: float = 0.01,
        partial_interval: float = 3.0,
        device: Optional[int] = None,
    ) -> None:
        super().__init__()
        self.model_name = model_name
        self.sample_rate = sample_rate
        self.speech_threshold = speech_threshold
        self.partial_interval = partial_interval
        self.device = device
        self.model = WhisperModel(model_name, device="cpu", compute_type="int8")
        self._captures: Dict[str, _Capture] = {}

    def _start(self, handle: RecognitionHandle) -> None:
        capture = _Capture(started_at=time.monotonic())
        self._captures[handle.handle_id] = capture

        def callback(indata, frames, time_info, status) -> None:  # pragma: no cover - audio thread
            capture.frames.append(indata.copy())
            level = float(np.sqrt(np.mean(np.square(indata))))
            if level >= self.speech_threshold:
                capture.voiced_at = time.monotonic()
                capture.speech_started = True

        try:
            capture.stream = sd.InputStream(
                samplerate=self.sample_rate,
                channels=1,
                dtype="float32",
                callback=callback,
                device=self.device,
            )
            capture.stream.start()
        except PermissionError as e:
            self._fail(handle, RecognitionError.PERMISSION_DENIED, str(e))
            return
        except sd.PortAudioError as e:
            self._fail(handle, RecognitionError.DEVICE_BUSY, str(e))
            return

        self.emit(handle, RecognitionEvent(RecognitionEventType.READY))
        threading.Thread(target=self._monitor, args=(handle, capture), daemon=True).start()

    def _fail(self, handle: RecognitionHandle, code: RecognitionError, reason: str) -> None:
        logger.error(f"FasterWhisper: {code.message}: {reason}")
        self.emit(handle, RecognitionEvent(RecognitionEventType.ERROR, error=code))

    def _monitor(self, handle: RecognitionHandle, capture: _Capture) -> None:  # pragma: no cover - needs audio hardware
        silence = handle.options.silence_timeout_s
        announced = False
        last_partial = time.monotonic()
        partial_frames = 0
        while not capture.stop.wait(0.1):
            now = time.monotonic()
            if capture.speech_started and not announced:
                announced = True
                self.emit(handle, RecognitionEvent(RecognitionEventType.SPEECH_START))
            if not capture.speech_started:
                if now - capture.started_at > silence:
                    self.emit(handle, RecognitionEvent(RecognitionEventType.ERROR, error=RecognitionError.SILENCE_TIMEOUT))
                    return
                continue
            if now - capture.voiced_at > silence:
                # transcribe before anything terminal is emitted
                self._finish(handle, capture)
                return
            if (
                handle.options.partial_results
                and now - last_partial >= self.partial_interval
                and len(capture.frames) > partial_frames
            ):
                last_partial = now
                partial_frames = len(capture.frames)
                try:
                    text = self._transcribe(capture.frames[:partial_frames], handle.options.language)
                except Exception as e:
                    logger.warning(f"FasterWhisper partial transcription failed: {e}")
                    continue
                if text:
                    self.emit(handle, RecognitionEvent(RecognitionEventType.PARTIAL, text=text))

    def _finish(self, handle: RecognitionHandle, capture: _Capture) -> None:  # pragma: no cover - needs audio hardware
        frames = list(capture.frames)
        try:
            text = self._transcribe(frames, handle.options.language)
        except Exception as e:
            logger.error(f"FasterWhisper failed: {e}")
            self.emit(
                handle,
                RecognitionEvent(RecognitionEventType.ERROR, error=RecognitionError.INTERNAL_CLIENT_FAULT),
            )
            return
        if text:
            self.emit(handle, RecognitionEvent(RecognitionEventType.FINAL, text=text))
        else:
            self.emit(
                handle,
                RecognitionEvent(RecognitionEventType.ERROR, error=RecognitionError.NO_SPEECH_DETECTED),
            )

    def _transcribe(self, frames: List[np.ndarray], language: Optional[str]) -> str:
        if not frames:
            return ""
        audio = np.concatenate(frames).flatten().astype(np.float32)
        # faster-whisper wants an ISO 639-1 code, locales look like en_US
        lang = language.split("_")[0].split("-")[0].lower() if language else None
        segments, _info = self.model.transcribe(audio, language=lang)
        return "".join(segment.text for segment in segments).strip()

    def _release(self, handle: RecognitionHandle) -> None:
        capture = self._captures.pop(handle.handle_id, None)
        if capture is None:
            return
        capture.stop.set()
        if capture.stream is not None:
            try:
                capture.stream.stop()
            finally:
                capture.stream.close()
