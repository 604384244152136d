"""Build the capture object graph from :class:`~thoughty.settings.Settings`."""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Optional

from capture.interfaces.capture_session import CaptureSessionController
from capture.interfaces.host_channel import HostChannel
from capture.interfaces.status_publisher import StatusPublisher
from capture.interfaces.trigger_relay import TriggerRelay
from capture.persistence import PendingQueueStore, StatusStore
from capture.recognition_backends.base import RecognitionBackend, RecognitionOptions
from capture.recognition_backends.registry import BackendRegistry, get_backend_registry
from thoughty.settings import Settings

logger = logging.getLogger(__name__)


class CachedBackendFactory:
    """Create the configured backend on first use and reuse it afterwards.

    A failed creation is not cached, so installing the missing dependency or
    plugging in a microphone takes effect on the next capture.
    """

    def __init__(self, name: str, registry: Optional[BackendRegistry] = None, **kwargs) -> None:
        self.name = name
        self.registry = registry or get_backend_registry()
        self.kwargs = kwargs
        self._backend: Optional[RecognitionBackend] = None
        self._lock = threading.Lock()

    def __call__(self) -> RecognitionBackend:
        with self._lock:
            if self._backend is None:
                self._backend = self.registry.create_backend(self.name, **self.kwargs)
                logger.info(f"Created recognition backend {self.name}")
            return self._backend


def _backend_kwargs(settings: Settings) -> dict:
    if settings.backend == "FasterWhisper":
        return {"model_name": settings.model}
    return {}


@dataclass
class CaptureRuntime:
    settings: Settings
    store: PendingQueueStore
    publisher: StatusPublisher
    host_channel: HostChannel
    controller: CaptureSessionController
    relay: TriggerRelay


def build_runtime(settings: Settings, backend_factory=None) -> CaptureRuntime:
    db_path = settings.data_dir / "pending_captures.db"
    store = PendingQueueStore(db_path)
    publisher = StatusPublisher(StatusStore(db_path))
    host_channel = HostChannel(settings.host_url)

    def options() -> RecognitionOptions:
        opts = RecognitionOptions(silence_timeout_s=settings.silence_timeout_s)
        if settings.language:
            opts.language = settings.language
        return opts

    controller = CaptureSessionController(
        backend_factory=backend_factory
        or CachedBackendFactory(settings.backend, **_backend_kwargs(settings)),
        store=store,
        publisher=publisher,
        host_channel=host_channel,
        max_duration_s=settings.max_duration_s,
        options_factory=options,
        destination_hint=settings.destination_hint,
    )
    relay = TriggerRelay(controller, hold_seconds=settings.hold_seconds)
    return CaptureRuntime(
        settings=settings,
        store=store,
        publisher=publisher,
        host_channel=host_channel,
        controller=controller,
        relay=relay,
    )
