"""
Status Publisher

Reflects whether a capture is running back to every trigger surface (desktop
widgets, status bars, the host application) and keeps the latest value in
the shared database so a surface created later, possibly in another process,
can synchronize instead of assuming idle.
"""

from __future__ import annotations

import logging
import os
import tempfile
import threading
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional, Protocol

from capture.persistence import StatusStore

logger = logging.getLogger(__name__)


def process_alive(pid: int) -> bool:
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    except OSError:
        return False
    return True


class CaptureStatus(Enum):
    IDLE = "idle"
    ACTIVE = "active"

    @property
    def label(self) -> str:
        return "Recording..." if self is CaptureStatus.ACTIVE else "Tap to record"

    @classmethod
    def from_recording(cls, is_recording: bool) -> "CaptureStatus":
        return cls.ACTIVE if is_recording else cls.IDLE


class StatusSurface(Protocol):
    def render(self, status: CaptureStatus) -> None: ...


class CallbackSurface:
    """Surface that forwards every status to a callable."""

    def __init__(self, callback: Callable[[CaptureStatus], None]) -> None:
        self.callback = callback

    def render(self, status: CaptureStatus) -> None:
        self.callback(status)


class LabelFileSurface:
    """Write the status label to a file polled by external status bars.

    The file is replaced atomically so readers never see a half-written label.
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def render(self, status: CaptureStatus) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=self.path.parent, prefix=".status_")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(status.label + "\n")
            os.replace(tmp, self.path)
        except Exception:
            Path(tmp).unlink(missing_ok=True)
            raise


class StatusPublisher:
    """Persist the latest capture status and broadcast it to attached surfaces."""

    def __init__(self, store: Optional[StatusStore] = None) -> None:
        self.store = store if store is not None else StatusStore()
        self._surfaces: List[StatusSurface] = []
        self._lock = threading.Lock()

    def attach(self, surface: StatusSurface, sync: bool = True) -> None:
        with self._lock:
            self._surfaces.append(surface)
        if sync:
            self._render(surface, self.query_latest())

    def detach(self, surface: StatusSurface) -> None:
        with self._lock:
            if surface in self._surfaces:
                self._surfaces.remove(surface)

    @property
    def surfaces(self) -> List[StatusSurface]:
        with self._lock:
            return list(self._surfaces)

    def publish(self, status: CaptureStatus) -> None:
        try:
            self.store.save(status.value, owner=os.getpid())
        except Exception as e:
            logger.error(f"Failed to persist capture status {status.value}: {e}")
        surfaces = self.surfaces
        if not surfaces:
            logger.debug(f"No surfaces attached for status {status.value}")
        for surface in surfaces:
            self._render(surface, status)

    def query_latest(self) -> CaptureStatus:
        try:
            row = self.store.load()
        except Exception as e:
            logger.error(f"Failed to read capture status: {e}")
            return CaptureStatus.IDLE
        if row is None:
            return CaptureStatus.IDLE
        try:
            return CaptureStatus(row[0])
        except ValueError:
            logger.warning(f"Ignoring unknown persisted status {row[0]!r}")
            return CaptureStatus.IDLE

    def active_owner(self) -> Optional[int]:
        """Pid of the live process currently publishing ``active``, if any."""
        try:
            row = self.store.load()
        except Exception as e:
            logger.error(f"Failed to read capture status: {e}")
            return None
        if row is None or row[0] != CaptureStatus.ACTIVE.value:
            return None
        owner = row[2]
        if owner is None or not process_alive(owner):
            return None
        return owner

    def _render(self, surface: StatusSurface, status: CaptureStatus) -> None:
        try:
            surface.render(status)
        except Exception as e:
            logger.warning(f"Status surface {surface!r} failed to render {status.value}: {e}")
