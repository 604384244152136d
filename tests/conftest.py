from pathlib import Path
import os
import sys
import tempfile

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

# Keep log files and databases created at import time out of the checkout.
_SCRATCH = Path(tempfile.mkdtemp(prefix="thoughty-tests-"))
os.environ.setdefault("DATA_DIR", str(_SCRATCH / "data"))
os.environ.setdefault("THOUGHTY_LOG_DIR", str(_SCRATCH / "logs"))
os.environ.setdefault("THOUGHTY_HOME", str(_SCRATCH / "home"))

from capture.interfaces.capture_session import CaptureSessionController  # noqa: E402
from capture.interfaces.status_publisher import StatusPublisher  # noqa: E402
from capture.persistence import PendingQueueStore, StatusStore  # noqa: E402
from capture.recognition_backends.mock_backend import ScriptedBackend  # noqa: E402


class FakeTimer:
    """Stand-in for threading.Timer that only fires when told to."""

    def __init__(self, interval, fn):
        self.interval = interval
        self.fn = fn
        self.started = False
        self.cancelled = False

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    def fire(self):
        self.fn()


class TimerFactory:
    def __init__(self):
        self.timers = []

    def __call__(self, interval, fn):
        timer = FakeTimer(interval, fn)
        self.timers.append(timer)
        return timer

    @property
    def last(self):
        return self.timers[-1]


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "pending_captures.db"


@pytest.fixture
def store(db_path: Path) -> PendingQueueStore:
    return PendingQueueStore(db_path)


@pytest.fixture
def publisher(db_path: Path) -> StatusPublisher:
    return StatusPublisher(StatusStore(db_path))


@pytest.fixture
def backend() -> ScriptedBackend:
    return ScriptedBackend(text="hello world")


@pytest.fixture
def timers() -> TimerFactory:
    return TimerFactory()


@pytest.fixture
def controller(backend, store, publisher, timers) -> CaptureSessionController:
    return CaptureSessionController(
        backend_factory=lambda: backend,
        store=store,
        publisher=publisher,
        timer_factory=timers,
    )
