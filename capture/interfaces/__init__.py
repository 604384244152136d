from .capture_session import CaptureSession, CaptureSessionController, SessionState, TerminationCause
from .host_channel import HostChannel
from .status_publisher import CallbackSurface, CaptureStatus, LabelFileSurface, StatusPublisher
from .trigger_relay import (
    CallerContext,
    RelayOutcome,
    TriggerRelay,
    TriggerSignal,
    VisibilityGate,
    VisibleIntermediary,
)

__all__ = [
    "CaptureSession",
    "CaptureSessionController",
    "SessionState",
    "TerminationCause",
    "HostChannel",
    "CallbackSurface",
    "CaptureStatus",
    "LabelFileSurface",
    "StatusPublisher",
    "CallerContext",
    "RelayOutcome",
    "TriggerRelay",
    "TriggerSignal",
    "VisibilityGate",
    "VisibleIntermediary",
]
