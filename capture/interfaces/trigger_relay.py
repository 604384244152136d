"""
Trigger Relay

Turns an external start/stop signal (desktop widget, keyboard shortcut
script, HTTP call) into a plain ``start()``/``stop()`` on the session
controller, even when the caller is not allowed to open the microphone
itself.

Escalation:
1. If the privilege gate admits the caller's context the relay calls the
   controller directly and reports ``DELIVERED``.
2. Otherwise a :class:`VisibleIntermediary` is launched on its own thread and
   the relay reports ``DEFERRED``. The intermediary becomes visible, makes the
   request on the relay's behalf, stays visible for ``hold_seconds`` so the
   platform treats the request as user initiated, then goes away. It finishes
   once the request is accepted, not when the capture completes.

A rejected request is logged and dropped: no session starts, so there is
nothing to report.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Protocol

from capture.errors import PrivilegedRequestRejected

logger = logging.getLogger(__name__)

DEFAULT_HOLD_SECONDS = 1.0


class TriggerSignal(Enum):
    START = "start"
    STOP = "stop"

    @classmethod
    def from_display_hint(cls, is_recording: bool) -> "TriggerSignal":
        """A tap on a surface showing 'recording' means stop, otherwise start."""
        return cls.STOP if is_recording else cls.START


class RelayOutcome(Enum):
    DELIVERED = "delivered"
    DEFERRED = "deferred"


@dataclass(frozen=True)
class CallerContext:
    """Where a trigger came from and whether it currently holds visibility."""
    name: str
    visible: bool = False


INTERMEDIARY_CONTEXT = CallerContext("intermediary", visible=True)


class SessionTarget(Protocol):
    def start(self) -> None: ...
    def stop(self) -> None: ...


class PrivilegeGate(Protocol):
    def admit(self, context: CallerContext, signal: TriggerSignal) -> None:
        """Return if ``context`` may request ``signal``; raise PrivilegedRequestRejected otherwise."""


class VisibilityGate:
    """Admit only contexts that are visible to the user."""

    def admit(self, context: CallerContext, signal: TriggerSignal) -> None:
        if not context.visible:
            raise PrivilegedRequestRejected(
                f"{context.name} is not visible and may not {signal.value} a capture"
            )


def deliver(target: SessionTarget, signal: TriggerSignal) -> None:
    if signal is TriggerSignal.START:
        target.start()
    else:
        target.stop()


class VisibleIntermediary:
    """Short-lived visible context that requests the capture on the relay's behalf."""

    def __init__(
        self,
        target: SessionTarget,
        gate: PrivilegeGate,
        hold_seconds: float = DEFAULT_HOLD_SECONDS,
        on_show: Optional[Callable[[], None]] = None,
        on_hide: Optional[Callable[[], None]] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.target = target
        self.gate = gate
        self.hold_seconds = hold_seconds
        self.on_show = on_show
        self.on_hide = on_hide
        self.sleep = sleep

    def run(self, signal: TriggerSignal) -> bool:
        """Return True when the request was accepted."""
        if self.on_show:
            self.on_show()
        try:
            try:
                self.gate.admit(INTERMEDIARY_CONTEXT, signal)
                deliver(self.target, signal)
            except PrivilegedRequestRejected as e:
                logger.error(f"Privileged {signal.value} request rejected: {e}")
                return False
            except Exception as e:
                logger.error(f"Failed to deliver {signal.value} from intermediary: {e}")
                return False
            if self.hold_seconds > 0:
                logger.debug(f"Holding intermediary visible for {self.hold_seconds}s")
                self.sleep(self.hold_seconds)
            return True
        finally:
            if self.on_hide:
                self.on_hide()
            logger.debug("Intermediary finished")


class TriggerRelay:
    """Deliver trigger signals to the session controller through the allowed path."""

    def __init__(
        self,
        target: SessionTarget,
        gate: Optional[PrivilegeGate] = None,
        hold_seconds: float = DEFAULT_HOLD_SECONDS,
        background: bool = True,
        intermediary_factory: Optional[Callable[[], VisibleIntermediary]] = None,
    ) -> None:
        self.target = target
        self.gate = gate if gate is not None else VisibilityGate()
        self.hold_seconds = hold_seconds
        self.background = background
        self.intermediary_factory = intermediary_factory or (
            lambda: VisibleIntermediary(self.target, self.gate, self.hold_seconds)
        )

    def relay(self, signal: TriggerSignal, context: CallerContext) -> RelayOutcome:
        try:
            self.gate.admit(context, signal)
        except PrivilegedRequestRejected as e:
            logger.info(f"Escalating {signal.value} from {context.name}: {e}")
            self._escalate(signal)
            return RelayOutcome.DEFERRED
        logger.info(f"Delivering {signal.value} directly from {context.name}")
        deliver(self.target, signal)
        return RelayOutcome.DELIVERED

    def relay_toggle(self, is_recording: bool, context: CallerContext) -> RelayOutcome:
        return self.relay(TriggerSignal.from_display_hint(is_recording), context)

    def _escalate(self, signal: TriggerSignal) -> None:
        intermediary = self.intermediary_factory()
        if self.background:
            threading.Thread(
                target=intermediary.run, args=(signal,), name="capture-intermediary", daemon=True
            ).start()
        else:
            intermediary.run(signal)
