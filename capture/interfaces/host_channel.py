"""Best-effort direct channel to the host application.

The durable queue is the authoritative handoff. This channel only shortens
the delay when the host application happens to be running: every failure is
logged at debug level and otherwise ignored.
"""

from __future__ import annotations

import logging
import threading
from typing import Optional

import requests

from capture.persistence import PendingResult

logger = logging.getLogger(__name__)


class HostChannel:
    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: float = 1.0,
        background: bool = True,
    ) -> None:
        self.base_url = base_url.rstrip("/") if base_url else None
        self.timeout = timeout
        self.background = background

    @property
    def enabled(self) -> bool:
        return self.base_url is not None

    def notify_capture_completed(self, result: PendingResult) -> None:
        """Push ``captureCompleted(text, timestamp)`` without blocking the caller."""
        if not self.enabled:
            return
        if self.background:
            threading.Thread(target=self._post_completed, args=(result,), daemon=True).start()
        else:
            self._post_completed(result)

    def _post_completed(self, result: PendingResult) -> bool:
        payload = {"id": result.id, "text": result.text, "timestamp": result.created_at}
        try:
            resp = requests.post(
                f"{self.base_url}/capture-completed", json=payload, timeout=self.timeout
            )
            resp.raise_for_status()
        except requests.RequestException as e:
            logger.debug(f"Host application not reachable, result {result.id} left for later sync: {e}")
            return False
        logger.info(f"Host application notified of capture {result.id}")
        return True
