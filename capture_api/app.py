"""HTTP surface of the capture service.

Trigger surfaces post start/stop signals here, the host application reads
and acknowledges pending results, and anyone can ask for the current
status.
"""
from typing import Dict, List, Optional

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from capture.interfaces.trigger_relay import CallerContext, TriggerSignal
from capture.persistence import export_pending
from thoughty.runtime import CaptureRuntime

from .error_handler import init_error_handler

HOST_CONTEXT = CallerContext("host-app", visible=True)


class TriggerIn(BaseModel):
    signal: Optional[TriggerSignal] = None
    is_recording: Optional[bool] = None
    visible: bool = False
    source: str = "surface"


class DisplayIn(BaseModel):
    is_recording: bool


class AckIn(BaseModel):
    ids: List[str] = Field(default_factory=list)


def create_app(runtime: CaptureRuntime, background_errors: bool = True) -> FastAPI:
    app = FastAPI(title="Thoughty Capture")
    init_error_handler(app, background=background_errors)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    controller = runtime.controller
    relay = runtime.relay
    store = runtime.store

    @app.get("/status")
    def status() -> Dict[str, str]:
        return {"status": "ok"}

    @app.get("/api/capture/status")
    def capture_status() -> Dict:
        session = controller.session
        return {
            "status": runtime.publisher.query_latest().value,
            "state": controller.state.value,
            "session_id": session.session_id if session else None,
            "accumulated_text": session.accumulated_text if session else "",
        }

    @app.post("/api/capture/trigger")
    def capture_trigger(payload: TriggerIn) -> Dict[str, str]:
        context = CallerContext(payload.source, visible=payload.visible)
        if payload.signal is not None:
            outcome = relay.relay(payload.signal, context)
        elif payload.is_recording is not None:
            outcome = relay.relay_toggle(payload.is_recording, context)
        else:
            raise HTTPException(status_code=400, detail="signal or is_recording required")
        return {"outcome": outcome.value}

    @app.post("/api/capture/start")
    def capture_start() -> Dict[str, str]:
        return {"outcome": relay.relay(TriggerSignal.START, HOST_CONTEXT).value}

    @app.post("/api/capture/stop")
    def capture_stop() -> Dict[str, str]:
        return {"outcome": relay.relay(TriggerSignal.STOP, HOST_CONTEXT).value}

    @app.post("/api/capture/display")
    def capture_display(payload: DisplayIn) -> Dict[str, str]:
        controller.update_display(payload.is_recording)
        return {"status": runtime.publisher.query_latest().value}

    @app.get("/api/pending")
    def pending() -> List[Dict]:
        return export_pending(store)

    @app.delete("/api/pending")
    def pending_clear() -> Dict[str, int]:
        """Drop the whole queue, even records appended since the caller's last GET.

        Importers should acknowledge through ``POST /api/pending/ack`` instead.
        """
        return {"cleared": store.clear_all()}

    @app.post("/api/pending/ack")
    def pending_ack(payload: AckIn) -> Dict[str, int]:
        """Remove exactly the records the host application imported."""
        if not payload.ids:
            raise HTTPException(status_code=400, detail="ids required")
        return {"cleared": store.clear_ids(payload.ids)}

    @app.on_event("shutdown")
    def shutdown() -> None:
        controller.shutdown()

    return app
