import json
import logging
import threading
import traceback
from datetime import datetime, timezone
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

LOG_DIR = Path("logs/errors")

logger = logging.getLogger(__name__)


def _log_error(path: str, method: str, exc: Exception, trace: str) -> Path:
    LOG_DIR.mkdir(parents=True, exist_ok=True)
    now = datetime.now(timezone.utc)
    log_file = LOG_DIR / f"{now:%Y-%m-%d}.jsonl"
    entry = {
        "timestamp": now.isoformat(),
        "path": path,
        "method": method,
        "error": str(exc),
        "traceback": trace,
    }
    with log_file.open("a", encoding="utf-8") as fh:
        fh.write(json.dumps(entry) + "\n")
    return log_file


def _background_log(path: str, method: str, exc: Exception) -> None:
    trace = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    try:
        _log_error(path, method, exc, trace)
    except OSError as e:
        logger.error(f"Could not write error report for {path}: {e}")


def init_error_handler(app: FastAPI, background: bool = True) -> None:
    @app.exception_handler(Exception)
    async def handle_exception(request: Request, exc: Exception) -> JSONResponse:  # type: ignore[override]
        logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}")
        args = (request.url.path, request.method, exc)
        if background:
            threading.Thread(target=_background_log, args=args, daemon=True).start()
        else:
            _background_log(*args)
        return JSONResponse(
            status_code=500,
            content={"error": "Internal error. An error report has been generated."},
        )
