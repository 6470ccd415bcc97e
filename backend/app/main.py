"""FastAPI application entrypoints for the Together interpreter.

This module exposes the interpreter over HTTP. Handlers stay small: each
`/run` request constructs a fresh `Interpreter` configured from the
server-side defaults (optionally lowered by the client's `settings`) so no
state is shared between requests.

Process-level configuration comes from environment variables:
TOGETHER_HOST, TOGETHER_PORT and TOGETHER_LOG_LEVEL.
"""

import logging
import os
import time
from typing import Any, Dict, Optional

import uvicorn
from fastapi import FastAPI
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from ..together.interpreter import Interpreter

HOST = os.environ.get("TOGETHER_HOST", "127.0.0.1")
PORT = int(os.environ.get("TOGETHER_PORT", "3000"))
LOG_LEVEL = os.environ.get("TOGETHER_LOG_LEVEL", "INFO").upper()

logger = logging.getLogger(__name__)

app = FastAPI(title="Together API", version="0.1")

# Server-side defaults; clients may lower these per request but never raise them.
interpreter = Interpreter()


def _cap_settings(settings: Optional[Dict[str, Any]]) -> Dict[str, int]:
    """Clamp client-provided loop guards and wait limit to the server defaults.

    Clients may include a `settings` object with per-run tunables. The
    server does not trust them: each value is coerced to int and clamped to
    the range [1, server default].
    """
    safe = {
        "max_during_iterations": interpreter.max_during_iterations,
        "max_for_iterations": interpreter.max_for_iterations,
        "max_wait_ms": interpreter.max_wait_ms,
    }
    if not settings:
        return safe
    caps = {}
    for key, ceiling in safe.items():
        caps[key] = max(1, min(int(settings.get(key, ceiling)), ceiling))
    return caps


class RunRequest(BaseModel):
    """Pydantic model for the `/run` request body.

    Fields:
        code: Together script text.
        settings: optional loop-guard and wait-limit overrides; capped server-side.
    """
    code: Optional[str] = None
    settings: Optional[Dict[str, Any]] = None


@app.post("/run")
def run_code(req: Optional[RunRequest] = None):
    """Run a script and return its output.

    Declared as a plain function so FastAPI runs it in its threadpool: a
    script blocked in `wait` holds one worker thread, never the event loop.

    A missing or empty `code` is a bad request (400). Script errors are not
    HTTP errors: they arrive inside `output` as the trailing `Error:` line and
    in `errors`. Anything else that goes wrong is reported as a 500 with a
    stable JSON shape.
    """
    if req is None or not req.code:
        return JSONResponse(status_code=400, content={"error": "No code provided."})
    start = time.time()
    try:
        capped = _cap_settings(req.settings)
        it = Interpreter()
        it.max_during_iterations = capped["max_during_iterations"]
        it.max_for_iterations = capped["max_for_iterations"]
        it.max_wait_ms = capped["max_wait_ms"]
        result = it.execute(req.code)
    except Exception as e:
        logger.exception("Run failed")
        return JSONResponse(status_code=500, content={"error": str(e)})
    return {
        "output": result.output,
        "errors": result.error,
        "duration_ms": int((time.time() - start) * 1000),
    }


@app.get("/health")
async def health():
    return {"status": "ok"}


def main() -> None:
    logging.basicConfig(
        level=LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logger.info("Together backend running on http://%s:%d", HOST, PORT)
    uvicorn.run(app, host=HOST, port=PORT, log_level=LOG_LEVEL.lower())


if __name__ == "__main__":
    main()
