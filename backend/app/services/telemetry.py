"""
Quiz telemetry.

Every event is logged as one `telemetry=<json>` line. With
ENABLE_TELEMETRY_DB=1 it is also inserted into the `telemetry_events` table
(best effort; a failed insert is logged and dropped).

  emit_event           raw event
  emit_assembly_event  one row per assembled quiz (requested vs achieved)
  instrument           route decorator: latency + ok/error_type per call
"""
import time
import json
import logging
import asyncio
import os
from typing import Optional
from functools import wraps

logger = logging.getLogger("quizengine.telemetry")

TELEMETRY_TABLE = "telemetry_events"


def _persist(payload: dict) -> None:
    if os.getenv("ENABLE_TELEMETRY_DB", "0") != "1":
        return
    try:
        from app.core.deps import get_supabase_client
        row = {k: v for k, v in payload.items() if k != "ts"}
        get_supabase_client().table(TELEMETRY_TABLE).insert(row).execute()
    except Exception as e:
        logger.error(f"[telemetry._persist] {e}", exc_info=True)


def emit_event(event: str, *, route: str, version: str, user_id: Optional[str] = None,
               topic: Optional[str] = None, grade: Optional[str] = None,
               requested: Optional[int] = None, achieved: Optional[int] = None,
               error_type: Optional[str] = None, latency_ms: Optional[int] = None,
               ok: Optional[bool] = None):
    payload = {
        "event": event,
        "route": route,
        "version": version,
        "user_id": user_id,
        "topic": topic,
        "grade": grade,
        "requested": requested,
        "achieved": achieved,
        "error_type": error_type,
        "latency_ms": latency_ms,
        "ok": ok,
        "ts": time.time(),
    }
    logger.info("telemetry=%s", json.dumps(payload, separators=(",", ":")))
    _persist(payload)


def emit_assembly_event(route: str, version: str, *, topic: str, grade: str, user_id: Optional[str],
                        requested: int, achieved: int, latency_ms: int):
    """A quiz is `ok` only when every requested question was found."""
    emit_event("quiz_assembled", route=route, version=version, user_id=user_id, topic=topic,
               grade=grade, requested=requested, achieved=achieved, latency_ms=latency_ms,
               ok=achieved >= requested)


class _CallTimer:
    def __init__(self, route: str, version: str):
        self.route = route
        self.version = version
        self.t0 = time.time()
        self.error_type: Optional[str] = None

    def failed(self, exc: Exception) -> None:
        self.error_type = exc.__class__.__name__

    def finish(self) -> None:
        emit_event("api_call", route=self.route, version=self.version,
                   latency_ms=int((time.time() - self.t0) * 1000),
                   ok=self.error_type is None, error_type=self.error_type)


def instrument(route: str, version: str):
    def deco(fn):
        if asyncio.iscoroutinefunction(fn):
            @wraps(fn)
            async def wrapped_async(*args, **kwargs):
                timer = _CallTimer(route, version)
                try:
                    return await fn(*args, **kwargs)
                except Exception as e:
                    timer.failed(e)
                    raise
                finally:
                    timer.finish()
            return wrapped_async

        @wraps(fn)
        def wrapped(*args, **kwargs):
            timer = _CallTimer(route, version)
            try:
                return fn(*args, **kwargs)
            except Exception as e:
                timer.failed(e)
                raise
            finally:
                timer.finish()
        return wrapped
    return deco
