from __future__ import annotations

import logging
import time
import uuid
from typing import Callable, Dict, Optional

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request


logger = logging.getLogger(__name__)

# Probes are logged at DEBUG so they do not drown game traffic
QUIET_PATHS = frozenset({"/healthz"})
GAMES_PREFIX = "/api/games/"


def game_id_from_path(path: str) -> Optional[str]:
    """``/api/games/<id>/...`` -> ``<id>``; None for other routes."""
    if not path.startswith(GAMES_PREFIX):
        return None
    game_id = path[len(GAMES_PREFIX) :].split("/", 1)[0]
    return game_id or None


class RequestIDLoggingMiddleware(BaseHTTPMiddleware):
    """Tag each request with an id (and its game, if any) and log both ends."""

    async def dispatch(self, request: Request, call_next: Callable):
        start = time.perf_counter()
        request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        request.state.request_id = request_id
        path = request.url.path
        level = logging.DEBUG if path in QUIET_PATHS else logging.INFO
        tags: Dict[str, str] = {"request_id": request_id}
        game_id = game_id_from_path(path)
        if game_id is not None:
            tags["game_id"] = game_id

        logger.log(level, "request", extra={**tags, "method": request.method, "path": path})
        response = await call_next(request)
        response.headers["x-request-id"] = request_id
        logger.log(
            level,
            "response",
            extra={
                **tags,
                "status_code": response.status_code,
                "duration_ms": int((time.perf_counter() - start) * 1000),
            },
        )
        return response
