# blogdesk/middleware/logging.py
import time
import uuid

import structlog
from starlette.requests import HTTPConnection
from starlette.types import ASGIApp, Message, Receive, Scope, Send
from structlog.contextvars import bind_contextvars, clear_contextvars

logger = structlog.get_logger("http")


class RequestIdMiddleware:
    """
    Binds a request id to every log line emitted while an HTTP request or a
    feed socket is being served, and echoes it back on HTTP responses.
    """

    def __init__(self, app: ASGIApp, header_name: str = "X-Request-ID"):
        self.app = app
        self.header_name = header_name

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] not in ("http", "websocket"):
            await self.app(scope, receive, send)
            return

        conn = HTTPConnection(scope)
        request_id = conn.headers.get(self.header_name) or uuid.uuid4().hex
        method = scope.get("method", "WEBSOCKET")
        status_code = None
        started = time.monotonic()

        async def send_with_id(message: Message) -> None:
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message["status"]
                headers = list(message.get("headers", []))
                headers.append((self.header_name.lower().encode("latin-1"), request_id.encode("latin-1")))
                message = {**message, "headers": headers}
            await send(message)

        clear_contextvars()
        bind_contextvars(request_id=request_id, path=conn.url.path, method=method)
        try:
            await self.app(scope, receive, send_with_id)
        except Exception:
            logger.exception("request_failed")
            raise
        finally:
            logger.info(
                "request_finished",
                status_code=status_code,
                duration_ms=round((time.monotonic() - started) * 1000, 1),
            )
            clear_contextvars()
