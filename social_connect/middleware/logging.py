# social_connect/middleware/logging.py
import time
import uuid

import structlog
from starlette.requests import Request
from starlette.types import ASGIApp, Message, Receive, Scope, Send
from structlog.contextvars import bind_contextvars, clear_contextvars

logger = structlog.get_logger("http")


class RequestIdMiddleware:
    """
    Binds request_id/path/method into the structlog context for the duration
    of a request and echoes the id back in the response headers. The query
    string is never logged: OAuth callbacks carry authorization codes in it.
    """

    def __init__(self, app: ASGIApp, header_name: str = "X-Request-ID"):
        self.app = app
        self.header_name = header_name

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        request = Request(scope, receive=receive)
        start = time.time()
        req_id = request.headers.get(self.header_name.lower()) or str(uuid.uuid4())
        status_code = 500
        bind_contextvars(request_id=req_id, path=request.url.path, method=request.method)

        async def send_wrapper(message: Message) -> None:
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message["status"]
                headers = list(message.get("headers", []))
                headers.append((self.header_name.lower().encode("latin-1"), req_id.encode("latin-1")))
                message["headers"] = headers
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        except Exception as exc:
            logger.exception("http_request_exception", error=str(exc))
            raise
        finally:
            duration_ms = int((time.time() - start) * 1000)
            logger.info(
                "http_request_finished",
                request_id=req_id,
                path=request.url.path,
                method=request.method,
                status_code=status_code,
                duration_ms=duration_ms,
            )
            clear_contextvars()
