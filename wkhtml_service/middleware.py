"""
ASGI middleware applying per-connection timeouts and request logging.

- Read timeout bounds every wait for a request-body chunk.
- Write timeout bounds every response send.
- The request timeout is recorded as an absolute deadline on the request
  state; handlers pass the remaining time down to the executor.
"""

import asyncio
import logging
from typing import Optional

from starlette.requests import Request
from starlette.types import ASGIApp, Message, Receive, Scope, Send

logger = logging.getLogger(__name__)

QUIET_PATHS = frozenset({"/healthz"})


class RequestContextMiddleware:
    """Pure ASGI middleware; HTTP scopes only, everything else passes through."""

    def __init__(
        self,
        app: ASGIApp,
        request_timeout: float,
        read_timeout: float,
        write_timeout: float,
    ):
        self.app = app
        self.request_timeout = request_timeout
        self.read_timeout = read_timeout
        self.write_timeout = write_timeout

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        if scope.get("path") not in QUIET_PATHS:
            self._log_request(scope)

        loop = asyncio.get_running_loop()
        scope.setdefault("state", {})["deadline"] = loop.time() + self.request_timeout

        body_complete = False

        async def timed_receive() -> Message:
            nonlocal body_complete
            # Once the body is in, receive() only reports disconnect; no limit.
            if body_complete:
                return await receive()
            message = await asyncio.wait_for(receive(), timeout=self.read_timeout)
            if message["type"] != "http.request" or not message.get("more_body", False):
                body_complete = True
            return message

        async def timed_send(message: Message) -> None:
            await asyncio.wait_for(send(message), timeout=self.write_timeout)

        await self.app(scope, timed_receive, timed_send)

    @staticmethod
    def _log_request(scope: Scope) -> None:
        client = scope.get("client")
        remote_addr = f"{client[0]}:{client[1]}" if client else "-"
        url = scope.get("path", "")
        query = scope.get("query_string", b"")
        if query:
            url = f"{url}?{query.decode('latin-1')}"
        logger.info(
            f"Request {scope.get('method')} {url}",
            extra={"remoteAddr": remote_addr, "method": scope.get("method"), "url": url},
        )


def remaining_time(request: Request, default: Optional[float] = None) -> Optional[float]:
    """Seconds left before the request deadline (never negative)."""
    deadline = getattr(request.state, "deadline", None)
    if deadline is None:
        return default
    return max(deadline - asyncio.get_running_loop().time(), 0.0)
