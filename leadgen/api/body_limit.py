# leadgen/api/body_limit.py
from __future__ import annotations

from starlette.responses import JSONResponse
from starlette.types import ASGIApp, Receive, Scope, Send


class BodySizeLimitMiddleware:
    """
    Rejects request bodies above `max_bytes` with 413.

    Checks Content-Length up front, then counts streamed chunks for requests
    without one (chunked uploads from the extension).
    """

    def __init__(self, app: ASGIApp, max_bytes: int) -> None:
        self.app = app
        self.max_bytes = int(max_bytes)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope.get("type") != "http":
            await self.app(scope, receive, send)
            return

        for k, v in scope.get("headers", []):
            if k.lower() == b"content-length":
                declared = v.decode("latin1").strip()
                if declared.isdigit() and int(declared) > self.max_bytes:
                    await self._reject(scope, receive, send, int(declared))
                    return
                break

        total = 0
        rejected = False

        async def limited_receive() -> dict:
            nonlocal total, rejected
            if rejected:
                return {"type": "http.disconnect"}
            message = await receive()
            if message["type"] == "http.request":
                total += len(message.get("body", b"") or b"")
                if total > self.max_bytes:
                    rejected = True
                    await self._reject(scope, receive, send, total)
                    return {"type": "http.disconnect"}
            return message

        await self.app(scope, limited_receive, send)

    async def _reject(self, scope: Scope, receive: Receive, send: Send, size: int) -> None:
        resp = JSONResponse(
            {"error": f"Payload too large: {size} bytes > limit {self.max_bytes} bytes"},
            status_code=413,
        )
        await resp(scope, receive, send)


__all__ = ["BodySizeLimitMiddleware"]
