from typing import Awaitable, Callable

from fastapi import Request, Response, status
from starlette.middleware.base import BaseHTTPMiddleware

CORS_PREFLIGHT_HEADERS = {
    "Content-Length": "0",
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET,HEAD,PUT,PATCH,POST,DELETE",
    "Access-Control-Allow-Headers": "Content-Type, Authorization, Content-Length, X-Requested-With",
}


class CorsPreflightMiddleware(BaseHTTPMiddleware):
    """Answers OPTIONS on any path; other methods route normally."""

    async def dispatch(self, request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
        if request.method != "OPTIONS":
            return await call_next(request)
        return Response(status_code=status.HTTP_204_NO_CONTENT, headers=CORS_PREFLIGHT_HEADERS)
