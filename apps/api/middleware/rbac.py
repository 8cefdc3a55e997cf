"""Role-based access control middleware for FastAPI."""

from __future__ import annotations

from typing import Awaitable, Callable

from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from apps.api.core.errors import UnauthorizedError
from apps.api.dependencies.auth import resolve_user_from_token


class RBACMiddleware(BaseHTTPMiddleware):
    """Populate the request state with the authenticated user, when a token is sent."""

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        authorization = request.headers.get("Authorization")
        token: str | None = None

        if authorization:
            scheme, _, credentials = authorization.partition(" ")
            if scheme.lower() != "bearer":
                error = UnauthorizedError("Invalid authentication credentials", scheme=scheme)
                return JSONResponse(status_code=error.status_code, content={"detail": error.to_detail()})
            token = credentials or None

        try:
            user = resolve_user_from_token(token)
        except HTTPException as exc:
            return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})

        if user is not None:
            request.state.user = user
        return await call_next(request)
