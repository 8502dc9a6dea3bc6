"""
Owner session middleware.

The upstream access proxy authenticates the user and forwards the owner id in a trusted
header (OWNER_HEADER). This middleware only copies it onto request.state; routes decide
what a missing or mismatched owner means.
"""
from typing import Optional

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware


class OwnerSessionMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, header_name: str):
        super().__init__(app)
        self.header_name = header_name

    async def dispatch(self, request: Request, call_next):
        owner_id = request.headers.get(self.header_name, "").strip()
        request.state.owner_id = owner_id or None
        response = await call_next(request)
        return response


def get_session_owner(request: Request) -> Optional[str]:
    """Owner id set by OwnerSessionMiddleware (None when absent or middleware not installed)"""
    return getattr(request.state, "owner_id", None)
