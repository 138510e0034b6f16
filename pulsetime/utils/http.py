"""
Request helpers shared by the routers.
"""
from __future__ import annotations
from starlette.requests import Request

from pulsetime.utils.ids import request_id as get_request_id


def request_id_of(request: Request) -> str:
    """Request ID assigned by the middleware, or one derived from the header."""
    assigned = getattr(request.state, "request_id", None)
    if assigned:
        return assigned
    return get_request_id(request.headers.get("x-request-id"))
