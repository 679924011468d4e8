from starlette.middleware.base import BaseHTTPMiddleware
from fastapi import Request, Response
from typing import Callable, Optional
import uuid
from app.utils.context import request_id_scope

REQUEST_ID_HEADER = "X-Request-ID"


def _incoming_request_id(value: Optional[str]) -> str:
    """Reuse a caller's UUID request ID (service-to-service calls), otherwise mint one"""
    try:
        return str(uuid.UUID(value))
    except (ValueError, TypeError):
        return str(uuid.uuid4())


class RequestIDMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = _incoming_request_id(request.headers.get(REQUEST_ID_HEADER))
        request.state.request_id = request_id

        with request_id_scope(request_id):
            response = await call_next(request)

        response.headers[REQUEST_ID_HEADER] = request_id
        return response
