import re
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from arcline.common.logging import get_logger

logger = get_logger("middleware")

REQUEST_ID_HEADER = "X-Request-Id"
_REQUEST_ID_RE = re.compile(r"^[A-Za-z0-9._-]{1,64}$")


def _request_id(request: Request) -> str:
    incoming = request.headers.get(REQUEST_ID_HEADER, "")
    if _REQUEST_ID_RE.match(incoming):
        return incoming
    return uuid.uuid4().hex


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Tags every request with an id and logs it with the tenant it ran for.

    Public signing and proposal links carry a raw token in the path, so those
    paths are logged with the token cut off.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = _request_id(request)
        request.state.request_id = request_id
        org_id = request.headers.get("X-Org-Id") or "-"

        start_time = time.perf_counter()
        response = await call_next(request)
        duration_ms = (time.perf_counter() - start_time) * 1000

        logger.info(
            "[%s] org=%s %s %s %d %.1fms",
            request_id,
            org_id,
            request.method,
            redact_path(request.url.path),
            response.status_code,
            duration_ms,
        )

        response.headers[REQUEST_ID_HEADER] = request_id
        response.headers["X-Request-Duration-Ms"] = f"{duration_ms:.1f}"
        return response


def redact_path(path: str) -> str:
    for prefix in ("/api/v1/public/sign/", "/api/v1/public/proposals/"):
        if path.startswith(prefix):
            return prefix + "***"
    return path
