import re
import uuid
from contextvars import ContextVar
from typing import Callable, Optional

import structlog
from django.http import HttpRequest, HttpResponse

correlation_id_var: ContextVar[str] = ContextVar("correlation_id", default="")

logger = structlog.get_logger()

GATEWAY_PATH_PATTERN = re.compile(r"^/api/v1/payments/(?P<gateway>[a-z]+)/")


def _gateway_for(path: str) -> Optional[str]:
    match = GATEWAY_PATH_PATTERN.match(path)
    return match.group("gateway") if match else None


class CorrelationIdMiddleware:
    """Middleware that extracts or generates a correlation ID for each request.

    Reads X-Request-ID header from the incoming request. If absent,
    generates a new UUID4. The ID is stored in a ContextVar so structlog
    processors can inject it into every log line, and is returned to the
    caller via the X-Request-ID response header.

    Gateway callbacks additionally get a ``gateway`` context variable
    (``click``, ``uzum`` or ``payme``) so every line logged while handling
    a webhook can be filtered per provider.
    """

    def __init__(self, get_response: Callable[[HttpRequest], HttpResponse]) -> None:
        self.get_response = get_response

    def __call__(self, request: HttpRequest) -> HttpResponse:
        cid = request.META.get("HTTP_X_REQUEST_ID") or str(uuid.uuid4())
        correlation_id_var.set(cid)

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(correlation_id=cid)
        gateway = _gateway_for(request.path)
        if gateway:
            structlog.contextvars.bind_contextvars(gateway=gateway)

        logger.info(
            "request_started",
            method=request.method,
            path=request.get_full_path(),
        )

        response = self.get_response(request)

        logger.info(
            "request_finished",
            method=request.method,
            path=request.get_full_path(),
            status_code=response.status_code,
        )

        response["X-Request-ID"] = cid
        return response
