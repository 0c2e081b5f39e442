import json
import logging
import re
import time
import uuid
from typing import Any

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from app.common.config import get_settings
from app.infra.observability.metrics import LATENCY, REQUESTS

MAX_TRACE_BODY = 2048

_SENSITIVE_QUERY = re.compile(
    r"(?i)(x-amz-signature|x-amz-credential|x-amz-security-token|token|api_key|secret)=[^&]+"
)


class MetricsMiddleware(BaseHTTPMiddleware):
    SENSITIVE_KEYS = {
        "password",
        "secret",
        "secret_key",
        "access_key",
        "token",
        "api_key",
        "x-api-key",
        "authorization",
    }

    def _mask_mapping(self, obj: Any) -> Any:
        if isinstance(obj, dict):
            masked: dict[str, Any] = {}
            for k, v in obj.items():
                if isinstance(k, str) and k.lower() in self.SENSITIVE_KEYS:
                    masked[k] = "***"
                else:
                    masked[k] = self._mask_mapping(v)
            return masked
        if isinstance(obj, list):
            return [self._mask_mapping(x) for x in obj]
        return obj

    @staticmethod
    def _mask_query(query: str) -> str:
        return _SENSITIVE_QUERY.sub(lambda m: f"{m.group(1)}=***", query)

    async def _trace_body(self, request: Request) -> str | None:
        # multipart uploads are not traced; only JSON bodies are useful in logs
        content_type = request.headers.get("Content-Type", "")
        if not content_type.startswith("application/json"):
            return None
        raw_body = await request.body()

        async def receive():
            return {"type": "http.request", "body": raw_body, "more_body": False}

        request._receive = receive
        if not raw_body:
            return None
        try:
            parsed = json.loads(raw_body)
        except ValueError:
            return "<invalid json>"
        text = json.dumps(self._mask_mapping(parsed), ensure_ascii=False)
        if len(text) > MAX_TRACE_BODY:
            text = text[:MAX_TRACE_BODY] + "...<truncated>"
        return text

    @staticmethod
    def _client_ip(request: Request) -> str | None:
        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            return forwarded.split(",")[0].strip()
        return request.client.host if request.client else None

    @staticmethod
    def _route_label(request: Request) -> str:
        route = request.scope.get("route")
        return getattr(route, "path", None) or request.url.path

    async def dispatch(self, request: Request, call_next):
        start = time.perf_counter()
        request_id = request.headers.get("X-Request-Id") or str(uuid.uuid4())
        client_ip = self._client_ip(request)
        logger = logging.getLogger("http")
        query = self._mask_query(request.url.query)
        request_body = None
        if get_settings().TRACE_HTTP:
            request_body = await self._trace_body(request)

        try:
            response = await call_next(request)
        except Exception as exc:
            duration_ms = round((time.perf_counter() - start) * 1000, 3)
            logger.exception(
                "request_error method=%s route=%s status=500 duration_ms=%.3f request_id=%s",
                request.method,
                request.url.path,
                duration_ms,
                request_id,
                extra={
                    "extra": {
                        "method": request.method,
                        "route": request.url.path,
                        "query": query,
                        "status": 500,
                        "duration_ms": duration_ms,
                        "request_id": request_id,
                        "client_ip": client_ip,
                        "exception": repr(exc),
                    }
                },
            )
            raise

        elapsed = time.perf_counter() - start
        route = self._route_label(request)
        status_code = response.status_code
        REQUESTS.labels(request.method, route, str(status_code)).inc()
        LATENCY.labels(request.method, route).observe(elapsed)

        if "X-Request-Id" not in response.headers:
            response.headers["X-Request-Id"] = request_id

        if status_code >= 500:
            level = logging.ERROR
        elif status_code >= 400:
            level = logging.WARNING
        else:
            level = logging.INFO

        duration_ms = round(elapsed * 1000, 3)
        extra_payload = {
            "method": request.method,
            "route": route,
            "query": query,
            "status": status_code,
            "duration_ms": duration_ms,
            "request_id": request_id,
            "client_ip": client_ip,
            "user_agent": request.headers.get("User-Agent"),
            # upload size as announced by the client
            "content_length": request.headers.get("Content-Length"),
        }
        if request_body is not None:
            extra_payload["request_body"] = request_body

        logger.log(
            level,
            "request method=%s route=%s status=%s duration_ms=%.3f request_id=%s client_ip=%s query=%s",
            request.method,
            route,
            status_code,
            duration_ms,
            request_id,
            client_ip or "-",
            query or "-",
            extra={"extra": extra_payload},
        )
        return response
