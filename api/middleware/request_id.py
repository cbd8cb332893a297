"""
Request ID 中间件

生成或透传追踪ID，并把请求上下文（来源IP、网关名）绑定到 structlog，
回调、webhook 与对账日志因此可以按 request_id / gateway 串起来。
"""
import re
import uuid
from contextvars import ContextVar
from typing import Optional

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

import structlog


request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)

# 网关回调会原样带回上游的追踪ID，只接受安全字符，避免日志注入
_INBOUND_ID = re.compile(r"^[A-Za-z0-9._:-]{8,128}$")

# /api/v1/checkout/{gateway}, /api/v1/payments/{gateway}/return,
# /api/v1/payments/webhooks/{gateway}, /api/v1/payments/orders/{gateway}/...
_GATEWAY_PATH = re.compile(
    r"/(?:checkout|payments/webhooks|payments/orders)/(?P<a>[a-z0-9_-]+)|/payments/(?P<b>[a-z0-9_-]+)/return"
)


def gateway_from_path(path: str) -> Optional[str]:
    match = _GATEWAY_PATH.search(path.lower())
    if not match:
        return None
    return match.group("a") or match.group("b")


class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    Request ID 追踪中间件

    - 透传合法的 X-Request-ID，否则生成新的 UUID
    - request.state 上记录 request_id / client_ip / peer_ip / user_agent
    - 响应头回写 X-Request-ID
    """

    HEADER_NAME = "X-Request-ID"

    async def dispatch(self, request: Request, call_next):
        inbound = request.headers.get(self.HEADER_NAME)
        request_id = inbound if inbound and _INBOUND_ID.match(inbound) else str(uuid.uuid4())

        peer_ip = request.client.host if request.client else None
        client_ip = self._forwarded_ip(request) or peer_ip or "unknown"

        request.state.request_id = request_id
        request.state.client_ip = client_ip
        # 仅 TCP 对端地址可用于 webhook 白名单判断
        request.state.peer_ip = peer_ip
        request.state.user_agent = request.headers.get("User-Agent")

        request_id_var.set(request_id)

        structlog.contextvars.clear_contextvars()
        context = {
            "request_id": request_id,
            "client_ip": client_ip,
            "method": request.method,
            "path": request.url.path,
        }
        gateway = gateway_from_path(request.url.path)
        if gateway:
            context["gateway"] = gateway
        structlog.contextvars.bind_contextvars(**context)

        response = await call_next(request)
        response.headers[self.HEADER_NAME] = request_id
        return response

    @staticmethod
    def _forwarded_ip(request: Request) -> Optional[str]:
        """X-Forwarded-For 第一个地址，其次 X-Real-IP；仅用于日志"""
        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            first = forwarded.split(",")[0].strip()
            if first:
                return first
        return request.headers.get("X-Real-IP") or None


def get_request_id() -> Optional[str]:
    """当前请求的 request_id；不在请求上下文中时为 None"""
    return request_id_var.get()
