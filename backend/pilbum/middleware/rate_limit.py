"""
Pilbum Backend — Rate Limiting Middleware
===========================================

What:  Per-IP sliding window limits, with separate budgets for login,
       uploads and the rest of the API.
How:   Each request is matched against an ordered list of path-prefix rules
       (first match wins). Every (rule, IP) pair keeps the timestamps of its
       recent requests; a full window answers 429 with Retry-After.

Default rules:
    POST /api/auth/login   10 requests / 60 s   (brute-force protection)
    POST /api/upload       20 requests / 60 s   (CPU-heavy image processing)
         /api/*            60 requests / 60 s
    /health, /docs, /openapi.json, /redoc and /uploads/* are never limited.

Client IP:
    The socket peer. With TRUST_PROXY_HEADERS=true (only behind a reverse
    proxy that overwrites the header) the first X-Forwarded-For entry wins;
    otherwise clients could pick a fresh address per request.

State is in-memory: one budget per process. Multi-worker deployments get
one budget per worker.
"""

import logging
import time
from collections import defaultdict
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from pilbum.config import settings
from pilbum.exceptions import RateLimitExceededError

logger = logging.getLogger(__name__)

EXCLUDED_PATHS = {"/health", "/docs", "/openapi.json", "/redoc"}
EXCLUDED_PREFIXES = ("/uploads/",)


@dataclass(frozen=True)
class RateLimitRule:
    name: str
    prefix: str
    requests: int
    window: int
    method: Optional[str] = None

    def matches(self, method: str, path: str) -> bool:
        if self.method and method != self.method:
            return False
        return path == self.prefix or path.startswith(self.prefix.rstrip("/") + "/")


def default_rules() -> List[RateLimitRule]:
    return [
        RateLimitRule(
            "auth", "/api/auth/login",
            settings.rate_limit_auth_requests, settings.rate_limit_auth_window, method="POST",
        ),
        RateLimitRule(
            "upload", "/api/upload",
            settings.rate_limit_upload_requests, settings.rate_limit_upload_window, method="POST",
        ),
        RateLimitRule(
            "general", "/api",
            settings.rate_limit_general_requests, settings.rate_limit_general_window,
        ),
    ]


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for") if settings.trust_proxy_headers else None
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    return request.client.host if request.client else "unknown"


class SlidingWindowLimiter:
    """Timestamps per key; check() records the hit when it is allowed."""

    def __init__(self) -> None:
        self._hits: Dict[Tuple[str, str], List[float]] = defaultdict(list)
        self._calls = 0
        self._longest_window = 0

    def check(self, rule: RateLimitRule, ip: str, now: Optional[float] = None) -> Optional[int]:
        """None when allowed, else the seconds until a slot frees up."""
        now = time.time() if now is None else now
        window_start = now - rule.window
        key = (rule.name, ip)
        self._longest_window = max(self._longest_window, rule.window)

        hits = [ts for ts in self._hits[key] if ts > window_start]
        self._hits[key] = hits

        if len(hits) >= rule.requests:
            return max(1, int(hits[0] + rule.window - now) + 1)

        hits.append(now)
        self._calls += 1
        if self._calls % 1000 == 0:
            self._cleanup(now)
        return None

    def _cleanup(self, now: float) -> None:
        # A key whose newest hit left every window holds no budget
        cutoff = now - self._longest_window
        stale = [key for key, hits in self._hits.items() if not hits or hits[-1] <= cutoff]
        for key in stale:
            del self._hits[key]
        if stale:
            logger.debug("Cleaned up %d idle rate-limit entries", len(stale))

    @property
    def tracked_keys(self) -> int:
        return len(self._hits)

    def reset(self) -> None:
        self._hits.clear()


class RateLimitMiddleware(BaseHTTPMiddleware):

    def __init__(self, app, rules: Optional[List[RateLimitRule]] = None, **kwargs):
        super().__init__(app, **kwargs)
        self.rules = rules if rules is not None else default_rules()
        self.limiter = SlidingWindowLimiter()

    def _rule_for(self, request: Request) -> Optional[RateLimitRule]:
        path = request.url.path
        if path in EXCLUDED_PATHS or path.startswith(EXCLUDED_PREFIXES):
            return None
        for rule in self.rules:
            if rule.matches(request.method, path):
                return rule
        return None

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if not settings.rate_limit_enabled or request.method == "OPTIONS":
            return await call_next(request)

        rule = self._rule_for(request)
        if rule is None:
            return await call_next(request)

        ip = client_ip(request)
        retry_after = self.limiter.check(rule, ip)
        if retry_after is None:
            return await call_next(request)

        logger.warning(
            "Rate limit '%s' exceeded for %s: %d requests per %ds",
            rule.name, ip, rule.requests, rule.window,
        )
        error = RateLimitExceededError(retry_after=retry_after)
        return JSONResponse(
            status_code=error.status_code,
            content={
                "error": error.error_code,
                "message": error.message,
                "details": {"retry_after": retry_after},
            },
            headers={"Retry-After": str(retry_after)},
        )
