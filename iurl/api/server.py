"""aiohttp HTTP API for iurl: scanning, history, stats and allowlist."""

from __future__ import annotations

import logging
import math
import time
from datetime import datetime, timezone
from typing import Optional

from aiohttp import web

from ..errors import AllowlistEntryLocked, AuthenticationRequired, InvalidDomainError, InvalidUrlError
from ..pipeline.service import ScanService
from ..storage.allowlist_store import AllowlistStore
from ..storage.database import Database
from .rate_limiter import RateLimiterRegistry

logger = logging.getLogger(__name__)

MAX_URL_LENGTH = 2048


def _coerce_bool(value: Optional[str]) -> bool:
    return (value or "").strip().lower() in {"1", "true", "yes", "on"}


def _coerce_int(value: Optional[str], default: int, *, minimum: int = 1, maximum: Optional[int] = None) -> int:
    try:
        parsed = int(value) if value not in (None, "") else default
    except (TypeError, ValueError):
        parsed = default
    parsed = max(minimum, parsed)
    if maximum is not None:
        parsed = min(maximum, parsed)
    return parsed


class ApiServer:
    """Serves the scan API plus health and metrics endpoints."""

    def __init__(
        self,
        service: ScanService,
        allowlist: AllowlistStore,
        database: Database,
        *,
        host: str = "127.0.0.1",
        port: int = 8080,
        tokens: Optional[dict[str, str]] = None,
        rate_limiters: Optional[RateLimiterRegistry] = None,
        history_limit: int = 50,
        trusted_proxies: Optional[list[str]] = None,
    ):
        self.service = service
        self.allowlist = allowlist
        self.database = database
        self.host = host
        self.port = port
        self.tokens = dict(tokens or {})
        self.rate_limiters = rate_limiters or RateLimiterRegistry()
        self.history_limit = history_limit
        self.trusted_proxies = frozenset(trusted_proxies or ())

        self._started_at = time.time()
        self._counters: dict[str, int] = {
            "scans_total": 0,
            "scans_clean": 0,
            "scans_suspicious": 0,
            "scans_malicious": 0,
            "scans_invalid": 0,
            "scans_rate_limited": 0,
        }
        self._runner: web.AppRunner | None = None
        self._site: web.TCPSite | None = None

    def build_app(self) -> web.Application:
        app = web.Application(middlewares=[self._error_middleware])
        app.router.add_get("/healthz", self._handle_health)
        app.router.add_get("/metrics", self._handle_metrics)
        app.router.add_post("/api/scan", self._handle_scan)
        app.router.add_get("/api/history", self._handle_history)
        app.router.add_delete("/api/history", self._handle_clear_history)
        app.router.add_get("/api/stats/today", self._handle_stats_today)
        app.router.add_get("/api/allowlist", self._handle_allowlist)
        app.router.add_post("/api/allowlist", self._handle_allowlist_add)
        app.router.add_delete("/api/allowlist/{domain}", self._handle_allowlist_remove)
        return app

    async def start(self):
        """Start the API server."""
        self._runner = web.AppRunner(self.build_app())
        await self._runner.setup()
        self._site = web.TCPSite(self._runner, self.host, self.port)
        await self._site.start()
        logger.info("API server listening on %s:%s", self.host, self.port)

    async def stop(self):
        """Stop the API server."""
        if self._site:
            await self._site.stop()
        if self._runner:
            await self._runner.cleanup()
        self._runner = None
        self._site = None

    # Request helpers

    @web.middleware
    async def _error_middleware(self, request: web.Request, handler):
        try:
            return await handler(request)
        except (InvalidUrlError, InvalidDomainError) as exc:
            return web.json_response({"error": str(exc)}, status=400)
        except AuthenticationRequired as exc:
            return web.json_response(
                {"error": str(exc)},
                status=401,
                headers={"WWW-Authenticate": 'Bearer realm="iurl"'},
            )
        except AllowlistEntryLocked as exc:
            return web.json_response({"error": str(exc)}, status=409)

    def _client_ip(self, request: web.Request) -> str:
        """
        Rate-limit key for a request.

        The peer address, unless the peer is a configured trusted proxy: then
        X-Forwarded-For is walked from the nearest hop and the first address
        that is not itself a trusted proxy is the client.
        """
        remote = request.remote or "unknown"
        if remote not in self.trusted_proxies:
            return remote
        hops = [hop.strip() for hop in request.headers.get("X-Forwarded-For", "").split(",") if hop.strip()]
        for hop in reversed(hops):
            if hop not in self.trusted_proxies:
                return hop
        return remote

    def _user_id(self, request: web.Request) -> Optional[str]:
        """Map a bearer token to a user id. Unknown or missing tokens mean guest."""
        auth = request.headers.get("Authorization", "")
        if not auth.startswith("Bearer "):
            return None
        token = auth.split(" ", 1)[1].strip()
        return self.tokens.get(token)

    def _require_user(self, request: web.Request, message: str) -> str:
        user_id = self._user_id(request)
        if not user_id:
            raise AuthenticationRequired(message)
        return user_id

    @staticmethod
    async def _json_body(request: web.Request) -> dict:
        try:
            data = await request.json()
        except ValueError:
            raise web.HTTPBadRequest(
                text='{"error": "Invalid JSON payload"}',
                content_type="application/json",
            )
        if not isinstance(data, dict):
            raise web.HTTPBadRequest(
                text='{"error": "JSON object expected"}',
                content_type="application/json",
            )
        return data

    def status(self) -> dict:
        return {
            "status": "ok",
            "uptime_seconds": round(time.time() - self._started_at, 1),
            "ai_enabled": int(self.service.scanner.ai_adapter.enabled),
            "rate_limited_clients": len(self.rate_limiters),
            **self._counters,
        }

    # Handlers

    async def _handle_health(self, request: web.Request) -> web.Response:
        return web.json_response(self.status())

    async def _handle_metrics(self, request: web.Request) -> web.Response:
        """Expose counters as Prometheus-style text."""
        lines = []
        for key, value in self.status().items():
            if isinstance(value, (int, float)):
                lines.append(f"iurl_{key} {value}")
        return web.Response(text="\n".join(lines) + "\n")

    async def _handle_scan(self, request: web.Request) -> web.Response:
        limiter = self.rate_limiters.get(self._client_ip(request))
        if not limiter.try_acquire():
            self._counters["scans_rate_limited"] += 1
            retry_after = max(1, math.ceil(limiter.wait_time()))
            return web.json_response(
                {"error": "Too many scans. Please try again later."},
                status=429,
                headers={"Retry-After": str(retry_after)},
            )

        data = await self._json_body(request)
        url = data.get("url")
        if not isinstance(url, str) or not url.strip():
            self._counters["scans_invalid"] += 1
            return web.json_response({"error": "url is required"}, status=400)
        url = url.strip()
        if len(url) > MAX_URL_LENGTH:
            self._counters["scans_invalid"] += 1
            return web.json_response({"error": "URL too long"}, status=400)

        use_ai = data.get("ai", True) is not False
        try:
            result = await self.service.scan(url, user_id=self._user_id(request), use_ai=use_ai)
        except InvalidUrlError:
            self._counters["scans_invalid"] += 1
            raise

        self._counters["scans_total"] += 1
        self._counters[f"scans_{result.verdict.value}"] += 1
        return web.json_response(result.to_dict())

    async def _handle_history(self, request: web.Request) -> web.Response:
        user_id = self._require_user(request, "Sign in to view scan history")
        limit = _coerce_int(request.query.get("limit"), self.history_limit, maximum=self.history_limit)
        safe_only = _coerce_bool(request.query.get("safe_only"))
        entries = await self.database.list_history(user_id, limit=limit, safe_only=safe_only)
        return web.json_response({"history": [entry.to_dict() for entry in entries]})

    async def _handle_clear_history(self, request: web.Request) -> web.Response:
        user_id = self._require_user(request, "Sign in to clear scan history")
        removed = await self.database.clear_history(user_id)
        return web.json_response({"status": "cleared", "removed": removed})

    async def _handle_stats_today(self, request: web.Request) -> web.Response:
        day = datetime.now(timezone.utc).date().isoformat()
        stats = await self.database.get_daily_stats(self._user_id(request), day)
        return web.json_response(stats.to_dict())

    async def _handle_allowlist(self, request: web.Request) -> web.Response:
        entries = await self.allowlist.get_allowlist(self._user_id(request))
        return web.json_response({"allowlist": [entry.to_dict() for entry in entries]})

    async def _handle_allowlist_add(self, request: web.Request) -> web.Response:
        user_id = self._require_user(request, "Sign in to manage trusted domains")
        data = await self._json_body(request)
        domain = data.get("domain")
        if not isinstance(domain, str):
            raise InvalidDomainError("domain is required")
        entry = await self.allowlist.add(user_id, domain)
        return web.json_response(entry.to_dict(), status=201)

    async def _handle_allowlist_remove(self, request: web.Request) -> web.Response:
        removed = await self.allowlist.remove(self._user_id(request), request.match_info["domain"])
        if not removed:
            return web.json_response({"error": "Domain is not in your allowlist"}, status=404)
        return web.json_response({"status": "removed"})
