"""Rate limiting middleware for the server.

Every client, identified by its remote address, gets a sliding window of
recent request times. A client that sends more than the allowed number of
requests inside one window is banned for a fixed duration. Requests during a
ban are rejected before any other work is done and do not extend the ban;
the first request after the ban has passed starts a fresh window.
"""

import asyncio
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Dict, Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from flami.app.core.logging import get_log_context, get_logger
from flami.app.exceptions import ThrottledClientError
from flami.app.services.request_context import get_client_id
from flami.app.services.response_assembler import error_response

logger = get_logger(__name__)


@dataclass
class AdmitResult:
    """Result of a rate limit check."""
    allowed: bool
    retry_after: Optional[int] = None


@dataclass
class ClientWindow:
    """Per-client rate limit state."""
    timestamps: Deque[float] = field(default_factory=deque)
    ban_until: Optional[float] = None

    def is_banned(self, now: float) -> bool:
        return self.ban_until is not None and now < self.ban_until

    def prune(self, now: float, window_seconds: float) -> None:
        """Drop timestamps older than the window; the deque is time-ordered."""
        cutoff = now - window_seconds
        while self.timestamps and self.timestamps[0] < cutoff:
            self.timestamps.popleft()


class SlidingWindowRateLimiter:
    """In-memory per-client rate limiter with temporary bans.

    State lives in a dict keyed by client id. Entries are created on a
    client's first request and removed by ``sweep`` once they hold no
    timestamps inside the window and no active ban. ``start`` runs the sweep
    periodically in a background task.

    Usage:
        limiter = SlidingWindowRateLimiter(max_requests=100, ban_seconds=300)
        await limiter.start()

        result = await limiter.admit("10.0.0.7")
        if not result.allowed:
            # reply 429 with Retry-After: result.retry_after
            ...

        await limiter.stop()
    """

    def __init__(
        self,
        max_requests: int = 100,
        window_seconds: float = 1.0,
        ban_seconds: int = 300,
        sweep_interval: float = 60.0,
    ):
        """Initialize rate limiter.

        Args:
            max_requests: Requests allowed per window before a ban
            window_seconds: Length of the sliding window in seconds
            ban_seconds: How long a ban lasts
            sweep_interval: Seconds between background eviction sweeps
        """
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.ban_seconds = ban_seconds
        self.sweep_interval = sweep_interval

        self._clients: Dict[str, ClientWindow] = {}
        self._lock = asyncio.Lock()
        self._task: Optional[asyncio.Task] = None
        self._stop_event: Optional[asyncio.Event] = None

    @property
    def tracked_clients(self) -> int:
        """Number of clients currently holding state."""
        return len(self._clients)

    def get_window(self, client_id: str) -> Optional[ClientWindow]:
        return self._clients.get(client_id)

    async def admit(self, client_id: str, now: Optional[float] = None) -> AdmitResult:
        """Record a request from ``client_id`` and decide whether to serve it.

        Args:
            client_id: Client identity (remote address)
            now: Arrival instant in seconds; defaults to the monotonic clock

        Returns:
            AdmitResult with allowed status and, when throttled, the ban
            duration in seconds for the Retry-After header
        """
        if now is None:
            now = time.monotonic()

        async with self._lock:
            window = self._clients.get(client_id)
            if window is None:
                window = ClientWindow()
                self._clients[client_id] = window

            if window.is_banned(now):
                return AdmitResult(allowed=False, retry_after=self.ban_seconds)

            if window.ban_until is not None:
                # Ban has run out: start over with an empty window
                window.ban_until = None
                window.timestamps.clear()

            window.timestamps.append(now)
            window.prune(now, self.window_seconds)

            if len(window.timestamps) > self.max_requests:
                ban_until = now + self.ban_seconds
                if window.ban_until is None or window.ban_until < ban_until:
                    window.ban_until = ban_until
                return AdmitResult(allowed=False, retry_after=self.ban_seconds)

            return AdmitResult(allowed=True)

    async def sweep(self, now: Optional[float] = None) -> int:
        """Evict clients with no recent requests and no active ban.

        Returns:
            Number of evicted clients
        """
        if now is None:
            now = time.monotonic()

        async with self._lock:
            idle = []
            for client_id, window in self._clients.items():
                if window.is_banned(now):
                    continue
                window.prune(now, self.window_seconds)
                if not window.timestamps:
                    idle.append(client_id)
            for client_id in idle:
                del self._clients[client_id]

        if idle:
            logger.debug(f"Rate limiter evicted {len(idle)} idle clients")
        return len(idle)

    async def start(self) -> None:
        """Start the background sweep task."""
        if self._task is not None:
            logger.debug("Rate limiter sweep already running")
            return

        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._run_sweeps())
        logger.info(f"Started rate limiter sweep (interval: {self.sweep_interval}s)")

    async def stop(self) -> None:
        """Stop the background sweep task."""
        if self._task is None:
            return

        self._stop_event.set()

        try:
            await asyncio.wait_for(self._task, timeout=5.0)
        except asyncio.TimeoutError:
            logger.warning("Rate limiter sweep did not stop gracefully, cancelling")
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        finally:
            self._task = None
            logger.info("Stopped rate limiter sweep")

    async def _run_sweeps(self) -> None:
        """Background task that evicts idle clients periodically."""
        while not self._stop_event.is_set():
            try:
                await asyncio.wait_for(
                    self._stop_event.wait(),
                    timeout=self.sweep_interval
                )
            except asyncio.TimeoutError:
                # Normal case: interval elapsed
                await self.sweep()


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Middleware to enforce the per-client rate limit on every request.

    Runs before anything else touches the request; a throttled client gets
    an empty 429 response with a Retry-After header.
    """

    def __init__(self, app, limiter: SlidingWindowRateLimiter):
        super().__init__(app)
        self.limiter = limiter

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint
    ) -> Response:
        """Process request with rate limiting."""
        client_id = get_client_id(request)
        result = await self.limiter.admit(client_id)

        if not result.allowed:
            logger.warning(
                f"access denied to {client_id} for spamming",
                extra=get_log_context(
                    client_id=client_id,
                    path=request.url.path,
                    method=request.method,
                    status_code=429,
                )
            )
            return error_response(ThrottledClientError(client_id, result.retry_after))

        return await call_next(request)
