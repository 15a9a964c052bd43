"""Adaptive Rate Limiter: per-provider RPM tracking with sliding window.

Tracks requests-per-minute (RPM) and in-flight requests for each
provider using a sliding window. When a limit is hit, returns the wait
time until the next available slot.

One limiter is shared by every job in a process, so concurrent jobs
draw from the same per-provider budget. One asyncio.Lock per provider.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass, field

from app.gateway.types import DEFAULT_PROVIDER_CONFIGS, ProviderConfig, ProviderKind

logger = logging.getLogger(__name__)

WINDOW_SECONDS = 60.0


@dataclass
class _ProviderBucket:
    """Sliding window bucket for a single provider."""

    config: ProviderConfig
    timestamps: deque[float] = field(default_factory=deque)  # time.monotonic() per request
    active_count: int = 0  # Currently in-flight requests
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    def _prune(self, now: float) -> None:
        cutoff = now - WINDOW_SECONDS
        while self.timestamps and self.timestamps[0] < cutoff:
            self.timestamps.popleft()

    @property
    def current_rpm(self) -> int:
        return len(self.timestamps)

    def wait_time(self, now: float) -> float:
        """Seconds to wait before the next request is allowed (0 = go now)."""
        self._prune(now)

        if self.active_count >= self.config.max_concurrent:
            return 0.5  # Brief wait for a slot to open

        if self.current_rpm >= self.config.rpm_limit:
            # Wait until the oldest request leaves the window
            return max((self.timestamps[0] + WINDOW_SECONDS) - now, 0.1)

        return 0.0

    def record_request(self, now: float) -> None:
        self.timestamps.append(now)
        self.active_count += 1

    def record_completion(self) -> None:
        self.active_count = max(0, self.active_count - 1)


class AdaptiveRateLimiter:
    """Per-provider rate limiter with sliding window.

    Usage:
        limiter = AdaptiveRateLimiter()

        if await limiter.acquire_blocking(ProviderKind.GEMINI, timeout=30):
            try:
                ...
            finally:
                limiter.release(ProviderKind.GEMINI)
    """

    def __init__(self, configs: dict[ProviderKind, ProviderConfig] | None = None):
        configs = configs or DEFAULT_PROVIDER_CONFIGS
        self._buckets: dict[ProviderKind, _ProviderBucket] = {
            provider: _ProviderBucket(config=config) for provider, config in configs.items()
        }

    def _get_bucket(self, provider: ProviderKind) -> _ProviderBucket:
        if provider not in self._buckets:
            config = DEFAULT_PROVIDER_CONFIGS.get(provider, ProviderConfig(provider=provider))
            self._buckets[provider] = _ProviderBucket(config=config)
        return self._buckets[provider]

    def in_flight(self, provider: ProviderKind) -> int:
        return self._get_bucket(provider).active_count

    async def acquire(self, provider: ProviderKind) -> float:
        """Try to take a slot. Returns 0 on success, else seconds to wait."""
        bucket = self._get_bucket(provider)
        async with bucket.lock:
            now = time.monotonic()
            wait = bucket.wait_time(now)
            if wait <= 0:
                bucket.record_request(now)
                return 0.0
            return wait

    async def acquire_blocking(self, provider: ProviderKind, timeout: float = 120.0) -> bool:
        """Block until a slot is available. False if ``timeout`` elapses first."""
        deadline = time.monotonic() + timeout

        while time.monotonic() < deadline:
            wait = await self.acquire(provider)
            if wait <= 0:
                return True
            sleep_time = min(wait, deadline - time.monotonic())
            if sleep_time <= 0:
                return False
            await asyncio.sleep(sleep_time)

        logger.warning(
            "%s rate limit wait of %.0fs exceeded (%d in flight)", provider.value, timeout, self.in_flight(provider)
        )
        return False

    def release(self, provider: ProviderKind) -> None:
        self._get_bucket(provider).record_completion()
