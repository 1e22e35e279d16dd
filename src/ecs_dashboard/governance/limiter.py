"""
Per-caller rate limiting with progressive blocking.

Each identifier gets a fixed window counter. Every window that ends
over quota counts as a violation; after enough violations the caller
is blocked outright for a longer period.
"""

import asyncio
import logging
import math
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable

logger = logging.getLogger(__name__)


@dataclass
class RateLimitEntry:
    """Window state for one identifier."""

    count: int
    """Requests seen in the current window."""

    reset_at: float
    """Epoch seconds at which the window ends."""

    blocked: bool = False
    """Whether the identifier is serving a block."""

    blocked_until: float | None = None
    """Epoch seconds at which the block ends."""


def _isoformat(ts: float | None) -> str | None:
    if ts is None:
        return None
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat()


@dataclass(frozen=True)
class RateLimitDecision:
    """Result of a rate limit check."""

    allowed: bool
    """Whether the request may proceed."""

    reset_at: float | None = None
    """End of the current window (epoch seconds)."""

    blocked_until: float | None = None
    """End of the block, when the caller is blocked."""

    @property
    def blocked(self) -> bool:
        return self.blocked_until is not None

    def retry_after(self, now: float | None = None) -> int:
        """Whole seconds the caller should wait before retrying."""
        now = time.time() if now is None else now
        target = self.blocked_until if self.blocked_until is not None else self.reset_at
        if target is None:
            return 0
        return max(1, math.ceil(target - now))

    def to_dict(self) -> dict[str, Any]:
        return {
            "allowed": self.allowed,
            "reset_at": _isoformat(self.reset_at),
            "blocked_until": _isoformat(self.blocked_until),
        }


class RateLimitExceeded(Exception):
    """Raised by request handlers when a limiter rejects the caller."""

    def __init__(self, decision: RateLimitDecision, limiter: str = "") -> None:
        self.decision = decision
        self.limiter = limiter
        if decision.blocked_until is not None:
            when = _isoformat(decision.blocked_until)
            message = f"Too many requests. Blocked until {when}"
        else:
            when = _isoformat(decision.reset_at)
            message = f"Rate limit exceeded. Try again after {when}"
        self.message = message
        super().__init__(message)


class RateLimiter:
    """
    Fixed window limiter with escalating punishment.

    State lives in process memory and is not shared across instances.
    All mutation happens under a single asyncio lock with no awaits
    inside the critical section, so concurrent checks for the same
    identifier cannot both see the last free slot.
    """

    def __init__(
        self,
        max_requests: int = 10,
        window_seconds: float = 60.0,
        block_seconds: float = 300.0,
        max_violations: int = 3,
        name: str = "default",
        clock: Callable[[], float] = time.time,
    ) -> None:
        """
        Initialize the limiter.

        Args:
            max_requests: Requests allowed per window
            window_seconds: Window length
            block_seconds: Block length once max_violations is reached
            max_violations: Over-quota windows tolerated before blocking
            name: Label used in logs and error payloads
            clock: Time source returning epoch seconds
        """
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.block_seconds = block_seconds
        self.max_violations = max_violations
        self.name = name
        self._clock = clock
        self._entries: dict[str, RateLimitEntry] = {}
        self._violations: dict[str, int] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._entries)

    async def check(self, identifier: str) -> RateLimitDecision:
        """
        Count a request for an identifier and decide whether it may proceed.

        Never raises.
        """
        async with self._lock:
            return self._check_locked(identifier, self._clock())

    def _check_locked(self, identifier: str, now: float) -> RateLimitDecision:
        entry = self._entries.get(identifier)

        if entry is not None and entry.blocked and entry.blocked_until is not None:
            if now < entry.blocked_until:
                return RateLimitDecision(allowed=False, blocked_until=entry.blocked_until)
            # Block served: start over with a clean record
            logger.info(f"[{self.name}] Block expired for {identifier}")
            self._forget(identifier)
            entry = None

        if entry is None or now >= entry.reset_at:
            reset_at = now + self.window_seconds
            self._entries[identifier] = RateLimitEntry(count=1, reset_at=reset_at)
            return RateLimitDecision(allowed=True, reset_at=reset_at)

        entry.count += 1
        if entry.count <= self.max_requests:
            return RateLimitDecision(allowed=True, reset_at=entry.reset_at)

        # One violation per window, counted on the request that crosses the quota
        if entry.count > self.max_requests + 1:
            return RateLimitDecision(allowed=False, reset_at=entry.reset_at)

        violations = self._violations.get(identifier, 0) + 1
        self._violations[identifier] = violations

        if violations >= self.max_violations:
            entry.blocked = True
            entry.blocked_until = now + self.block_seconds
            logger.warning(
                f"[{self.name}] Blocking {identifier} for {self.block_seconds}s "
                f"after {violations} violations"
            )
            return RateLimitDecision(allowed=False, blocked_until=entry.blocked_until)

        logger.warning(
            f"[{self.name}] Quota exceeded for {identifier} "
            f"(violation {violations}/{self.max_violations})"
        )
        return RateLimitDecision(allowed=False, reset_at=entry.reset_at)

    def _forget(self, identifier: str) -> None:
        self._entries.pop(identifier, None)
        self._violations.pop(identifier, None)

    def _is_expired(self, entry: RateLimitEntry, now: float) -> bool:
        if now < entry.reset_at:
            return False
        if not entry.blocked:
            return True
        return entry.blocked_until is not None and now >= entry.blocked_until

    async def reset(self, identifier: str) -> bool:
        """
        Clear all state for an identifier.

        Returns:
            True if there was anything to clear
        """
        async with self._lock:
            existed = identifier in self._entries or identifier in self._violations
            self._forget(identifier)
        if existed:
            logger.info(f"[{self.name}] Reset rate limit for {identifier}")
        return existed

    async def sweep(self) -> int:
        """
        Drop entries whose window and block have both expired.

        The lock is taken once per removal so request checks are never
        held up behind a full scan.

        Returns:
            Number of entries removed
        """
        removed = 0
        for identifier in list(self._entries):
            async with self._lock:
                entry = self._entries.get(identifier)
                if entry is not None and self._is_expired(entry, self._clock()):
                    self._forget(identifier)
                    removed += 1

        if removed:
            logger.debug(f"[{self.name}] Swept {removed} expired rate limit entries")
        return removed

    def get_stats(self, identifier: str) -> dict[str, Any] | None:
        """Snapshot of an identifier's state, or None if untracked."""
        entry = self._entries.get(identifier)
        if entry is None:
            return None
        return {
            "count": entry.count,
            "reset_at": entry.reset_at,
            "blocked": entry.blocked,
            "blocked_until": entry.blocked_until,
            "violations": self._violations.get(identifier, 0),
        }
