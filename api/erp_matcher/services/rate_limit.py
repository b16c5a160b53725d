import logging
import threading
import time
from collections import deque
from dataclasses import dataclass

from fastapi import Depends, HTTPException, Request, Response

from ..config import RL_MATCH_RESPOND_LIMIT, RL_MATCH_SWIPE_LIMIT, RL_WINDOW_SECONDS

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RatePolicy:
    name: str
    limit: int
    window_seconds: int


@dataclass
class RateDecision:
    allowed: bool
    retry_after_seconds: int
    remaining: int = 0


PRUNE_EVERY = 256

POLICIES = {
    "match_respond": RatePolicy("match_respond", RL_MATCH_RESPOND_LIMIT, RL_WINDOW_SECONDS),
    "match_swipe": RatePolicy("match_swipe", RL_MATCH_SWIPE_LIMIT, RL_WINDOW_SECONDS),
    "gamification_swipe": RatePolicy("gamification_swipe", RL_MATCH_SWIPE_LIMIT, RL_WINDOW_SECONDS),
}


class SlidingWindowLimiter:
    """Per-key request timestamps inside a trailing window; idle keys are dropped."""

    def __init__(self, clock=time.monotonic) -> None:
        self._hits: dict[str, deque[float]] = {}
        self._lock = threading.Lock()
        self._clock = clock
        self._max_window = 0
        self._since_prune = 0

    def hit(self, key: str, policy: RatePolicy) -> RateDecision:
        now = self._clock()
        cutoff = now - policy.window_seconds
        with self._lock:
            hits = self._hits.setdefault(key, deque())
            while hits and hits[0] <= cutoff:
                hits.popleft()
            if len(hits) >= policy.limit:
                wait = max(1, int(hits[0] + policy.window_seconds - now))
                return RateDecision(allowed=False, retry_after_seconds=wait)
            hits.append(now)
            self._max_window = max(self._max_window, policy.window_seconds)
            self._since_prune += 1
            if self._since_prune >= PRUNE_EVERY:
                self._prune(now - self._max_window)
            return RateDecision(allowed=True, retry_after_seconds=0, remaining=policy.limit - len(hits))

    def _prune(self, cutoff: float) -> None:
        self._since_prune = 0
        stale = [k for k, hits in self._hits.items() if not hits or hits[-1] <= cutoff]
        for k in stale:
            del self._hits[k]

    def reset(self) -> None:
        with self._lock:
            self._hits.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._hits)


limiter = SlidingWindowLimiter()


def actor_key(request: Request) -> str:
    """Bucket by declared actor when present, else by caller address."""
    actor = request.headers.get("x-actor-id", "").strip()
    if actor:
        role = request.headers.get("x-actor-role", "").strip().lower() or "any"
        return f"{role}:{actor}"
    forwarded = request.headers.get("x-forwarded-for", "").strip()
    if forwarded:
        return f"ip:{forwarded.split(',')[0].strip()}"
    if request.client and request.client.host:
        return f"ip:{request.client.host}"
    return "unknown"


def rate_limit_dependency(policy_name: str):
    policy = POLICIES[policy_name]

    def _dep(request: Request, response: Response) -> None:
        key = f"{policy.name}:{actor_key(request)}"
        decision = limiter.hit(key, policy)
        if not decision.allowed:
            logger.warning("[RATE_LIMIT] blocked key=%s retry_after=%s", key, decision.retry_after_seconds)
            raise HTTPException(
                status_code=429,
                detail=f"Too many requests. Retry in {decision.retry_after_seconds}s",
                headers={"Retry-After": str(decision.retry_after_seconds)},
            )
        response.headers["X-RateLimit-Limit"] = str(policy.limit)
        response.headers["X-RateLimit-Remaining"] = str(decision.remaining)

    return Depends(_dep)
