"""
Access token cache with single-flight refresh.

Each (platform, tenant) key owns a slot holding a state tag, the current token
and the pending fetch. The state machine per key is::

    ABSENT -> FETCHING -> VALID -> REFRESHING -> VALID
                 |                     |
                 +------ failure ------+--> ABSENT

When several tasks need a token for a key while no valid token is cached, only
the first one starts a fetch; the others await the same task. The fetch runs
as its own task and is awaited through asyncio.shield, so a caller that is
cancelled never cancels a fetch other callers are waiting for.

Reads of a valid token do not take any lock and keys never block each other.
A cache belongs to the event loop it is used on.
"""
import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, Set

from .errors import TokenFetchFailed
from .token_fetcher import AccessToken, TokenKey

logger = logging.getLogger(__name__)

DEFAULT_SAFETY_MARGIN = 30.0

FetchFunction = Callable[[], Awaitable[AccessToken]]


class TokenState(str, Enum):
    ABSENT = "absent"
    FETCHING = "fetching"
    VALID = "valid"
    REFRESHING = "refreshing"


class TokenCacheEventType(str, Enum):
    HIT = "token:hit"
    FETCH_LEAD = "token:fetch_lead"
    FETCH_JOIN = "token:fetch_join"
    FETCH_COMPLETE = "token:fetch_complete"
    FETCH_ERROR = "token:fetch_error"
    INVALIDATE = "token:invalidate"


@dataclass
class TokenCacheEvent:
    type: TokenCacheEventType
    key: TokenKey
    timestamp: float
    metadata: Dict[str, Any] = field(default_factory=dict)


TokenCacheEventListener = Callable[[TokenCacheEvent], None]


@dataclass
class _TokenSlot:
    state: TokenState = TokenState.ABSENT
    token: Optional[AccessToken] = None
    pending: Optional["asyncio.Task[AccessToken]"] = None
    subscribers: int = 0
    fetches: int = 0


def _retrieve_exception(task: "asyncio.Task[AccessToken]") -> None:
    # Marks the exception as retrieved when every waiter was cancelled
    if not task.cancelled():
        task.exception()


class TokenCache:
    """
    Token cache keyed by (platform, tenant).

    Example:
        cache = TokenCache()

        # 50 concurrent calls result in a single token request
        tokens = await asyncio.gather(*[
            cache.get_token(key, lambda: fetcher.fetch(platform, credentials))
            for _ in range(50)
        ])

    Args:
        safety_margin: Tokens expiring within this many seconds are refreshed,
            at most half of each token's lifetime
        clock: Monotonic clock, must be the clock the tokens' expires_at uses
    """

    def __init__(
        self,
        safety_margin: float = DEFAULT_SAFETY_MARGIN,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if safety_margin < 0:
            raise ValueError("safety_margin must not be negative")
        self._safety_margin = safety_margin
        self._clock = clock
        self._slots: Dict[TokenKey, _TokenSlot] = {}
        self._listeners: Set[TokenCacheEventListener] = set()

    @property
    def safety_margin(self) -> float:
        return self._safety_margin

    def _margin_for(self, token: AccessToken) -> float:
        """Safety margin for one token, at most half its lifetime."""
        return min(self._safety_margin, token.expires_in / 2)

    def _slot(self, key: TokenKey) -> _TokenSlot:
        slot = self._slots.get(key)
        if slot is None:
            slot = _TokenSlot()
            self._slots[key] = slot
        return slot

    async def get_token(self, key: TokenKey, fetch: FetchFunction) -> AccessToken:
        """
        Return a valid token for key, fetching one when needed.

        Args:
            key: (platform, tenant)
            fetch: Coroutine function performing the exchange; only called by
                the task that leads a fetch

        Raises:
            TokenFetchFailed: If the shared fetch fails
        """
        slot = self._slot(key)
        token = slot.token
        if token is not None and token.is_valid(self._clock(), self._margin_for(token)):
            self._emit(TokenCacheEventType.HIT, key)
            return token

        pending = slot.pending
        if pending is None:
            slot.state = TokenState.REFRESHING if token is not None else TokenState.FETCHING
            slot.subscribers = 1
            slot.fetches += 1
            logger.debug(f"TokenCache.get_token: {key} -> {slot.state.value}")
            pending = asyncio.ensure_future(self._run_fetch(key, slot, fetch))
            pending.add_done_callback(_retrieve_exception)
            slot.pending = pending
            self._emit(TokenCacheEventType.FETCH_LEAD, key)
        else:
            slot.subscribers += 1
            logger.debug(
                f"TokenCache.get_token: joining in-flight fetch for {key} "
                f"(subscribers={slot.subscribers})"
            )
            self._emit(TokenCacheEventType.FETCH_JOIN, key, {"subscribers": slot.subscribers})

        return await asyncio.shield(pending)

    async def _run_fetch(self, key: TokenKey, slot: _TokenSlot, fetch: FetchFunction) -> AccessToken:
        started_at = self._clock()
        try:
            token = await fetch()
        except BaseException as error:
            slot.token = None
            slot.state = TokenState.ABSENT
            slot.pending = None
            logger.warning(f"TokenCache: fetch for {key} failed ({type(error).__name__}), state -> absent")
            self._emit(TokenCacheEventType.FETCH_ERROR, key, {"error": type(error).__name__})
            if isinstance(error, (TokenFetchFailed, asyncio.CancelledError)) or not isinstance(error, Exception):
                raise
            raise TokenFetchFailed(
                f"unexpected failure while fetching token ({type(error).__name__})", cause=error
            ) from error

        slot.token = token
        slot.state = TokenState.VALID
        slot.pending = None
        logger.debug(f"TokenCache: fetch for {key} complete, state -> valid")
        self._emit(
            TokenCacheEventType.FETCH_COMPLETE,
            key,
            {"subscribers": slot.subscribers, "duration_seconds": self._clock() - started_at},
        )
        return token

    def invalidate(self, key: TokenKey, token: Optional[AccessToken] = None) -> bool:
        """
        Evict the cached token for key.

        Args:
            key: (platform, tenant)
            token: When given, evict only if this is still the cached token, so
                a stale rejection does not evict a newer token

        Returns:
            True if a token was evicted
        """
        slot = self._slots.get(key)
        if slot is None or slot.token is None:
            return False
        if token is not None and slot.token is not token:
            logger.debug(f"TokenCache.invalidate: {key} already holds a newer token")
            return False
        slot.token = None
        if slot.pending is None:
            slot.state = TokenState.ABSENT
        logger.info(f"TokenCache.invalidate: token for {key} evicted")
        self._emit(TokenCacheEventType.INVALIDATE, key)
        return True

    def state(self, key: TokenKey) -> TokenState:
        slot = self._slots.get(key)
        return slot.state if slot is not None else TokenState.ABSENT

    def peek(self, key: TokenKey) -> Optional[AccessToken]:
        """Cached token for key without fetching, None when absent or expired."""
        slot = self._slots.get(key)
        if slot is None or slot.token is None:
            return None
        if not slot.token.is_valid(self._clock()):
            return None
        return slot.token

    def is_in_flight(self, key: TokenKey) -> bool:
        slot = self._slots.get(key)
        return slot is not None and slot.pending is not None

    def get_stats(self) -> Dict[str, Any]:
        """Statistics about cached keys."""
        return {
            "keys": len(self._slots),
            "valid": sum(1 for slot in self._slots.values() if slot.state == TokenState.VALID),
            "in_flight": sum(1 for slot in self._slots.values() if slot.pending is not None),
            "fetches": sum(slot.fetches for slot in self._slots.values()),
        }

    def on(self, listener: TokenCacheEventListener) -> Callable[[], None]:
        """Add event listener."""
        self._listeners.add(listener)
        return lambda: self._listeners.discard(listener)

    def off(self, listener: TokenCacheEventListener) -> None:
        """Remove event listener."""
        self._listeners.discard(listener)

    def _emit(self, event_type: TokenCacheEventType, key: TokenKey, metadata: Optional[Dict[str, Any]] = None) -> None:
        event = TokenCacheEvent(type=event_type, key=key, timestamp=time.time(), metadata=metadata or {})
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception(f"TokenCache: listener failed for {event_type.value}")

    def clear(self) -> None:
        """Drop all cached tokens. Fetches already in flight still resolve for their waiters."""
        self._slots.clear()
