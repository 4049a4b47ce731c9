"""Concurrency and duplication guards for inventory documents."""

from __future__ import annotations

import asyncio
from collections import OrderedDict
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from time import monotonic

from ..logging.enhanced_logging_config import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class MutationDecision:
    """Result of registering a mutation token."""

    should_apply: bool
    duplicate: bool = False


@dataclass
class _DocumentGuardState:
    """Per-document lock and recently seen mutation tokens."""

    lock: asyncio.Lock | None = None
    holders: int = 0
    recent_tokens: OrderedDict[str, float] = field(default_factory=OrderedDict)

    def get_lock(self) -> asyncio.Lock:
        """Get or create the async lock (lazy initialization)."""
        if self.lock is None:
            self.lock = asyncio.Lock()
        return self.lock


class DocumentMutationGuard:
    """
    Provide per-document locking and idempotency guarantees.

    The guard enforces three invariants:
        1. Load-merge-write cycles for a given document execute serially, in
           the order they asked for the lock (asyncio.Lock is FIFO).
        2. Duplicate mutation tokens are suppressed in an idempotent fashion.
        3. Duplicate attempts are logged with the scope and token.

    Token checks are synchronous so that a mutation can be validated and
    committed without yielding to the event loop.
    """

    def __init__(self, *, token_ttl_seconds: float = 300.0, max_tokens: int = 128):
        self._token_ttl = token_ttl_seconds
        self._max_tokens = max_tokens
        self._states: dict[str, _DocumentGuardState] = {}

    @asynccontextmanager
    async def acquire_async(self, document_key: str) -> AsyncIterator[None]:
        """
        Hold the single-writer lock for a document.

        Args:
            document_key: Sanitized storage key of the document being written.
        """
        state = self._states.setdefault(document_key, _DocumentGuardState())
        state.holders += 1
        lock = state.get_lock()
        try:
            async with lock:
                yield
        finally:
            state.holders -= 1
            self._cleanup_state(document_key)

    def is_locked(self, document_key: str) -> bool:
        state = self._states.get(document_key)
        return bool(state and state.lock and state.lock.locked())

    def register_token(self, scope: str, token: str | None) -> MutationDecision:
        """
        Record a mutation token for a scope (typically a group id).

        Args:
            scope: Namespace the token belongs to.
            token: Optional idempotency token unique to the attempted mutation.

        Returns:
            MutationDecision describing whether the caller should perform the mutation.
        """
        if not token:
            return MutationDecision(should_apply=True)

        state = self._states.setdefault(scope, _DocumentGuardState())
        now = monotonic()
        self._prune_tokens(state, now)

        if token in state.recent_tokens:
            logger.warning(
                "Duplicate inventory mutation suppressed",
                scope=scope,
                mutation_token=token,
                duplicate_token=True,
                cached_tokens=len(state.recent_tokens),
            )
            return MutationDecision(should_apply=False, duplicate=True)

        state.recent_tokens[token] = now
        self._enforce_limit(state)
        return MutationDecision(should_apply=True)

    def forget_token(self, scope: str, token: str | None) -> None:
        """Drop a token whose mutation was rejected so the caller can retry it."""
        if not token:
            return
        state = self._states.get(scope)
        if state is not None:
            state.recent_tokens.pop(token, None)
            self._cleanup_state(scope)

    def _cleanup_state(self, key: str) -> None:
        state = self._states.get(key)
        if state and state.holders == 0 and not state.recent_tokens:
            self._states.pop(key, None)

    def _prune_tokens(self, state: _DocumentGuardState, now: float) -> None:
        if self._token_ttl <= 0:
            return

        expiry = now - self._token_ttl
        tokens_to_delete = [token for token, timestamp in state.recent_tokens.items() if timestamp < expiry]
        for token in tokens_to_delete:
            state.recent_tokens.pop(token, None)

    def _enforce_limit(self, state: _DocumentGuardState) -> None:
        while len(state.recent_tokens) > self._max_tokens:
            state.recent_tokens.popitem(last=False)


__all__ = ["DocumentMutationGuard", "MutationDecision"]
