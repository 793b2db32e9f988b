"""Gateway over the shared hierarchical store that holds all game state.

Architecture note:
    Every client talks to the same key tree through this contract. Writes are
    atomic per path only; there are no cross-path transactions. Change
    notification is push based: a subscription receives the value at its path
    right away and again after any change at, above or below that path.
    Subscriptions conflate, so a slow consumer always sees the newest
    snapshot and may skip intermediate ones. This matches the last-write-wins
    model the clients are written against.

    ``InMemorySessionStore`` implements the contract inside one process and
    one event loop. A networked backend only has to provide the abstract
    primitives; ``increment``, ``create_if_absent`` and ``advance_if_matches``
    are built on ``transaction``.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
import copy
from dataclasses import dataclass
import inspect
import logging
import secrets
import time
from typing import Any, Awaitable, Callable

logger = logging.getLogger(__name__)

FORBIDDEN_SEGMENT_CHARS = frozenset(".$#[]/")

SnapshotHandler = Callable[[Any], "Awaitable[None] | None"]
TransactionUpdate = Callable[[Any], Any]


def split_path(path: str) -> list[str]:
    """Split a slash separated path into validated key segments."""
    stripped = path.strip("/")
    if not stripped:
        return []
    segments = stripped.split("/")
    for segment in segments:
        _check_key(segment, path)
    return segments


def join_path(*parts: str) -> str:
    return "/".join(part.strip("/") for part in parts if part.strip("/"))


def _check_key(key: str, path: str) -> None:
    if not key or any(char in FORBIDDEN_SEGMENT_CHARS for char in key):
        raise ValueError(f"Invalid store key {key!r} in path {path!r}")


@dataclass(slots=True, frozen=True)
class TransactionResult:
    """Outcome of a read-modify-write on one path."""

    committed: bool
    value: Any


class Subscription:
    """Cancellable stream of snapshots for one watched path.

    Iterate with ``async for`` or hand a callback to ``start``. Iteration ends
    once ``cancel`` is called.
    """

    def __init__(self, path: str, on_cancel: Callable[["Subscription"], None]) -> None:
        self.path = path
        self.segments = split_path(path)
        self._on_cancel = on_cancel
        self._latest: Any = None
        self._pending = False
        self._cancelled = False
        self._wakeup = asyncio.Event()
        self._task: asyncio.Task[None] | None = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def latest(self) -> Any:
        """Most recently delivered snapshot, consumed or not."""
        return self._latest

    def deliver(self, snapshot: Any) -> None:
        if self._cancelled:
            return
        self._latest = snapshot
        self._pending = True
        self._wakeup.set()

    async def next(self) -> Any:
        while True:
            if self._cancelled:
                raise StopAsyncIteration
            if self._pending:
                self._pending = False
                return self._latest
            self._wakeup.clear()
            await self._wakeup.wait()

    def __aiter__(self) -> "Subscription":
        return self

    async def __anext__(self) -> Any:
        return await self.next()

    def start(self, on_change: SnapshotHandler) -> asyncio.Task[None]:
        """Consume the stream in a background task, calling ``on_change`` per snapshot."""

        async def pump() -> None:
            async for snapshot in self:
                result = on_change(snapshot)
                if inspect.isawaitable(result):
                    await result

        self._task = asyncio.create_task(pump(), name=f"subscription:{self.path}")
        return self._task

    def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        self._wakeup.set()
        self._on_cancel(self)
        task = self._task
        if task is not None and not task.done():
            task.cancel()


class SessionStore(ABC):
    """Contract every store backend offers to the quiz components."""

    @abstractmethod
    async def read_once(self, path: str) -> Any:
        """Return a copy of the value at ``path`` or ``None`` when absent."""

    @abstractmethod
    async def write(self, path: str, value: Any) -> None:
        """Overwrite ``path``. Writing ``None`` or an empty mapping deletes it."""

    @abstractmethod
    async def update(self, path: str, values: dict[str, Any]) -> None:
        """Write several children of ``path`` in one atomic step."""

    @abstractmethod
    async def remove(self, path: str) -> None:
        """Delete the subtree at ``path``."""

    @abstractmethod
    async def transaction(self, path: str, update_fn: TransactionUpdate) -> TransactionResult:
        """Atomically replace the value at ``path`` with ``update_fn(current)``.

        ``update_fn`` returning ``None`` aborts without writing.
        """

    @abstractmethod
    def generate_key(self) -> str:
        """Fresh unique child key, ordered by creation time."""

    @abstractmethod
    def subscribe(self, path: str) -> Subscription:
        """Watch ``path``; the current value is delivered immediately."""

    async def exists(self, path: str) -> bool:
        return await self.read_once(path) is not None

    async def append(self, path: str, value: Any) -> str:
        key = self.generate_key()
        await self.write(join_path(path, key), value)
        return key

    async def increment(self, path: str, delta: int) -> int:
        result = await self.transaction(path, lambda current: int(current or 0) + delta)
        return int(result.value or 0)

    async def create_if_absent(self, path: str, value: Any) -> bool:
        result = await self.transaction(path, lambda current: value if current is None else None)
        return result.committed

    async def advance_if_matches(self, path: str, expected_index: int, started_at: int) -> bool:
        """Move a session to the next question only if it is still at ``expected_index``.

        Index and start time change in the same write.
        """

        def bump(current: Any) -> Any:
            if not isinstance(current, dict):
                return None
            if int(current.get("currentQuestionIndex") or 0) != expected_index:
                return None
            current["currentQuestionIndex"] = expected_index + 1
            current["currentQuestionStartTime"] = started_at
            return current

        result = await self.transaction(path, bump)
        return result.committed


class PushKeyGenerator:
    """Creates unique keys that sort in creation order."""

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._last_ms = -1
        self._sequence = 0

    def next_key(self) -> str:
        now_ms = int(self._clock() * 1000)
        if now_ms <= self._last_ms:
            now_ms = self._last_ms
            self._sequence += 1
        else:
            self._sequence = 0
        self._last_ms = now_ms
        return f"{now_ms:012x}{self._sequence:04x}{secrets.token_hex(4)}"


class InMemorySessionStore(SessionStore):
    """Single-process store backend with push subscriptions.

    All mutations run without suspending between read and write, which makes
    every operation atomic for coroutines sharing the event loop.
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._root: dict[str, Any] = {}
        self._subscriptions: list[Subscription] = []
        self._keys = PushKeyGenerator(clock)

    async def read_once(self, path: str) -> Any:
        return copy.deepcopy(self._get(split_path(path)))

    async def write(self, path: str, value: Any) -> None:
        segments = split_path(path)
        self._set(segments, _normalize(value, path))
        logger.debug("write %s", path)
        self._notify(segments)

    async def update(self, path: str, values: dict[str, Any]) -> None:
        segments = split_path(path)
        for child, value in values.items():
            self._set(segments + split_path(child), _normalize(value, path))
        logger.debug("update %s (%s)", path, ", ".join(values))
        self._notify(segments)

    async def remove(self, path: str) -> None:
        segments = split_path(path)
        self._set(segments, None)
        logger.debug("remove %s", path)
        self._notify(segments)

    async def transaction(self, path: str, update_fn: TransactionUpdate) -> TransactionResult:
        segments = split_path(path)
        proposed = update_fn(copy.deepcopy(self._get(segments)))
        if proposed is None:
            return TransactionResult(committed=False, value=copy.deepcopy(self._get(segments)))
        self._set(segments, _normalize(proposed, path))
        self._notify(segments)
        return TransactionResult(committed=True, value=copy.deepcopy(self._get(segments)))

    def generate_key(self) -> str:
        return self._keys.next_key()

    def subscribe(self, path: str) -> Subscription:
        subscription = Subscription(path, self._unsubscribe)
        self._subscriptions.append(subscription)
        subscription.deliver(copy.deepcopy(self._get(subscription.segments)))
        return subscription

    @property
    def subscription_count(self) -> int:
        return len(self._subscriptions)

    def _unsubscribe(self, subscription: Subscription) -> None:
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)

    def _get(self, segments: list[str]) -> Any:
        node: Any = self._root
        for segment in segments:
            if not isinstance(node, dict) or segment not in node:
                return None
            node = node[segment]
        return node

    def _set(self, segments: list[str], value: Any) -> None:
        if not segments:
            self._root = value if isinstance(value, dict) else {}
            return
        parent = self._root
        for segment in segments[:-1]:
            child = parent.get(segment)
            if not isinstance(child, dict):
                child = {}
                parent[segment] = child
            parent = child
        if value is None:
            parent.pop(segments[-1], None)
            self._drop_empty_parents(segments)
        else:
            parent[segments[-1]] = value

    def _drop_empty_parents(self, segments: list[str]) -> None:
        for depth in range(len(segments) - 1, 0, -1):
            node = self._get(segments[:depth])
            if not (isinstance(node, dict) and not node):
                break
            self._get(segments[: depth - 1]).pop(segments[depth - 1], None)

    def _notify(self, changed: list[str]) -> None:
        for subscription in list(self._subscriptions):
            watched = subscription.segments
            shorter = min(len(watched), len(changed))
            if watched[:shorter] == changed[:shorter]:
                subscription.deliver(copy.deepcopy(self._get(watched)))


def _normalize(value: Any, path: str) -> Any:
    """Deep copy a value, dropping ``None`` children and empty mappings."""
    if isinstance(value, dict):
        cleaned: dict[str, Any] = {}
        for key, child in value.items():
            key = str(key)
            _check_key(key, path)
            normalized = _normalize(child, path)
            if normalized is not None:
                cleaned[key] = normalized
        return cleaned or None
    if isinstance(value, (list, tuple)):
        return [_normalize(item, path) for item in value]
    return copy.deepcopy(value)
