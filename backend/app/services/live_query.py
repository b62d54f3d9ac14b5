"""
backend/app/services/live_query.py

Purpose:
    Live query bindings for dashboard tables and counters. A binding loads a
    filtered/ordered query, publishes the result, and (for live bindings)
    re-runs the query on every change-stream notification of the collection.
    Every bind returns a disposable handle; slots hold at most one active
    handle and release the previous one before a new one takes its place.

Dependencies:
    - motor change streams (collection.watch)
    - pymongo
    - app.services.table_render
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from pymongo import DESCENDING
from pymongo.errors import PyMongoError

import app.database as _db
from app.services.table_render import Column, RenderedTable, loading_table, render_table

logger = logging.getLogger("intrusion.live_query")

RenderCallback = Callable[[RenderedTable], Awaitable[None]]
CountCallback = Callable[[int], Awaitable[None]]
ErrorCallback = Callable[[Exception], Awaitable[None]]


class SubscriptionState(str, Enum):
    UNBOUND = "unbound"
    LOADING = "loading"
    BOUND = "bound"


@dataclass(frozen=True)
class TableQuery:
    collection: str
    sort_field: str
    filter: dict[str, Any] = field(default_factory=dict)
    sort_direction: int = DESCENDING
    limit: Optional[int] = None
    live: bool = True

    async def fetch(self) -> list[dict[str, Any]]:
        cursor = _db.db[self.collection].find(dict(self.filter)).sort(self.sort_field, self.sort_direction)
        if self.limit:
            cursor = cursor.limit(self.limit)
        return await cursor.to_list(length=self.limit)


class LiveSubscription:
    """Disposable handle for one bound query.

    unbound -> loading -> bound -> unbound (release or rebind)
    """

    def __init__(
        self,
        slot: str,
        *,
        collection: str,
        load: Callable[[], Awaitable[Any]],
        publish: Callable[[Any], Awaitable[None]],
        on_loading: Optional[Callable[[], Awaitable[None]]] = None,
        on_error: Optional[ErrorCallback] = None,
        live: bool = True,
    ) -> None:
        self.slot = slot
        self.collection = collection
        self.live = live
        self.state = SubscriptionState.UNBOUND
        self.refresh_count = 0
        self._load = load
        self._publish = publish
        self._on_loading = on_loading
        self._on_error = on_error
        self._task: asyncio.Task | None = None
        self._ready = asyncio.Event()

    @property
    def active(self) -> bool:
        return self.state != SubscriptionState.UNBOUND

    async def start(self) -> "LiveSubscription":
        """Render the loading state, then wait until the first snapshot is published."""
        self.state = SubscriptionState.LOADING
        if self._on_loading is not None:
            await self._on_loading()
        if not self.live:
            try:
                await self._refresh()
            except PyMongoError as exc:
                logger.warning("Query failed slot=%s collection=%s: %s", self.slot, self.collection, exc)
                await self._fail(exc)
            return self
        self._task = asyncio.create_task(self._watch_loop(), name=f"live_query_{self.slot}")
        await self._ready.wait()
        return self

    async def release(self) -> None:
        if self.state == SubscriptionState.UNBOUND and self._task is None:
            return
        self.state = SubscriptionState.UNBOUND
        self._ready.set()
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        logger.debug("Released subscription slot=%s", self.slot)

    async def _refresh(self) -> None:
        snapshot = await self._load()
        # A release that happened while the query was in flight wins
        if not self.active:
            return
        await self._publish(snapshot)
        self.refresh_count += 1
        self.state = SubscriptionState.BOUND

    async def _watch_loop(self) -> None:
        try:
            async with _db.db[self.collection].watch() as stream:
                # Opens the change stream before the first read so no write slips between them
                await stream.try_next()
                await self._refresh()
                self._ready.set()
                async for _change in stream:
                    if not self.active:
                        break
                    await self._refresh()
        except PyMongoError as exc:
            logger.warning("Live query failed slot=%s collection=%s: %s", self.slot, self.collection, exc)
            if not self._ready.is_set() and self.active:
                # Change streams unavailable: fall back to a single snapshot
                try:
                    await self._refresh()
                except PyMongoError as load_exc:
                    exc = load_exc
            await self._fail(exc)
        except Exception as exc:
            logger.exception("Live query refresh crashed slot=%s", self.slot)
            await self._fail(exc)
        finally:
            self._ready.set()

    async def _fail(self, exc: Exception) -> None:
        if self._on_error is None or not self.active:
            return
        try:
            await self._on_error(exc)
        except Exception:
            logger.exception("Live query error callback failed slot=%s", self.slot)


class SubscriptionSlots:
    """At most one active subscription per logical slot."""

    def __init__(self) -> None:
        self._slots: dict[str, LiveSubscription] = {}

    def get(self, slot: str) -> LiveSubscription | None:
        return self._slots.get(slot)

    def active_slots(self) -> list[str]:
        return sorted(slot for slot, sub in self._slots.items() if sub.active)

    async def put(self, sub: LiveSubscription) -> None:
        previous = self._slots.pop(sub.slot, None)
        if previous is not None:
            await previous.release()
        self._slots[sub.slot] = sub

    async def release(self, slot: str) -> None:
        sub = self._slots.pop(slot, None)
        if sub is not None:
            await sub.release()

    async def release_all(self) -> None:
        subs = list(self._slots.values())
        self._slots.clear()
        for sub in subs:
            await sub.release()

    def __len__(self) -> int:
        return len(self._slots)


async def bind_table(
    slots: SubscriptionSlots,
    table_id: str,
    query: TableQuery,
    columns: list[Column],
    on_render: RenderCallback,
    on_error: Optional[ErrorCallback] = None,
) -> LiveSubscription:
    """Bind a query to a table slot; returns once the first snapshot is rendered."""

    async def _publish(docs: list[dict[str, Any]]) -> None:
        await on_render(render_table(table_id, columns, docs))

    async def _loading() -> None:
        await on_render(loading_table(table_id, columns))

    sub = LiveSubscription(
        table_id,
        collection=query.collection,
        load=query.fetch,
        publish=_publish,
        on_loading=_loading,
        on_error=on_error,
        live=query.live,
    )
    await slots.put(sub)
    return await sub.start()


async def bind_counter(
    slots: SubscriptionSlots,
    counter_id: str,
    collection: str,
    query_filter: dict[str, Any],
    on_count: CountCallback,
    on_error: Optional[ErrorCallback] = None,
) -> LiveSubscription:
    """Bind a live document count (overview tiles) to a slot."""

    async def _load() -> int:
        return await _db.db[collection].count_documents(dict(query_filter))

    sub = LiveSubscription(
        f"counter:{counter_id}",
        collection=collection,
        load=_load,
        publish=on_count,
        on_error=on_error,
    )
    await slots.put(sub)
    return await sub.start()
