"""Deferred snapshot delivery.

Registrations and store changes only enqueue tasks. Tasks run when the queue
is drained, either by ``FakeFirestore.flush()`` or, in ``auto`` delivery mode,
by a drain scheduled on the running asyncio event loop. A callback therefore
never runs inside the call that registered it or changed the data.
"""

from __future__ import annotations

import asyncio
from collections import deque
from dataclasses import dataclass
from datetime import datetime
import itertools
import logging
from typing import Any, Callable, Protocol

LOGGER = logging.getLogger(__name__)

DELIVERY_AUTO = "auto"
DELIVERY_MANUAL = "manual"
DELIVERY_MODES = (DELIVERY_AUTO, DELIVERY_MANUAL)


class ListenTarget(Protocol):
    def _snapshot(self, previous: Any = None) -> Any:
        """Build a fresh snapshot of the target."""

    def _affected_by(self, changed_paths: frozenset) -> bool:
        """Return True when a change to ``changed_paths`` may alter the target."""


@dataclass
class _Listener:
    listener_id: int
    target: ListenTarget
    callback: Callable[[Any], Any]
    include_metadata_changes: bool
    last_snapshot: Any = None
    active: bool = True


class ListenerRegistration:
    """Returned by ``on_snapshot``; call it (or ``unsubscribe()``) to stop listening."""

    def __init__(self, dispatcher: ListenerDispatcher, listener_id: int) -> None:
        self._dispatcher = dispatcher
        self._listener_id = listener_id

    @property
    def active(self) -> bool:
        return self._dispatcher.is_active(self._listener_id)

    def unsubscribe(self) -> None:
        self._dispatcher.unregister(self._listener_id)

    def __call__(self) -> None:
        self.unsubscribe()


class ListenerDispatcher:
    def __init__(self, *, delivery: str = DELIVERY_AUTO) -> None:
        if delivery not in DELIVERY_MODES:
            raise ValueError(f"Unsupported listener delivery mode: {delivery}")
        self._delivery = delivery
        self._listeners: dict[int, _Listener] = {}
        self._tasks: deque[tuple[int, bool]] = deque()
        self._queued: set[int] = set()
        self._ids = itertools.count(1)
        self._drain_scheduled = False

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def is_active(self, listener_id: int) -> bool:
        listener = self._listeners.get(listener_id)
        return listener is not None and listener.active

    def register(
        self,
        target: ListenTarget,
        callback: Callable[[Any], Any],
        *,
        include_metadata_changes: bool = False,
    ) -> ListenerRegistration:
        if not callable(callback):
            raise TypeError("on_snapshot callback must be callable.")
        listener_id = next(self._ids)
        self._listeners[listener_id] = _Listener(
            listener_id=listener_id,
            target=target,
            callback=callback,
            include_metadata_changes=include_metadata_changes,
        )
        LOGGER.debug("Registered listener %s on %r", listener_id, target)
        self._schedule(listener_id, initial=True)
        return ListenerRegistration(self, listener_id)

    def unregister(self, listener_id: int) -> None:
        listener = self._listeners.pop(listener_id, None)
        if listener is None:
            return
        listener.active = False
        LOGGER.debug("Unregistered listener %s", listener_id)

    def notify(self, changed_paths: frozenset, commit_time: datetime) -> None:
        """Store observer: queue a refresh for every listener the change may affect."""

        for listener in list(self._listeners.values()):
            if listener.target._affected_by(changed_paths):
                self._schedule(listener.listener_id, initial=False)

    def drain(self) -> int:
        """Run queued deliveries, including ones queued while draining.

        Returns the number of callback invocations.
        """

        self._drain_scheduled = False
        delivered = 0
        while self._tasks:
            listener_id, initial = self._tasks.popleft()
            self._queued.discard(listener_id)
            listener = self._listeners.get(listener_id)
            if listener is None or not listener.active:
                continue
            if self._deliver(listener, initial=initial):
                delivered += 1
        return delivered

    def clear(self) -> None:
        for listener in self._listeners.values():
            listener.active = False
        self._listeners.clear()
        self._tasks.clear()
        self._queued.clear()

    def _deliver(self, listener: _Listener, *, initial: bool) -> bool:
        snapshot = listener.target._snapshot(listener.last_snapshot)
        metadata_only = not initial and snapshot.same_content(listener.last_snapshot)
        if metadata_only and not listener.include_metadata_changes:
            return False

        listener.last_snapshot = snapshot
        try:
            listener.callback(snapshot)
        except Exception:
            LOGGER.exception("Snapshot listener %s raised", listener.listener_id)
            raise
        return True

    def _schedule(self, listener_id: int, *, initial: bool) -> None:
        # One queued task per listener; it reads the latest state when it runs.
        if listener_id in self._queued:
            return
        self._queued.add(listener_id)
        self._tasks.append((listener_id, initial))
        if self._delivery != DELIVERY_AUTO or self._drain_scheduled:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        self._drain_scheduled = True
        loop.call_soon(self.drain)
