# projecthub/services/change_feed.py
"""
Per-project publish/subscribe of change events.

Versioned events for one project are delivered in ``version`` order: anything not newer
than the last version delivered for that project is dropped, since the newer
state already supersedes it. The last version is remembered only while the
project has open subscriptions. There is no backlog; a subscriber sees only
events published after it subscribed and must fetch current state itself.
"""
from __future__ import annotations

import inspect
import logging
import uuid
from typing import Any, Awaitable, Callable, Dict, Optional, Union

from projecthub.models.project import ChangeEvent

logger = logging.getLogger(__name__)

Handler = Callable[[ChangeEvent], Union[None, Awaitable[None]]]


class Subscription:
    """Handle for one open subscription; release it with ``close()`` or a ``with`` block."""

    def __init__(self, channel: "ChangeNotificationChannel", project_id: str, handler: Handler):
        self.id = uuid.uuid4().hex
        self.project_id = project_id
        self.handler = handler
        self._channel = channel
        self.closed = False

    def close(self) -> None:
        self._channel.unsubscribe(self)

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    async def __aenter__(self) -> "Subscription":
        return self

    async def __aexit__(self, *exc: Any) -> None:
        self.close()

    def __repr__(self) -> str:
        state = "closed" if self.closed else "open"
        return f"<Subscription {self.id[:8]} project={self.project_id} {state}>"


class ChangeNotificationChannel:
    def __init__(self):
        self._subs: Dict[str, Dict[str, Subscription]] = {}
        self._last_version: Dict[str, int] = {}

    def subscribe(self, project_id: str, handler: Handler) -> Subscription:
        sub = Subscription(self, project_id, handler)
        self._subs.setdefault(project_id, {})[sub.id] = sub
        logger.debug("subscribed %r", sub)
        return sub

    def unsubscribe(self, sub: Subscription) -> None:
        """Release ``sub``; releasing twice is harmless."""
        sub.closed = True
        project_subs = self._subs.get(sub.project_id)
        if not project_subs:
            return
        project_subs.pop(sub.id, None)
        if not project_subs:
            del self._subs[sub.project_id]
            self._last_version.pop(sub.project_id, None)

    def subscriber_count(self, project_id: Optional[str] = None) -> int:
        if project_id is not None:
            return len(self._subs.get(project_id, {}))
        return sum(len(s) for s in self._subs.values())

    async def publish(self, event: ChangeEvent) -> int:
        """Deliver ``event`` to current subscribers of its project; returns how many got it."""
        if event.project_id not in self._subs:
            # versions are only tracked while a project has subscribers
            return 0
        if event.version is not None:
            last = self._last_version.get(event.project_id)
            if last is not None and event.version <= last:
                logger.debug("dropping stale event project=%s version=%s (last=%s)",
                             event.project_id, event.version, last)
                return 0
            self._last_version[event.project_id] = event.version

        delivered = 0
        # snapshot: handlers may unsubscribe while we iterate
        for sub in list(self._subs.get(event.project_id, {}).values()):
            if sub.closed:
                continue
            try:
                result = sub.handler(event)
                if inspect.isawaitable(result):
                    await result
                delivered += 1
            except Exception:
                logger.exception("change handler failed for %r", sub)

        if event.kind == "project_deleted":
            self.close_project(event.project_id)
        return delivered

    def close_project(self, project_id: str) -> None:
        for sub in list(self._subs.get(project_id, {}).values()):
            self.unsubscribe(sub)
        self._last_version.pop(project_id, None)
