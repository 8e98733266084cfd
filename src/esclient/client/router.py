"""Correlation of outbound requests with inbound frames.

The router is transport-agnostic: it is given a ``send(text) -> bool``
callable and never touches the connection itself.  All mutation happens on
the caller's event loop, which serializes inbound dispatch with reconnect
handling.

Record lifetimes:
- publish records are one-shot and removed on the first matching frame;
- subscribe records persist until ``unsubscribe`` or ``clear`` and are
  re-sent by ``replay`` after a reconnect;
- unsubscribe keeps no record.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any

from esclient.core.enums import FrameKind
from esclient.core.errors import ConnectionClosedError
from esclient.core.events import Event, Filter
from esclient.core.ids import CorrelationIds

from .frames import Frame, encode_frame

logger = logging.getLogger(__name__)

FrameCallback = Callable[[Frame], Any]
CloseCallback = Callable[[ConnectionClosedError], Any]
SendFn = Callable[[str], bool]


@dataclass
class RequestRecord:
    """Pending request owned by the router."""

    req_id: str
    kind: FrameKind
    callback: FrameCallback
    payload: Any = None  # retained for SUB so it can be replayed
    on_close: CloseCallback | None = None
    created: float = field(default_factory=time.monotonic)


class RequestRouter:
    """Allocates correlation ids and routes inbound frames to callbacks."""

    def __init__(self, send: SendFn, ids: CorrelationIds | None = None) -> None:
        self._send = send
        self._ids = ids or CorrelationIds()
        self._pending: dict[str, RequestRecord] = {}
        self._subscriptions: dict[str, RequestRecord] = {}
        self._tasks: set[asyncio.Task[Any]] = set()

        # Observability
        self._unhandled: int = 0
        self._callback_errors: int = 0

    def next_id(self) -> str:
        return self._ids.next()

    def _emit(self, kind: FrameKind, req_id: str, payload: Any) -> bool:
        return self._send(encode_frame(kind, req_id, payload))

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    def publish(
        self,
        event: Event | Filter,
        callback: FrameCallback | None = None,
        on_close: CloseCallback | None = None,
    ) -> str | None:
        """Send ``["PUB", id, event]``.

        Returns the correlation id, or ``None`` if the frame was not sent.
        The callback, if any, fires once with the first matching frame.
        """
        req_id = self.next_id()
        if callback is not None:
            self._pending[req_id] = RequestRecord(
                req_id, FrameKind.PUB, callback, on_close=on_close,
            )

        if not self._emit(FrameKind.PUB, req_id, event):
            self._pending.pop(req_id, None)
            return None
        return req_id

    def subscribe(
        self,
        filters: Filter | Sequence[Filter],
        callback: FrameCallback,
    ) -> str | None | list[str | None]:
        """Send one ``["SUB", id, filter]`` frame per filter.

        A single filter returns its id; a list returns ids aligned with the
        input, ``None`` marking filters that were not sent.
        """
        if isinstance(filters, (list, tuple)):
            return [self._subscribe_one(f, callback) for f in filters]
        return self._subscribe_one(filters, callback)

    def _subscribe_one(self, filter_: Filter, callback: FrameCallback) -> str | None:
        req_id = self.next_id()
        self._subscriptions[req_id] = RequestRecord(
            req_id, FrameKind.SUB, callback, payload=filter_,
        )

        if not self._emit(FrameKind.SUB, req_id, filter_):
            self._subscriptions.pop(req_id, None)
            return None
        return req_id

    def unsubscribe(self, req_id: str) -> bool:
        """Drop the subscription and send ``["UNSUB", id, {}]``.

        Local state is removed whether or not the frame could be sent.
        Returns whether a subscription existed.
        """
        record = self._subscriptions.pop(req_id, None)
        if record is None:
            return False
        self._emit(FrameKind.UNSUB, req_id, {})
        return True

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------

    def dispatch(self, frame: Frame) -> bool:
        """Route *frame* to its callback. Returns False if nobody claimed it."""
        record = self._pending.pop(frame.req_id, None)
        if record is None:
            record = self._subscriptions.get(frame.req_id)

        if record is None:
            # Late or unsolicited frames are expected, e.g. after UNSUB.
            self._unhandled += 1
            logger.debug("Unhandled frame id=%s kind=%s", frame.req_id, frame.kind)
            return False

        self._invoke(record.callback, frame, record.req_id)
        return True

    def _invoke(self, fn: Callable[[Any], Any], arg: Any, req_id: str) -> None:
        try:
            result = fn(arg)
        except Exception:
            self._callback_errors += 1
            logger.exception("Callback failed for request %s", req_id)
            return

        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._tasks.add(task)
            task.add_done_callback(self._on_task_done)

    def _on_task_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self._callback_errors += 1
            logger.error("Async callback failed", exc_info=exc)

    # ------------------------------------------------------------------
    # Connection lifecycle hooks
    # ------------------------------------------------------------------

    def replay(self) -> int:
        """Re-send every active subscription under its original id."""
        sent = 0
        for record in list(self._subscriptions.values()):
            if self._emit(FrameKind.SUB, record.req_id, record.payload):
                sent += 1
        return sent

    def fail_pending(self, error: ConnectionClosedError) -> int:
        """Drop all publish records, notifying each ``on_close`` with *error*."""
        records = list(self._pending.values())
        self._pending.clear()
        for record in records:
            if record.on_close is not None:
                self._invoke(record.on_close, error, record.req_id)
        return len(records)

    def clear(self) -> None:
        """Drop every record without notifications."""
        self._pending.clear()
        self._subscriptions.clear()

    # ------------------------------------------------------------------
    # Observability
    # ------------------------------------------------------------------

    @property
    def pending_publishes(self) -> list[str]:
        return list(self._pending)

    @property
    def active_subscriptions(self) -> list[str]:
        return list(self._subscriptions)

    def subscription_filter(self, req_id: str) -> Any:
        record = self._subscriptions.get(req_id)
        return record.payload if record is not None else None

    def get_stats(self) -> dict[str, int]:
        return {
            "pending_publishes": len(self._pending),
            "active_subscriptions": len(self._subscriptions),
            "unhandled_frames": self._unhandled,
            "callback_errors": self._callback_errors,
        }
