"""WebSocket session with automatic reconnection and subscription replay.

Architecture
------------
* One supervisor task per session drives the connection state machine:
  connect, read until closed, decide whether to reconnect, wait, repeat.
* One writer task per live connection is the only code that writes to the
  socket; ``publish``/``subscribe`` enqueue frames for it and return.
* All router mutation happens on the event loop, so inbound dispatch and
  reconnect handling never interleave mid-update.

States: IDLE -> CONNECTING -> OPEN -> CLOSING -> CLOSED, plus
OPEN -> CONNECTING after an unexpected closure while auto-reconnect is on.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from typing import Any

import aiohttp

from esclient.core.config import ClientSettings
from esclient.core.enums import ABNORMAL_CLOSURE, NORMAL_CLOSURE, ConnectionState
from esclient.core.errors import (
    ConfigError,
    ConnectionClosedError,
    FrameError,
    NotConnectedError,
    ReconnectExhaustedError,
    SessionClosedError,
)
from esclient.core.events import Event, Filter
from esclient.core.ids import new_session_id
from esclient.observability.logger import set_session_id

from .frames import Frame, decode_frame
from .router import CloseCallback, FrameCallback, RequestRouter

logger = logging.getLogger(__name__)


class Subscription:
    """Async iterator over the frames of one subscription.

    Use as ``async with session.subscription(filter) as sub``; leaving the
    block sends UNSUB.  Iteration stops when the session is closed.
    """

    def __init__(self, session: TransportSession, filter_: Filter) -> None:
        self._session = session
        self._filter = filter_
        self._queue: asyncio.Queue[Frame | None] = asyncio.Queue()
        self.req_id: str | None = None

    async def __aenter__(self) -> Subscription:
        req_id = self._session.subscribe(self._filter, self._queue.put_nowait)
        if req_id is None:
            raise NotConnectedError("Cannot subscribe: session is not open")
        self.req_id = req_id
        self._session._streams.add(self)
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        self._session._streams.discard(self)
        if self.req_id is not None:
            self._session.unsubscribe(self.req_id)

    def __aiter__(self) -> Subscription:
        return self

    async def __anext__(self) -> Frame:
        frame = await self._queue.get()
        if frame is None:
            raise StopAsyncIteration
        return frame

    async def until_eose(self) -> list[Frame]:
        """Collect frames up to (not including) the end-of-stored-events marker."""
        frames: list[Frame] = []
        async for frame in self:
            if frame.is_eose:
                break
            frames.append(frame)
        return frames

    def _finish(self) -> None:
        self._queue.put_nowait(None)


class TransportSession:
    """Client session multiplexing publish/subscribe over one WebSocket.

    Parameters
    ----------
    url:
        Service URL; overrides ``settings.url``.
    settings:
        Client settings (reconnect policy, heartbeat, timeouts).
    http_session:
        Optional shared ``aiohttp.ClientSession``; one is created and owned
        by this session otherwise.
    **options:
        Individual setting overrides, e.g. ``auto_reconnect=False``.
    """

    def __init__(
        self,
        url: str | None = None,
        *,
        settings: ClientSettings | None = None,
        http_session: aiohttp.ClientSession | None = None,
        **options: Any,
    ) -> None:
        settings = settings or ClientSettings()
        if url is not None:
            options["url"] = url
        if options:
            try:
                settings = ClientSettings(**{**settings.model_dump(), **options})
            except ValueError as exc:
                raise ConfigError(str(exc)) from exc

        self._settings = settings
        self._http = http_session
        self._owns_http = http_session is None
        self._router = RequestRouter(self._enqueue)

        self.session_id = new_session_id()

        # Runtime state
        self._state = ConnectionState.IDLE
        self._auto_reconnect = settings.auto_reconnect
        self._attempts = 0
        self._ws: aiohttp.ClientWebSocketResponse | None = None
        self._outbox: asyncio.Queue[str] | None = None
        self._runner: asyncio.Task[None] | None = None
        self._opened: asyncio.Future[None] | None = None
        self._waiters: set[asyncio.Future[Frame]] = set()
        self._streams: set[Subscription] = set()

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def url(self) -> str:
        return self._settings.url

    @property
    def settings(self) -> ClientSettings:
        return self._settings

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_open(self) -> bool:
        return self._state is ConnectionState.OPEN

    @property
    def reconnect_attempts(self) -> int:
        return self._attempts

    @property
    def router(self) -> RequestRouter:
        return self._router

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> TransportSession:
        await self.connect()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def connect(self) -> None:
        """Open the connection, or wait for the one already in progress.

        Resolves once a connection is open.  Fails with
        :class:`ReconnectExhaustedError` when the reconnect budget runs out,
        or with the closure error when auto-reconnect is off.
        """
        if self._state in (ConnectionState.CLOSING, ConnectionState.CLOSED):
            raise SessionClosedError("Session is closed")

        if self._state is ConnectionState.IDLE:
            self._new_opened()
            self._state = ConnectionState.CONNECTING
            self._runner = asyncio.create_task(
                self._run(), name=f"esclient:session:{self.session_id}",
            )

        assert self._opened is not None
        await asyncio.shield(self._opened)

    async def close(self, code: int = NORMAL_CLOSURE, reason: str = "normal closure") -> None:
        """Close the session for good.

        Drops every pending record without notifying callbacks, cancels any
        reconnect wait and disables auto-reconnect for this instance.
        """
        if self._state is ConnectionState.CLOSED:
            # Reconnects exhausted; only the HTTP session may remain.
            await self._close_http()
            return

        logger.info("Closing session to %s", self.url)
        self._state = ConnectionState.CLOSING
        self._auto_reconnect = False
        self._router.clear()
        self._outbox = None

        ws = self._ws
        if ws is not None and not ws.closed:
            try:
                await ws.close(code=code, message=reason.encode("utf-8"))
            except (ConnectionError, aiohttp.ClientError) as exc:
                logger.debug("Error closing WebSocket: %s", exc)

        runner = self._runner
        if runner is not None and runner is not asyncio.current_task():
            runner.cancel()
            await asyncio.gather(runner, return_exceptions=True)
        self._runner = None
        self._ws = None

        error = SessionClosedError("Session closed")
        self._reject_opened(error)
        for waiter in list(self._waiters):
            if not waiter.done():
                waiter.set_exception(error)
        self._waiters.clear()
        self._end_streams()

        await self._close_http()

        self._state = ConnectionState.CLOSED
        logger.info("Session closed")

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    def publish(
        self,
        event: Event | Filter,
        callback: FrameCallback | None = None,
        on_close: CloseCallback | None = None,
    ) -> str | None:
        """Queue a PUB frame. Returns its id, or ``None`` if not connected."""
        return self._router.publish(event, callback, on_close)

    def subscribe(
        self,
        filters: Filter | Sequence[Filter],
        callback: FrameCallback,
    ) -> str | None | list[str | None]:
        """Queue SUB frame(s); the callback receives every matching frame."""
        return self._router.subscribe(filters, callback)

    def unsubscribe(self, req_id: str) -> bool:
        return self._router.unsubscribe(req_id)

    async def publish_wait(self, event: Event | Filter) -> Frame:
        """Publish *event* and wait for the service's response frame.

        Raises:
            NotConnectedError: the session is not open.
            ConnectionClosedError: the connection dropped before a response.
            SessionClosedError: the session was closed while waiting.
        """
        loop = asyncio.get_running_loop()
        waiter: asyncio.Future[Frame] = loop.create_future()

        def on_frame(frame: Frame) -> None:
            if not waiter.done():
                waiter.set_result(frame)

        def on_close(error: ConnectionClosedError) -> None:
            if not waiter.done():
                waiter.set_exception(error)

        req_id = self.publish(event, on_frame, on_close)
        if req_id is None:
            raise NotConnectedError("Cannot publish: session is not open")

        self._waiters.add(waiter)
        try:
            return await waiter
        finally:
            self._waiters.discard(waiter)

    def subscription(self, filter_: Filter) -> Subscription:
        return Subscription(self, filter_)

    # ------------------------------------------------------------------
    # Connection state machine
    # ------------------------------------------------------------------

    def _new_opened(self) -> None:
        opened: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        # Mark failures as retrieved when no caller is awaiting connect().
        opened.add_done_callback(lambda f: f.cancelled() or f.exception())
        self._opened = opened

    def _reject_opened(self, error: Exception) -> None:
        if self._opened is not None and not self._opened.done():
            self._opened.set_exception(error)

    def _may_reconnect(self) -> bool:
        return self._auto_reconnect and self._settings.reconnect_allowed(self._attempts)

    async def _run(self) -> None:
        set_session_id(self.session_id)

        while True:
            code, reason = await self._connect_once()
            if self._state in (ConnectionState.CLOSING, ConnectionState.CLOSED):
                return

            error = ConnectionClosedError(code, reason)
            failed = self._router.fail_pending(error)
            if failed:
                logger.warning("Connection lost with %d publish(es) unanswered", failed)

            if code == NORMAL_CLOSURE:
                logger.info("Server closed the connection normally")
                self._state = ConnectionState.IDLE
                self._reject_opened(error)
                return

            if not self._may_reconnect():
                self._give_up(error)
                return

            self._attempts += 1
            self._state = ConnectionState.CONNECTING
            if self._opened is None or self._opened.done():
                self._new_opened()

            limit = self._settings.max_reconnect_attempts
            logger.warning(
                "Connection closed (code=%s, reason=%s); reconnecting in %.1fs (attempt %d/%s)",
                code,
                reason,
                self._settings.reconnect_interval,
                self._attempts,
                "inf" if limit is None else limit,
            )
            await asyncio.sleep(self._settings.reconnect_interval)

    def _give_up(self, error: ConnectionClosedError) -> None:
        if self._auto_reconnect:
            logger.error("Reconnect attempts exhausted after %d tries", self._attempts)
            self._router.clear()
            self._state = ConnectionState.CLOSED
            self._reject_opened(ReconnectExhaustedError(self._attempts))
            self._end_streams()
        else:
            self._state = ConnectionState.IDLE
            self._reject_opened(error)

    def _end_streams(self) -> None:
        for stream in list(self._streams):
            stream._finish()
        self._streams.clear()

    def _ensure_http(self) -> aiohttp.ClientSession:
        if self._http is None:
            self._http = aiohttp.ClientSession()
        return self._http

    async def _close_http(self) -> None:
        if self._owns_http and self._http is not None:
            await self._http.close()
            self._http = None

    async def _connect_once(self) -> tuple[int, str]:
        """Run one connection to completion; return its close code and reason."""
        http = self._ensure_http()
        try:
            ws = await asyncio.wait_for(
                http.ws_connect(self.url, heartbeat=self._settings.heartbeat),
                timeout=self._settings.connect_timeout,
            )
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as exc:
            logger.warning("Connection to %s failed: %s", self.url, exc)
            return ABNORMAL_CLOSURE, str(exc) or type(exc).__name__

        outbox: asyncio.Queue[str] = asyncio.Queue()
        self._ws = ws
        self._outbox = outbox
        self._state = ConnectionState.OPEN
        self._attempts = 0
        logger.info("Connected to %s", self.url)

        # Replayed SUB frames go out ahead of anything queued by connect() callers.
        replayed = self._router.replay()
        if replayed:
            logger.info("Replayed %d subscription(s)", replayed)
        if self._opened is not None and not self._opened.done():
            self._opened.set_result(None)

        writer = asyncio.create_task(
            self._write_loop(ws, outbox), name=f"esclient:writer:{self.session_id}",
        )
        try:
            return await self._read_loop(ws)
        except Exception:
            # A failure while handling one frame must not stop the supervisor.
            logger.exception("Read loop failed on %s", self.url)
            return ABNORMAL_CLOSURE, "read loop failed"
        finally:
            if self._outbox is outbox:
                self._outbox = None
            writer.cancel()
            await asyncio.gather(writer, return_exceptions=True)
            if self._ws is ws:
                self._ws = None
            if not ws.closed:
                await ws.close()

    async def _read_loop(self, ws: aiohttp.ClientWebSocketResponse) -> tuple[int, str]:
        while True:
            msg = await ws.receive()
            if msg.type in (aiohttp.WSMsgType.TEXT, aiohttp.WSMsgType.BINARY):
                self._on_message(msg.data)
            elif msg.type is aiohttp.WSMsgType.CLOSE:
                return int(msg.data), msg.extra or ""
            elif msg.type is aiohttp.WSMsgType.ERROR:
                logger.warning("WebSocket error: %s", msg.data)
                return ABNORMAL_CLOSURE, str(msg.data)
            else:
                # CLOSING/CLOSED without a close frame from the server
                return ABNORMAL_CLOSURE, "connection lost"

    async def _write_loop(self, ws: aiohttp.ClientWebSocketResponse, outbox: asyncio.Queue[str]) -> None:
        while True:
            text = await outbox.get()
            try:
                await ws.send_str(text)
            except (ConnectionError, aiohttp.ClientError) as exc:
                logger.warning("Failed to send frame: %s", exc)
                # Later sends fail locally until the reader sees the closure.
                if self._outbox is outbox:
                    self._outbox = None
                await ws.close()
                return

    def _on_message(self, data: str | bytes) -> None:
        try:
            frame = decode_frame(data)
        except FrameError as exc:
            logger.warning("Dropping malformed frame: %s", exc)
            return
        self._router.dispatch(frame)

    def _enqueue(self, text: str) -> bool:
        if self._state is not ConnectionState.OPEN or self._outbox is None:
            logger.warning("Session not open; frame not sent")
            return False
        self._outbox.put_nowait(text)
        return True
