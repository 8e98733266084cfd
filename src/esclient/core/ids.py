"""Correlation ID and timestamp factories for the client.

ID Categories
-------------
1. Correlation IDs: ``r{counter}-{unix_ms}`` strings, one counter per
   router, linking an outbound request to its inbound responses.
2. Content-derived IDs: hex SHA-256 of an event's canonical form
   (see :mod:`esclient.crypto.auth`).
3. Session IDs: UUID v4 strings used to tag log lines from one session.

Timestamp Rule
--------------
Event timestamps are integer Unix seconds, never floats or datetimes.
"""

from __future__ import annotations

import itertools
import time
import uuid


def new_session_id() -> str:
    """Generate a new UUID v4 string for a session's log context."""
    return str(uuid.uuid4())


def unix_now() -> int:
    """Return the current Unix time in whole seconds."""
    return int(time.time())


class CorrelationIds:
    """Per-session correlation ID generator.

    The counter alone guarantees uniqueness within one generator; the
    millisecond suffix keeps ids from different sessions distinguishable in
    server logs.
    """

    def __init__(self, prefix: str = "r") -> None:
        self._prefix = prefix
        self._counter = itertools.count()

    def next(self) -> str:
        return f"{self._prefix}{next(self._counter)}-{int(time.time() * 1000)}"
