"""Enumerations used across the client."""

from enum import Enum


class Ops(str, Enum):
    """Operation tag carried in an event's ``ops`` field."""

    CREATE = "C"
    READ = "R"
    UPDATE = "U"
    DELETE = "D"


class FrameKind(str, Enum):
    """First slot of an outbound wire frame."""

    PUB = "PUB"
    SUB = "SUB"
    UNSUB = "UNSUB"


class ConnectionState(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSING = "closing"
    CLOSED = "closed"


# Status token the service sends in the payload slot once a subscription
# has finished replaying stored events.
EOSE = "EOSE"

# WebSocket close codes (RFC 6455).
NORMAL_CLOSURE = 1000
ABNORMAL_CLOSURE = 1006
