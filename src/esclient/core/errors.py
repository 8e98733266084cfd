"""Custom exception hierarchy for the event service client."""


class ClientError(Exception):
    """Base exception for all client errors."""


# --- Configuration ---
class ConfigError(ClientError):
    """Invalid or missing configuration."""


# --- Keys ---
class KeyFormatError(ClientError, ValueError):
    """Key material could not be converted between representations."""


class EncodingError(KeyFormatError):
    """Raw bytes could not be encoded as checksummed key text."""


class DecodingError(KeyFormatError):
    """Key text failed checksum, prefix, or length validation."""


# --- Authentication ---
class CanonicalizationError(ClientError, TypeError):
    """A value has no canonical serialization (non-string key, NaN, ...)."""


class SigningError(ClientError):
    """An event could not be signed with the supplied secret key."""


# --- Protocol ---
class FrameError(ClientError, ValueError):
    """Inbound wire frame is not a well-formed ``[kind, id, payload]`` array."""


# --- Transport ---
class TransportError(ClientError):
    """Base class for connection-level errors."""


class NotConnectedError(TransportError):
    """A frame was sent while the session was not open."""


class ConnectionClosedError(TransportError):
    """The connection closed before a pending request was answered."""

    def __init__(self, code: int | None, reason: str = ""):
        self.code = code
        self.reason = reason
        super().__init__(f"Connection closed [{code}]: {reason}" if reason else f"Connection closed [{code}]")


class SessionClosedError(TransportError):
    """The session was closed explicitly and cannot be reused."""


class ReconnectExhaustedError(TransportError):
    """All configured reconnect attempts failed."""

    def __init__(self, attempts: int):
        self.attempts = attempts
        super().__init__(f"Gave up reconnecting after {attempts} attempt(s)")
