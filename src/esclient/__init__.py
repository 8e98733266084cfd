"""Client for a signed-event publish/subscribe service over WebSocket."""

from esclient.client.session import Subscription, TransportSession
from esclient.core.config import ClientSettings, load_settings
from esclient.core.events import Event
from esclient.crypto.auth import canonicalize, compute_id, sign, verify, verify_event
from esclient.crypto.keys import KeyPair

__version__ = "0.1.0"

__all__ = [
    "ClientSettings",
    "Event",
    "KeyPair",
    "Subscription",
    "TransportSession",
    "canonicalize",
    "compute_id",
    "load_settings",
    "sign",
    "verify",
    "verify_event",
]
