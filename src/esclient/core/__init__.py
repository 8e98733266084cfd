"""Core types shared by every layer: events, enums, errors, ids, settings."""

from esclient.core.config import ClientSettings, load_settings
from esclient.core.enums import ConnectionState, FrameKind, Ops
from esclient.core.events import Event, Filter

__all__ = [
    "ClientSettings",
    "ConnectionState",
    "Event",
    "Filter",
    "FrameKind",
    "Ops",
    "load_settings",
]
