"""Client layer: wire frames, request routing and the WebSocket session.

Modules:
    frames    Encode/decode of ``[kind, id, payload]`` frames.
    router    Correlation ids and callback dispatch.
    session   Connection state machine with reconnect and replay.
"""

from esclient.client.frames import Frame, decode_frame, encode_frame
from esclient.client.router import RequestRouter
from esclient.client.session import Subscription, TransportSession

__all__ = [
    "Frame",
    "RequestRouter",
    "Subscription",
    "TransportSession",
    "decode_frame",
    "encode_frame",
]
