"""Wire codec for the three-slot JSON frames exchanged with the service.

Layout (both directions)::

    [kind, correlation_id, payload, ...extra]

Outbound ``kind`` is one of ``PUB``/``SUB``/``UNSUB``; inbound kinds are
defined by the service.  Binary values are written in the JSON shape a
Node.js ``Buffer`` serializes to, ``{"type": "Buffer", "data": [...]}``.
"""

from __future__ import annotations

import json
from typing import Any, NamedTuple

from pydantic import BaseModel

from esclient.core.enums import EOSE, FrameKind
from esclient.core.errors import FrameError
from esclient.core.events import Event


class Frame(NamedTuple):
    """Decoded inbound frame; indexes like the raw array for the first slots."""

    kind: Any
    req_id: str
    payload: Any
    extra: tuple[Any, ...] = ()

    @property
    def is_eose(self) -> bool:
        return self.payload == EOSE


def _wire_default(value: Any) -> Any:
    if isinstance(value, Event):
        return value.to_wire()
    if isinstance(value, BaseModel):
        return value.model_dump(exclude_unset=True)
    if isinstance(value, (bytes, bytearray, memoryview)):
        return {"type": "Buffer", "data": list(bytes(value))}
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def encode_frame(kind: FrameKind | str, req_id: str, payload: Any) -> str:
    """Encode an outbound frame as compact JSON text."""
    if isinstance(kind, FrameKind):
        kind = kind.value
    return json.dumps(
        [kind, req_id, payload],
        separators=(",", ":"),
        ensure_ascii=False,
        default=_wire_default,
    )


def decode_frame(text: str | bytes) -> Frame:
    """Decode inbound frame text.

    Raises:
        FrameError: the text is not JSON or is nested too deeply, is not an
            array of at least three elements, or its correlation id is not a
            string.
    """
    try:
        data = json.loads(text)
    except (ValueError, TypeError, RecursionError) as exc:
        raise FrameError(f"Frame is not valid JSON: {exc}") from exc

    if not isinstance(data, list) or len(data) < 3:
        raise FrameError(f"Frame must be an array of 3+ elements: {data!r}")

    kind, req_id, payload, *extra = data
    if not isinstance(req_id, str):
        raise FrameError(f"Frame correlation id must be a string: {req_id!r}")

    return Frame(kind, req_id, payload, tuple(extra))
