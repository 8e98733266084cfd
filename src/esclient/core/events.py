"""Event schema for the publish/subscribe service.

An :class:`Event` is a Pydantic model that tracks which fields were actually
assigned.  Only assigned fields take part in the canonical serialization, so
an event built here hashes identically to the same object built by any other
client that omits unset keys.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict

from .enums import Ops

# A subscription filter is an open mapping interpreted by the service,
# e.g. ``{"ops": "R", "code": 203, "tags": [["t", "blog"]]}``.
Filter = Mapping[str, Any]

# Fields produced by signing; excluded from the content hash.
SIGNATURE_FIELDS = frozenset({"id", "sig"})


class Event(BaseModel):
    """Unit of exchange with the service.

    ``id`` and ``sig`` are populated by :func:`esclient.crypto.auth.sign`;
    an event without them is unsigned and must not be published as
    authenticated.  Unknown top-level fields are kept as extras.
    """

    model_config = ConfigDict(extra="allow")

    ops: Ops | str
    code: int
    user: str | None = None
    data: dict[str, Any] | None = None
    tags: list[list[str]] | None = None
    created_at: int | None = None
    id: str | None = None
    sig: str | None = None

    @property
    def is_signed(self) -> bool:
        return self.id is not None and self.sig is not None

    def to_wire(self, *, exclude: set[str] | frozenset[str] | None = None) -> dict[str, Any]:
        """Return the assigned fields (and extras) as a plain dict."""
        return self.model_dump(exclude_unset=True, exclude=set(exclude) if exclude else None)

    def unsigned_fields(self) -> dict[str, Any]:
        """Return every assigned field except ``id`` and ``sig``."""
        return self.to_wire(exclude=SIGNATURE_FIELDS)

    @classmethod
    def from_wire(cls, payload: Mapping[str, Any]) -> Event:
        return cls.model_validate(dict(payload))
