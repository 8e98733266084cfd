"""Event authentication: canonical serialization, content ids, signatures.

Pipeline
--------
1. ``canonicalize``: every mapping's keys sorted by code point, sequence order
   kept, compact JSON (no whitespace), UTF-8.
2. ``hash_message``: lowercase hex SHA-256 of the canonical bytes; for an
   event this is its ``id``.
3. ``sign``: BIP-340 Schnorr signature (secp256k1) over the 32 raw bytes of
   the id.
4. ``verify``: recompute the id first and only then check the signature.

The canonical form is the sole input to hashing, so two clients that agree on
an event's fields agree on its id regardless of field order or whitespace.
"""

from __future__ import annotations

import hashlib
import json
import logging
import math
from collections.abc import Mapping
from enum import Enum
from typing import Any

from coincurve import PrivateKey, PublicKeyXOnly
from pydantic import BaseModel

from esclient.core.errors import CanonicalizationError, KeyFormatError, SigningError
from esclient.core.events import SIGNATURE_FIELDS, Event
from esclient.core.ids import unix_now

from .keys import parse_public_key, parse_secret_key

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Canonical serialization
# ---------------------------------------------------------------------------

def _normalize(value: Any) -> Any:
    """Rebuild *value* with sorted mapping keys and JSON-native scalars."""
    if isinstance(value, Event):
        value = value.to_wire()
    elif isinstance(value, BaseModel):
        value = value.model_dump(exclude_unset=True)

    if isinstance(value, Enum):
        return _normalize(value.value)
    if value is None or isinstance(value, (bool, str, int)):
        return value
    if isinstance(value, float):
        if not math.isfinite(value):
            raise CanonicalizationError(f"Non-finite number: {value!r}")
        return value
    if isinstance(value, (bytes, bytearray, memoryview)):
        # Same shape a Node.js Buffer serializes to
        return {"data": list(bytes(value)), "type": "Buffer"}
    if isinstance(value, Mapping):
        for key in value:
            if not isinstance(key, str):
                raise CanonicalizationError(
                    f"Mapping keys must be strings, got {type(key).__name__}: {key!r}"
                )
        return {key: _normalize(value[key]) for key in sorted(value)}
    if isinstance(value, (list, tuple)):
        return [_normalize(item) for item in value]

    raise CanonicalizationError(
        f"No canonical form for {type(value).__name__}: {value!r}"
    )


def format_number(value: float) -> str:
    """Render a finite float the way JavaScript's ``Number#toString`` does.

    Python's ``repr`` already yields the shortest round-tripping digits; only
    the placement of the decimal point and the exponent notation differ
    (``1e-05`` vs ``0.00001``, ``2.0`` vs ``2``).
    """
    mantissa, _, exponent = repr(abs(value)).partition("e")
    whole, _, fraction = mantissa.partition(".")
    all_digits = whole + fraction
    digits = all_digits.lstrip("0")
    if not digits.rstrip("0"):
        return "0"

    # value == 0.<digits> * 10**point
    point = len(whole) + int(exponent or 0) - (len(all_digits) - len(digits))
    digits = digits.rstrip("0")
    count = len(digits)
    sign = "-" if value < 0 else ""

    if count <= point <= 21:
        text = digits + "0" * (point - count)
    elif 0 < point <= 21:
        text = digits[:point] + "." + digits[point:]
    elif -6 < point <= 0:
        text = "0." + "0" * -point + digits
    else:
        power = point - 1
        head = digits[0] + ("." + digits[1:] if count > 1 else "")
        text = f"{head}e{'+' if power >= 0 else '-'}{abs(power)}"
    return sign + text


def _render(value: Any, out: list[str]) -> None:
    """Append the compact JSON text of a normalized *value* to *out*."""
    if value is None:
        out.append("null")
    elif value is True:
        out.append("true")
    elif value is False:
        out.append("false")
    elif isinstance(value, int):
        out.append(str(value))
    elif isinstance(value, float):
        out.append(format_number(value))
    elif isinstance(value, str):
        out.append(json.dumps(value, ensure_ascii=False))
    elif isinstance(value, list):
        out.append("[")
        for index, item in enumerate(value):
            if index:
                out.append(",")
            _render(item, out)
        out.append("]")
    else:
        out.append("{")
        for index, (key, item) in enumerate(value.items()):
            if index:
                out.append(",")
            out.append(json.dumps(key, ensure_ascii=False))
            out.append(":")
            _render(item, out)
        out.append("}")


def canonicalize(value: Any) -> bytes:
    """Serialize *value* to its canonical byte form.

    Raises:
        CanonicalizationError: a mapping key is not a string, a number is
            NaN or infinite, a string holds a lone surrogate, a value has
            no JSON representation, or the value is nested too deeply.
    """
    out: list[str] = []
    try:
        _render(_normalize(value), out)
    except RecursionError:
        raise CanonicalizationError("Value is nested too deeply") from None
    text = "".join(out)
    try:
        return text.encode("utf-8")
    except UnicodeEncodeError as exc:
        raise CanonicalizationError(f"String is not valid Unicode: {exc}") from exc


def hash_message(message: bytes | str) -> str:
    """Return the lowercase hex SHA-256 digest of *message*."""
    if isinstance(message, str):
        message = message.encode("utf-8")
    return hashlib.sha256(message).hexdigest()


def _unsigned(event: Event | Mapping[str, Any]) -> dict[str, Any]:
    if isinstance(event, Event):
        return event.unsigned_fields()
    return {k: v for k, v in event.items() if k not in SIGNATURE_FIELDS}


def compute_id(event: Event | Mapping[str, Any]) -> str:
    """Content id of *event*: hash of its canonical form sans ``id``/``sig``."""
    return hash_message(canonicalize(_unsigned(event)))


# ---------------------------------------------------------------------------
# Signing
# ---------------------------------------------------------------------------

def sign(
    event: Event | Mapping[str, Any],
    secret_key: bytes | str,
    *,
    aux_rand: bytes | None = None,
) -> Event:
    """Return a signed copy of *event*; the input is left untouched.

    ``created_at`` is set to the current Unix time when missing, so signing
    the same unsigned event twice yields two different ids.  Pass 32 bytes of
    *aux_rand* for a reproducible signature.

    Raises:
        SigningError: the secret key is malformed or out of range.
        CanonicalizationError: the event holds a value with no canonical form.
    """
    try:
        secret = parse_secret_key(secret_key)
        private = PrivateKey(secret)
    except (KeyFormatError, ValueError) as exc:
        raise SigningError(f"Invalid secret key: {exc}") from exc

    if not isinstance(event, Event):
        event = Event.from_wire(event)

    draft = event.model_copy(deep=True)
    if not draft.created_at:
        draft = draft.model_copy(update={"created_at": unix_now()})

    event_id = compute_id(draft)
    digest = bytes.fromhex(event_id)
    if aux_rand is None:
        signature = private.sign_schnorr(digest)
    else:
        signature = private.sign_schnorr(digest, aux_rand)

    return draft.model_copy(update={"id": event_id, "sig": signature.hex()})


# ---------------------------------------------------------------------------
# Verification
# ---------------------------------------------------------------------------

def verify_signature(message_hex: Any, signature_hex: Any, public_key: Any) -> bool:
    """Check a Schnorr signature over the hex-encoded 32-byte *message_hex*.

    *public_key* may be hex or ``epub1...`` text.  Returns ``False`` on any
    malformed input.
    """
    try:
        signature = bytes.fromhex(signature_hex)
        message = bytes.fromhex(message_hex)
        public = PublicKeyXOnly(parse_public_key(public_key))
        return bool(public.verify(signature, message))
    except (ValueError, TypeError) as exc:
        logger.debug("Signature verification failed: %s", exc)
        return False


def verify(event: Any, public_key: Any) -> bool:
    """Whether *event* is intact and signed by *public_key*.

    The id is recomputed first; a mismatch returns ``False`` without any
    curve arithmetic.  Never raises.
    """
    if isinstance(event, Event):
        event_id, signature = event.id, event.sig
    elif isinstance(event, Mapping):
        event_id, signature = event.get("id"), event.get("sig")
    else:
        return False

    try:
        expected = compute_id(event)
    except CanonicalizationError as exc:
        logger.debug("Event has no canonical form: %s", exc)
        return False

    if expected != event_id:
        logger.debug("Event id mismatch: computed=%s claimed=%s", expected, event_id)
        return False

    return verify_signature(event_id, signature, public_key)


def verify_event(event: Any) -> bool:
    """Verify *event* against the public key in its own ``user`` field."""
    if isinstance(event, Event):
        user = event.user
    elif isinstance(event, Mapping):
        user = event.get("user")
    else:
        return False

    if not isinstance(user, str):
        return False
    return verify(event, user)
