"""Crypto layer: key codecs and the event authentication pipeline.

Modules:
    keys   Key generation, x-only derivation, bech32 ``esec``/``epub`` text.
    auth   Canonical serialization, content ids, Schnorr sign/verify.
"""

from esclient.crypto.auth import (
    canonicalize,
    compute_id,
    hash_message,
    sign,
    verify,
    verify_event,
)
from esclient.crypto.keys import KeyPair

__all__ = [
    "KeyPair",
    "canonicalize",
    "compute_id",
    "hash_message",
    "sign",
    "verify",
    "verify_event",
]
