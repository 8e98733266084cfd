"""Key material: generation, derivation and bech32 text encoding.

Secret and public keys are 32 raw bytes (public keys are BIP-340 x-only).
Each has three equivalent representations:

* raw ``bytes``
* lowercase hex
* bech32 text with a human-readable prefix: ``esec1...`` for secret keys,
  ``epub1...`` for public keys

Encoding uses the original BIP-173 bech32 checksum with a length ceiling of
:data:`BECH32_MAX_LENGTH` characters instead of the 90-character limit of
segwit addresses.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from bech32 import CHARSET, bech32_encode, bech32_verify_checksum, convertbits
from coincurve import PrivateKey, PublicKeyXOnly

from esclient.core.errors import DecodingError, EncodingError, KeyFormatError

BECH32_MAX_LENGTH = 1023
CHECKSUM_LENGTH = 6
SEPARATOR = "1"

KEY_LENGTH = 32
ESEC_PREFIX = "esec"
EPUB_PREFIX = "epub"


# ---------------------------------------------------------------------------
# Bech32
# ---------------------------------------------------------------------------

def _valid_prefix(prefix: str) -> bool:
    return (
        bool(prefix)
        and all(33 <= ord(c) <= 126 for c in prefix)
        and prefix == prefix.lower()
    )


def encode(prefix: str, data: bytes) -> str:
    """Encode *data* as bech32 text under the human-readable *prefix*.

    Raises:
        EncodingError: the prefix is malformed or the result would be longer
            than :data:`BECH32_MAX_LENGTH` characters.
    """
    if not _valid_prefix(prefix):
        raise EncodingError(f"Invalid bech32 prefix: {prefix!r}")

    words = convertbits(bytes(data), 8, 5)
    length = len(prefix) + len(SEPARATOR) + len(words) + CHECKSUM_LENGTH
    if length > BECH32_MAX_LENGTH:
        raise EncodingError(
            f"Encoded length {length} exceeds limit of {BECH32_MAX_LENGTH}"
        )
    return bech32_encode(prefix, words)


def decode(text: str, expected_length: int | None = None) -> tuple[str, bytes]:
    """Decode bech32 *text* into ``(prefix, data)``.

    The prefix is returned as found; checking it against the expected one is
    the caller's job.

    Raises:
        DecodingError: bad checksum, malformed prefix or separator, characters
            outside the alphabet, mixed case, oversize input, invalid
            padding, or a payload whose length differs from
            *expected_length*.
    """
    if not isinstance(text, str):
        raise DecodingError(f"Expected str, got {type(text).__name__}")
    if len(text) > BECH32_MAX_LENGTH:
        raise DecodingError(f"Text longer than {BECH32_MAX_LENGTH} characters")
    if any(not 33 <= ord(c) <= 126 for c in text):
        raise DecodingError("Text contains non-printable characters")
    if text != text.lower() and text != text.upper():
        raise DecodingError("Text mixes upper and lower case")

    text = text.lower()
    pos = text.rfind(SEPARATOR)
    if pos < 1 or pos + 1 + CHECKSUM_LENGTH > len(text):
        raise DecodingError("Missing prefix, separator or checksum")

    prefix = text[:pos]
    try:
        words = [CHARSET.index(c) for c in text[pos + 1:]]
    except ValueError:
        raise DecodingError("Character outside the bech32 alphabet") from None

    if not bech32_verify_checksum(prefix, words):
        raise DecodingError("Checksum mismatch")

    data = convertbits(words[:-CHECKSUM_LENGTH], 5, 8, False)
    if data is None:
        raise DecodingError("Invalid padding in data part")

    raw = bytes(data)
    if expected_length is not None and len(raw) != expected_length:
        raise DecodingError(
            f"Payload is {len(raw)} bytes, expected {expected_length}"
        )
    return prefix, raw


def esec_encode(secret: bytes) -> str:
    return encode(ESEC_PREFIX, secret)


def esec_decode(text: str) -> tuple[str, bytes]:
    return decode(text, KEY_LENGTH)


def epub_encode(public: bytes | str) -> str:
    """Encode a public key given as raw bytes or hex."""
    if isinstance(public, str):
        public = _from_hex(public)
    return encode(EPUB_PREFIX, public)


def epub_decode(text: str) -> tuple[str, bytes]:
    return decode(text, KEY_LENGTH)


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------

def _from_hex(value: str) -> bytes:
    try:
        return bytes.fromhex(value)
    except ValueError:
        raise KeyFormatError(f"Malformed hex key: {value!r}") from None


def _parse_key(value: bytes | bytearray | str, prefix: str) -> bytes:
    if isinstance(value, (bytes, bytearray)):
        raw = bytes(value)
    elif isinstance(value, str) and value.startswith(prefix + SEPARATOR):
        found, raw = decode(value, KEY_LENGTH)
        if found != prefix:
            raise KeyFormatError(f"Expected {prefix!r} key, got {found!r}")
    elif isinstance(value, str):
        raw = _from_hex(value)
    else:
        raise KeyFormatError(f"Unsupported key type: {type(value).__name__}")

    if len(raw) != KEY_LENGTH:
        raise KeyFormatError(f"Key is {len(raw)} bytes, expected {KEY_LENGTH}")
    return raw


def parse_secret_key(value: bytes | bytearray | str) -> bytes:
    """Normalize a secret key given as bytes, hex or ``esec1...`` text."""
    return _parse_key(value, ESEC_PREFIX)


def parse_public_key(value: bytes | bytearray | str) -> bytes:
    """Normalize a public key given as bytes, hex or ``epub1...`` text."""
    return _parse_key(value, EPUB_PREFIX)


# ---------------------------------------------------------------------------
# Generation and derivation
# ---------------------------------------------------------------------------

def generate_secret_key() -> bytes:
    """Return 32 random bytes that form a valid secp256k1 secret key."""
    return PrivateKey().secret


def get_public_key_bytes(secret: bytes) -> bytes:
    """Derive the x-only public key for *secret*."""
    try:
        return PublicKeyXOnly.from_secret(secret).format()
    except (ValueError, TypeError) as exc:
        raise KeyFormatError(f"Invalid secret key: {exc}") from exc


def get_public_key(secret: bytes) -> str:
    return get_public_key_bytes(secret).hex()


@dataclass(frozen=True)
class KeyPair:
    """A secret key and its derived x-only public key."""

    secret: bytes = field(repr=False)
    public: bytes

    @classmethod
    def generate(cls) -> KeyPair:
        return cls.from_secret(generate_secret_key())

    @classmethod
    def from_secret(cls, value: bytes | bytearray | str) -> KeyPair:
        secret = parse_secret_key(value)
        return cls(secret=secret, public=get_public_key_bytes(secret))

    @property
    def secret_hex(self) -> str:
        return self.secret.hex()

    @property
    def public_hex(self) -> str:
        return self.public.hex()

    @property
    def esec(self) -> str:
        return esec_encode(self.secret)

    @property
    def epub(self) -> str:
        return epub_encode(self.public)
