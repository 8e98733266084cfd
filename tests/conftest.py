"""Shared fixtures for the esclient test suite."""

from __future__ import annotations

from types import SimpleNamespace

import pytest

from esclient.core.events import Event
from esclient.crypto.keys import KeyPair

# Reference key pair (hex and bech32 forms agree with other clients).
SECRET_HEX = "e2a90b45181b6b08d3d42ca785509b6e8cd0e12480324291de95f7d023abdf2c"
PUBLIC_HEX = "f54659feff021a5437745019cceb2c09b9da8cc21dfb29ec25d774210d067fd3"
SECRET_ESEC = "esec1u25sk3gcrd4s35759jnc25ymd6xdpcfysqey9yw7jhmaqgatmukqyljrgp"
PUBLIC_EPUB = "epub174r9nlhlqgd9gdm52qvue6evpxua4rxzrhajnmp96a6zzrgx0lfsdwtstf"


# ---------------------------------------------------------------------------
# Keys
# ---------------------------------------------------------------------------

@pytest.fixture
def reference_keys() -> KeyPair:
    """Return the reference key pair."""
    return KeyPair.from_secret(SECRET_HEX)


@pytest.fixture
def other_keys() -> KeyPair:
    """Return a freshly generated key pair unrelated to the reference one."""
    return KeyPair.generate()


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------

@pytest.fixture
def sample_event() -> Event:
    """Return an unsigned create event owned by the reference key."""
    return Event(
        ops="C",
        code=100,
        user=PUBLIC_HEX,
        data={"email": "alice@example.com", "name": "Alice"},
        created_at=1700000000,
    )


@pytest.fixture
def signed_event(sample_event: Event, reference_keys: KeyPair) -> Event:
    from esclient.crypto.auth import sign

    return sign(sample_event, reference_keys.secret)


@pytest.fixture
def vectors() -> SimpleNamespace:
    """Reference key material in every textual form."""
    return SimpleNamespace(
        secret_hex=SECRET_HEX,
        public_hex=PUBLIC_HEX,
        esec=SECRET_ESEC,
        epub=PUBLIC_EPUB,
    )
