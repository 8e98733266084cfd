"""Test canonical serialization, content ids and Schnorr sign/verify."""

import hashlib

import pytest

from esclient.core.enums import Ops
from esclient.core.errors import CanonicalizationError, SigningError
from esclient.core.events import Event
from esclient.crypto.auth import (
    canonicalize,
    compute_id,
    format_number,
    hash_message,
    sign,
    verify,
    verify_event,
    verify_signature,
)


# ===========================================================================
# canonicalize
# ===========================================================================

class TestCanonicalize:
    def test_keys_sorted_and_compact(self):
        assert canonicalize({"b": 1, "a": [3, {"d": 4, "c": 5}]}) == (
            b'{"a":[3,{"c":5,"d":4}],"b":1}'
        )

    def test_insertion_order_irrelevant(self):
        assert canonicalize({"x": 1, "y": 2}) == canonicalize({"y": 2, "x": 1})

    def test_code_point_ordering(self):
        # Uppercase sorts before lowercase; no locale collation.
        assert canonicalize({"b": 1, "B": 2, "a": 3}) == b'{"B":2,"a":3,"b":1}'

    def test_unicode_written_as_utf8(self):
        assert canonicalize({"name": "Zoë"}) == '{"name":"Zoë"}'.encode("utf-8")

    def test_integral_float_rendered_as_int(self):
        assert canonicalize({"n": 2.0, "m": 0.5}) == b'{"m":0.5,"n":2}'

    def test_enum_rendered_as_value(self):
        assert canonicalize({"ops": Ops.CREATE}) == b'{"ops":"C"}'

    def test_bytes_rendered_as_buffer(self):
        assert canonicalize({"blob": b"\x01\x02"}) == (
            b'{"blob":{"data":[1,2],"type":"Buffer"}}'
        )

    def test_event_uses_assigned_fields_only(self):
        event = Event(ops="R", code=203)
        assert canonicalize(event) == b'{"code":203,"ops":"R"}'

    def test_explicit_none_rendered_as_null(self):
        event = Event(ops="R", code=203, user=None)
        assert canonicalize(event) == b'{"code":203,"ops":"R","user":null}'

    def test_non_string_key_rejected(self):
        with pytest.raises(CanonicalizationError):
            canonicalize({1: "a"})

    def test_nan_rejected(self):
        with pytest.raises(CanonicalizationError):
            canonicalize({"n": float("nan")})

    def test_infinity_rejected(self):
        with pytest.raises(CanonicalizationError):
            canonicalize([float("inf")])

    def test_unsupported_type_rejected(self):
        with pytest.raises(CanonicalizationError):
            canonicalize({"s": {1, 2}})

    def test_lone_surrogate_rejected(self):
        with pytest.raises(CanonicalizationError):
            canonicalize({"s": "\ud800"})

    def test_canonicalization_error_is_type_error(self):
        with pytest.raises(TypeError):
            canonicalize({("a",): 1})

    def test_deep_nesting_rejected(self):
        nested: list = []
        for _ in range(5000):
            nested = [nested]
        with pytest.raises(CanonicalizationError, match="nested too deeply"):
            canonicalize(nested)

    @pytest.mark.parametrize(
        "number, text",
        [
            (1e-5, "0.00001"),
            (0.0001, "0.0001"),
            (1.5e-7, "1.5e-7"),
            (123.456, "123.456"),
            (-0.25, "-0.25"),
            (-0.0, "0"),
            (1e20, "100000000000000000000"),
            (1e21, "1e+21"),
            (1.5e300, "1.5e+300"),
            (0.1 + 0.2, "0.30000000000000004"),
        ],
    )
    def test_numbers_formatted_like_javascript(self, number, text):
        assert format_number(number) == text
        assert canonicalize({"n": number}) == ('{"n":' + text + "}").encode()


class TestComputeId:
    def test_id_is_sha256_of_canonical_form(self, sample_event):
        expected = hashlib.sha256(canonicalize(sample_event)).hexdigest()
        assert compute_id(sample_event) == expected

    def test_id_ignores_signature_fields(self, sample_event):
        with_sig = sample_event.model_copy(update={"id": "x", "sig": "y"})
        assert compute_id(with_sig) == compute_id(sample_event)

    def test_mapping_and_model_agree(self, sample_event):
        assert compute_id(sample_event.to_wire()) == compute_id(sample_event)

    def test_hash_message_accepts_str(self):
        assert hash_message("abc") == hashlib.sha256(b"abc").hexdigest()


# ===========================================================================
# sign
# ===========================================================================

class TestSign:
    def test_sign_populates_id_and_sig(self, sample_event, reference_keys):
        signed = sign(sample_event, reference_keys.secret)
        assert signed.is_signed
        assert signed.id == compute_id(sample_event)
        assert len(signed.sig) == 128

    def test_sign_is_pure(self, sample_event, reference_keys):
        sign(sample_event, reference_keys.secret)
        assert sample_event.id is None
        assert sample_event.sig is None

    def test_sign_sets_created_at_when_missing(self, reference_keys):
        signed = sign({"ops": "C", "code": 1}, reference_keys.secret)
        assert isinstance(signed.created_at, int)
        assert signed.created_at > 1_600_000_000

    def test_sign_keeps_existing_created_at(self, sample_event, reference_keys):
        signed = sign(sample_event, reference_keys.secret)
        assert signed.created_at == 1700000000

    def test_sign_accepts_esec_and_hex(self, sample_event, reference_keys):
        aux = b"\x00" * 32
        by_hex = sign(sample_event, reference_keys.secret_hex, aux_rand=aux)
        by_esec = sign(sample_event, reference_keys.esec, aux_rand=aux)
        assert by_hex.sig == by_esec.sig

    def test_aux_rand_makes_signature_reproducible(self, sample_event, reference_keys):
        aux = bytes(range(32))
        first = sign(sample_event, reference_keys.secret, aux_rand=aux)
        second = sign(sample_event, reference_keys.secret, aux_rand=aux)
        assert first.sig == second.sig

    def test_extra_fields_are_signed(self, reference_keys):
        signed = sign({"ops": "C", "code": 1, "created_at": 5, "note": "hi"}, reference_keys.secret)
        assert signed.to_wire()["note"] == "hi"
        assert verify(signed, reference_keys.public_hex)

    def test_invalid_secret_raises(self, sample_event):
        with pytest.raises(SigningError):
            sign(sample_event, "not-a-key")

    def test_zero_secret_raises(self, sample_event):
        with pytest.raises(SigningError):
            sign(sample_event, b"\x00" * 32)


# ===========================================================================
# verify
# ===========================================================================

class TestVerify:
    def test_valid_with_hex_and_epub(self, signed_event, reference_keys):
        assert verify(signed_event, reference_keys.public_hex)
        assert verify(signed_event, reference_keys.epub)

    def test_wrong_key_fails(self, signed_event, other_keys):
        assert not verify(signed_event, other_keys.public_hex)

    def test_mapping_form_verifies(self, signed_event, reference_keys):
        assert verify(signed_event.to_wire(), reference_keys.public_hex)

    def test_tampered_data_fails(self, signed_event, reference_keys):
        tampered = signed_event.model_copy(update={"data": {"email": "mallory@example.com"}})
        assert not verify(tampered, reference_keys.public_hex)

    def test_tampered_id_fails(self, signed_event, reference_keys):
        tampered = signed_event.model_copy(update={"id": "0" * 64})
        assert not verify(tampered, reference_keys.public_hex)

    def test_tampered_sig_fails(self, signed_event, reference_keys):
        flipped = ("1" if signed_event.sig[0] == "0" else "0") + signed_event.sig[1:]
        tampered = signed_event.model_copy(update={"sig": flipped})
        assert not verify(tampered, reference_keys.public_hex)

    def test_unsigned_event_fails(self, sample_event, reference_keys):
        assert not verify(sample_event, reference_keys.public_hex)

    def test_garbage_never_raises(self, reference_keys):
        assert not verify(None, reference_keys.public_hex)
        assert not verify({"id": 5, "sig": []}, reference_keys.public_hex)
        assert not verify({"n": float("nan")}, reference_keys.public_hex)

    def test_deeply_nested_data_never_raises(self, reference_keys):
        nested: dict = {}
        for _ in range(5000):
            nested = {"a": nested}
        event = {"ops": "C", "code": 1, "data": nested, "id": "00" * 32, "sig": "00" * 64}
        assert not verify(event, reference_keys.public_hex)
        assert not verify_event({**event, "user": reference_keys.public_hex})

    def test_malformed_public_key_fails(self, signed_event):
        assert not verify(signed_event, "epub1notakey")
        assert not verify(signed_event, 42)

    def test_verify_event_uses_user_field(self, signed_event):
        assert verify_event(signed_event)

    def test_verify_event_without_user_fails(self, reference_keys):
        signed = sign({"ops": "C", "code": 1}, reference_keys.secret)
        assert not verify_event(signed)

    def test_verify_signature_bad_hex(self, reference_keys):
        assert not verify_signature("zz", "zz", reference_keys.public_hex)
