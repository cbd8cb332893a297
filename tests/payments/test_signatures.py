import hashlib
import hmac
import random

import pytest

from domain.payment.signatures import (
    DEFAULT_REQUEST_HASH_LAYOUT,
    DEFAULT_RESPONSE_HASH_LAYOUT,
    REQUEST_REQUIRED_FIELDS,
    RESPONSE_REQUIRED_FIELDS,
    HashChainLayout,
    HashChainSlot,
    MissingHashField,
    compute_hash_chain,
    compute_hmac_sha256,
    verify_hash_chain,
    verify_hmac_signature,
    verify_reference_signature,
)


SECRET = "test_key_secret"
SECRETS = {"key": "hdfc_key", "salt": "hdfc_salt"}


def _reference_signature(order_ref: str, payment_ref: str, secret: str = SECRET) -> str:
    return hmac.new(secret.encode(), f"{order_ref}|{payment_ref}".encode(), hashlib.sha256).hexdigest()


def test_reference_signature_accepts_valid_hmac():
    sig = _reference_signature("order_A1", "pay_B2")
    assert verify_reference_signature(SECRET, "order_A1", "pay_B2", sig)
    assert verify_reference_signature(SECRET, "order_A1", "pay_B2", sig.upper())


@pytest.mark.parametrize(
    "signature",
    [None, "", "abc", "zz" * 32, "0" * 63, "0" * 65, 12345, ["0" * 64]],
)
def test_reference_signature_rejects_malformed_input(signature):
    assert verify_reference_signature(SECRET, "order_A1", "pay_B2", signature) is False


def test_reference_signature_rejects_wrong_secret_and_swapped_fields():
    sig = _reference_signature("order_A1", "pay_B2")
    assert not verify_reference_signature("other", "order_A1", "pay_B2", sig)
    assert not verify_reference_signature(SECRET, "pay_B2", "order_A1", sig)
    assert not verify_reference_signature(SECRET, "order_A1", None, sig)


def test_missing_secret_never_verifies():
    sig = compute_hmac_sha256("", "order_A1|pay_B2")
    assert verify_hmac_signature(None, "order_A1|pay_B2", sig) is False
    assert verify_hmac_signature("", "order_A1|pay_B2", sig) is False


def test_single_character_mutations_never_verify():
    rng = random.Random(1234)
    sig = _reference_signature("order_A1", "pay_B2")
    alphabet = "0123456789abcdef"
    for _ in range(200):
        pos = rng.randrange(len(sig))
        replacement = rng.choice([c for c in alphabet if c != sig[pos]])
        mutated = sig[:pos] + replacement + sig[pos + 1:]
        assert not verify_reference_signature(SECRET, "order_A1", "pay_B2", mutated)


def test_webhook_body_hmac_is_over_raw_bytes():
    body = b'{"event":"payment.captured","payload":{}}'
    sig = hmac.new(b"whsec", body, hashlib.sha256).hexdigest()
    assert verify_hmac_signature("whsec", body, sig)
    # 重新序列化后的 JSON 与原始字节不同，不能通过
    assert not verify_hmac_signature("whsec", b'{"event": "payment.captured", "payload": {}}', sig)


def _response_fields(**overrides):
    fields = {
        "status": "success",
        "txnid": "TXN_1_ab12cd34",
        "amount": "500.00",
        "productinfo": "Tee x2",
        "firstname": "Asha",
        "email": "asha@example.com",
        "udf1": "rcpt_1",
    }
    fields.update(overrides)
    return fields


def test_response_hash_chain_matches_expected_canonical_order():
    layout = HashChainLayout.from_tokens(DEFAULT_RESPONSE_HASH_LAYOUT, RESPONSE_REQUIRED_FIELDS)
    fields = _response_fields()
    canonical = "hdfc_salt|success||||||||||rcpt_1|asha@example.com|Asha|Tee x2|500.00|TXN_1_ab12cd34|hdfc_key"
    assert layout.canonical_string(fields, SECRETS) == canonical
    expected = hashlib.sha512(canonical.encode()).hexdigest()
    assert compute_hash_chain(layout, fields, SECRETS) == expected
    assert verify_hash_chain(layout, fields, SECRETS, expected)


def test_request_hash_chain_has_ten_slots_after_email():
    layout = HashChainLayout.from_tokens(DEFAULT_REQUEST_HASH_LAYOUT, REQUEST_REQUIRED_FIELDS)
    fields = {"txnid": "T1", "amount": "1.00", "productinfo": "P", "firstname": "A", "email": "a@x.io"}
    canonical = layout.canonical_string(fields, SECRETS)
    assert canonical == "hdfc_key|T1|1.00|P|A|a@x.io|||||||||||hdfc_salt"
    assert canonical.count("|") == 16


def test_hash_chain_rejects_tampered_amount_and_missing_fields():
    layout = HashChainLayout.from_tokens(DEFAULT_RESPONSE_HASH_LAYOUT, RESPONSE_REQUIRED_FIELDS)
    fields = _response_fields()
    good = compute_hash_chain(layout, fields, SECRETS)
    assert not verify_hash_chain(layout, _response_fields(amount="1.00"), SECRETS, good)
    assert not verify_hash_chain(layout, _response_fields(status=""), SECRETS, good)
    assert not verify_hash_chain(layout, fields, {"key": "hdfc_key"}, good)
    assert not verify_hash_chain(layout, fields, SECRETS, good[:-2])


@pytest.mark.parametrize("wrap", [" {}", "{} ", "{}\n", "\t{}", "{}\r\n"])
def test_signatures_with_surrounding_whitespace_are_rejected(wrap):
    sig = _reference_signature("order_A1", "pay_B2")
    assert verify_reference_signature(SECRET, "order_A1", "pay_B2", wrap.format(sig)) is False

    layout = HashChainLayout.from_tokens(DEFAULT_RESPONSE_HASH_LAYOUT, RESPONSE_REQUIRED_FIELDS)
    fields = _response_fields()
    good = compute_hash_chain(layout, fields, SECRETS)
    assert verify_hash_chain(layout, fields, SECRETS, wrap.format(good)) is False


def test_compute_hash_chain_raises_on_missing_required_field():
    layout = HashChainLayout.from_tokens(DEFAULT_RESPONSE_HASH_LAYOUT, RESPONSE_REQUIRED_FIELDS)
    fields = _response_fields()
    del fields["txnid"]
    with pytest.raises(MissingHashField):
        compute_hash_chain(layout, fields, SECRETS)


@pytest.mark.parametrize("token", ["payload:", "secret:key", "udf1", "config"])
def test_invalid_slot_tokens_are_rejected(token):
    with pytest.raises(ValueError):
        HashChainSlot.parse(token)


def test_slot_tokens_round_trip():
    for token in ("payload:txnid", "config:salt", "blank"):
        assert HashChainSlot.parse(token).token() == token
    assert HashChainSlot.parse("").source == "blank"
