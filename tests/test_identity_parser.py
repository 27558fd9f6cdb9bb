"""
Tests for identity bundle extraction from requests.
"""

import base64
import json

import pytest

from zkx402.auth.identity_parser import (
    decode_identity_header,
    encode_identity_header,
    has_identity,
    parse_identity,
)
from zkx402.core.errors import InvalidInput
from zkx402.core.models import IdentityAssertion

BUNDLE = {"did": "did:ethr:0x1", "nonce": "n", "signature": "0xsig", "vcJwt": "a.b.c"}


def _encode(obj, urlsafe=False, strip_padding=False) -> str:
    raw = json.dumps(obj).encode("utf-8")
    value = (base64.urlsafe_b64encode if urlsafe else base64.b64encode)(raw).decode("ascii")
    return value.rstrip("=") if strip_padding else value


@pytest.mark.unit
class TestHeaderDecoding:
    """Test X-Proof header decoding."""

    def test_decode_standard_base64(self):
        assertion = decode_identity_header(_encode(BUNDLE))
        assert assertion.decentralized_id == "did:ethr:0x1"
        assert assertion.nonce == "n"
        assert assertion.signature == "0xsig"
        assert assertion.credential_token == "a.b.c"

    def test_decode_urlsafe_without_padding(self):
        assertion = decode_identity_header(_encode(BUNDLE, urlsafe=True, strip_padding=True))
        assert assertion.credential_token == "a.b.c"

    def test_encode_decode_inverse(self):
        assertion = IdentityAssertion(**{"did": "did:key:z6Mk", "nonce": "1", "signature": "s", "vcJwt": "t"})
        assert decode_identity_header(encode_identity_header(assertion)) == assertion

    @pytest.mark.parametrize("value", [
        "not base64 at all!",
        base64.b64encode(b"not json").decode(),
        _encode(["did", "nonce"]),
        _encode({**BUNDLE, "extra": "field"}),
        _encode({**BUNDLE, "nonce": 42}),
    ])
    def test_malformed_header_rejected(self, value):
        with pytest.raises(InvalidInput):
            decode_identity_header(value)


@pytest.mark.unit
class TestParseIdentity:
    """Test request-level parsing."""

    def test_header_takes_precedence(self):
        fields = {**BUNDLE, "did": "did:ethr:0x2"}
        assertion = parse_identity({"x-proof": _encode(BUNDLE)}, fields)
        assert assertion.decentralized_id == "did:ethr:0x1"

    def test_header_lookup_is_case_insensitive(self):
        assertion = parse_identity({"X-Proof": _encode(BUNDLE)})
        assert assertion is not None

    def test_discrete_fields(self):
        assertion = parse_identity({}, BUNDLE)
        assert assertion.decentralized_id == "did:ethr:0x1"
        assert assertion.missing_fields() == []

    def test_partial_fields_report_missing(self):
        assertion = parse_identity(None, {"did": "did:ethr:0x1", "nonce": "n"})
        assert assertion.missing_fields() == ["signature", "vcJwt"]

    def test_absent_identity(self):
        assert parse_identity({"accept": "application/json"}, {"payer": "x"}) is None
        assert has_identity({"accept": "application/json"}, {"payer": "x"}) is False

    def test_malformed_header_is_anonymous(self):
        headers = {"x-proof": "%%%"}
        assert parse_identity(headers) is None
        assert has_identity(headers) is True

    def test_non_string_fields_are_anonymous(self):
        fields = {**BUNDLE, "signature": ["0x", "sig"]}
        assert parse_identity(None, fields) is None
        assert has_identity(None, fields) is True
