"""
Extract a caller's self-asserted identity bundle from a request.

Two transports are accepted:
    X-Proof header: base64 (standard or url-safe, padding optional) JSON
                    object {"did", "nonce", "signature", "vcJwt"}
    Discrete fields: the same four keys in the JSON body or query string

Malformed bundles never fail the request; the caller is simply treated as
anonymous and pays the public price.
"""

import base64
import binascii
import json
import logging
from typing import Any, Mapping, Optional

from pydantic import ValidationError

from zkx402.core.errors import InvalidInput
from zkx402.core.models import IdentityAssertion

logger = logging.getLogger(__name__)

PROOF_HEADER = "x-proof"
DISCRETE_FIELDS = ("did", "nonce", "signature", "vcJwt")


def _b64decode(value: str) -> bytes:
    value = value.strip()
    padded = value + "=" * (-len(value) % 4)
    altchars = b"-_" if ("-" in value or "_" in value) else None
    return base64.b64decode(padded, altchars=altchars, validate=True)


def decode_identity_header(value: str) -> IdentityAssertion:
    """
    Strictly decode an X-Proof header value.

    Raises:
        InvalidInput: not base64, not a JSON object, or not the assertion shape
    """
    try:
        obj = json.loads(_b64decode(value).decode("utf-8"))
    except (binascii.Error, ValueError, UnicodeDecodeError) as e:
        raise InvalidInput("X-Proof header is not base64 JSON", detail=str(e)) from e

    if not isinstance(obj, dict):
        raise InvalidInput("X-Proof header must encode a JSON object")

    try:
        return IdentityAssertion.model_validate(obj)
    except ValidationError as e:
        raise InvalidInput("X-Proof header has an invalid shape", detail=str(e)) from e


def encode_identity_header(assertion: IdentityAssertion) -> str:
    """Inverse of decode_identity_header, for clients and tests."""
    payload = assertion.model_dump(by_alias=True, exclude_none=True)
    return base64.b64encode(json.dumps(payload).encode("utf-8")).decode("ascii")


def _header(headers: Mapping[str, str], name: str) -> Optional[str]:
    value = headers.get(name)
    if value is None:
        for key, candidate in headers.items():
            if key.lower() == name:
                return candidate
    return value


def has_identity(
    headers: Optional[Mapping[str, str]] = None,
    fields: Optional[Mapping[str, Any]] = None,
) -> bool:
    """True if the request carries any identity data, well-formed or not."""
    if _header(headers or {}, PROOF_HEADER):
        return True
    return any((fields or {}).get(key) is not None for key in DISCRETE_FIELDS)


def parse_identity(
    headers: Optional[Mapping[str, str]] = None,
    fields: Optional[Mapping[str, Any]] = None,
) -> Optional[IdentityAssertion]:
    """
    Parse the identity bundle carried by a request.

    Args:
        headers: Request headers
        fields: Discrete request fields (JSON body merged over query params)

    Returns:
        IdentityAssertion, or None when absent or malformed
    """
    header_value = _header(headers or {}, PROOF_HEADER)
    if header_value:
        try:
            return decode_identity_header(header_value)
        except InvalidInput as e:
            logger.debug(f"Ignoring malformed X-Proof header: {e}")
            return None

    fields = fields or {}
    present = {key: fields[key] for key in DISCRETE_FIELDS if fields.get(key) is not None}
    if not present:
        return None

    try:
        return IdentityAssertion.model_validate(present)
    except ValidationError as e:
        logger.debug(f"Ignoring malformed identity fields: {e}")
        return None
