"""
Token Codec.

Splits a compact ``header.payload.signature`` token and decodes its payload
into a claims mapping. Signatures are not checked here; the verification
authority named in the claims does that remotely.
"""

import base64
import binascii
import json
from typing import Any

from iap_client.exceptions import TokenDecodeError

_URLSAFE_TO_STANDARD = str.maketrans("-_", "+/")


def _b64decode_segment(segment: str) -> bytes:
    """Decode one segment, accepting either base64 alphabet, padded or not."""
    normalized = segment.rstrip("=").translate(_URLSAFE_TO_STANDARD)
    normalized += "=" * (-len(normalized) % 4)
    try:
        return base64.b64decode(normalized, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise TokenDecodeError("payload is not valid base64") from exc


def split_token(token: Any) -> tuple[str, str, str]:
    """Split a token into its three non-empty segments."""
    if not isinstance(token, str):
        raise TokenDecodeError(f"token must be a string, got {type(token).__name__}")

    segments = token.split(".")
    if len(segments) != 3:
        raise TokenDecodeError(f"expected 3 token segments, got {len(segments)}")
    if not all(segments):
        raise TokenDecodeError("token has an empty segment")

    header, payload, signature = segments
    return header, payload, signature


def decode_token(token: Any) -> dict[str, Any]:
    """
    Decode a token's payload into its claims.

    Raises:
        TokenDecodeError: If the token is not a string, does not have exactly
            three non-empty segments, or its payload is not base64 encoded
            JSON describing an object.
    """
    _, payload, _ = split_token(token)

    raw = _b64decode_segment(payload)
    try:
        claims = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise TokenDecodeError("payload is not valid JSON") from exc

    if not isinstance(claims, dict):
        raise TokenDecodeError("payload is not a JSON object")

    return claims
