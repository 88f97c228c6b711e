"""HMAC-SHA256 request signing with timestamp binding.

Every delivery carries a header of the form::

    X-Blaze-Signature: t=1735752400,v1=5257a869e7ecebeda32affa62cdca3fa51cad7e77a0e56ff536d0ce8e108d8bd

where ``v1`` is ``HMAC_SHA256(secret, "<t>." + raw_body)`` in lowercase hex.
Binding the timestamp into the MAC lets receivers reject replays older than
their tolerance window without trusting an unsigned clock value.

Example (receiver side):
    ```python
    from blaze_webhooks.webhooks import verify

    ok = verify(secret, request.headers["X-Blaze-Signature"], await request.body())
    ```
"""

from __future__ import annotations

import hashlib
import hmac
import time

SIGNATURE_VERSION = "v1"
DIGEST_HEX_LENGTH = 64


def _to_bytes(value: str | bytes) -> bytes:
    return value.encode("utf-8") if isinstance(value, str) else value


def _check_timestamp(timestamp: int) -> int:
    # bool is an int subclass; a float would render with a fractional part
    if isinstance(timestamp, bool) or not isinstance(timestamp, int):
        raise TypeError(f"timestamp must be integer Unix seconds, got {type(timestamp).__name__}")
    if timestamp < 0:
        raise ValueError(f"timestamp must be non-negative, got {timestamp}")
    return timestamp


def sign(secret: str | bytes, timestamp: int, raw_body: str | bytes) -> str:
    """Compute the hex HMAC-SHA256 of ``"{timestamp}." + raw_body``.

    Args:
        secret: Endpoint signing secret (the base64url string handed to the owner).
        timestamp: Unix seconds at send time.
        raw_body: Exact request body bytes.

    Returns:
        64-character lowercase hex digest.
    """
    timestamp = _check_timestamp(timestamp)
    message = f"{timestamp}.".encode("ascii") + _to_bytes(raw_body)
    return hmac.new(_to_bytes(secret), message, hashlib.sha256).hexdigest()


def header_value(timestamp: int, digest: str) -> str:
    """Format the signature header: ``t=<timestamp>,v1=<digest>``."""
    timestamp = _check_timestamp(timestamp)
    return f"t={timestamp},{SIGNATURE_VERSION}={digest}"


def sign_request(
    secret: str | bytes,
    raw_body: str | bytes,
    timestamp: int | None = None,
) -> tuple[int, str]:
    """Sign a body with the current time.

    Returns:
        ``(timestamp, header_value)`` ready to send.
    """
    ts = int(time.time()) if timestamp is None else timestamp
    return ts, header_value(ts, sign(secret, ts, raw_body))


def parse_header(header: str) -> tuple[int, list[str]]:
    """Split a signature header into its timestamp and v1 digests.

    Unknown keys are ignored so that future signature versions can be added
    alongside v1.

    Raises:
        ValueError: If ``t`` or every ``v1`` is missing or malformed.
    """
    timestamp: int | None = None
    digests: list[str] = []

    for part in header.split(","):
        key, sep, value = part.strip().partition("=")
        if not sep:
            continue
        if key == "t":
            if not value.isdigit():
                raise ValueError(f"Invalid timestamp in signature header: {value!r}")
            timestamp = int(value)
        elif key == SIGNATURE_VERSION:
            digests.append(value.strip().lower())

    if timestamp is None:
        raise ValueError("Signature header has no timestamp")
    if not digests:
        raise ValueError(f"Signature header has no {SIGNATURE_VERSION} digest")
    return timestamp, digests


def verify(
    secret: str | bytes,
    header: str,
    raw_body: str | bytes,
    max_age_seconds: int = 300,
    now: int | None = None,
) -> bool:
    """Verify a signature header against a raw body.

    Reference receiver logic: parse ``t`` and ``v1``, reject timestamps older
    than ``max_age_seconds``, recompute the digest and compare it in constant
    time.

    Args:
        secret: Endpoint signing secret.
        header: Received signature header value.
        raw_body: Received body, byte-for-byte.
        max_age_seconds: Replay window.
        now: Current Unix seconds (defaults to the system clock).

    Returns:
        True if the signature is valid and fresh, False otherwise.
    """
    try:
        timestamp, digests = parse_header(header)
    except ValueError:
        return False

    current = int(time.time()) if now is None else now
    if current - timestamp > max_age_seconds:
        return False

    expected = sign(secret, timestamp, raw_body)
    matched = False
    for digest in digests:
        # No early exit: every candidate is compared
        if len(digest) == DIGEST_HEX_LENGTH and hmac.compare_digest(expected, digest):
            matched = True
    return matched
