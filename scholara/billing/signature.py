"""Webhook signature verification — the only authentication boundary for events."""

import json
from dataclasses import dataclass, field
from typing import Any

import stripe

DEFAULT_TOLERANCE = 300  # seconds, same as Stripe's own SDK default


class SignatureError(Exception):
    """Raised when an inbound event cannot be authenticated or parsed."""


@dataclass(frozen=True)
class VerifiedEvent:
    """An event envelope whose signature has been checked."""

    id: str
    type: str
    data_object: dict[str, Any] = field(default_factory=dict)
    created: int | None = None
    livemode: bool = False


def verify(
    raw_payload: bytes | str,
    signature_header: str | None,
    secret: str,
    tolerance: int = DEFAULT_TOLERANCE,
) -> VerifiedEvent:
    """Authenticate ``raw_payload`` against the ``Stripe-Signature`` header.

    The payload must be the request body exactly as received: re-serialising
    parsed JSON changes the bytes and breaks the HMAC. Stripe's verifier
    compares signatures in constant time and rejects timestamps older than
    ``tolerance`` seconds. The body is only parsed once the signature holds.
    """
    if not secret:
        raise SignatureError("Webhook signing secret is not configured")
    if not signature_header:
        raise SignatureError("Missing Stripe-Signature header")

    payload = raw_payload
    if isinstance(raw_payload, bytes):
        try:
            payload = raw_payload.decode("utf-8")
        except UnicodeDecodeError as e:
            raise SignatureError("Invalid payload: body is not UTF-8") from e

    try:
        stripe.WebhookSignature.verify_header(payload, signature_header, secret, tolerance)
    except stripe.SignatureVerificationError as e:
        raise SignatureError(str(e)) from e

    try:
        envelope = json.loads(payload)
    except ValueError as e:
        raise SignatureError("Invalid payload: body is not JSON") from e

    if not isinstance(envelope, dict) or not isinstance(envelope.get("type"), str):
        raise SignatureError("Invalid payload: missing event type")

    data = envelope.get("data") or {}
    data_object = data.get("object") if isinstance(data, dict) else None

    return VerifiedEvent(
        id=str(envelope.get("id", "")),
        type=envelope["type"],
        data_object=data_object if isinstance(data_object, dict) else {},
        created=envelope.get("created"),
        livemode=bool(envelope.get("livemode", False)),
    )
