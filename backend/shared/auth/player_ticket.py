"""HMAC-SHA256 signed player tickets.

The identity provider signs a ticket carrying a stable opaque user id and a
display name. The quiz server verifies the signature locally with a shared
secret, so joining or hosting a session needs no network call.

Token format: base64url(json_payload_bytes).base64url(hmac_sha256_signature)
"""

import base64
import binascii
import hashlib
import hmac
import json
import math
import time
from dataclasses import asdict, dataclass

import structlog

logger = structlog.get_logger()

_TOKEN_PARTS = 2

TICKET_TTL_SECONDS = 86400  # 24 hours
CLOCK_SKEW_SECONDS = 60


@dataclass
class PlayerTicket:
    """Payload carried inside a signed player ticket."""

    user_id: str
    display_name: str
    issued_at: float
    expires_at: float


def create_signed_ticket(user_id: str, display_name: str, secret: str) -> str:
    """Create and sign a player ticket valid for TICKET_TTL_SECONDS."""
    now = time.time()
    ticket = PlayerTicket(
        user_id=user_id,
        display_name=display_name,
        issued_at=now,
        expires_at=now + TICKET_TTL_SECONDS,
    )
    return sign_player_ticket(ticket, secret)


def sign_player_ticket(ticket: PlayerTicket, secret: str) -> str:
    payload_bytes = json.dumps(asdict(ticket), sort_keys=True).encode()
    sig = hmac.new(secret.encode(), payload_bytes, hashlib.sha256).digest()
    return f"{base64.urlsafe_b64encode(payload_bytes).decode()}.{base64.urlsafe_b64encode(sig).decode()}"


def verify_player_ticket(token: str, secret: str) -> PlayerTicket | None:
    """Verify signature, payload shape, and timestamps. Returns None on any failure."""
    parts = token.split(".")
    if len(parts) != _TOKEN_PARTS:
        return None

    try:
        payload_bytes = base64.urlsafe_b64decode(parts[0])
        provided_sig = base64.urlsafe_b64decode(parts[1])
    except (ValueError, binascii.Error):
        return None

    expected_sig = hmac.new(secret.encode(), payload_bytes, hashlib.sha256).digest()
    if not hmac.compare_digest(provided_sig, expected_sig):
        logger.debug("player ticket signature mismatch")
        return None

    try:
        ticket = PlayerTicket(**json.loads(payload_bytes))
    except (json.JSONDecodeError, TypeError, UnicodeDecodeError):
        logger.debug("player ticket malformed payload")
        return None

    if not isinstance(ticket.user_id, str) or not ticket.user_id:
        logger.debug("player ticket missing user_id")
        return None
    if not isinstance(ticket.display_name, str):
        return None

    if not _timestamps_valid(ticket):
        return None
    return ticket


def _is_finite_number(value: object) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


def _timestamps_valid(ticket: PlayerTicket) -> bool:
    """Reject non-finite, future-issued, inverted, over-long, or expired tickets."""
    if not _is_finite_number(ticket.issued_at) or not _is_finite_number(ticket.expires_at):
        logger.debug("player ticket non-finite timestamp")
        return False

    now = time.time()
    if ticket.issued_at > now + CLOCK_SKEW_SECONDS:
        logger.debug("player ticket issued in the future")
        return False
    if ticket.expires_at <= ticket.issued_at:
        logger.debug("player ticket expires_at <= issued_at")
        return False
    if ticket.expires_at - ticket.issued_at > TICKET_TTL_SECONDS + CLOCK_SKEW_SECONDS:
        logger.debug("player ticket lifetime too long")
        return False
    if now > ticket.expires_at:
        logger.debug("player ticket expired")
        return False
    return True
