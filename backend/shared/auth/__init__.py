"""Identity: signed player tickets issued by the identity provider."""

from shared.auth.player_ticket import (
    TICKET_TTL_SECONDS,
    PlayerTicket,
    create_signed_ticket,
    sign_player_ticket,
    verify_player_ticket,
)

__all__ = [
    "TICKET_TTL_SECONDS",
    "PlayerTicket",
    "create_signed_ticket",
    "sign_player_ticket",
    "verify_player_ticket",
]
