"""Fan-out of one message to every connection attached to a session."""

from __future__ import annotations

import contextlib
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Iterable

    from mohoot.session.models import Participant


async def broadcast_to_participants(
    participants: Iterable[Participant],
    message: dict[str, Any],
    exclude_connection_id: str | None = None,
) -> None:
    """Send `message` to each participant, skipping one if excluded.

    The iterable is copied to a list first because a disconnect can mutate
    the underlying dict while a send is awaiting. A failed send is dropped;
    that connection's own disconnect path cleans it up.
    """
    for participant in list(participants):
        if participant.connection_id != exclude_connection_id:
            with contextlib.suppress(RuntimeError, OSError, ConnectionError):
                await participant.connection.send_message(message)
