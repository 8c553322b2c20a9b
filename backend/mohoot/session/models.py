from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from mohoot.logic.types import SessionState
    from mohoot.messaging.protocol import ConnectionProtocol


class Role(StrEnum):
    HOST = "host"
    PLAYER = "player"


@dataclass
class Participant:
    """A connection bound to a session as its host or as a player.

    One user may hold several participants (several devices or tabs).
    """

    connection: ConnectionProtocol
    user_id: str
    pin: str
    role: Role

    @property
    def connection_id(self) -> str:
        return self.connection.connection_id


@dataclass
class LiveSession:
    """
    Authoritative in-memory owner of one session.

    `state` is only replaced while `lock` is held. `stats_recorded` makes the
    end-of-game stats pass run once no matter how often FINISHED is observed.
    """

    state: SessionState
    session_key: str
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    participants: dict[str, Participant] = field(default_factory=dict)  # connection_id -> Participant
    stats_recorded: bool = False
    last_activity: float = field(default_factory=time.monotonic)

    @property
    def session_id(self) -> str:
        return self.state.session_id

    @property
    def pin(self) -> str:
        return self.state.pin

    @property
    def host_id(self) -> str:
        return self.state.host_id

    def touch(self) -> None:
        self.last_activity = time.monotonic()

    def connections_for(self, user_id: str) -> list[Participant]:
        return [p for p in self.participants.values() if p.user_id == user_id]
