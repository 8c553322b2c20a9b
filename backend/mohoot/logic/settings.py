"""Game rule settings carried into the pure logic layer."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_BASE_SCORE = 500
DEFAULT_PREROLL_MS = 2000

PIN_MIN = 100000
PIN_MAX = 999999


class GameSettings(BaseModel):
    """
    Rules shared by every session on a server.

    base_score: points for a correct answer with no time left; an instant
        correct answer earns twice this.
    preroll_ms: delay between opening a question and starting its clock, so
        clients can render before time counts.
    pin_attempts: how many random PINs to try before giving up on a collision.
    """

    model_config = ConfigDict(frozen=True)

    base_score: int = Field(default=DEFAULT_BASE_SCORE, ge=1)
    preroll_ms: int = Field(default=DEFAULT_PREROLL_MS, ge=0)
    pin_attempts: int = Field(default=20, ge=1)
