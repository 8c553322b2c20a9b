from pydantic import BaseModel, ConfigDict, Field

from mohoot.logic.types import Quiz


class CreateSessionRequest(BaseModel):
    """Body of POST /sessions. The host is identified by the ticket's user_id."""

    model_config = ConfigDict(extra="forbid")

    ticket: str = Field(min_length=1, max_length=2000)
    quiz_id: str | None = Field(default=None, min_length=1, max_length=100, pattern=r"^[a-zA-Z0-9_-]+$")
    quiz: Quiz
