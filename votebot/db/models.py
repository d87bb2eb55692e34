import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator

VoteValue = Literal[1, -1]


class User(BaseModel):
    """Represents a user seen in the room."""

    user_id: str
    username: str

    @field_validator("user_id")
    def user_id_must_not_be_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("user_id must not be blank")
        return v


class MediaPlay(BaseModel):
    """Represents one play of a media item, attributed to the user who played it."""

    user_id: str
    video_id: str
    title: str
    duration: int  # in seconds
    played_on: datetime.datetime = Field(default_factory=datetime.datetime.now)

    @field_validator("duration")
    def duration_must_not_be_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("Duration must not be negative")
        return v


class MediaVote(BaseModel):
    """Represents a user's vote on a play. One vote per user per play."""

    user_id: str
    play_id: int
    vote: VoteValue


class VoteTally(BaseModel):
    """Vote counts grouped by polarity."""

    positive: int = 0
    negative: int = 0


class WriteResult(BaseModel):
    """Outcome of a single write statement."""

    inserted_id: Optional[int] = None
    rows_changed: int = 0
