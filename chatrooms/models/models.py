# chatrooms/models/models.py
from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field, field_serializer, field_validator


def blank_to_none(value):
    if isinstance(value, str):
        value = value.strip()
        return value or None
    return value


def empty_to_none(value):
    # addressing labels are kept verbatim; only "" means absent
    if value == "":
        return None
    return value


class JoinRoomRequest(BaseModel):
    room: Optional[str] = None

    @field_validator("room", mode="before")
    @classmethod
    def drop_empty_room(cls, value):
        return empty_to_none(value)


class SendMessageRequest(BaseModel):
    """Inbound sendMessage payload.

    ``sender`` and ``content`` are trimmed and count as absent when blank.
    ``room`` and ``receiver`` are routing labels and are kept as sent, apart
    from the empty string which counts as absent.
    """

    sender: Optional[str] = None
    receiver: Optional[str] = None
    content: Optional[str] = None
    room: Optional[str] = None

    @field_validator("sender", "content", mode="before")
    @classmethod
    def strip_fields(cls, value):
        return blank_to_none(value)

    @field_validator("receiver", "room", mode="before")
    @classmethod
    def drop_empty_labels(cls, value):
        return empty_to_none(value)


class UserSummary(BaseModel):
    id: str
    name: Optional[str] = None
    email: Optional[str] = None


class MessageOut(BaseModel):
    """Outbound newMessage payload and history item."""

    id: str
    sender: UserSummary
    receiver: Optional[UserSummary] = None
    content: str
    room: Optional[str] = None
    created_at: datetime = Field(serialization_alias="createdAt")

    @field_serializer("created_at")
    def serialize_created_at(self, value: datetime) -> str:
        # sqlite hands back naive datetimes; everything is stored as UTC
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.isoformat()

    def to_payload(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)
