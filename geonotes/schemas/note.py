"""
Note Schemas.

Pydantic schemas for note creation and the immutable cached note view.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class NoteCreate(BaseModel):
    """Schema for creating a new note."""

    text: str | None = Field(
        default=None,
        max_length=500,
        description="Sanitized plain-text note",
        examples=["Lovely sunset view here"],
    )
    latitude: float = Field(ge=-90, le=90, description="Latitude in degrees")
    longitude: float = Field(ge=-180, le=180, description="Longitude in degrees")
    owner_id: str = Field(min_length=1, description="Owner of the note")


class NoteRead(BaseModel):
    """Schema for a persisted note as held by the Note Store."""

    id: str = Field(description="Note unique identifier")
    created_at: datetime = Field(description="Creation timestamp (UTC)")
    text: str | None = Field(description="Note text")
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    owner_id: str

    model_config = ConfigDict(from_attributes=True, frozen=True)
