"""
Event Schemas.

Change notifications emitted by the persistence backend. A notification
names the table and the kind of row mutation only; it carries no row data,
so consumers always re-read the table to learn the new truth.

Usage:
    from geonotes.events.schemas import TableChanged

    event = TableChanged(event_type="INSERT", table="notes", source="note-backend")
"""

from typing import Literal
from uuid import uuid4

from pydantic import BaseModel, Field

from geonotes.core.utils import utc_now

ChangeType = Literal["INSERT", "UPDATE", "DELETE"]


class EventEnvelope(BaseModel):
    """Base event envelope. All events inherit from this.

    Fields:
        event_id: Unique event identifier (auto-generated UUID)
        event_type: Kind of event
        timestamp: ISO 8601 UTC timestamp
        source: Component that published the event
    """

    event_id: str = Field(default_factory=lambda: str(uuid4()))
    event_type: str
    timestamp: str = Field(default_factory=lambda: utc_now().isoformat())
    source: str


class TableChanged(EventEnvelope):
    """Published after a committed insert, update or delete on a table."""

    event_type: ChangeType
    table: str
