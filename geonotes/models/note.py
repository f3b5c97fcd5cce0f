"""
Note Model.

Database model for geo-pinned notes. Notes are insert/delete only.
"""

from sqlalchemy import CheckConstraint, Float, String
from sqlalchemy.orm import Mapped, mapped_column

from geonotes.models.base import Base, CreatedAtMixin, UUIDMixin


class Note(UUIDMixin, CreatedAtMixin, Base):
    """
    Note database model.

    A short moderated text attached to a latitude/longitude pair and
    owned by the user who dropped the pin.
    """

    __tablename__ = "notes"
    __table_args__ = (
        CheckConstraint("latitude >= -90 AND latitude <= 90", name="ck_notes_latitude"),
        CheckConstraint("longitude >= -180 AND longitude <= 180", name="ck_notes_longitude"),
    )

    text: Mapped[str | None] = mapped_column(
        String(500),
        nullable=True,
    )
    latitude: Mapped[float] = mapped_column(
        Float,
        nullable=False,
    )
    longitude: Mapped[float] = mapped_column(
        Float,
        nullable=False,
    )
    owner_id: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        index=True,
    )

    def __repr__(self) -> str:
        return f"<Note(id={self.id}, lat={self.latitude}, lng={self.longitude})>"
