"""
GeoPin State Machine.

Drives a single dropped pin from placement through note editing to save or
cancel:

    Idle ──drop──▶ Dropped ──start_note──▶ Editing ──save ok──▶ Idle
      ▲               │                       │  └─save failed─▶ Editing
      └─cancel/Esc────┴───────────────────────┘

At most one pin exists. Dropping again replaces it (old marker removed).

A save in flight belongs to the draft that started it. If the pin is
replaced, cancelled or escaped before the save completes, the save is
superseded: a moderation verdict that arrives late never leads to a
persistence call, and a persistence result that arrives late never touches
the pin state. Once issued, the persistence call itself cannot be recalled.

State is explicit: callers read it through ``snapshot()``; nothing is
shared through module globals.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Literal

from geonotes.core.concurrency import RequestGeneration
from geonotes.core.exceptions import InvalidStateError, PersistenceError
from geonotes.core.logging import get_logger, log_with_source
from geonotes.schemas.geo import Coordinates
from geonotes.schemas.note import NoteCreate, NoteRead
from geonotes.services.map_view import MarkerLayer
from geonotes.services.moderation import ModerationStrategy, normalize_note_text
from geonotes.services.note_store import NoteStore

logger = get_logger(__name__)

ESCAPE_KEY = "Escape"


class PinState(str, Enum):
    IDLE = "idle"
    DROPPED = "dropped"
    EDITING = "editing"


@dataclass(frozen=True)
class GeoPin:
    coordinates: Coordinates
    marker_ref: str | None = None


@dataclass(frozen=True)
class PinSnapshot:
    state: PinState
    pin: GeoPin | None
    draft: str
    error: str | None


@dataclass(frozen=True)
class SaveOutcome:
    status: Literal["saved", "rejected", "failed", "superseded"]
    note: NoteRead | None = None
    reason: str | None = None

    @property
    def saved(self) -> bool:
        return self.status == "saved"


class GeoPinStateMachine:
    """Pin lifecycle for one user session."""

    def __init__(
        self,
        gate: ModerationStrategy,
        store: NoteStore,
        markers: MarkerLayer | None = None,
    ) -> None:
        self._gate = gate
        self._store = store
        self._markers = markers
        self._state = PinState.IDLE
        self._pin: GeoPin | None = None
        self._draft = ""
        self._error: str | None = None
        self._drafts = RequestGeneration()

    @property
    def state(self) -> PinState:
        return self._state

    def snapshot(self) -> PinSnapshot:
        return PinSnapshot(state=self._state, pin=self._pin, draft=self._draft, error=self._error)

    def drop(self, coordinates: Coordinates) -> PinSnapshot:
        """Place a pin, replacing any existing one and its draft."""
        self._discard_pin()

        marker_ref = self._markers.add_marker(coordinates) if self._markers is not None else None
        self._pin = GeoPin(coordinates=coordinates, marker_ref=marker_ref)
        self._state = PinState.DROPPED
        log_with_source(
            logger, "engine", "debug", "Pin dropped",
            latitude=coordinates.latitude, longitude=coordinates.longitude,
        )
        return self.snapshot()

    def start_note(self) -> PinSnapshot:
        """Open the note editor for the dropped pin."""
        if self._state is not PinState.DROPPED:
            raise InvalidStateError(f"Cannot start a note while {self._state.value}")
        self._state = PinState.EDITING
        self._draft = ""
        self._error = None
        return self.snapshot()

    def update_draft(self, text: str) -> PinSnapshot:
        if self._state is not PinState.EDITING:
            raise InvalidStateError(f"Cannot edit a draft while {self._state.value}")
        self._draft = text
        return self.snapshot()

    def cancel(self) -> PinSnapshot:
        """Discard the pin, its marker and any unsaved draft."""
        self._discard_pin()
        return self.snapshot()

    def handle_key(self, key: str) -> PinSnapshot:
        if key == ESCAPE_KEY:
            return self.cancel()
        return self.snapshot()

    async def save(self, text: str | None = None) -> SaveOutcome:
        """
        Moderate and persist the draft (``text`` replaces it if given).

        Returns:
            SaveOutcome; on anything but "saved" or "superseded" the machine
            stays in Editing with ``error`` set to the reason

        Raises:
            InvalidStateError: If not editing
        """
        if self._state is not PinState.EDITING or self._pin is None:
            raise InvalidStateError(f"Cannot save while {self._state.value}")

        if text is not None:
            self._draft = text
        draft = self._draft
        pin = self._pin
        token = self._drafts.advance()

        verdict = await self._gate.validate(draft)
        if not self._drafts.is_current(token):
            return self._superseded("moderation")
        if not verdict.allowed:
            return self._fail("rejected", verdict.reason)

        try:
            note = await self._store.create(NoteCreate(
                text=normalize_note_text(draft),
                latitude=pin.coordinates.latitude,
                longitude=pin.coordinates.longitude,
                owner_id=self._store.owner_id,
            ))
        except PersistenceError as e:
            if not self._drafts.is_current(token):
                return self._superseded("persistence")
            return self._fail("failed", e.message)

        if not self._drafts.is_current(token):
            return self._superseded("persistence")

        log_with_source(logger, "engine", "info", "Note saved", note_id=note.id)
        self._discard_pin()
        return SaveOutcome(status="saved", note=note)

    def _fail(self, status: Literal["rejected", "failed"], reason: str | None) -> SaveOutcome:
        self._error = reason
        log_with_source(logger, "engine", "info", "Note not saved", status=status, reason=reason)
        return SaveOutcome(status=status, reason=reason)

    def _superseded(self, stage: str) -> SaveOutcome:
        log_with_source(logger, "engine", "debug", "Ignoring result for superseded draft", stage=stage)
        return SaveOutcome(status="superseded")

    def _discard_pin(self) -> None:
        self._drafts.invalidate()
        if self._pin is not None and self._pin.marker_ref is not None and self._markers is not None:
            self._markers.remove_marker(self._pin.marker_ref)
        self._pin = None
        self._state = PinState.IDLE
        self._draft = ""
        self._error = None
