"""
Recent Searches.

Most-recent-first search history persisted in local state. Adding a label
that is already present (compared case-insensitively) moves it to the front
instead of growing the list.
"""

from geonotes.core.logging import get_logger
from geonotes.repositories.local_state import LocalStateRepository
from geonotes.schemas.search import RecentSearchEntry

logger = get_logger(__name__)


class RecentSearches:
    """History of search labels, capped on disk and in display."""

    def __init__(
        self,
        state: LocalStateRepository,
        storage_key: str = "recent-searches",
        max_stored: int = 8,
        max_displayed: int = 4,
    ) -> None:
        self._state = state
        self._key = storage_key
        self.max_stored = max_stored
        self.max_displayed = max_displayed
        self._entries = self._load()

    def _load(self) -> list[RecentSearchEntry]:
        raw = self._state.get(self._key, [])
        if not isinstance(raw, list):
            return []

        entries = []
        for item in raw:
            if not isinstance(item, dict):
                continue
            label = str(item.get("label") or "").strip()
            if not label:
                continue
            entries.append(RecentSearchEntry(label=label, sublabel=item.get("sublabel") or None))
        return entries[: self.max_stored]

    def _persist(self) -> None:
        self._state.set(
            self._key,
            [entry.model_dump(exclude_none=True) for entry in self._entries],
        )

    @property
    def entries(self) -> list[RecentSearchEntry]:
        """Everything stored, newest first."""
        return list(self._entries)

    @property
    def displayed(self) -> list[RecentSearchEntry]:
        """The entries a UI should show."""
        return self._entries[: self.max_displayed]

    def add(self, label: str, sublabel: str | None = None) -> RecentSearchEntry | None:
        """
        Record a search at the front of the history.

        Returns:
            The stored entry, or None if the label is blank
        """
        trimmed = label.strip()
        if not trimmed:
            return None

        entry = RecentSearchEntry(label=trimmed, sublabel=sublabel or None)
        lowered = trimmed.lower()
        remaining = [e for e in self._entries if e.label.lower() != lowered]
        self._entries = [entry, *remaining][: self.max_stored]
        self._persist()
        logger.debug("Recent search recorded", extra={"label": trimmed, "count": len(self._entries)})
        return entry

    def clear(self) -> None:
        self._entries = []
        self._persist()
