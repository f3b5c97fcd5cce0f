"""
Local State Repository.

Small keyed JSON document on local disk for client-side state that must
survive restarts (recent searches). Each key holds an arbitrary JSON value.
"""

import json
from pathlib import Path
from typing import Any

from geonotes.core.logging import get_logger

logger = get_logger(__name__)


class LocalStateRepository:
    """Read and write JSON values under fixed keys in one local file.

    A missing or unreadable file is treated as empty state; writes replace
    the whole file atomically via a temporary sibling.
    """

    def __init__(self, path: Path) -> None:
        self.path = path

    def _read_all(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(
                "Local state unreadable, starting empty",
                extra={"path": str(self.path), "error": str(e)},
            )
            return {}
        return data if isinstance(data, dict) else {}

    def get(self, key: str, default: Any = None) -> Any:
        return self._read_all().get(key, default)

    def set(self, key: str, value: Any) -> None:
        data = self._read_all()
        data[key] = value
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")
        tmp_path.replace(self.path)
