"""Device-local memory of the last joined game, used to resume after a reload."""

from __future__ import annotations

from dataclasses import dataclass
import json
import logging
from pathlib import Path

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class RejoinHint:
    pin: str
    name: str


class RejoinHintStore:
    """Keeps a single pin + name pair in a small JSON file."""

    def __init__(self, path: Path) -> None:
        self._path = path

    def save(self, pin: str, name: str) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(json.dumps({"pin": pin, "name": name}), encoding="utf-8")

    def load(self) -> RejoinHint | None:
        if not self._path.exists():
            return None
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            logger.warning("Ignoring unreadable rejoin hint at %s", self._path)
            return None
        if not isinstance(data, dict):
            return None
        pin, name = data.get("pin"), data.get("name")
        if not isinstance(pin, str) or not isinstance(name, str) or not pin or not name:
            return None
        return RejoinHint(pin=pin, name=name)

    def clear(self) -> None:
        self._path.unlink(missing_ok=True)
