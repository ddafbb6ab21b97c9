from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterator

from gridcraft.sim.grid import CellCoord
from gridcraft.sim.spawn import require_token_value

MAX_AUDIT_ENTRIES = 256
OVERLAY_OP_PLACED = "placed"
OVERLAY_OP_MERGED = "merged"
OVERLAY_OP_CLEARED = "cleared"


@dataclass(frozen=True)
class OverlayEntry:
    """Player-authored cell content; ``value=None`` means explicitly emptied."""

    value: int | None

    @property
    def cleared(self) -> bool:
        return self.value is None


@dataclass(frozen=True)
class OverlayAuditRecord:
    op: str
    key: str
    value: int | None

    def to_dict(self) -> dict[str, Any]:
        return {"op": self.op, "key": self.key, "value": self.value}


class CellOverlayStore:
    """Sparse cell -> override map; takes precedence over spawn generation.

    Entries are never removed: a cell the player touched stays tracked so the
    generator cannot re-spawn a token the player picked up.
    """

    def __init__(self, entries: dict[CellCoord, OverlayEntry] | None = None) -> None:
        self._entries: dict[CellCoord, OverlayEntry] = dict(entries or {})
        self._audit: list[OverlayAuditRecord] = []

    def get(self, cell: CellCoord) -> OverlayEntry | None:
        return self._entries.get(cell)

    def __contains__(self, cell: object) -> bool:
        return cell in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[CellCoord]:
        return iter(sorted(self._entries))

    def items(self) -> list[tuple[CellCoord, OverlayEntry]]:
        return sorted(self._entries.items())

    def set_placed(self, cell: CellCoord, value: int) -> None:
        self._write(OVERLAY_OP_PLACED, cell, require_token_value(value, field_name="placed value"))

    def set_merged(self, cell: CellCoord, value: int) -> None:
        self._write(OVERLAY_OP_MERGED, cell, require_token_value(value, field_name="merged value"))

    def set_cleared(self, cell: CellCoord) -> None:
        self._write(OVERLAY_OP_CLEARED, cell, None)

    def audit_trail(self) -> list[dict[str, Any]]:
        return [record.to_dict() for record in self._audit]

    def _write(self, op: str, cell: CellCoord, value: int | None) -> None:
        self._entries[cell] = OverlayEntry(value=value)
        self._audit.append(OverlayAuditRecord(op=op, key=cell.key(), value=value))
        if len(self._audit) > MAX_AUDIT_ENTRIES:
            del self._audit[: len(self._audit) - MAX_AUDIT_ENTRIES]

    def to_dict(self) -> dict[str, int | None]:
        return {cell.key(): entry.value for cell, entry in self.items()}

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "CellOverlayStore":
        if not isinstance(payload, dict):
            raise ValueError("changedCells must be an object")
        entries: dict[CellCoord, OverlayEntry] = {}
        for key, value in payload.items():
            cell = CellCoord.from_key(key)
            if value is not None:
                require_token_value(value, field_name=f"changedCells[{key!r}]")
            entries[cell] = OverlayEntry(value=value)
        return cls(entries)
