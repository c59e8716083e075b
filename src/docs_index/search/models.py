"""Search data models."""

from __future__ import annotations

from array import array
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True, slots=True)
class Posting:
    """Occurrences of one term within one document.

    Only positions are stored; frequency is derived from them.
    """

    doc_id: str
    positions: array

    @classmethod
    def from_positions(cls, doc_id: str, positions: Iterable[int]) -> Posting:
        return cls(doc_id=doc_id, positions=array("I", sorted(positions)))

    @property
    def frequency(self) -> int:
        return len(self.positions)

    def to_dict(self) -> dict[str, Any]:
        return {"d": self.doc_id, "p": list(self.positions)}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Posting:
        return cls.from_positions(str(data["d"]), (int(pos) for pos in data.get("p", ())))


# Postings for one term, ordered by doc_id ascending.
PostingList = tuple[Posting, ...]
