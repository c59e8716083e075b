"""Domain models for the document index.

Value objects are immutable pydantic models. The index never hands out its
own stored instances: callers receive deep copies, and documents submitted
by callers are copied before they are stored.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class IndexState(str, Enum):
    """Lifecycle state of an index instance."""

    READY = "ready"
    REBUILDING = "rebuilding"


class Document(BaseModel):
    """A unit of searchable text submitted by the ingestion layer.

    ``content`` may be ``None`` at construction time so that ingestion code can
    build partial records; the index rejects such documents on submission.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    content: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    def owned_copy(self) -> Document:
        """Return a deep copy that shares no mutable state with ``self``."""
        return self.model_copy(deep=True)


class IndexInfo(BaseModel):
    """Point-in-time summary of the index, read without taking locks."""

    model_config = ConfigDict(frozen=True)

    document_count: int = Field(ge=0)
    last_updated: datetime
    version: int = Field(ge=1)
    state: IndexState = IndexState.READY


class SearchHit(BaseModel):
    """A ranked search result."""

    model_config = ConfigDict(frozen=True)

    document_id: str
    score: float
    highlights: tuple[str, ...] = ()
    metadata: dict[str, Any] = Field(default_factory=dict)
