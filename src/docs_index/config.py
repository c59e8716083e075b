"""Centralized configuration for docs-index using Pydantic Settings."""

from __future__ import annotations

from pathlib import Path

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from docs_index.search.analyzers import available_analyzers


class IndexSettings(BaseSettings):
    """Strictly typed index configuration loaded from ``DOCS_INDEX_*`` variables."""

    model_config = SettingsConfigDict(
        env_prefix="DOCS_INDEX_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        validate_default=True,
        extra="ignore",
    )

    # Persistence
    snapshot_dir: Path | None = Field(
        default=None, description="Directory for index snapshots; unset keeps the index in memory only"
    )
    max_snapshots: int = Field(default=3, ge=1, description="Snapshots retained on disk")

    # Analysis and scoring
    analyzer: str = Field(default="simple", description="Analyzer used for both documents and queries")
    bm25_k1: float = Field(default=1.2, gt=0.0, description="BM25 term frequency saturation")
    bm25_b: float = Field(default=0.75, ge=0.0, le=1.0, description="BM25 length normalization")
    enable_phrase_bonus: bool = Field(default=False, description="Boost documents where query terms are adjacent")

    # Query defaults
    default_search_limit: int = Field(default=20, ge=1, description="Result cap when a search passes no limit")
    max_search_limit: int = Field(default=1000, ge=1, description="Upper bound applied to requested limits")
    score_threshold: float = Field(default=0.0, ge=0.0, description="Hits scoring below this are dropped")
    snippet_max_chars: int = Field(default=300, ge=40, description="Maximum characters per highlight snippet")

    # Logging
    log_level: str = Field(default="info", description="Logging level")
    log_json: bool = Field(default=True, description="Emit structured JSON logs")

    @field_validator("analyzer")
    @classmethod
    def _check_analyzer(cls, value: str) -> str:
        normalized = value.strip().lower()
        if normalized not in available_analyzers():
            raise ValueError(f"Unknown analyzer '{value}'. Available: {available_analyzers()}")
        return normalized

    @model_validator(mode="after")
    def _check_limits(self) -> IndexSettings:
        if self.default_search_limit > self.max_search_limit:
            raise ValueError(
                "DOCS_INDEX_DEFAULT_SEARCH_LIMIT must not exceed DOCS_INDEX_MAX_SEARCH_LIMIT "
                f"({self.default_search_limit} > {self.max_search_limit})"
            )
        return self

    def is_persistent(self) -> bool:
        return self.snapshot_dir is not None
