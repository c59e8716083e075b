"""Shared test fixtures and configuration."""

from __future__ import annotations

import os
from pathlib import Path
import sys

import pytest


REPO_ROOT = Path(__file__).resolve().parents[1]
SRC_ROOT = REPO_ROOT / "src"
if str(SRC_ROOT) not in sys.path:
    sys.path.insert(0, str(SRC_ROOT))

from docs_index.config import IndexSettings
from docs_index.domain.model import Document
from docs_index.index_manager import IndexManager


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch, tmp_path):
    """Strip DOCS_INDEX_* variables and run each test away from any local .env file."""
    for key in list(os.environ):
        if key.upper().startswith("DOCS_INDEX_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def settings() -> IndexSettings:
    return IndexSettings()


@pytest.fixture
def index(settings: IndexSettings) -> IndexManager:
    manager = IndexManager(settings, name="test")
    yield manager
    manager.close()


@pytest.fixture
def snapshot_dir(tmp_path: Path) -> Path:
    return tmp_path / "snapshots"


@pytest.fixture
def persistent_settings(snapshot_dir: Path) -> IndexSettings:
    return IndexSettings(snapshot_dir=snapshot_dir, max_snapshots=3)


@pytest.fixture
def fox_and_dog() -> list[Document]:
    return [
        Document(id="a", content="the quick brown fox"),
        Document(id="b", content="the lazy dog"),
    ]


@pytest.fixture
def sample_documents() -> list[Document]:
    return [
        Document(
            id="guide/install",
            content="Install the package with pip. The installer checks your Python version first.",
            metadata={"source": "docs", "type": "markdown"},
        ),
        Document(
            id="guide/search",
            content="Search queries are tokenized and ranked with BM25. Short documents rank higher.",
            metadata={"source": "docs", "type": "markdown"},
        ),
        Document(
            id="guide/snapshots",
            content="Snapshots are written atomically. A crash never leaves a half written snapshot.",
            metadata={"source": "docs", "type": "markdown"},
        ),
        Document(
            id="issues/42",
            content="Search returns stale results after rebuild? Rebuild swaps postings atomically.",
            metadata={"source": "github", "type": "issue"},
        ),
    ]
