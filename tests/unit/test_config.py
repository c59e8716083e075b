"""Tests for IndexSettings."""

from __future__ import annotations

from pathlib import Path

from pydantic import ValidationError
import pytest

from docs_index.config import IndexSettings


@pytest.mark.unit
class TestIndexSettings:
    def test_defaults(self):
        settings = IndexSettings()

        assert settings.snapshot_dir is None
        assert not settings.is_persistent()
        assert settings.analyzer == "simple"
        assert settings.bm25_k1 == 1.2
        assert settings.bm25_b == 0.75
        assert settings.default_search_limit == 20
        assert settings.max_search_limit == 1000
        assert settings.max_snapshots == 3

    def test_reads_prefixed_environment(self, monkeypatch, tmp_path):
        monkeypatch.setenv("DOCS_INDEX_SNAPSHOT_DIR", str(tmp_path / "snaps"))
        monkeypatch.setenv("DOCS_INDEX_ANALYZER", " English ")
        monkeypatch.setenv("DOCS_INDEX_ENABLE_PHRASE_BONUS", "true")

        settings = IndexSettings()

        assert settings.snapshot_dir == Path(tmp_path / "snaps")
        assert settings.is_persistent()
        assert settings.analyzer == "english"
        assert settings.enable_phrase_bonus is True

    def test_reads_dotenv_file(self, tmp_path):
        (tmp_path / ".env").write_text("DOCS_INDEX_MAX_SNAPSHOTS=5\nUNRELATED=1\n", encoding="utf-8")
        assert IndexSettings().max_snapshots == 5

    def test_rejects_unknown_analyzer(self):
        with pytest.raises(ValidationError, match="Unknown analyzer"):
            IndexSettings(analyzer="klingon")

    def test_rejects_default_limit_above_max(self):
        with pytest.raises(ValidationError, match="must not exceed"):
            IndexSettings(default_search_limit=50, max_search_limit=10)

    @pytest.mark.parametrize(
        "overrides",
        [
            {"bm25_b": 1.5},
            {"bm25_k1": 0},
            {"max_snapshots": 0},
            {"score_threshold": -0.1},
            {"snippet_max_chars": 10},
        ],
    )
    def test_rejects_out_of_range_values(self, overrides):
        with pytest.raises(ValidationError):
            IndexSettings(**overrides)
