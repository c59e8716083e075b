"""Unit tests for index manager snapshot persistence and failure handling."""

from __future__ import annotations

import pytest

from docs_index import (
    Document,
    IndexManager,
    IndexSettings,
    IndexState,
    PersistenceError,
    RebuildFailedError,
)
from docs_index.search.snapshot import SnapshotStore


def _ids(hits) -> list[str]:
    return [hit.document_id for hit in hits]


@pytest.fixture
def persistent_index(persistent_settings):
    manager = IndexManager(persistent_settings, name="persistent")
    yield manager
    manager.close()


@pytest.fixture
def failing_save(monkeypatch):
    """Make every snapshot write fail with a disk error."""

    def _fail(self, snapshot):
        raise OSError("disk full")

    def install() -> None:
        monkeypatch.setattr(SnapshotStore, "save", _fail)

    return install


@pytest.mark.unit
class TestReload:
    def test_reopened_index_returns_identical_results(self, persistent_settings, persistent_index, sample_documents):
        for document in sample_documents:
            persistent_index.add_document(document)
        queries = ["search", "rebuild atomically", "python"]
        expected = {query: persistent_index.search(query, 10) for query in queries}
        expected_info = persistent_index.get_index_info()

        reopened = IndexManager.open(persistent_settings)

        assert {query: reopened.search(query, 10) for query in queries} == expected
        info = reopened.get_index_info()
        assert info.version == expected_info.version
        assert info.document_count == expected_info.document_count
        assert info.last_updated == expected_info.last_updated

    def test_reopened_index_continues_version_sequence(self, persistent_settings, persistent_index, fox_and_dog):
        for document in fox_and_dog:
            persistent_index.add_document(document)

        reopened = IndexManager(persistent_settings)
        reopened.remove_document("a")

        assert reopened.get_index_info().version == 4
        assert IndexManager(persistent_settings).document_ids() == ["b"]

    def test_retention_limits_snapshot_files(self, persistent_settings, persistent_index, sample_documents):
        for document in sample_documents:
            persistent_index.add_document(document)

        files = sorted(persistent_settings.snapshot_dir.glob("snapshot-*.json"))

        assert len(files) == persistent_settings.max_snapshots
        assert (persistent_settings.snapshot_dir / "manifest.json").exists()

    def test_corrupt_latest_snapshot_falls_back(self, persistent_settings, persistent_index, fox_and_dog):
        for document in fox_and_dog:
            persistent_index.add_document(document)
        SnapshotStore(persistent_settings.snapshot_dir).latest_path().write_bytes(b"\x00\x01 truncated")

        reopened = IndexManager(persistent_settings)

        assert reopened.document_ids() == ["a"]
        assert reopened.audit().ok

    def test_fallback_never_reuses_a_published_version(self, persistent_settings, persistent_index, fox_and_dog):
        for document in fox_and_dog:
            persistent_index.add_document(document)
        published = persistent_index.get_index_info().version
        SnapshotStore(persistent_settings.snapshot_dir).latest_path().write_bytes(b"\x00\x01 truncated")

        reopened = IndexManager(persistent_settings)
        assert reopened.get_index_info().version == published
        reopened.add_document(Document(id="c", content="another fox"))

        assert reopened.get_index_info().version == published + 1
        assert IndexManager(persistent_settings).document_ids() == ["a", "c"]

    def test_empty_snapshot_dir_starts_fresh(self, persistent_settings):
        manager = IndexManager(persistent_settings)
        assert manager.get_index_info().version == 1
        assert manager.document_ids() == []

    def test_analyzer_change_triggers_rebuild_on_load(self, persistent_settings, persistent_index):
        persistent_index.add_document(Document(id="x", content="the indexed documents"))
        assert _ids(persistent_index.search("the", 10)) == ["x"]

        english = persistent_settings.model_copy(update={"analyzer": "english"})
        reopened = IndexManager(english)

        assert reopened.get_index_info().version == 3
        assert reopened.search("the", 10) == []
        assert _ids(reopened.search("document index", 10)) == ["x"]
        assert reopened.audit().ok


@pytest.mark.unit
class TestFailedPersistence:
    def test_failed_add_rolls_back(self, persistent_index, fox_and_dog, failing_save):
        persistent_index.add_document(fox_and_dog[0])
        before = persistent_index.get_index_info()
        failing_save()

        with pytest.raises(PersistenceError) as excinfo:
            persistent_index.add_document(fox_and_dog[1])

        assert excinfo.value.details["operation"] == "add"
        assert persistent_index.get_index_info() == before
        assert persistent_index.search("dog", 10) == []
        assert persistent_index.document_ids() == ["a"]

    def test_failed_update_keeps_previous_content(self, persistent_index, fox_and_dog, failing_save):
        persistent_index.add_document(fox_and_dog[0])
        failing_save()

        with pytest.raises(PersistenceError):
            persistent_index.update_document(Document(id="a", content="entirely different words"))

        assert _ids(persistent_index.search("fox", 10)) == ["a"]
        assert persistent_index.search("different", 10) == []
        assert persistent_index.get_document("a").content == "the quick brown fox"

    def test_failed_remove_restores_document(self, persistent_index, fox_and_dog, failing_save):
        for document in fox_and_dog:
            persistent_index.add_document(document)
        failing_save()

        with pytest.raises(PersistenceError):
            persistent_index.remove_document("a")

        assert _ids(persistent_index.search("the", 10)) == ["b", "a"]
        assert persistent_index.get_index_info().version == 3
        assert persistent_index.audit().ok

    def test_failed_manifest_write_leaves_no_orphan_snapshot(
        self, persistent_settings, persistent_index, fox_and_dog, monkeypatch
    ):
        persistent_index.add_document(fox_and_dog[0])
        original_write = SnapshotStore._atomic_write

        def failing_manifest(self, path, payload):
            if path.name == SnapshotStore.MANIFEST_FILENAME:
                raise OSError("disk full")
            original_write(self, path, payload)

        monkeypatch.setattr(SnapshotStore, "_atomic_write", failing_manifest)

        with pytest.raises(PersistenceError):
            persistent_index.add_document(fox_and_dog[1])

        files = list(persistent_settings.snapshot_dir.glob("snapshot-*.json"))
        assert len(files) == 1
        (persistent_settings.snapshot_dir / SnapshotStore.MANIFEST_FILENAME).write_bytes(b"garbage")
        assert IndexManager(persistent_settings).document_ids() == ["a"]

    def test_version_is_not_consumed_by_failures(self, persistent_index, fox_and_dog, monkeypatch):
        original_save = SnapshotStore.save
        calls = {"count": 0}

        def flaky_save(self, snapshot):
            calls["count"] += 1
            if calls["count"] == 1:
                raise OSError("transient")
            return original_save(self, snapshot)

        monkeypatch.setattr(SnapshotStore, "save", flaky_save)

        with pytest.raises(PersistenceError):
            persistent_index.add_document(fox_and_dog[0])
        persistent_index.add_document(fox_and_dog[0])

        assert persistent_index.get_index_info().version == 2

    def test_failed_rebuild_keeps_live_index(self, persistent_index, fox_and_dog, failing_save):
        for document in fox_and_dog:
            persistent_index.add_document(document)
        expected = persistent_index.search("the", 10)
        failing_save()

        with pytest.raises(RebuildFailedError):
            persistent_index.rebuild()

        info = persistent_index.get_index_info()
        assert info.version == 3
        assert info.state is IndexState.READY
        assert persistent_index.search("the", 10) == expected

    def test_unserializable_metadata_is_rejected_when_persistent(self, persistent_index):
        with pytest.raises(PersistenceError):
            persistent_index.add_document(Document(id="x", content="alpha", metadata={"handle": object()}))
        assert persistent_index.document_ids() == []

    def test_unserializable_metadata_is_fine_in_memory(self):
        manager = IndexManager(IndexSettings())
        manager.add_document(Document(id="x", content="alpha", metadata={"handle": object()}))
        assert manager.document_ids() == ["x"]
