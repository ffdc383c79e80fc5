"""Unit tests for the correction store and its backends."""

import json

import pytest

from chatlens.learning.store import (
    STORAGE_KEY,
    CorrectionRecord,
    CorrectionStore,
    InMemoryBackend,
    JsonFileBackend,
    SqliteBackend,
    StoreError,
    StructureCorrection,
    get_default_store,
)
from chatlens.pipeline.models import Role


def _record(timestamp: int = 1_000, text: str = "fix the login bug") -> CorrectionRecord:
    return CorrectionRecord(
        timestamp=timestamp,
        text_snippet=text,
        original_role=Role.AI,
        corrected_role=Role.USER,
        active_features=["shortText", "hasImperativeForm"],
        char_count=len(text),
        original_confidence=0.4,
    )


class _FailingBackend:
    def get(self, key):
        raise StoreError("read failed")

    def set(self, key, value):
        raise StoreError("write failed")

    def delete(self, key):
        raise StoreError("delete failed")


class TestCorrectionRecord:
    """Tests for persisted record models."""

    def test_snippet_truncated(self):
        assert len(_record(text="x" * 500).text_snippet) == 200

    def test_camel_case_aliases(self):
        dumped = _record().model_dump(by_alias=True)
        assert "textSnippet" in dumped
        assert "originalRole" in dumped
        assert CorrectionRecord.model_validate(dumped) == _record()


class TestCorrectionStore:
    """Tests for store operations on the in-memory backend."""

    def test_empty_store(self, memory_store):
        data = memory_store.load()
        assert data.version == 1
        assert data.role_corrections == []
        assert data.weight_deltas == {}

    def test_role_corrections_capped_newest_kept(self):
        store = CorrectionStore(InMemoryBackend(), max_role_corrections=3)
        for ts in range(5):
            store.add_role_correction(_record(timestamp=ts))
        assert [r.timestamp for r in store.role_corrections()] == [2, 3, 4]

    def test_structure_corrections_capped(self):
        store = CorrectionStore(InMemoryBackend(), max_structure_corrections=2)
        for ts in range(3):
            store.add_structure_correction(StructureCorrection(timestamp=ts, type="merge", text_snippets=["a", "b"]))
        assert [r.timestamp for r in store.structure_corrections()] == [1, 2]

    def test_persisted_layout(self, memory_store):
        memory_store.add_role_correction(_record())
        memory_store.set_weight_deltas({"shortText": -0.15})

        payload = json.loads(memory_store.backend.get(STORAGE_KEY))
        assert payload["version"] == 1
        assert payload["weightDeltas"] == {"shortText": -0.15}
        assert payload["roleCorrections"][0]["correctedRole"] == "user"

    def test_version_mismatch_resets(self, memory_store):
        memory_store.backend.set(STORAGE_KEY, json.dumps({"version": 99, "weightDeltas": {"shortText": 1.0}}))
        assert memory_store.load().weight_deltas == {}

    def test_corrupt_document_resets(self, memory_store):
        memory_store.backend.set(STORAGE_KEY, "{not json")
        assert memory_store.load().role_corrections == []

    def test_invalid_document_resets(self, memory_store):
        memory_store.backend.set(STORAGE_KEY, json.dumps({"version": 1, "roleCorrections": [{"timestamp": "soon"}]}))
        assert memory_store.load().role_corrections == []

    def test_backend_failures_are_swallowed(self):
        store = CorrectionStore(_FailingBackend())
        assert store.load().role_corrections == []
        assert store.save(store.load()) is False
        store.add_role_correction(_record())

    def test_user_topics(self, memory_store):
        memory_store.add_user_topic("TERRAFORM", ["tfstate", "terraform plan"])
        entry = memory_store.add_user_topic("TERRAFORM", ["tfstate", "hcl"])

        assert entry.keywords == ["tfstate", "terraform plan", "hcl"]
        assert memory_store.user_topic_dictionary() == {"TERRAFORM": ["tfstate", "terraform plan", "hcl"]}
        assert memory_store.remove_user_topic("TERRAFORM") is True
        assert memory_store.remove_user_topic("TERRAFORM") is False
        assert memory_store.user_topics() == []

    def test_user_topic_timestamp_from_clock(self):
        store = CorrectionStore(InMemoryBackend(), clock=lambda: 42)
        assert store.add_user_topic("HCL", ["hcl"]).added_at == 42

    def test_weight_deltas_replaced(self, memory_store):
        memory_store.set_weight_deltas({"shortText": 1.0, "hasTable": 0.5})
        memory_store.set_weight_deltas({"hasTable": -0.2})
        assert memory_store.weight_deltas() == {"hasTable": -0.2}

    def test_stats_and_clear(self, memory_store):
        memory_store.add_role_correction(_record())
        memory_store.add_structure_correction(StructureCorrection(timestamp=1, type="split"))
        memory_store.add_user_topic("HCL", ["hcl"])
        memory_store.set_weight_deltas({"shortText": 1.0})

        stats = memory_store.stats()
        assert stats.total_corrections == 2
        assert stats.role_corrections == 1
        assert stats.structure_corrections == 1
        assert stats.user_topics == 1
        assert stats.learned_features == 1

        memory_store.clear()
        assert memory_store.stats().total_corrections == 0
        assert memory_store.weight_deltas() == {}


class TestBackends:
    """Tests for file and SQLite persistence."""

    def test_json_file_backend_persists(self, tmp_path):
        CorrectionStore(JsonFileBackend(tmp_path)).add_role_correction(_record())

        reopened = CorrectionStore(JsonFileBackend(tmp_path))
        assert len(reopened.role_corrections()) == 1
        assert (tmp_path / f"{STORAGE_KEY}.json").exists()
        assert not list(tmp_path.glob("*.tmp"))

    def test_json_file_backend_missing_key(self, tmp_path):
        backend = JsonFileBackend(tmp_path / "nested")
        assert backend.get("absent") is None
        backend.delete("absent")

    def test_sqlite_backend_persists(self, tmp_path):
        path = tmp_path / "store" / "chatlens.db"
        CorrectionStore(SqliteBackend(path)).set_weight_deltas({"hasTable": 0.3})

        reopened = CorrectionStore(SqliteBackend(path))
        assert reopened.weight_deltas() == {"hasTable": 0.3}

    def test_sqlite_backend_set_get_delete(self, tmp_path):
        backend = SqliteBackend(tmp_path / "kv.db")
        backend.set("k", "v1")
        backend.set("k", "v2")
        assert backend.get("k") == "v2"
        backend.delete("k")
        assert backend.get("k") is None

    def test_sqlite_backend_needs_location(self):
        with pytest.raises(ValueError):
            SqliteBackend()

    @pytest.mark.parametrize("backend,expected", [
        ("memory", InMemoryBackend),
        ("file", JsonFileBackend),
        ("sqlite", SqliteBackend),
    ])
    def test_default_store_backend(self, backend, expected, settings):
        store = get_default_store(settings.model_copy(update={"store_backend": backend}))
        assert isinstance(store.backend, expected)
        assert store.max_role_corrections == settings.max_role_corrections


class TestUnusableStorage:
    """Tests for stores whose storage cannot be read or written."""

    def test_undecodable_file_resets(self, tmp_path):
        (tmp_path / f"{STORAGE_KEY}.json").write_bytes(b"\xff\xfe\x00bad")
        store = CorrectionStore(JsonFileBackend(tmp_path))

        assert store.load().role_corrections == []
        with pytest.raises(StoreError):
            store.backend.get(STORAGE_KEY)

    def test_boolean_version_rejected(self, memory_store):
        memory_store.backend.set(STORAGE_KEY, json.dumps({"version": True, "weightDeltas": {"shortText": 1.0}}))
        assert memory_store.load().weight_deltas == {}

    def test_sqlite_under_a_file_does_not_raise(self, tmp_path, settings):
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory", encoding="utf-8")
        store = get_default_store(settings.model_copy(update={"store_backend": "sqlite", "store_path": blocker / "sub"}))

        assert store.load().weight_deltas == {}
        assert store.save(store.load()) is False
        store.add_user_topic("HCL", ["hcl"])

    def test_sqlite_backend_raises_store_error(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("", encoding="utf-8")
        backend = SqliteBackend(blocker / "kv.db")

        with pytest.raises(StoreError):
            backend.get("k")

    def test_failed_write_leaves_no_temp_file(self, tmp_path, monkeypatch):
        def fail_replace(src, dst):
            raise OSError("disk full")

        monkeypatch.setattr("chatlens.learning.store.os.replace", fail_replace)
        backend = JsonFileBackend(tmp_path)

        with pytest.raises(StoreError):
            backend.set("k", "value")
        assert list(tmp_path.iterdir()) == []
