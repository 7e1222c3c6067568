import json
from unittest.mock import MagicMock, patch

import pytest
import redis

from tools.approval_store import ApprovalStore, JsonFileBackend, RedisBackend, build_store


def make_approval(approval_id, status="pending"):
    return {
        "id": approval_id,
        "lead_data": {"club_name": "Test Club", "score": 75},
        "status": status,
        "created_at": "2026-10-01T12:00:00+00:00",
        "view_count": 0
    }


class TestJsonFileBackend:
    """Test snapshot persistence on local disk."""

    def test_round_trip_across_restart(self, tmp_path):
        path = str(tmp_path / "approvals.json")
        store = ApprovalStore(JsonFileBackend(path))
        store.put("lead_1", make_approval("lead_1"))
        store.put("lead_2", make_approval("lead_2", status="approved"))

        reloaded = ApprovalStore(JsonFileBackend(path))

        assert len(reloaded) == 2
        assert reloaded.get("lead_1")["status"] == "pending"
        assert reloaded.get("lead_2")["status"] == "approved"

    def test_snapshot_is_list_of_pairs(self, tmp_path):
        path = tmp_path / "approvals.json"
        store = ApprovalStore(JsonFileBackend(str(path)))
        store.put("lead_1", make_approval("lead_1"))

        pairs = json.loads(path.read_text())

        assert pairs[0][0] == "lead_1"
        assert pairs[0][1]["id"] == "lead_1"

    def test_missing_snapshot_starts_empty(self, tmp_path):
        store = ApprovalStore(JsonFileBackend(str(tmp_path / "nested" / "approvals.json")))

        assert len(store) == 0

    def test_creates_parent_directory_on_save(self, tmp_path):
        path = tmp_path / "nested" / "approvals.json"
        store = ApprovalStore(JsonFileBackend(str(path)))

        store.put("lead_1", make_approval("lead_1"))

        assert path.exists()
        assert list(path.parent.glob("*.tmp")) == []

    def test_corrupt_snapshot_starts_empty(self, tmp_path):
        path = tmp_path / "approvals.json"
        path.write_text("{not json")

        store = ApprovalStore(JsonFileBackend(str(path)))

        assert len(store) == 0


class TestApprovalStore:
    """Test the in-memory registry and its write-through behaviour."""

    def setup_method(self):
        self.backend = MagicMock()
        self.backend.load.return_value = {}

    def test_put_saves_every_change(self):
        store = ApprovalStore(self.backend)
        store.put("lead_1", make_approval("lead_1"))
        store.remove("lead_1")

        assert self.backend.save.call_count == 2
        assert "lead_1" not in store

    def test_get_returns_copy(self):
        store = ApprovalStore(self.backend)
        store.put("lead_1", make_approval("lead_1"))

        approval = store.get("lead_1")
        approval["status"] = "approved"

        assert store.get("lead_1")["status"] == "pending"

    def test_get_unknown_returns_none(self):
        store = ApprovalStore(self.backend)

        assert store.get("lead_missing") is None
        assert store.remove("lead_missing") is False

    def test_failed_save_rolls_back_insert(self):
        store = ApprovalStore(self.backend)
        self.backend.save.side_effect = OSError("disk full")

        with pytest.raises(OSError):
            store.put("lead_1", make_approval("lead_1"))

        assert store.get("lead_1") is None

    def test_failed_save_rolls_back_update(self):
        store = ApprovalStore(self.backend)
        store.put("lead_1", make_approval("lead_1"))
        self.backend.save.side_effect = OSError("disk full")

        with pytest.raises(OSError):
            store.put("lead_1", make_approval("lead_1", status="approved"))
        with pytest.raises(OSError):
            store.remove("lead_1")

        assert store.get("lead_1")["status"] == "pending"

    def test_list_with_predicate(self):
        store = ApprovalStore(self.backend)
        store.put("lead_1", make_approval("lead_1"))
        store.put("lead_2", make_approval("lead_2", status="rejected"))

        pending = store.list(lambda a: a["status"] == "pending")

        assert [a["id"] for a in pending] == ["lead_1"]
        assert len(store.list()) == 2


class TestRedisBackend:
    """Test the Redis hash backend."""

    def test_load_decodes_hash(self):
        client = MagicMock()
        client.hgetall.return_value = {b"lead_1": json.dumps(make_approval("lead_1")).encode()}

        approvals = RedisBackend(client, "bd:test").load()

        client.hgetall.assert_called_once_with("bd:test")
        assert approvals["lead_1"]["status"] == "pending"

    def test_save_replaces_hash_atomically(self):
        client = MagicMock()
        pipe = client.pipeline.return_value

        RedisBackend(client, "bd:test").save({"lead_1": make_approval("lead_1")})

        client.pipeline.assert_called_once_with(transaction=True)
        pipe.delete.assert_called_once_with("bd:test")
        mapping = pipe.hset.call_args.kwargs["mapping"]
        assert json.loads(mapping["lead_1"])["id"] == "lead_1"
        pipe.execute.assert_called_once()

    def test_save_empty_only_deletes(self):
        client = MagicMock()
        pipe = client.pipeline.return_value

        RedisBackend(client).save({})

        pipe.delete.assert_called_once_with("bd:approvals")
        pipe.hset.assert_not_called()


class TestBuildStore:
    """Test backend selection from the environment."""

    def test_defaults_to_file_backend(self, tmp_path, monkeypatch):
        monkeypatch.delenv("APPROVAL_STORE_BACKEND", raising=False)
        monkeypatch.setenv("APPROVAL_STORE_PATH", str(tmp_path / "approvals.json"))

        store = build_store()

        assert isinstance(store.backend, JsonFileBackend)
        assert store.backend.path == str(tmp_path / "approvals.json")

    def test_redis_backend_when_reachable(self, monkeypatch):
        monkeypatch.setenv("APPROVAL_STORE_BACKEND", "redis")
        client = MagicMock()
        client.hgetall.return_value = {}

        with patch("tools.approval_store.redis.from_url", return_value=client):
            store = build_store()

        assert isinstance(store.backend, RedisBackend)
        client.ping.assert_called_once()

    def test_falls_back_to_file_when_redis_down(self, tmp_path, monkeypatch):
        monkeypatch.setenv("APPROVAL_STORE_BACKEND", "redis")
        monkeypatch.setenv("APPROVAL_STORE_PATH", str(tmp_path / "approvals.json"))
        client = MagicMock()
        client.ping.side_effect = redis.ConnectionError("connection refused")

        with patch("tools.approval_store.redis.from_url", return_value=client):
            store = build_store()

        assert isinstance(store.backend, JsonFileBackend)
