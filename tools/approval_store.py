import copy
import json
import os
import tempfile
from typing import Any, Callable, Dict, List, Optional

import redis
from loguru import logger

from graph.state import Approval

DEFAULT_STORE_PATH = "data/pending-approvals.json"


class JsonFileBackend:
    """Snapshot persistence as a JSON array of [id, approval] pairs on local disk."""

    def __init__(self, path: str = DEFAULT_STORE_PATH):
        self.path = path

    def load(self) -> Dict[str, Approval]:
        if not os.path.exists(self.path):
            logger.info(f"No approvals snapshot at {self.path}, starting fresh")
            return {}

        try:
            with open(self.path, "r") as f:
                pairs = json.load(f)
            return {approval_id: approval for approval_id, approval in pairs}
        except (json.JSONDecodeError, TypeError, ValueError) as e:
            logger.error(f"Invalid approvals snapshot {self.path}: {e}")
            return {}

    def save(self, approvals: Dict[str, Approval]) -> None:
        directory = os.path.dirname(self.path) or "."
        os.makedirs(directory, exist_ok=True)

        # Write the full snapshot next to the target, then swap it in
        fd, tmp_path = tempfile.mkstemp(dir=directory, suffix=".tmp")
        try:
            with os.fdopen(fd, "w") as f:
                json.dump(list(approvals.items()), f, indent=2)
            os.replace(tmp_path, self.path)
        except Exception:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise


class RedisBackend:
    """Snapshot persistence as a Redis hash of approval id -> JSON approval."""

    def __init__(self, client: "redis.Redis", key: str = "bd:approvals"):
        self.r = client
        self.key = key

    def load(self) -> Dict[str, Approval]:
        raw = self.r.hgetall(self.key) or {}
        approvals = {}
        for approval_id, value in raw.items():
            if isinstance(approval_id, bytes):
                approval_id = approval_id.decode()
            approvals[approval_id] = json.loads(value)
        return approvals

    def save(self, approvals: Dict[str, Approval]) -> None:
        pipe = self.r.pipeline(transaction=True)
        pipe.delete(self.key)
        if approvals:
            pipe.hset(self.key, mapping={
                approval_id: json.dumps(approval) for approval_id, approval in approvals.items()
            })
        pipe.execute()


class ApprovalStore:
    """Approval registry kept in memory and written through to a backend on every change."""

    def __init__(self, backend: Any):
        self.backend = backend
        self._approvals: Dict[str, Approval] = backend.load()
        logger.info(f"Loaded {len(self._approvals)} approvals from {type(backend).__name__}")

    def put(self, approval_id: str, approval: Approval) -> None:
        """Insert or replace an approval; returns once the snapshot is saved."""
        previous = self._approvals.get(approval_id)
        self._approvals[approval_id] = copy.deepcopy(approval)
        try:
            self.backend.save(self._approvals)
        except Exception:
            # Memory never runs ahead of the durable snapshot
            if previous is None:
                del self._approvals[approval_id]
            else:
                self._approvals[approval_id] = previous
            raise

    def get(self, approval_id: str) -> Optional[Approval]:
        approval = self._approvals.get(approval_id)
        return copy.deepcopy(approval) if approval is not None else None

    def remove(self, approval_id: str) -> bool:
        if approval_id not in self._approvals:
            return False
        previous = self._approvals.pop(approval_id)
        try:
            self.backend.save(self._approvals)
        except Exception:
            self._approvals[approval_id] = previous
            raise
        return True

    def list(self, predicate: Optional[Callable[[Approval], bool]] = None) -> List[Approval]:
        return [
            copy.deepcopy(approval)
            for approval in self._approvals.values()
            if predicate is None or predicate(approval)
        ]

    def __len__(self) -> int:
        return len(self._approvals)

    def __contains__(self, approval_id: object) -> bool:
        return approval_id in self._approvals


def build_store() -> ApprovalStore:
    """Create the approval store for the configured backend."""
    backend_name = os.getenv("APPROVAL_STORE_BACKEND", "file").lower()
    path = os.getenv("APPROVAL_STORE_PATH", DEFAULT_STORE_PATH)

    if backend_name == "redis":
        try:
            redis_url = os.getenv("REDIS_URL", "redis://localhost:6379")
            client = redis.from_url(redis_url)
            # Test connection
            client.ping()
            logger.info("Redis connection established successfully")
            return ApprovalStore(RedisBackend(client, os.getenv("APPROVAL_STORE_KEY", "bd:approvals")))
        except redis.RedisError as e:
            logger.error(f"Redis connection failed, falling back to file store at {path}: {e}")

    return ApprovalStore(JsonFileBackend(path))
