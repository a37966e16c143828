"""
Sakila Idempotency Store — Replay Instead of Re-running.

A client may retry a mutating rental request with the same Idempotency-Key.
The first completed result is stored under a deterministic key built from
the operation, its parameters and the client key; retries get that result
back. The rental status guards still reject any request that arrives
without a key.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any
import hashlib
import json
import threading


def _now() -> datetime:
    return datetime.now(timezone.utc)


class IdempotencyStatus(str, Enum):
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


@dataclass
class IdempotencyRecord:
    """Record of an idempotent operation."""
    key: str
    operation: str
    result: Any = None
    status: IdempotencyStatus = IdempotencyStatus.IN_PROGRESS
    created_at: datetime = field(default_factory=_now)
    completed_at: datetime | None = None
    expires_at: datetime | None = None

    @property
    def is_expired(self) -> bool:
        if self.expires_at is None:
            return False
        return _now() >= self.expires_at

    def to_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "operation": self.operation,
            "status": self.status.value,
            "created_at": self.created_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "is_expired": self.is_expired,
        }


def generate_idempotency_key(operation: str, **kwargs: Any) -> str:
    """
    Generate a deterministic idempotency key from operation + params.
    Same inputs always produce the same key.
    """
    data = json.dumps({"op": operation, **kwargs}, sort_keys=True, default=str)
    return hashlib.sha256(data.encode()).hexdigest()[:32]


class IdempotencyStore:
    """In-process idempotency store shared by the API workers of one process."""

    def __init__(self, default_ttl_seconds: int = 3600):
        self._records: dict[str, IdempotencyRecord] = {}
        self._lock = threading.Lock()
        self.default_ttl = default_ttl_seconds

    def check(self, key: str) -> IdempotencyRecord | None:
        """
        Check if an operation was already processed.
        Returns the record if exists and not expired, None otherwise.
        """
        with self._lock:
            return self._check(key)

    def _check(self, key: str) -> IdempotencyRecord | None:
        record = self._records.get(key)
        if record is None:
            return None
        if record.is_expired:
            del self._records[key]
            return None
        return record

    def reserve(
        self,
        key: str,
        operation: str,
        ttl_seconds: int | None = None,
    ) -> IdempotencyRecord | None:
        """
        Reserve an idempotency key (mark as in-progress).
        Returns None if key is already reserved/completed. Expired records
        are swept first so the store stays bounded by the live keys.
        """
        with self._lock:
            self._evict_expired()
            if self._check(key) is not None:
                return None

            ttl = ttl_seconds or self.default_ttl
            record = IdempotencyRecord(
                key=key,
                operation=operation,
                status=IdempotencyStatus.IN_PROGRESS,
                expires_at=_now() + timedelta(seconds=ttl),
            )
            self._records[key] = record
            return record

    def complete(self, key: str, result: Any) -> bool:
        """Mark an operation as completed with its result."""
        with self._lock:
            record = self._records.get(key)
            if not record:
                return False
            record.status = IdempotencyStatus.COMPLETED
            record.result = result
            record.completed_at = _now()
            return True

    def release(self, key: str) -> bool:
        """Drop a reservation so the operation can be attempted again."""
        with self._lock:
            return self._records.pop(key, None) is not None

    def cleanup_expired(self) -> int:
        """Remove all expired records. Returns count removed."""
        with self._lock:
            return self._evict_expired()

    def _evict_expired(self) -> int:
        now = _now()
        expired = [
            k for k, v in self._records.items()
            if v.expires_at and now >= v.expires_at
        ]
        for k in expired:
            del self._records[k]
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)
