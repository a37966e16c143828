"""
Sakila Core Resilience — Safe Retries.

Provides:
- IdempotencyStore: replay completed results for retried requests
"""
from core.resilience.idempotency import (
    IdempotencyRecord,
    IdempotencyStatus,
    IdempotencyStore,
    generate_idempotency_key,
)

__all__ = [
    "IdempotencyRecord",
    "IdempotencyStatus",
    "IdempotencyStore",
    "generate_idempotency_key",
]
