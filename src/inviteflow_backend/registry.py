"""
Process-lifetime registry of batches and viewing tokens.

Two independently keyed tables: batch id -> ``BatchRecord`` and
token -> ``TokenRecord``. Callers depend on the ``Registry`` protocol so a
persistent store can replace ``InMemoryRegistry`` without touching them.

Each key has exactly one writer (the batch aggregator for batches, the row
pipeline for tokens), and the service runs on a single event loop, so no
locking is needed. Parallel row processing would need appends to be
serialized.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional, Protocol
from uuid import uuid4

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class BatchRecord:
    id: str
    created_at: datetime
    doc_ids: List[str] = field(default_factory=list)
    merged_document_id: Optional[str] = None
    finished_at: Optional[datetime] = None


@dataclass
class TokenRecord:
    token: str
    document_id: str
    batch_id: str
    viewed_at: Optional[datetime] = None


class Registry(Protocol):
    def create_batch(self) -> BatchRecord: ...

    def get_batch(self, batch_id: str) -> Optional[BatchRecord]: ...

    def append_document(self, batch_id: str, document_id: str) -> None: ...

    def set_merged_document(self, batch_id: str, document_id: str) -> None: ...

    def finish_batch(self, batch_id: str) -> None: ...

    def register_token(self, token: str, document_id: str, batch_id: str) -> TokenRecord: ...

    def get_token(self, token: str) -> Optional[TokenRecord]: ...

    def resolve_token(self, token: str) -> Optional[TokenRecord]: ...

    def tokens_for_batch(self, batch_id: str) -> List[TokenRecord]: ...


class InMemoryRegistry:
    """
    Dict-backed ``Registry``.

    Args:
        ttl_seconds: When set, batches finished longer ago than this (and their
            tokens) are purged lazily on batch creation and on lookups. A batch
            still being generated is never evicted. ``None`` keeps every entry
            until the process exits.
        clock: Source of the current UTC time, injectable for tests.
    """

    def __init__(
        self,
        ttl_seconds: Optional[float] = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._batches: Dict[str, BatchRecord] = {}
        self._tokens: Dict[str, TokenRecord] = {}
        self._ttl = timedelta(seconds=ttl_seconds) if ttl_seconds is not None else None
        self._clock = clock

    def __len__(self) -> int:
        return len(self._batches)

    def create_batch(self) -> BatchRecord:
        self.purge_expired()
        record = BatchRecord(id=str(uuid4()), created_at=self._clock())
        self._batches[record.id] = record
        return record

    def get_batch(self, batch_id: str) -> Optional[BatchRecord]:
        self.purge_expired()
        return self._batches.get(batch_id)

    def _require_batch(self, batch_id: str) -> BatchRecord:
        record = self._batches.get(batch_id)
        if record is None:
            raise KeyError(f"Unknown batch {batch_id}")
        return record

    def append_document(self, batch_id: str, document_id: str) -> None:
        self._require_batch(batch_id).doc_ids.append(document_id)

    def set_merged_document(self, batch_id: str, document_id: str) -> None:
        record = self._require_batch(batch_id)
        if record.merged_document_id is not None:
            raise RuntimeError(f"Batch {batch_id} already has a merged document.")
        record.merged_document_id = document_id

    def finish_batch(self, batch_id: str) -> None:
        """Mark a batch as no longer being written to; its TTL starts now."""
        record = self._require_batch(batch_id)
        if record.finished_at is None:
            record.finished_at = self._clock()

    def register_token(self, token: str, document_id: str, batch_id: str) -> TokenRecord:
        self._require_batch(batch_id)
        if token in self._tokens:
            raise RuntimeError(f"Token {token} is already registered.")
        record = TokenRecord(token=token, document_id=document_id, batch_id=batch_id)
        self._tokens[token] = record
        return record

    def get_token(self, token: str) -> Optional[TokenRecord]:
        self.purge_expired()
        return self._tokens.get(token)

    def resolve_token(self, token: str) -> Optional[TokenRecord]:
        """Look up a token and stamp ``viewed_at`` on its first resolution only."""
        record = self.get_token(token)
        if record is not None and record.viewed_at is None:
            record.viewed_at = self._clock()
        return record

    def tokens_for_batch(self, batch_id: str) -> List[TokenRecord]:
        return [record for record in self._tokens.values() if record.batch_id == batch_id]

    def purge_expired(self) -> int:
        if self._ttl is None:
            return 0
        cutoff = self._clock() - self._ttl
        expired = {
            batch_id
            for batch_id, record in self._batches.items()
            if record.finished_at is not None and record.finished_at < cutoff
        }
        if not expired:
            return 0
        for batch_id in expired:
            del self._batches[batch_id]
        for token in [token for token, record in self._tokens.items() if record.batch_id in expired]:
            del self._tokens[token]
        logger.info(f"Evicted {len(expired)} expired batch(es)")
        return len(expired)
