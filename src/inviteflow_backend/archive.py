"""
Streaming ZIP archives of a batch's documents.

Each document is re-fetched from the remote platform and written into the
archive chunk by chunk. ``zipfile`` writes into a non-seekable sink that is
drained after every chunk, so at most one chunk of compressed output is held
in memory and the archive is never buffered whole.
"""

from __future__ import annotations

import logging
import zipfile
from typing import AsyncIterator, List

from .errors import NotFoundError, ValidationError
from .foxit_client import FoxitClient
from .registry import Registry

logger = logging.getLogger(__name__)


def archive_entry_name(position: int) -> str:
    return f"document_{position}.pdf"


class _ArchiveSink:
    """Write-only, non-seekable target; ``zipfile`` falls back to data descriptors."""

    def __init__(self) -> None:
        self._chunks: List[bytes] = []

    def write(self, data: bytes) -> int:
        self._chunks.append(bytes(data))
        return len(data)

    def flush(self) -> None:
        pass

    def drain(self) -> bytes:
        data = b"".join(self._chunks)
        self._chunks.clear()
        return data


class ArchiveStreamer:
    def __init__(self, client: FoxitClient, registry: Registry, compresslevel: int = 9) -> None:
        self.client = client
        self.registry = registry
        self.compresslevel = compresslevel

    def documents_for_archive(self, batch_id: str) -> List[str]:
        """
        Resolve the ordered document ids to archive.

        Raises:
            NotFoundError: Unknown batch
            ValidationError: The batch has no documents
        """
        batch = self.registry.get_batch(batch_id)
        if batch is None:
            raise NotFoundError("Batch not found", {"batch_id": batch_id})
        if not batch.doc_ids:
            raise ValidationError("No documents in batch", {"batch_id": batch_id})
        return list(batch.doc_ids)

    async def stream(self, document_ids: List[str]) -> AsyncIterator[bytes]:
        sink = _ArchiveSink()
        with zipfile.ZipFile(sink, "w", compression=zipfile.ZIP_DEFLATED, compresslevel=self.compresslevel) as archive:
            # One remote stream at a time, in stored order.
            for position, document_id in enumerate(document_ids, start=1):
                name = archive_entry_name(position)
                response = await self.client.download_stream(document_id, filename=name)
                try:
                    with archive.open(name, "w") as entry:
                        async for chunk in response.aiter_bytes():
                            entry.write(chunk)
                            data = sink.drain()
                            if data:
                                yield data
                finally:
                    await response.aclose()
                data = sink.drain()
                if data:
                    yield data
        # Central directory is written on close.
        data = sink.drain()
        if data:
            yield data
