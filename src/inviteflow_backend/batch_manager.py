"""
Batch orchestration for invitation generation.

This module drives the per-row workflow and the batch around it:
- Template analysis into a header-only CSV
- Per-row document generation, access-code attachment and token registration
- Batch registration, final merge, and result reporting

Rows are processed strictly one after another. That keeps the load on the
remote platform bounded and keeps row order equal to merge order.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List
from uuid import uuid4

from .access_code import AccessCodeAttacher, GeneratedDocument
from .configuration import GenerationSettings
from .errors import NotFoundError, RemoteRequestError, ValidationError
from .foxit_client import FoxitClient
from .models import BatchDetail, BatchResult, CombineOptions, TemplateAnalysis, TokenSummary
from .registry import BatchRecord, Registry
from .utils import build_header_csv, encode_base64, split_template_variables

logger = logging.getLogger(__name__)


class BatchManager:
    """
    Central coordinator for bulk invitation generation.

    Attributes:
        client: Remote PDF platform client
        attacher: Access-code attachment workflow
        registry: Batch and token store
        settings: Generation policy (output format, culture, TOC title)
        public_base_url: Externally reachable address used in view links
    """

    def __init__(
        self,
        client: FoxitClient,
        attacher: AccessCodeAttacher,
        registry: Registry,
        settings: GenerationSettings,
        public_base_url: str,
    ) -> None:
        self.client = client
        self.attacher = attacher
        self.registry = registry
        self.settings = settings
        self.public_base_url = public_base_url.rstrip("/")

    def view_url(self, token: str) -> str:
        return f"{self.public_base_url}/view/{token}"

    def zip_url(self, batch_id: str) -> str:
        return f"{self.public_base_url}/batches/{batch_id}/zip"

    async def analyze_template(self, template: bytes) -> TemplateAnalysis:
        """
        Extract template variables and build a CSV header to fill in.

        Args:
            template: Raw DOCX template bytes

        Returns:
            TemplateAnalysis with trimmed variable names and the CSV header line
        """
        tags = await self.client.analyze_template(encode_base64(template))
        variables = split_template_variables(tags)
        return TemplateAnalysis(variables=variables, csv_content=build_header_csv(variables))

    async def _generate(self, row: Dict[str, Any], template_base64: str) -> GeneratedDocument:
        body = await self.client.generate_document(
            values=row,
            template_base64=template_base64,
            output_format=self.settings.output_format,
            currency_culture=self.settings.currency_culture,
        )
        if body.get("base64FileString"):
            return GeneratedDocument(content_base64=body["base64FileString"])
        if body.get("taskId"):
            status = await self.client.wait_for_task(str(body["taskId"]))
            return GeneratedDocument(document_id=str(status.result_document_id))
        raise RemoteRequestError(
            "Foxit API Error: generation returned neither a document nor a task id",
            {"keys": sorted(body)},
        )

    async def process_row(self, batch: BatchRecord, row: Dict[str, Any], template_base64: str) -> str:
        """
        Generate one invitation and register its viewing token.

        The token is minted before the document exists because the QR code
        printed on the document must already carry it. It is only registered
        once the attachment workflow has produced the final document.

        Returns:
            Remote id of the generated document with its access-code page
        """
        generated = await self._generate(row, template_base64)

        token = str(uuid4())
        document_id = await self.attacher.attach(generated, self.view_url(token))

        self.registry.register_token(token, document_id, batch.id)
        return document_id

    async def generate_batch(self, template: bytes, rows: List[Dict[str, Any]]) -> BatchResult:
        """
        Run every row through the pipeline, then merge the results.

        The batch is registered before the first row and each document id is
        appended as soon as it exists, so a failure part way leaves the
        completed rows visible in the registry. Nothing is rolled back. The
        batch is marked finished either way, which starts its eviction TTL.

        Raises:
            ValidationError: ``rows`` is empty
            RemoteRequestError, TaskFailedError, TaskTimeoutError: from any row
                or from the final merge
        """
        if not rows:
            raise ValidationError("CSV file contains no data rows")

        template_base64 = encode_base64(template)
        batch = self.registry.create_batch()
        logger.info(f"Batch {batch.id} registered for {len(rows)} row(s)")

        try:
            for index, row in enumerate(rows, start=1):
                logger.info(f"Processing row {index}/{len(rows)}")
                document_id = await self.process_row(batch, row, template_base64)
                self.registry.append_document(batch.id, document_id)
                logger.info(f"Generated document {index} with ID: {document_id}")

            logger.info("Merging all documents...")
            merge_options = CombineOptions(
                add_bookmark=True,
                continue_merge_on_error=True,
                retain_page_numbers=True,
                add_toc=True,
                toc_title=self.settings.toc_title,
            )
            task_id = await self.client.combine_documents(list(batch.doc_ids), merge_options)
            status = await self.client.wait_for_task(task_id)
            merged_id = str(status.result_document_id)
            self.registry.set_merged_document(batch.id, merged_id)
        finally:
            self.registry.finish_batch(batch.id)

        return BatchResult(
            batch_id=batch.id,
            individual_documents=list(batch.doc_ids),
            merged_document_id=merged_id,
            total_documents=len(rows),
            download_url=self.client.download_url(merged_id),
            zip_url=self.zip_url(batch.id),
        )

    def describe_batch(self, batch_id: str) -> BatchDetail:
        batch = self.registry.get_batch(batch_id)
        if batch is None:
            raise NotFoundError("Batch not found", {"batch_id": batch_id})
        tokens = [
            TokenSummary(
                token=record.token,
                document_id=record.document_id,
                view_url=self.view_url(record.token),
                viewed_at=record.viewed_at,
            )
            for record in self.registry.tokens_for_batch(batch.id)
        ]
        return BatchDetail(
            id=batch.id,
            created_at=batch.created_at,
            doc_ids=list(batch.doc_ids),
            merged_document_id=batch.merged_document_id,
            document_count=len(batch.doc_ids),
            tokens=tokens,
        )
