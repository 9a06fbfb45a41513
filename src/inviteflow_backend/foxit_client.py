"""
Async client for the Foxit PDF Services and Document Generation APIs.

The platform mixes synchronous endpoints (template analysis, document
generation) that answer with their result directly and asynchronous
endpoints (conversion, combine) that answer with a task id. This module
exposes both call shapes plus the fixed-interval poll loop that drives a
task to a terminal state.

Only the read-only status check is ever retried; submitting an operation
is not idempotent on the platform side, so a failed submit propagates.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import anyio
import httpx
from pydantic import ValidationError as PayloadValidationError

from .configuration import FoxitSettings, PollingSettings
from .errors import RemoteRequestError, TaskFailedError, TaskTimeoutError
from .models import CombineOptions, RemoteTaskStatus

logger = logging.getLogger(__name__)

UPLOAD_ENDPOINT = "/pdf-services/api/documents/upload"
TASK_ENDPOINT = "/pdf-services/api/tasks/{task_id}"
DOWNLOAD_ENDPOINT = "/pdf-services/api/documents/{document_id}/download"
PDF_FROM_IMAGE_ENDPOINT = "/pdf-services/api/documents/create/pdf-from-image"
COMBINE_ENDPOINT = "/pdf-services/api/documents/enhance/pdf-combine"
ANALYZE_ENDPOINT = "/document-generation/api/AnalyzeDocumentBase64"
GENERATE_ENDPOINT = "/document-generation/api/GenerateDocumentBase64"


def _error_message(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        payload = None
    if isinstance(payload, dict) and payload.get("message"):
        return str(payload["message"])
    return response.text.strip() or response.reason_phrase or f"HTTP {response.status_code}"


class FoxitClient:
    """
    Thin request layer over the remote PDF platform.

    Attributes:
        settings: Base URL, credentials and request timeout
        polling: Default poll budget used by ``wait_for_task``
    """

    def __init__(
        self,
        settings: FoxitSettings,
        polling: PollingSettings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.settings = settings
        self.polling = polling
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def base_url(self) -> str:
        return self.settings.base_url.rstrip("/")

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.settings.request_timeout_s,
                transport=self._transport,
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def _auth_headers(self) -> Dict[str, str]:
        return {
            "client_id": self.settings.client_id,
            "client_secret": self.settings.client_secret,
        }

    async def _request(self, method: str, endpoint: str, label: str, **kwargs: Any) -> httpx.Response:
        try:
            response = await self._http().request(method, endpoint, headers=self._auth_headers(), **kwargs)
        except httpx.HTTPError as exc:
            logger.error(f"{label} failed for {endpoint}: {exc}")
            raise RemoteRequestError(f"{label}: {exc}", {"endpoint": endpoint}) from exc
        if response.is_error:
            message = _error_message(response)
            logger.error(f"{label} failed for {endpoint} ({response.status_code}): {message}")
            raise RemoteRequestError(
                f"{label}: {message}",
                {"endpoint": endpoint, "status_code": response.status_code},
            )
        return response

    @staticmethod
    def _json_body(response: httpx.Response, endpoint: str, label: str) -> Dict[str, Any]:
        try:
            body = response.json()
        except ValueError as exc:
            logger.error(f"{label} for {endpoint}: response body is not JSON")
            raise RemoteRequestError(
                f"{label}: response body is not JSON",
                {"endpoint": endpoint, "status_code": response.status_code},
            ) from exc
        if not isinstance(body, dict):
            raise RemoteRequestError(
                f"{label}: expected a JSON object",
                {"endpoint": endpoint, "status_code": response.status_code},
            )
        return body

    async def submit_operation(self, endpoint: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        response = await self._request("POST", endpoint, "Foxit API Error", json=payload)
        return self._json_body(response, endpoint, "Foxit API Error")

    async def submit_task(self, endpoint: str, payload: Dict[str, Any]) -> str:
        body = await self.submit_operation(endpoint, payload)
        task_id = body.get("taskId")
        if not task_id:
            raise RemoteRequestError(
                "Foxit API Error: response did not include a task id",
                {"endpoint": endpoint, "body": body},
            )
        return str(task_id)

    async def get_task_status(self, task_id: str) -> RemoteTaskStatus:
        endpoint = TASK_ENDPOINT.format(task_id=task_id)
        response = await self._request("GET", endpoint, "Task Status Error")
        body = self._json_body(response, endpoint, "Task Status Error")
        try:
            return RemoteTaskStatus.model_validate(body)
        except PayloadValidationError as exc:
            raise RemoteRequestError(
                "Task Status Error: malformed status payload",
                {"task_id": task_id, "body": body},
            ) from exc

    async def wait_for_task(
        self,
        task_id: str,
        max_attempts: Optional[int] = None,
        interval_s: Optional[float] = None,
    ) -> RemoteTaskStatus:
        """
        Poll a remote task until it completes, fails, or the budget runs out.

        Args:
            task_id: Identifier returned by ``submit_task``
            max_attempts: Number of status reads before giving up
                (default: ``polling.max_attempts``)
            interval_s: Pause between reads in seconds
                (default: ``polling.interval_s``)

        Returns:
            The COMPLETED status payload, carrying ``result_document_id``

        Raises:
            TaskFailedError: The task reported FAILED; no further reads happen
            TaskTimeoutError: ``max_attempts`` reads passed without a terminal state
            RemoteRequestError: A status read itself failed, or a COMPLETED
                status carried no result document id
        """
        attempts = self.polling.max_attempts if max_attempts is None else max_attempts
        interval = self.polling.interval_s if interval_s is None else interval_s

        for attempt in range(1, attempts + 1):
            status = await self.get_task_status(task_id)
            if status.is_completed:
                if not status.result_document_id:
                    raise RemoteRequestError(
                        "Task Status Error: completed task has no result document",
                        {"task_id": task_id, "attempt": attempt},
                    )
                logger.debug(f"Task {task_id} completed after {attempt} poll(s)")
                return status
            if status.is_failed:
                raise TaskFailedError(
                    "Task failed",
                    {"task_id": task_id, "attempt": attempt, "status": status.model_dump(by_alias=True)},
                )
            if attempt < attempts:
                await asyncio.sleep(interval)

        raise TaskTimeoutError("Task timeout", {"task_id": task_id, "attempts": attempts, "interval_s": interval})

    async def upload_file(self, path: Path) -> str:
        content = await anyio.Path(path).read_bytes()
        response = await self._request(
            "POST",
            UPLOAD_ENDPOINT,
            "Upload Error",
            files={"file": (path.name, content)},
        )
        document_id = self._json_body(response, UPLOAD_ENDPOINT, "Upload Error").get("documentId")
        if not document_id:
            raise RemoteRequestError("Upload Error: response did not include a document id", {"path": str(path)})
        return str(document_id)

    def download_url(self, document_id: str) -> str:
        return f"{self.base_url}{DOWNLOAD_ENDPOINT.format(document_id=document_id)}"

    async def download_stream(self, document_id: str, filename: str = "document") -> httpx.Response:
        """
        Open a streaming read of a stored document.

        The returned response has not been read yet. The caller iterates
        ``aiter_bytes()`` and must call ``aclose()`` when done or aborting.
        """
        endpoint = DOWNLOAD_ENDPOINT.format(document_id=document_id)
        client = self._http()
        request = client.build_request("GET", endpoint, params={"filename": filename}, headers=self._auth_headers())
        try:
            response = await client.send(request, stream=True)
        except httpx.HTTPError as exc:
            logger.error(f"Download failed for {document_id}: {exc}")
            raise RemoteRequestError(f"Download Error: {exc}", {"document_id": document_id}) from exc
        if response.is_error:
            await response.aread()
            await response.aclose()
            message = _error_message(response)
            logger.error(f"Download failed for {document_id} ({response.status_code}): {message}")
            raise RemoteRequestError(
                f"Download Error: {message}",
                {"document_id": document_id, "status_code": response.status_code},
            )
        return response

    async def analyze_template(self, template_base64: str) -> str:
        body = await self.submit_operation(ANALYZE_ENDPOINT, {"base64FileString": template_base64})
        return str(body.get("singleTagsString") or "")

    async def generate_document(
        self,
        values: Dict[str, Any],
        template_base64: str,
        output_format: str,
        currency_culture: str,
    ) -> Dict[str, Any]:
        return await self.submit_operation(
            GENERATE_ENDPOINT,
            {
                "outputFormat": output_format,
                "currencyCulture": currency_culture,
                "documentValues": values,
                "base64FileString": template_base64,
            },
        )

    async def create_pdf_from_image(self, document_id: str) -> str:
        return await self.submit_task(PDF_FROM_IMAGE_ENDPOINT, {"documentId": document_id})

    async def combine_documents(self, document_ids: List[str], options: CombineOptions) -> str:
        return await self.submit_task(
            COMBINE_ENDPOINT,
            {
                "documentInfos": [{"documentId": document_id} for document_id in document_ids],
                "config": options.model_dump(by_alias=True, exclude_none=True),
            },
        )
