"""
Append a scannable access-code page to a generated document.

The platform combines whole documents rather than overlaying pages, so the
QR code is turned into its own one-page PDF and combined after the
original.
"""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import qrcode

from .configuration import AccessCodeSettings
from .foxit_client import FoxitClient
from .models import CombineOptions
from .utils import decode_base64, scoped_temp_file

logger = logging.getLogger(__name__)

ATTACHMENT_COMBINE_OPTIONS = CombineOptions(
    add_bookmark=False,
    continue_merge_on_error=True,
    retain_page_numbers=False,
    add_toc=False,
)


@dataclass(frozen=True)
class GeneratedDocument:
    """A freshly generated document, either as base64 bytes or already stored remotely."""

    content_base64: Optional[str] = None
    document_id: Optional[str] = None

    def __post_init__(self) -> None:
        if (self.content_base64 is None) == (self.document_id is None):
            raise ValueError("Exactly one of content_base64 or document_id must be given.")


def render_qr_png(text: str, size_px: int = 200, border: int = 2) -> bytes:
    """
    Encode ``text`` as a QR code PNG roughly ``size_px`` pixels wide.

    The module size is derived from the symbol version picked for the payload
    so longer URLs still land near the requested width.
    """
    qr = qrcode.QRCode(border=border, error_correction=qrcode.constants.ERROR_CORRECT_M)
    qr.add_data(text)
    qr.make(fit=True)
    qr.box_size = max(1, round(size_px / (qr.modules_count + 2 * border)))

    buffer = io.BytesIO()
    qr.make_image(fill_color="black", back_color="white").save(buffer)
    return buffer.getvalue()


class AccessCodeAttacher:
    def __init__(self, client: FoxitClient, settings: AccessCodeSettings, work_dir: Path) -> None:
        self.client = client
        self.settings = settings
        self.work_dir = work_dir

    async def _upload_bytes(self, prefix: str, suffix: str, data: bytes) -> str:
        async with scoped_temp_file(self.work_dir, prefix, suffix, data) as path:
            return await self.client.upload_file(path)

    async def build_code_page(self, url: str) -> str:
        """Render the QR code for ``url`` and turn it into a one-page remote PDF."""
        png = render_qr_png(url, size_px=self.settings.size_px, border=self.settings.border)
        image_id = await self._upload_bytes("qr", ".png", png)
        task_id = await self.client.create_pdf_from_image(image_id)
        status = await self.client.wait_for_task(task_id)
        return str(status.result_document_id)

    async def attach(self, document: GeneratedDocument, url: str) -> str:
        """
        Combine ``document`` with a QR page pointing at ``url``.

        Returns:
            The remote id of the combined document

        Raises:
            RemoteRequestError, TaskFailedError, TaskTimeoutError: from any step,
            unchanged. Temporary files are removed in every case.
        """
        code_page_id = await self.build_code_page(url)

        if document.document_id is not None:
            original_id = document.document_id
        else:
            original_id = await self._upload_bytes("original", ".pdf", decode_base64(document.content_base64 or ""))

        task_id = await self.client.combine_documents([original_id, code_page_id], ATTACHMENT_COMBINE_OPTIONS)
        status = await self.client.wait_for_task(task_id)
        logger.debug(f"Attached access code to {original_id} -> {status.result_document_id}")
        return str(status.result_document_id)
