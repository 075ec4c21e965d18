"""
Document Service Client for Fulfilment Service

Renders storybook compositions to print-ready PDFs and returns their
durable URL.
"""

import httpx
import logging
from typing import Any, Optional

from ..models import StorybookProject
from ..protocols import FulfilmentServiceError

logger = logging.getLogger(__name__)


class DocumentRenderError(FulfilmentServiceError):
    """Document service could not render a storybook"""
    pass


class DocumentClient:
    """Client for document_service"""

    def __init__(self, base_url: Optional[str] = None, http_client: Optional[Any] = None, timeout: float = 120.0):
        if base_url:
            self.base_url = base_url.rstrip('/')
        else:
            try:
                from core.service_discovery import get_service_discovery
                sd = get_service_discovery()
                self.base_url = sd.get_service_url("document_service")
            except Exception as e:
                logger.warning(f"Service discovery failed, using default: {e}")
                self.base_url = "http://localhost:8227"

        # Rendering a full book is slow
        self.client = http_client or httpx.AsyncClient(timeout=timeout)
        logger.info(f"DocumentClient initialized with base_url: {self.base_url}")

    async def close(self):
        if isinstance(self.client, httpx.AsyncClient):
            await self.client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def render_storybook_pdf(self, storybook: StorybookProject) -> str:
        """
        Render a storybook to PDF.

        Raises:
            DocumentRenderError: render failed or returned no URL
        """
        try:
            response = await self.client.post(
                f"{self.base_url}/api/v1/documents/storybooks/{storybook.storybook_id}/pdf",
                json={
                    "title": storybook.title,
                    "child_name": storybook.child_name,
                    "page_count": storybook.page_count,
                },
            )
        except httpx.HTTPError as e:
            raise DocumentRenderError(f"Storybook PDF generation failed: {e}") from e

        if response.status_code >= 400:
            raise DocumentRenderError(
                f"Storybook PDF generation failed for {storybook.storybook_id}: HTTP {response.status_code}"
            )

        pdf_url = (response.json() or {}).get("pdf_url")
        if not pdf_url:
            raise DocumentRenderError(f"Document service returned no PDF URL for {storybook.storybook_id}")
        return pdf_url
