"""
Document Renderers

RenderClient is a thin wrapper around the document-rendering endpoint
(POST /transactions/render) for deployments where the renderer runs as
a separate service. It handles the shared-secret header, the per-call
timeout, and translation of HTTP failures into the pipeline's errors.

LocalRenderer does the same job in-process.
"""

import base64
import binascii
import logging
from typing import Any, Dict, Optional

import requests

from .types import DocumentLayout, TransactionRecord
from .assembler import DocumentAssembler
from .field_mapper import FieldMapper
from .template_cache import TemplateCache
from .exceptions import RenderTimeoutError, SubmissionError, TemplateError

logger = logging.getLogger(__name__)

# Request timeout
DEFAULT_TIMEOUT = 30


class RenderClient:
    """
    Client for the document-rendering service.

    Usage:
        client = RenderClient('https://render.example.com/transactions/render', secret='...')
        pdf_bytes = client.render(record, record_id='recXXXX')
    """

    def __init__(self, url: str, secret: Optional[str] = None, timeout: float = DEFAULT_TIMEOUT):
        self.url = url
        self.secret = secret
        self.timeout = timeout

    def _get_headers(self) -> Dict[str, str]:
        headers = {'Content-Type': 'application/json'}
        if self.secret:
            headers['Authorization'] = f"Bearer {self.secret}"
        return headers

    def render(self, record: TransactionRecord, record_id: Optional[str] = None) -> bytes:
        """
        Render a record remotely.

        Returns:
            The PDF bytes

        Raises:
            RenderTimeoutError: if the call exceeds the timeout
            TemplateError: if the renderer cannot use its template or
                           returns an unreadable document
            SubmissionError: for any other rendering failure
        """
        payload = record.to_dict()
        payload['recordId'] = record_id or record.record_id

        try:
            response = requests.post(
                self.url,
                headers=self._get_headers(),
                json=payload,
                timeout=self.timeout
            )
        except requests.exceptions.Timeout as e:
            logger.error(f"Render call timed out after {self.timeout}s: {e}")
            raise RenderTimeoutError(
                f"Document rendering timed out after {self.timeout} seconds",
                timeout=self.timeout
            )
        except requests.exceptions.RequestException as e:
            logger.error(f"Render call failed: {e}")
            raise SubmissionError(f"Document rendering failed: {e}")

        result = self._parse_body(response)

        if response.status_code >= 400 or not result.get('success'):
            error = result.get('error') or f"HTTP {response.status_code}"
            logger.error(f"Renderer returned an error ({response.status_code}): {error}")
            if result.get('errorType') == 'template':
                raise TemplateError(f"Renderer could not use its template: {error}")
            raise SubmissionError(f"Document rendering failed: {error}")

        try:
            document = base64.b64decode(result.get('pdfBase64') or '', validate=True)
        except (binascii.Error, ValueError) as e:
            raise TemplateError(f"Renderer returned an unreadable document: {e}")
        if not document:
            raise TemplateError("Renderer returned an empty document")
        return document

    @staticmethod
    def _parse_body(response: requests.Response) -> Dict[str, Any]:
        try:
            body = response.json()
        except ValueError:
            return {'success': False, 'error': response.text[:200] if response.text else None}
        return body if isinstance(body, dict) else {'success': False, 'error': 'Unexpected response shape'}


class LocalRenderer:
    """
    In-process renderer with the same interface as RenderClient.

    Used when the app renders its own documents instead of calling a
    separate rendering service.
    """

    def __init__(self, template_cache: TemplateCache, assembler: DocumentAssembler = None,
                 layout: Optional[DocumentLayout] = None):
        self.template_cache = template_cache
        self.assembler = assembler or DocumentAssembler()
        self.layout = layout

    def render(self, record: TransactionRecord, record_id: Optional[str] = None) -> bytes:
        instructions = FieldMapper.map(record, self.layout)
        document = self.assembler.assemble(self.template_cache.get(), instructions)
        logger.info(
            f"Rendered {len(instructions)} instruction(s) for record {record_id or record.record_id} "
            f"({len(document)} bytes)"
        )
        return document
