"""
Render Client Tests

Run with: python -m pytest tests/test_render_client.py -v
"""

import base64
from unittest.mock import Mock, patch

import pytest
import requests

from conftest import make_pdf
from services.documents import (
    LocalRenderer, RenderClient, RenderTimeoutError, SubmissionError, TemplateCache, TemplateError
)
from services.documents.assembler import page_count

RENDER_URL = 'https://render.test/transactions/render'


def response(status_code=200, body=None):
    mock = Mock()
    mock.status_code = status_code
    mock.json.return_value = body
    mock.text = ''
    return mock


class TestRenderClient:

    def test_posts_payload_with_bearer_secret(self, seller_record):
        with patch('services.documents.render_client.requests.post') as post:
            post.return_value = response(body={'success': True, 'pdfBase64': base64.b64encode(b'%PDF-x').decode()})
            result = RenderClient(RENDER_URL, secret='s3cret', timeout=12).render(seller_record, 'recT')

        assert result == b'%PDF-x'
        kwargs = post.call_args[1]
        assert kwargs['headers']['Authorization'] == 'Bearer s3cret'
        assert kwargs['timeout'] == 12
        assert kwargs['json']['recordId'] == 'recT'
        assert kwargs['json']['propertyData']['mlsNumber'] == 'MLS12345'

    def test_timeout(self, seller_record):
        with patch('services.documents.render_client.requests.post', side_effect=requests.exceptions.Timeout()):
            with pytest.raises(RenderTimeoutError) as excinfo:
                RenderClient(RENDER_URL, timeout=5).render(seller_record, 'recT')
        assert excinfo.value.timeout == 5

    def test_connection_error(self, seller_record):
        with patch('services.documents.render_client.requests.post',
                   side_effect=requests.exceptions.ConnectionError("refused")):
            with pytest.raises(SubmissionError):
                RenderClient(RENDER_URL).render(seller_record, 'recT')

    def test_template_error_payload(self, seller_record):
        body = {'success': False, 'error': 'Template could not be parsed', 'errorType': 'template'}
        with patch('services.documents.render_client.requests.post', return_value=response(500, body)):
            with pytest.raises(TemplateError):
                RenderClient(RENDER_URL).render(seller_record, 'recT')

    def test_other_error_payload(self, seller_record):
        with patch('services.documents.render_client.requests.post',
                   return_value=response(401, {'success': False, 'error': 'Unauthorized', 'errorType': 'auth'})):
            with pytest.raises(SubmissionError) as excinfo:
                RenderClient(RENDER_URL).render(seller_record, 'recT')
        assert not isinstance(excinfo.value, TemplateError)

    def test_unreadable_document(self, seller_record):
        with patch('services.documents.render_client.requests.post',
                   return_value=response(body={'success': True, 'pdfBase64': 'not base64!'})):
            with pytest.raises(TemplateError):
                RenderClient(RENDER_URL).render(seller_record, 'recT')


class TestLocalRenderer:

    def test_renders_from_cached_template(self, tmp_path, seller_record):
        template_path = tmp_path / 'cover_sheet.pdf'
        template_path.write_bytes(make_pdf(pages=1))
        cache = TemplateCache(path=str(template_path))

        document = LocalRenderer(cache).render(seller_record, 'recT')

        assert page_count(document) == 2
        assert cache.is_loaded


class TestTemplateCache:

    def test_requires_a_source(self):
        with pytest.raises(TemplateError):
            TemplateCache()

    def test_loads_once(self, tmp_path):
        template_path = tmp_path / 'cover_sheet.pdf'
        template_path.write_bytes(b'%PDF-first')
        cache = TemplateCache(path=str(template_path))

        first = cache.get()
        template_path.write_bytes(b'%PDF-second')

        assert cache.get() is first
        cache.clear()
        assert cache.get() == b'%PDF-second'

    def test_missing_file(self, tmp_path):
        with pytest.raises(TemplateError):
            TemplateCache(path=str(tmp_path / 'missing.pdf')).get()

    def test_fetches_url(self):
        with patch('services.documents.template_cache.requests.get') as get:
            get.return_value = Mock(content=b'%PDF-remote', raise_for_status=Mock(return_value=None))
            cache = TemplateCache(url='https://cdn.test/cover.pdf', timeout=9)

            assert cache.get() == b'%PDF-remote'
            assert get.call_args[1]['timeout'] == 9

    def test_url_failure(self):
        with patch('services.documents.template_cache.requests.get',
                   side_effect=requests.exceptions.ConnectionError("down")):
            with pytest.raises(TemplateError):
                TemplateCache(url='https://cdn.test/cover.pdf').get()
