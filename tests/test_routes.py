"""
Transaction Route Tests

Exercises the blueprint through the Flask test client. The orchestrator
is swapped for a stub; rendering runs for real against a throwaway
template.

Run with: python -m pytest tests/test_routes.py -v
"""

import base64
from unittest.mock import patch

import pytest

from app import create_app
from conftest import make_pdf, sample_payload
from services.documents import DeliveryAttempt, RecordStoreError, Stage
from services.documents.assembler import page_count

SECRET = 'render-secret'


@pytest.fixture
def client(tmp_path, monkeypatch):
    template_path = tmp_path / 'cover_sheet.pdf'
    template_path.write_bytes(make_pdf(pages=1))
    monkeypatch.setattr('services.delivery_orchestrator._template_cache', None)

    app = create_app(overrides={
        'TESTING': True,
        'RENDER_SHARED_SECRET': SECRET,
        'TRANSACTION_TEMPLATE_PATH': str(template_path),
        'TRANSACTION_TEMPLATE_URL': None,
    })
    return app.test_client()


class StubOrchestrator:

    def __init__(self, attempt):
        self.attempt = attempt
        self.records = []

    def submit(self, record):
        self.records.append(record)
        return self.attempt


class TestSubmit:

    def submit(self, client, attempt, payload=None):
        orchestrator = StubOrchestrator(attempt)
        with patch('routes.transactions.submit.build_orchestrator', return_value=orchestrator):
            response = client.post('/transactions/submit', json=payload or sample_payload())
        return response, orchestrator

    def test_complete_submission(self, client):
        attempt = DeliveryAttempt(record_id='recT', stage=Stage.COMPLETE, email_sent=True)
        response, orchestrator = self.submit(client, attempt)

        assert response.status_code == 200
        assert response.get_json()['success'] is True
        assert response.get_json()['recordId'] == 'recT'
        assert orchestrator.records[0].property.listing_id == 'MLS12345'

    def test_save_failure_is_502(self, client):
        attempt = DeliveryAttempt(stage=Stage.SAVE, error='Airtable API error: bad', error_type='record_store')
        response, _ = self.submit(client, attempt)

        assert response.status_code == 502
        assert response.get_json()['error'] == 'Airtable API error: bad'

    def test_generate_timeout_is_504(self, client):
        attempt = DeliveryAttempt(record_id='recT', stage=Stage.GENERATE, error='timed out', error_type='timeout')
        response, _ = self.submit(client, attempt)

        assert response.status_code == 504
        assert response.get_json()['recordId'] == 'recT'

    def test_malformed_payload_is_400(self, client):
        response = client.post('/transactions/submit', data='not json', content_type='text/plain')
        assert response.status_code == 400
        assert response.get_json()['errorType'] == 'invalid'

    def test_unconfigured_pipeline_is_500(self, client):
        with patch('routes.transactions.submit.build_orchestrator',
                   side_effect=RecordStoreError("AIRTABLE_API_KEY and AIRTABLE_BASE_ID are required")):
            response = client.post('/transactions/submit', json=sample_payload())

        assert response.status_code == 500
        assert response.get_json()['errorType'] == 'configuration'


class TestRender:

    def headers(self, secret=SECRET):
        return {'Authorization': f'Bearer {secret}'}

    def test_renders_pdf(self, client):
        payload = sample_payload(recordId='recT')
        response = client.post('/transactions/render', json=payload, headers=self.headers())

        assert response.status_code == 200
        body = response.get_json()
        assert body['success'] is True
        assert body['recordId'] == 'recT'
        assert page_count(base64.b64decode(body['pdfBase64'])) == 2

    def test_bad_secret_is_401(self, client):
        response = client.post('/transactions/render', json=sample_payload(), headers=self.headers('wrong'))
        assert response.status_code == 401
        assert response.get_json()['errorType'] == 'auth'

    def test_missing_secret_is_401(self, client):
        response = client.post('/transactions/render', json=sample_payload())
        assert response.status_code == 401

    def test_invalid_payload_is_400(self, client):
        response = client.post('/transactions/render', json=['not', 'an', 'object'], headers=self.headers())
        assert response.status_code == 400

    def test_broken_template_is_500(self, client, tmp_path, monkeypatch):
        broken = tmp_path / 'broken.pdf'
        broken.write_bytes(b'not a pdf at all')
        monkeypatch.setattr('services.delivery_orchestrator._template_cache', None)
        client.application.config['TRANSACTION_TEMPLATE_PATH'] = str(broken)

        response = client.post('/transactions/render', json=sample_payload(), headers=self.headers())

        assert response.status_code == 500
        assert response.get_json()['errorType'] == 'template'


class TestTemplateCheck:

    def test_reports_pages_and_size(self, client):
        response = client.get('/transactions/template/check')
        body = response.get_json()

        assert response.status_code == 200
        assert body['pages'] == 1
        assert body['size'] > 0
