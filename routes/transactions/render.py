# routes/transactions/render.py
"""
Document rendering endpoint and template health check.

The render endpoint is what RenderClient calls when rendering runs as
a separate deployment; it expects the shared secret as a bearer token.
"""

import base64
import hmac
from functools import wraps

from flask import current_app, jsonify, request

from services.delivery_orchestrator import get_template_cache
from services.documents import (
    DocumentAssembler, FieldMapper, SubmissionError, TemplateError, TransactionRecord
)
from services.documents.assembler import page_count
from . import transactions_bp


def render_secret_required(f):
    """Reject calls without the configured bearer secret."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        secret = current_app.config.get('RENDER_SHARED_SECRET')
        if secret:
            header = request.headers.get('Authorization', '')
            token = header[len('Bearer '):] if header.startswith('Bearer ') else ''
            if not hmac.compare_digest(token.encode(), secret.encode()):
                current_app.logger.warning("Render call rejected: bad or missing bearer token")
                return jsonify({'success': False, 'error': 'Unauthorized', 'errorType': 'auth'}), 401
        return f(*args, **kwargs)
    return decorated_function


@transactions_bp.route('/render', methods=['POST'])
@render_secret_required
def render_document():
    """Render the cover sheet for a transaction payload."""
    payload = request.get_json(silent=True)
    try:
        record = TransactionRecord.from_dict(payload)
    except ValueError as e:
        return jsonify({'success': False, 'error': str(e), 'errorType': 'invalid'}), 400

    record_id = payload.get('recordId') or record.record_id

    try:
        template = get_template_cache(current_app.config).get()
        instructions = FieldMapper.map(record)
        document = DocumentAssembler().assemble(template, instructions)
    except SubmissionError as e:
        current_app.logger.error(f"Render failed for {record_id}: {e}")
        return jsonify({'success': False, 'error': str(e), 'errorType': e.error_type}), 500

    current_app.logger.info(f"Rendered {len(instructions)} field(s) for {record_id} ({len(document)} bytes)")
    return jsonify({
        'success': True,
        'pdfBase64': base64.b64encode(document).decode('ascii'),
        'recordId': record_id
    })


@transactions_bp.route('/template/check')
def check_template():
    """Load (or reuse) the cached template and report its shape."""
    try:
        cache = get_template_cache(current_app.config)
        template = cache.get()
        pages = page_count(template)
    except TemplateError as e:
        current_app.logger.error(f"Template check failed: {e}")
        return jsonify({'success': False, 'error': str(e)}), 500

    return jsonify({
        'success': True,
        'source': cache.source,
        'pages': pages,
        'size': len(template)
    })
