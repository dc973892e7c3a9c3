# routes/transactions/submit.py
"""
Transaction submission endpoint.
"""

from flask import current_app, jsonify, request

from services.delivery_orchestrator import build_orchestrator
from services.documents import SubmissionError, TransactionRecord
from services.documents.types import Stage
from . import transactions_bp

# Status for a saved record whose document could not be generated
FAILURE_STATUS = {
    'template': 500,
    'configuration': 500,
    'timeout': 504,
}


@transactions_bp.route('/submit', methods=['POST'])
def submit_transaction():
    """
    Save a transaction, generate its cover sheet and deliver it.

    Returns the delivery attempt with the progress steps. Channel
    failures after the document exists still answer 200; a failed save
    is 502 and a failed generate stage answers by its error type. The
    body always carries recordId so the caller can retry.
    """
    try:
        record = TransactionRecord.from_dict(request.get_json(silent=True))
    except ValueError as e:
        return jsonify({'success': False, 'error': str(e), 'errorType': 'invalid'}), 400

    try:
        orchestrator = build_orchestrator(current_app.config)
    except SubmissionError as e:
        current_app.logger.error(f"Submission pipeline is not configured: {e}")
        return jsonify({'success': False, 'error': str(e), 'errorType': 'configuration'}), 500

    attempt = orchestrator.submit(record)
    result = attempt.to_dict()

    if attempt.stage is Stage.SAVE and attempt.error:
        current_app.logger.error(f"Transaction save failed: {attempt.error}")
        return jsonify(result), 502

    if attempt.error:
        current_app.logger.error(f"Transaction {attempt.record_id} stopped at {attempt.stage.value}: {attempt.error}")
        return jsonify(result), FAILURE_STATUS.get(attempt.error_type, 500)

    current_app.logger.info(
        f"Transaction {attempt.record_id} submitted: stage={attempt.stage.value}, "
        f"email_sent={attempt.email_sent}"
    )
    return jsonify(result), 200
