"""
Delivery Orchestrator

Runs one transaction submission through save, generate, email and
store, folding every stage's result into a DeliveryAttempt and keeping
the progress surface in step.

The stages are a declarative list of PipelineStage entries, each an
action plus an optional fallback and a failure policy. Only the
submission error taxonomy is caught; anything else is a bug and
propagates.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional

from services.airtable_service import AirtableService
from services.documents.exceptions import (
    DeliveryChannelError, RecordStoreError, SubmissionError
)
from services.documents.render_client import LocalRenderer, RenderClient
from services.documents.size_governor import AttachmentSizeGovernor, DEFAULT_CEILING
from services.documents.template_cache import TemplateCache
from services.documents.types import (
    AttachmentOutcome, DeliveryAttempt, GovernorOutcome, Stage, TransactionRecord
)
from services.email_service import EmailService, document_filename
from services.progress_tracker import ProgressTracker
from services.supabase_storage import SupabaseDocumentStore

logger = logging.getLogger(__name__)

GOVERNOR_TO_ATTACHMENT = {
    GovernorOutcome.UNCHANGED: AttachmentOutcome.ATTACHED,
    GovernorOutcome.COMPRESSED: AttachmentOutcome.COMPRESSED,
    GovernorOutcome.TRUNCATED: AttachmentOutcome.TRUNCATED,
}

MANUAL_FOLLOW_UP_NOTE = (
    "The transaction record was saved but the document could not be stored or attached. "
    "Please follow up manually and attach the cover sheet to the record."
)


class StagePolicy(Enum):
    """What a stage failure does to the rest of the attempt."""
    ABORT = "abort"
    CONTINUE = "continue"


StageAction = Callable[[TransactionRecord, DeliveryAttempt], None]
StageFallback = Callable[[TransactionRecord, DeliveryAttempt, SubmissionError], None]


@dataclass(frozen=True)
class PipelineStage:
    """
    One orchestrator step.

    Attributes:
        stage: Stage reported on the DeliveryAttempt while it runs
        step_id: Progress step it runs under
        action: Does the work; raises a SubmissionError on failure
        fallback: Runs after a failed action, before the policy applies
        policy: ABORT ends the attempt on failure, CONTINUE moves on
        skip: Returns True when the stage has nothing to do
    """
    stage: Stage
    step_id: str
    action: StageAction
    fallback: Optional[StageFallback] = None
    policy: StagePolicy = StagePolicy.CONTINUE
    skip: Optional[Callable[[TransactionRecord, DeliveryAttempt], bool]] = None


class DeliveryOrchestrator:
    """
    Submission state machine.

    Collaborators are duck-typed channel adapters:
        record_store: create_transaction, attach_document, attach_url, add_note
        renderer: render(record, record_id) -> bytes
        mailer: send_transaction_document(record, document, note=None) -> bool
        object_store: upload_transaction_document(record_id, listing_id, data) -> url

    Usage:
        orchestrator = DeliveryOrchestrator(record_store, renderer, mailer, object_store)
        attempt = orchestrator.submit(record)
    """

    def __init__(
        self,
        record_store,
        renderer,
        mailer=None,
        object_store=None,
        governor: AttachmentSizeGovernor = None,
        ceiling: int = DEFAULT_CEILING,
        observer: Callable[[Dict], None] = None
    ):
        self.record_store = record_store
        self.renderer = renderer
        self.mailer = mailer
        self.object_store = object_store
        self.governor = governor or AttachmentSizeGovernor()
        self.ceiling = ceiling
        self.observer = observer

    @property
    def stages(self) -> List[PipelineStage]:
        # Storage is always tried before the record-store attachment,
        # which has the smallest ceiling.
        return [
            PipelineStage(Stage.SAVE, 'save', self._save, policy=StagePolicy.ABORT, skip=self._already_saved),
            PipelineStage(Stage.GENERATE, 'generate', self._generate, policy=StagePolicy.ABORT),
            PipelineStage(Stage.EMAIL, 'email', self._email),
            PipelineStage(Stage.STORE, 'complete', self._store, fallback=self._attach_to_record),
        ]

    def submit(self, record: TransactionRecord) -> DeliveryAttempt:
        """
        Run a record through every stage.

        Returns:
            The DeliveryAttempt. stage is COMPLETE whenever the record
            exists in the record store; otherwise it names the stage
            that failed and error holds the message.
        """
        attempt = DeliveryAttempt(record_id=record.record_id)
        tracker = ProgressTracker()
        attempt.steps = tracker.steps
        attempt.warnings = tracker.warnings
        tracker.start()
        self._sync(attempt, tracker)

        for pipeline_stage in self.stages:
            while tracker.current_step.id != pipeline_stage.step_id:
                tracker.advance()
            attempt.stage = pipeline_stage.stage
            self._sync(attempt, tracker)

            if pipeline_stage.skip and pipeline_stage.skip(record, attempt):
                attempt.record(pipeline_stage.stage, True, "skipped")
                continue

            try:
                pipeline_stage.action(record, attempt)
                attempt.record(pipeline_stage.stage, True)
                continue
            except SubmissionError as e:
                logger.warning(f"Stage '{pipeline_stage.stage.value}' failed for record {attempt.record_id}: {e}")
                attempt.record(pipeline_stage.stage, False, str(e))
                failure = e

            if pipeline_stage.fallback:
                pipeline_stage.fallback(record, attempt, failure)

            if pipeline_stage.policy is StagePolicy.ABORT:
                attempt.error = str(failure)
                attempt.error_type = failure.error_type
                tracker.fail(str(failure))
                self._sync(attempt, tracker)
                logger.error(f"Submission stopped at '{pipeline_stage.stage.value}': {failure}")
                return attempt

            tracker.warn(f"{pipeline_stage.stage.value}: {failure}")

        tracker.advance()
        attempt.stage = Stage.COMPLETE
        attempt.record(Stage.COMPLETE, True)
        self._sync(attempt, tracker)
        logger.info(
            f"Submission complete for record {attempt.record_id}: email_sent={attempt.email_sent}, "
            f"attachment={attempt.attachment_outcome.value if attempt.attachment_outcome else None}"
        )
        return attempt

    def _sync(self, attempt: DeliveryAttempt, tracker: ProgressTracker) -> None:
        attempt.current_step = tracker.current_index
        if self.observer:
            self.observer(tracker.to_dict())

    # =========================================================================
    # Stage actions
    # =========================================================================

    def _already_saved(self, record: TransactionRecord, attempt: DeliveryAttempt) -> bool:
        if attempt.record_id:
            logger.info(f"Record {attempt.record_id} already exists, skipping save")
            return True
        return False

    def _save(self, record: TransactionRecord, attempt: DeliveryAttempt) -> None:
        result = self.record_store.create_transaction(record)
        attempt.record_id = result.record_id
        attempt.party_errors.extend(result.party_errors)

    def _generate(self, record: TransactionRecord, attempt: DeliveryAttempt) -> None:
        document = self.renderer.render(record, attempt.record_id)
        attempt.document_bytes = document
        attempt.conditioned = self.governor.condition(document, self.ceiling)
        if attempt.conditioned.note:
            attempt.note = attempt.conditioned.note
        logger.info(
            f"Generated {len(document)} bytes for record {attempt.record_id}, "
            f"governor outcome {attempt.conditioned.outcome.value}"
        )

    def _email(self, record: TransactionRecord, attempt: DeliveryAttempt) -> None:
        if self.mailer is None:
            raise DeliveryChannelError("Email relay not configured", channel='email')

        conditioned = attempt.conditioned
        sent = self.mailer.send_transaction_document(record, conditioned.data, note=conditioned.note)
        if not sent:
            raise DeliveryChannelError("Email delivery failed", channel='email')
        attempt.email_sent = True

    def _store(self, record: TransactionRecord, attempt: DeliveryAttempt) -> None:
        if self.object_store is None:
            raise DeliveryChannelError("Object storage not configured", channel='storage')

        url = self.object_store.upload_transaction_document(
            attempt.record_id, record.property.listing_id, attempt.document_bytes
        )
        attempt.storage_url = url
        attempt.attachment_outcome = AttachmentOutcome.ATTACHED

        try:
            self.record_store.attach_url(attempt.record_id, url, document_filename(record))
        except RecordStoreError as e:
            logger.warning(f"Stored document could not be linked to record {attempt.record_id}: {e}")
            attempt.warnings.append(f"store: document stored but not linked to the record ({e})")

    def _attach_to_record(self, record: TransactionRecord, attempt: DeliveryAttempt, error: SubmissionError) -> None:
        """
        Storage failed: put the conditioned document (or the governor's
        note) straight onto the record. If that fails too, leave a
        manual follow-up note on the attempt.
        """
        conditioned = attempt.conditioned
        try:
            if conditioned.outcome is GovernorOutcome.NONE:
                self.record_store.add_note(attempt.record_id, conditioned.note)
                attempt.attachment_outcome = AttachmentOutcome.NOTE_ONLY
                attempt.note = conditioned.note
            else:
                self.record_store.attach_document(attempt.record_id, conditioned.data, document_filename(record))
                attempt.attachment_outcome = GOVERNOR_TO_ATTACHMENT[conditioned.outcome]
            attempt.record(Stage.STORE, True, f"fallback: {attempt.attachment_outcome.value}")
            logger.info(f"Storage failed, record {attempt.record_id} fallback: {attempt.attachment_outcome.value}")
        except RecordStoreError as e:
            logger.error(f"Record attachment fallback failed for {attempt.record_id}: {e}")
            attempt.attachment_outcome = AttachmentOutcome.NONE
            attempt.note = MANUAL_FOLLOW_UP_NOTE
            attempt.record(Stage.STORE, False, f"fallback: {e}")


def build_orchestrator(config) -> DeliveryOrchestrator:
    """
    Wire the production channels from a Flask config mapping.

    The generate stage calls RENDER_SERVICE_URL when it is set and
    renders in-process from the configured template otherwise.
    """
    record_store = AirtableService(
        api_key=config.get('AIRTABLE_API_KEY'),
        base_id=config.get('AIRTABLE_BASE_ID'),
        transactions_table=config.get('AIRTABLE_TRANSACTIONS_TABLE', 'Transactions'),
        clients_table=config.get('AIRTABLE_CLIENTS_TABLE', 'Clients'),
        attachment_fields=config.get('AIRTABLE_ATTACHMENT_FIELDS') or ['PDF Attachment'],
        notes_field=config.get('AIRTABLE_NOTES_FIELD', 'Additional Notes'),
        max_retries=config.get('RECORD_STORE_MAX_RETRIES', 3),
        retry_delay=config.get('RECORD_STORE_RETRY_DELAY', 1.0)
    )

    timeout = config.get('RENDER_TIMEOUT_SECONDS', 30)
    if config.get('RENDER_SERVICE_URL'):
        renderer = RenderClient(config['RENDER_SERVICE_URL'], secret=config.get('RENDER_SHARED_SECRET'), timeout=timeout)
    else:
        renderer = LocalRenderer(get_template_cache(config))

    governor = AttachmentSizeGovernor(
        rounds=config.get('COMPRESSION_ROUNDS', 3),
        truncation_margin=config.get('ATTACHMENT_TRUNCATION_MARGIN', 0.10)
    )

    mailer = EmailService(
        api_key=config.get('SENDGRID_API_KEY'),
        sender=config.get('MAIL_DEFAULT_SENDER'),
        recipient=config.get('TRANSACTION_EMAIL_RECIPIENT')
    )

    object_store = None
    if config.get('SUPABASE_URL') and config.get('SUPABASE_KEY'):
        object_store = SupabaseDocumentStore(bucket=config.get('TRANSACTION_DOCUMENTS_BUCKET', 'transaction-documents'))

    return DeliveryOrchestrator(
        record_store,
        renderer,
        mailer=mailer,
        object_store=object_store,
        governor=governor,
        ceiling=config.get('ATTACHMENT_CEILING_BYTES', DEFAULT_CEILING)
    )


# Template bytes are loaded once per process
_template_cache = None


def get_template_cache(config):
    """Get or create the process-wide cover sheet template cache."""
    global _template_cache
    if _template_cache is None:
        _template_cache = TemplateCache(
            path=config.get('TRANSACTION_TEMPLATE_PATH'),
            url=config.get('TRANSACTION_TEMPLATE_URL'),
            timeout=config.get('RENDER_TIMEOUT_SECONDS', 30)
        )
    return _template_cache
