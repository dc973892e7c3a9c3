"""
Transaction Document Generation

A configuration-driven pipeline that turns a transaction record into a
filled cover sheet PDF. Coordinates are defined in YAML layouts and
drawn onto a cached template.

Usage:
    from services.documents import FieldMapper, DocumentAssembler, TemplateCache

    record = TransactionRecord.from_dict(payload)
    instructions = FieldMapper.map(record)
    pdf_bytes = DocumentAssembler().assemble(cache.get(), instructions)
    conditioned = AttachmentSizeGovernor().condition(pdf_bytes, ceiling)
"""

from .types import (
    AgentRole,
    PartySide,
    Stage,
    AttachmentOutcome,
    GovernorOutcome,
    StepStatus,
    Party,
    PropertyInfo,
    CommissionTerms,
    PropertyDetail,
    TitleCompany,
    TransactionNotes,
    AgentIdentity,
    TransactionRecord,
    LayoutField,
    LayoutVariant,
    DocumentLayout,
    PositionedTextInstruction,
    ConditionedAttachment,
    SubmissionStep,
    StageResult,
    PartyError,
    DeliveryAttempt
)

from .exceptions import (
    SubmissionError,
    ConfigurationError,
    TemplateError,
    RenderTimeoutError,
    RecordStoreError,
    DeliveryChannelError,
    SizeLimitError
)

from .layout_loader import LayoutLoader
from .field_mapper import FieldMapper, map_record
from .template_cache import TemplateCache
from .assembler import DocumentAssembler, assemble
from .size_governor import AttachmentSizeGovernor, compress_pdf
from .render_client import RenderClient, LocalRenderer
from .transforms import TRANSFORMS, apply_transform, sanitize_text

__all__ = [
    # Types
    'AgentRole',
    'PartySide',
    'Stage',
    'AttachmentOutcome',
    'GovernorOutcome',
    'StepStatus',
    'Party',
    'PropertyInfo',
    'CommissionTerms',
    'PropertyDetail',
    'TitleCompany',
    'TransactionNotes',
    'AgentIdentity',
    'TransactionRecord',
    'LayoutField',
    'LayoutVariant',
    'DocumentLayout',
    'PositionedTextInstruction',
    'ConditionedAttachment',
    'SubmissionStep',
    'StageResult',
    'PartyError',
    'DeliveryAttempt',

    # Exceptions
    'SubmissionError',
    'ConfigurationError',
    'TemplateError',
    'RenderTimeoutError',
    'RecordStoreError',
    'DeliveryChannelError',
    'SizeLimitError',

    # Services
    'LayoutLoader',
    'FieldMapper',
    'map_record',
    'TemplateCache',
    'DocumentAssembler',
    'assemble',
    'AttachmentSizeGovernor',
    'compress_pdf',
    'RenderClient',
    'LocalRenderer',

    # Transforms
    'TRANSFORMS',
    'apply_transform',
    'sanitize_text',
]
