"""
Attachment Size Governor

Conditions a generated document for a channel's attachment ceiling:
pass it through, shrink it, truncate it by a small margin, or give up
and hand back a note telling a human to share it another way.
"""

import logging
from typing import Callable, Optional

import fitz  # PyMuPDF

from .types import ConditionedAttachment, GovernorOutcome
from .exceptions import SizeLimitError

logger = logging.getLogger(__name__)

# Record store attachment limit
DEFAULT_CEILING = 1 * 1024 * 1024

MAX_COMPRESSION_ROUNDS = 3
TRUNCATION_MARGIN = 0.10

# Each round targets this fraction of the current size, lowered per round
START_QUALITY = 0.8
QUALITY_STEP = 0.1
MIN_QUALITY = 0.3

# (data, round_number, target_size) -> smaller data
Compressor = Callable[[bytes, int, int], bytes]


def compress_pdf(data: bytes, round_number: int, target_size: int) -> bytes:
    """
    Re-save a PDF with increasingly aggressive cleanup.

    Round 1 drops unused objects and deflates streams; round 2 also
    cleans content streams and recompresses images and fonts; round 3
    and later scrub metadata and embedded files first. PyMuPDF has no
    byte-target mode, so target_size only feeds the logs.
    """
    doc = fitz.open(stream=data, filetype="pdf")
    try:
        if round_number <= 1:
            return doc.tobytes(garbage=3, deflate=True)
        if round_number == 2:
            return doc.tobytes(garbage=4, clean=True, deflate=True, deflate_images=True, deflate_fonts=True)

        doc.scrub(
            metadata=True, xml_metadata=True, attached_files=True, embedded_files=True, thumbnails=True,
            hidden_text=False, remove_links=False, reset_fields=False, redactions=False
        )
        return doc.tobytes(garbage=4, clean=True, deflate=True, deflate_images=True, deflate_fonts=True)
    finally:
        doc.close()


class AttachmentSizeGovernor:
    """
    Usage:
        governor = AttachmentSizeGovernor()
        result = governor.condition(pdf_bytes, ceiling=1024 * 1024)
        if result.outcome is GovernorOutcome.NONE:
            record_store.add_note(record_id, result.note)
    """

    def __init__(
        self,
        compressor: Optional[Compressor] = None,
        rounds: int = MAX_COMPRESSION_ROUNDS,
        truncation_margin: float = TRUNCATION_MARGIN
    ):
        self.compressor = compressor or compress_pdf
        self.rounds = rounds
        self.truncation_margin = truncation_margin

    def condition(self, blob: bytes, ceiling: int = DEFAULT_CEILING, allow_note: bool = True) -> ConditionedAttachment:
        """
        Bring a blob under the ceiling if possible.

        Args:
            blob: The document bytes
            ceiling: Maximum size the target channel accepts
            allow_note: Whether the channel accepts a note instead of
                        the attachment

        Returns:
            ConditionedAttachment. UNCHANGED carries the original bytes
            object; TRUNCATED and NONE always carry a note. Truncation
            only follows a compression round that made the blob smaller.

        Raises:
            SizeLimitError: if nothing fits and allow_note is False
        """
        size = len(blob)
        if size <= ceiling:
            return ConditionedAttachment(outcome=GovernorOutcome.UNCHANGED, data=blob)

        logger.info(f"Document is {size} bytes, over the {ceiling}-byte ceiling; compressing")

        current = blob
        compressed = False
        quality = START_QUALITY
        for round_number in range(1, self.rounds + 1):
            target = int(len(current) * quality)
            quality = max(MIN_QUALITY, quality - QUALITY_STEP)
            try:
                candidate = self.compressor(current, round_number, target)
            except (RuntimeError, ValueError) as e:
                logger.warning(f"Compression round {round_number} failed: {e}")
                continue

            logger.info(
                f"Compression round {round_number}: target {target} bytes, "
                f"got {len(candidate) if candidate else 0} bytes"
            )
            if candidate and len(candidate) < len(current):
                current = candidate
                compressed = True
            if len(current) <= ceiling:
                return ConditionedAttachment(outcome=GovernorOutcome.COMPRESSED, data=current)

        if compressed and len(current) <= ceiling * (1 + self.truncation_margin):
            note = (
                f"The attached transaction document was truncated from {len(current)} to {ceiling} bytes "
                f"to fit the attachment limit and may be incomplete. Check the confirmation email or "
                f"document storage for the complete copy."
            )
            logger.warning(f"Truncating document from {len(current)} to {ceiling} bytes")
            return ConditionedAttachment(outcome=GovernorOutcome.TRUNCATED, data=current[:ceiling], note=note)

        message = (
            f"The transaction document ({size} bytes) is larger than the {ceiling}-byte attachment limit "
            f"even after compression. Please share it through an external file-sharing link "
            f"(for example a shared drive) instead of attaching it."
        )
        if not allow_note:
            raise SizeLimitError(message, size=size, ceiling=ceiling)

        logger.warning(f"Document could not be brought under {ceiling} bytes ({len(current)} after compression)")
        return ConditionedAttachment(outcome=GovernorOutcome.NONE, note=message)
