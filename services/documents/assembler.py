"""
Document Assembler

Draws positioned text instructions onto the cover sheet template with
PyMuPDF and returns the serialized PDF.

Instruction coordinates use the PDF convention (bottom-left origin);
PyMuPDF draws with a top-left origin, so every y is flipped against the
fixed page height before drawing.
"""

import logging
from typing import List, Sequence

import fitz  # PyMuPDF

from .types import PositionedTextInstruction
from .exceptions import TemplateError

logger = logging.getLogger(__name__)

# US Letter, in points
PAGE_WIDTH = 612
PAGE_HEIGHT = 792

LINE_HEIGHT_FACTOR = 1.2

REGULAR_FONT = "helv"
BOLD_FONT = "hebo"


class DocumentAssembler:
    """
    Single-pass interpreter over a PositionedTextInstruction list.

    Usage:
        pdf_bytes = DocumentAssembler().assemble(template_bytes, instructions)
    """

    def __init__(self, page_width: float = PAGE_WIDTH, page_height: float = PAGE_HEIGHT):
        self.page_width = page_width
        self.page_height = page_height

    def assemble(self, template: bytes, instructions: Sequence[PositionedTextInstruction]) -> bytes:
        """
        Render instructions onto a copy of the template.

        Every template page is forced to the fixed page size, and blank
        pages are appended until the highest instruction page exists.
        The template bytes are never modified.

        Raises:
            TemplateError: if the template cannot be parsed
        """
        doc = self._open(template)
        try:
            self._normalize_pages(doc)

            required_pages = max((i.page for i in instructions), default=0) + 1
            appended = 0
            while doc.page_count < required_pages:
                doc.new_page(width=self.page_width, height=self.page_height)
                appended += 1
            if appended:
                logger.debug(f"Appended {appended} blank page(s) to reach page index {required_pages - 1}")

            # One font object per weight, shared by every instruction
            fonts = {
                False: fitz.Font(REGULAR_FONT),
                True: fitz.Font(BOLD_FONT),
            }

            for instruction in instructions:
                page = doc[instruction.page]
                font = fonts[instruction.bold]
                writer = fitz.TextWriter(page.rect)
                for text, y in self._layout_lines(instruction, font):
                    writer.append(
                        fitz.Point(instruction.x, self.page_height - y),
                        text,
                        font=font,
                        fontsize=instruction.font_size
                    )
                writer.write_text(page)

            return doc.tobytes(garbage=3, deflate=True)
        finally:
            doc.close()

    def _open(self, template: bytes) -> fitz.Document:
        if not template:
            raise TemplateError("Template is empty")
        try:
            doc = fitz.open(stream=template, filetype="pdf")
        except (RuntimeError, ValueError) as e:
            raise TemplateError(f"Template could not be parsed: {e}")
        if not doc.is_pdf:
            doc.close()
            raise TemplateError("Template is not a PDF document")
        return doc

    def _normalize_pages(self, doc: fitz.Document) -> None:
        """Force every existing page to the fixed page size."""
        target = fitz.Rect(0, 0, self.page_width, self.page_height)
        for page in doc:
            if page.rect != target:
                page.set_rotation(0)
                page.set_mediabox(target)

    def _layout_lines(self, instruction: PositionedTextInstruction, font: fitz.Font) -> List[tuple]:
        """
        Split an instruction into (text, y) lines.

        Embedded newlines start a new line. Without a max width each
        paragraph is one line. With one, words are added greedily while
        the measured line fits; on overflow the current line is flushed
        and the cursor moves down one line height.
        """
        line_height = instruction.font_size * LINE_HEIGHT_FACTOR
        lines = []
        cursor_y = instruction.y
        for paragraph in instruction.text.split("\n"):
            paragraph = paragraph.rstrip("\r")
            if instruction.max_width is None:
                if paragraph:
                    lines.append((paragraph, cursor_y))
                cursor_y -= line_height
                continue

            line = ""
            for word in paragraph.split(" "):
                candidate = f"{line} {word}" if line else word
                width = font.text_length(candidate, fontsize=instruction.font_size)
                if width > instruction.max_width and line:
                    lines.append((line, cursor_y))
                    cursor_y -= line_height
                    line = word
                else:
                    line = candidate
            if line:
                lines.append((line, cursor_y))
            cursor_y -= line_height
        return lines


def assemble(template: bytes, instructions: Sequence[PositionedTextInstruction]) -> bytes:
    """Convenience wrapper around DocumentAssembler.assemble."""
    return DocumentAssembler().assemble(template, instructions)


def page_count(pdf_bytes: bytes) -> int:
    """
    Count the pages of a PDF.

    Raises:
        TemplateError: if the bytes are not a readable PDF
    """
    doc = DocumentAssembler()._open(pdf_bytes)
    try:
        return doc.page_count
    finally:
        doc.close()
