"""
Text Extraction
═══════════════

Converts the raw bytes of a named file into plain text, dispatching on the
lowercased file extension:

  .docx  → python-docx   (paragraph text, one paragraph per line)
  .pdf   → PyMuPDF       (page text layer, pages separated by a blank line)
  other  → strict UTF-8 decode, verbatim (.txt, .md, source code, ...)

Failure policy:
  - Any parser or decoding error raises ExtractionError with the library
    exception chained as the cause. The document is not ingested.
  - Text that is empty after stripping raises EmptyDocumentError.

The parsers are blocking, so they run in the default thread executor and
never stall the event loop while a large PDF is being read.
"""

from __future__ import annotations

import asyncio
import io
import logging
import time
from dataclasses import dataclass

from knowledge_factory.core.exceptions import EmptyDocumentError, ExtractionError

logger = logging.getLogger(__name__)

EMPTY_DOCUMENT_MESSAGE = "Document appears to be empty or could not be read."


# ---------------------------------------------------------------------------
# Result dataclass
# ---------------------------------------------------------------------------

@dataclass
class ExtractionResult:
    """
    text          : extracted plain text (guaranteed non-blank)
    extension     : lowercased extension without the dot ("" if none)
    strategy_used : "docx" | "pdf" | "plain"
    page_count    : PDF page count; 1 for every other format
    elapsed_ms    : wall time spent in the parser
    """
    text:          str
    extension:     str
    strategy_used: str
    page_count:    int
    elapsed_ms:    float

    @property
    def total_chars(self) -> int:
        return len(self.text)


def get_extension(file_name: str) -> str:
    """Return the lowercased extension without the dot ("" if there is none)."""
    parts = file_name.rsplit(".", 1)
    return parts[-1].lower() if len(parts) == 2 else ""


# ---------------------------------------------------------------------------
# Extractor
# ---------------------------------------------------------------------------

class TextExtractor:
    """
    Stateless extractor — safe to share between concurrent requests.

    Usage:
        extractor = TextExtractor()
        text = await extractor.extract(file_bytes, "handbook.pdf")
    """

    async def extract(self, data: bytes, file_name: str) -> str:
        result = await self.extract_document(data, file_name)
        return result.text

    async def extract_document(self, data: bytes, file_name: str) -> ExtractionResult:
        """
        Extract text and report which strategy produced it.

        Raises:
            ExtractionError:    parser / decoding failure
            EmptyDocumentError: nothing but whitespace came out
        """
        extension = get_extension(file_name)
        loop = asyncio.get_event_loop()
        t0 = time.monotonic()

        try:
            text, strategy, page_count = await loop.run_in_executor(
                None, self._extract_sync, data, extension,
            )
        except Exception as exc:
            logger.error(
                "Extraction failed | file=%s ext=%s error=%s",
                file_name, extension or "-", exc,
            )
            raise ExtractionError(f"Failed to extract text: {exc}", cause=exc) from exc

        elapsed_ms = (time.monotonic() - t0) * 1000

        if not text or not text.strip():
            logger.warning("Extraction produced no text | file=%s ext=%s", file_name, extension or "-")
            raise EmptyDocumentError(EMPTY_DOCUMENT_MESSAGE)

        logger.info(
            "Extraction | file=%s strategy=%s pages=%d chars=%d elapsed_ms=%.0f",
            file_name, strategy, page_count, len(text), elapsed_ms,
        )
        return ExtractionResult(
            text=text,
            extension=extension,
            strategy_used=strategy,
            page_count=page_count,
            elapsed_ms=elapsed_ms,
        )

    # ------------------------------------------------------------------
    # Blocking strategies: run in the thread executor
    # ------------------------------------------------------------------

    def _extract_sync(self, data: bytes, extension: str) -> tuple[str, str, int]:
        if extension == "docx":
            return _extract_docx(data), "docx", 1
        if extension == "pdf":
            text, page_count = _extract_pdf(data)
            return text, "pdf", page_count
        return data.decode("utf-8"), "plain", 1


def _extract_docx(data: bytes) -> str:
    """Extract paragraph text from DOCX bytes using python-docx."""
    import docx  # python-docx; imported here to avoid module-level import cost

    document = docx.Document(io.BytesIO(data))
    return "\n".join(para.text for para in document.paragraphs)


def _extract_pdf(data: bytes) -> tuple[str, int]:
    """
    Extract the text layer from PDF bytes using PyMuPDF.
    The document handle is closed by the ``with`` block whether or not a
    page fails to parse.
    """
    import fitz  # PyMuPDF

    with fitz.open(stream=data, filetype="pdf") as doc:
        pages = [page.get_text("text") or "" for page in doc]

    return "\n\n".join(p for p in pages if p.strip()), len(pages)
