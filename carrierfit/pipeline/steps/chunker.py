"""
Step 1: Chunking
Splits guideline text into overlapping, section-aware chunks.
"""

import logging
import math
import re
from typing import List, Optional

from carrierfit.config import get_settings
from carrierfit.pipeline.models import Chunk, chunk_id_for


logger = logging.getLogger(__name__)

# Sentence-like unit boundaries: terminal punctuation or a line break,
# together with the whitespace that follows them.
UNIT_BOUNDARY = re.compile(r"[.!?]+(?=\s|$)\s*|\n\s*")

SECTION_HEADER = re.compile(
    r"^(?:Section|SECTION|Chapter|CHAPTER|Part|PART|Article|ARTICLE)\s+[0-9IVX]+(?:\.[0-9]+)*\s*:"
    r"|^#{1,6}\s+\S"
)

WORD = re.compile(r"\S+")

MAX_SECTION_LABEL = 200


def estimate_tokens(text: str) -> int:
    """Rough token count: one token per four characters."""
    return math.ceil(len(text) / 4)


def split_units(text: str) -> List[str]:
    """
    Split text into sentence-like units.

    Units are exact consecutive substrings, so ``"".join(split_units(t)) == t``.
    """
    units = []
    start = 0
    for match in UNIT_BOUNDARY.finditer(text):
        if match.end() > start:
            units.append(text[start:match.end()])
            start = match.end()
    if start < len(text):
        units.append(text[start:])
    return units


def section_label(unit: str) -> Optional[str]:
    """Return the section label if the unit is a recognized header."""
    stripped = unit.strip()
    if stripped and SECTION_HEADER.match(stripped):
        return stripped.lstrip("#").strip()[:MAX_SECTION_LABEL]
    return None


def trailing_words(text: str, count: int) -> str:
    """Exact trailing substring of text starting at its count-th last word."""
    if count <= 0:
        return ""
    words = list(WORD.finditer(text))
    if not words:
        return ""
    return text[words[-min(count, len(words))].start():]


def reconstruct(chunks: List[Chunk]) -> str:
    """Rebuild the source text from chunks by dropping each overlap prefix."""
    return "".join(chunk.body for chunk in sorted(chunks, key=lambda c: c.seq))


class ChunkerStep:
    """
    Splits document text into chunks of roughly ``chunk_size`` tokens.

    A section header always starts a new chunk. A chunk that grows past the
    target size is closed and the next one is seeded with the trailing
    words of the closed chunk; the seed length is recorded on the chunk as
    ``overlap_chars``. A single unit larger than the target becomes its own
    chunk untruncated.
    """

    def __init__(self, chunk_size: Optional[int] = None, overlap: Optional[int] = None):
        settings = get_settings()
        self.chunk_size = chunk_size if chunk_size is not None else settings.chunk_size
        self.overlap = overlap if overlap is not None else settings.chunk_overlap
        self.overlap_words = self.overlap // 4

    def execute(self, document_id: str, text: str) -> List[Chunk]:
        """
        Chunk a document.

        Args:
            document_id: Owning document id, used to derive chunk ids
            text: Full extracted text

        Returns:
            Chunks in sequence order; empty only for empty text
        """
        if not text:
            return []

        chunks: List[Chunk] = []
        section: Optional[str] = None
        overlap = ""
        body = ""

        def flush() -> None:
            chunk_text = overlap + body
            chunks.append(Chunk(
                id=chunk_id_for(document_id, len(chunks)),
                document_id=document_id,
                seq=len(chunks),
                section=section,
                text=chunk_text,
                overlap_chars=len(overlap),
                token_count=estimate_tokens(chunk_text),
            ))

        for unit in split_units(text):
            label = section_label(unit)
            if label is not None:
                if body.strip():
                    flush()
                    body = ""
                overlap = ""
                section = label
                body += unit
                continue

            if body.strip() and estimate_tokens(overlap + body + unit) > self.chunk_size:
                flush()
                overlap = trailing_words(chunks[-1].text, self.overlap_words)
                body = unit
            else:
                body += unit

        if body.strip() or not chunks:
            flush()
        elif body:
            # Whitespace-only tail belongs to the last chunk
            last = chunks[-1]
            text_with_tail = last.text + body
            chunks[-1] = last.model_copy(update={
                "text": text_with_tail,
                "token_count": estimate_tokens(text_with_tail),
            })

        logger.debug(f"Chunked document {document_id} into {len(chunks)} chunks")
        return chunks
