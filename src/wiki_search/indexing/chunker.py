"""
Chunking utilities for page content.
"""

from __future__ import annotations

import re

_PARAGRAPH_BREAK = re.compile(r"\n[ \t\r\f\v]*\n\s*")


class ParagraphChunker:
    """
    Paragraph-aligned chunker with a soft size bound.

    Paragraphs are packed into a chunk until the next one would push it past
    ``max_length``. A paragraph is never split: one that is longer than
    ``max_length`` on its own becomes a chunk of its own.
    """

    def __init__(self, max_length: int = 500) -> None:
        if max_length <= 0:
            raise ValueError("max_length must be > 0")
        self.max_length = max_length

    def chunk_text(self, text: str) -> list[str]:
        """Split text into ordered chunks; always returns at least one chunk."""
        normalized = text.strip()
        paragraphs = [
            para.strip() for para in _PARAGRAPH_BREAK.split(normalized) if para.strip()
        ]
        if not paragraphs:
            return [normalized]

        chunks: list[str] = []
        buffer = ""
        for para in paragraphs:
            if buffer and len(buffer) + 2 + len(para) > self.max_length:
                chunks.append(buffer)
                buffer = ""
            buffer = f"{buffer}\n\n{para}" if buffer else para

        if buffer:
            chunks.append(buffer)
        return chunks
