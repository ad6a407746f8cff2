"""
Text Chunking Service

Splits an article into chunks at three granularities, each embedded
separately so search can match a whole article, a passage or a sentence:

- DOCUMENT: the full text, always exactly one chunk
- PARAGRAPH: ~1000 characters with 200 characters of overlap
- SENTENCE: ~200 characters with 50 characters of overlap

Paragraph and sentence chunks come from a recursive character splitter:
split on the coarsest separator present in the text, greedily merge the
pieces back up to ``chunk_size`` (carrying up to ``chunk_overlap``
characters of trailing pieces into the next chunk), and recurse with finer
separators on any piece that is still too long.

Configuration from settings:
- PARAGRAPH_CHUNK_SIZE / PARAGRAPH_CHUNK_OVERLAP: 1000 / 200
- SENTENCE_CHUNK_SIZE / SENTENCE_CHUNK_OVERLAP: 200 / 50
"""

import logging
from dataclasses import dataclass
from typing import Any, List, Optional, Sequence

from harvester.core.config import settings
from harvester.models.content import ChunkGranularity

logger = logging.getLogger(__name__)


PARAGRAPH_SEPARATORS = ["\n\n", "\n", ". ", " ", ""]
SENTENCE_SEPARATORS = [". ", "! ", "? ", "; ", ", ", " ", ""]


@dataclass
class TextChunk:
    """One chunk of text with its position among chunks of the same granularity."""

    content: str
    granularity: ChunkGranularity
    index: int
    total_chunks: int

    @property
    def metadata(self) -> dict[str, Any]:
        return {
            "index": self.index,
            "total_chunks": self.total_chunks,
            "char_count": len(self.content),
        }


class RecursiveCharacterSplitter:
    """
    Recursive character text splitter.

    Separators are removed at split points and re-inserted between pieces
    that end up in the same chunk. Chunks are stripped; empty chunks are
    dropped.

    Usage:
    ------
    splitter = RecursiveCharacterSplitter(chunk_size=200, chunk_overlap=50,
                                          separators=SENTENCE_SEPARATORS)
    pieces = splitter.split_text(article_text)
    """

    def __init__(
        self,
        chunk_size: int,
        chunk_overlap: int,
        separators: Sequence[str],
    ):
        if chunk_overlap >= chunk_size:
            raise ValueError(
                f"chunk_overlap ({chunk_overlap}) must be smaller than chunk_size ({chunk_size})"
            )
        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap
        self.separators = list(separators)

    def split_text(self, text: str) -> List[str]:
        return self._split(text, self.separators)

    def _split(self, text: str, separators: List[str]) -> List[str]:
        # Coarsest separator that actually occurs; "" means per character
        separator = separators[-1]
        finer: List[str] = []
        for i, candidate in enumerate(separators):
            if candidate == "":
                separator = candidate
                break
            if candidate in text:
                separator = candidate
                finer = separators[i + 1:]
                break

        pieces = text.split(separator) if separator else list(text)
        pieces = [piece for piece in pieces if piece != ""]

        chunks: List[str] = []
        small: List[str] = []
        for piece in pieces:
            if len(piece) < self.chunk_size:
                small.append(piece)
                continue

            if small:
                chunks.extend(self._merge(small, separator))
                small = []

            if finer:
                chunks.extend(self._split(piece, finer))
            else:
                chunks.append(piece)

        if small:
            chunks.extend(self._merge(small, separator))

        return chunks

    def _merge(self, pieces: List[str], separator: str) -> List[str]:
        """Greedily pack pieces into chunks of at most chunk_size, with overlap."""
        sep_len = len(separator)
        chunks: List[str] = []
        window: List[str] = []
        total = 0

        for piece in pieces:
            piece_len = len(piece)
            joined_len = total + piece_len + (sep_len if window else 0)

            if joined_len > self.chunk_size and window:
                if total > self.chunk_size:
                    logger.debug(f"Created a chunk of {total} chars, above chunk_size {self.chunk_size}")

                chunk = self._join(window, separator)
                if chunk is not None:
                    chunks.append(chunk)

                # Drop leading pieces until what is left fits as overlap
                while total > self.chunk_overlap or (
                    total + piece_len + (sep_len if window else 0) > self.chunk_size
                    and total > 0
                ):
                    total -= len(window[0]) + (sep_len if len(window) > 1 else 0)
                    window = window[1:]

            window.append(piece)
            total += piece_len + (sep_len if len(window) > 1 else 0)

        chunk = self._join(window, separator)
        if chunk is not None:
            chunks.append(chunk)

        return chunks

    @staticmethod
    def _join(pieces: List[str], separator: str) -> Optional[str]:
        text = separator.join(pieces).strip()
        return text or None


class TextChunker:
    """
    Multi-granularity chunker.

    Usage:
    ------
    chunker = TextChunker()
    for chunk in chunker.chunk(article.content):
        print(chunk.granularity, chunk.index, chunk.total_chunks)
    """

    def __init__(
        self,
        paragraph_size: int = None,
        paragraph_overlap: int = None,
        sentence_size: int = None,
        sentence_overlap: int = None,
    ):
        self.paragraph_splitter = RecursiveCharacterSplitter(
            chunk_size=paragraph_size or settings.PARAGRAPH_CHUNK_SIZE,
            chunk_overlap=(
                paragraph_overlap if paragraph_overlap is not None
                else settings.PARAGRAPH_CHUNK_OVERLAP
            ),
            separators=PARAGRAPH_SEPARATORS,
        )
        self.sentence_splitter = RecursiveCharacterSplitter(
            chunk_size=sentence_size or settings.SENTENCE_CHUNK_SIZE,
            chunk_overlap=(
                sentence_overlap if sentence_overlap is not None
                else settings.SENTENCE_CHUNK_OVERLAP
            ),
            separators=SENTENCE_SEPARATORS,
        )

    def chunk(self, text: str) -> List[TextChunk]:
        """
        Chunk ``text`` at every granularity.

        Returns:
            Document chunk first, then paragraph chunks, then sentence chunks.
            Empty list for blank text.
        """
        if not text or not text.strip():
            return []

        chunks = [TextChunk(text, ChunkGranularity.DOCUMENT, 0, 1)]
        chunks.extend(
            self._number(self.paragraph_splitter.split_text(text), ChunkGranularity.PARAGRAPH)
        )
        chunks.extend(
            self._number(self.sentence_splitter.split_text(text), ChunkGranularity.SENTENCE)
        )
        return chunks

    @staticmethod
    def _number(pieces: List[str], granularity: ChunkGranularity) -> List[TextChunk]:
        total = len(pieces)
        return [
            TextChunk(content=piece, granularity=granularity, index=i, total_chunks=total)
            for i, piece in enumerate(pieces)
        ]


def chunk_text(text: str) -> List[TextChunk]:
    """Chunk ``text`` with the configured sizes."""
    return TextChunker().chunk(text)
