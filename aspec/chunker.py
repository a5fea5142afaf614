"""
Budgeted text chunking that prefers semantic boundaries.
"""

import logging
from typing import List, Optional, Tuple

from .context import RunContext, ensure_context
from .errors import ChunkingError
from .models import Chunk
from .tokenizer import TokenCounter

logger = logging.getLogger(__name__)

# Semantic boundaries, coarsest first
BOUNDARIES = [
    "\n\n\n",  # Multiple blank lines
    "\n\n",    # Paragraph breaks
    "\n",      # Line breaks
    ". ",      # Sentence endings
    "? ",      # Question endings
    "! ",      # Exclamation endings
    ", ",      # Comma breaks
    " ",       # Word boundaries
]

FORCE_SPLIT_MARGIN = 0.8
WHITESPACE = (" ", "\n", "\t")


class SemanticChunker:
    """
    Splits oversized text into an ordered sequence of chunks within a token budget.

    Each step extracts the longest leading chunk any boundary can produce, so
    the document is covered by as few provider calls as possible. Punctuation
    belonging to a boundary (the "." of ". ") stays with the chunk it ends;
    only the whitespace between chunks is dropped.
    """

    def __init__(
        self,
        max_tokens: int,
        token_counter: Optional[TokenCounter] = None,
        context: Optional[RunContext] = None,
    ):
        """
        Initialize the chunker.

        Args:
            max_tokens: Maximum estimated tokens per chunk
            token_counter: Estimator to use (default: TokenCounter())
            context: Run context providing the logger
        """
        if max_tokens <= 0:
            raise ChunkingError(f"chunk budget must be positive, got {max_tokens}")
        self.max_tokens = max_tokens
        self.token_counter = token_counter or TokenCounter()
        self.context = ensure_context(context, logger)

    def chunk_text(self, text: str) -> List[Chunk]:
        """
        Split text into chunks, preferring semantic boundaries.

        Args:
            text: Full document text

        Returns:
            Ordered list of chunks
        """
        total_tokens = self.token_counter.count_tokens(text)
        if total_tokens <= self.max_tokens:
            return [Chunk(index=0, text=text, token_estimate=total_tokens)]

        pieces: List[str] = []
        remaining = text

        while remaining and self.token_counter.count_tokens(remaining) > self.max_tokens:
            found = self._find_optimal_chunk(remaining)
            if found is None:
                # No boundary fits: hard split at a character offset
                chunk, rest = self._force_split(remaining)
                self.context.logger.debug(
                    f"Forced split of {len(remaining)} characters at offset {len(chunk)}"
                )
            else:
                chunk, rest = found

            if len(rest) >= len(remaining):
                raise ChunkingError(
                    f"chunker made no progress on {len(remaining)} remaining characters"
                )

            pieces.append(chunk)
            remaining = rest

        # Add remaining text if any
        if remaining.strip():
            pieces.append(remaining.strip())

        chunks = [
            Chunk(index=i, text=piece, token_estimate=self.token_counter.count_tokens(piece))
            for i, piece in enumerate(pieces)
        ]

        self.context.logger.info(
            f"Split {total_tokens} estimated tokens into {len(chunks)} chunks "
            f"(limit {self.max_tokens} per chunk)"
        )
        return chunks

    def estimated_chunk_count(self, text: str) -> int:
        """
        Predict how many chunks the text will need, for progress display only.

        The chunker may produce more chunks than this, since chunks end on
        boundaries rather than exactly at the budget.
        """
        total_tokens = self.token_counter.count_tokens(text)
        if total_tokens <= self.max_tokens:
            return 1
        return -(-total_tokens // self.max_tokens)  # Ceiling division

    def validate_boundary(self, text: str, boundary: str) -> bool:
        """Check whether a boundary splits the text into a reasonable number of parts."""
        parts = text.split(boundary)
        return 1 < len(parts) < len(text) // 10

    def _fits(self, char_count: int) -> bool:
        return self.token_counter.estimate_for_length(char_count) <= self.max_tokens

    def _find_optimal_chunk(self, text: str) -> Optional[Tuple[str, str]]:
        """
        Find the longest leading chunk any boundary can produce.

        Returns:
            (chunk, remaining) or None if every boundary was rejected
        """
        if self._fits(len(text)):
            return text, ""

        best: Optional[Tuple[str, str]] = None
        for boundary in BOUNDARIES:
            candidate = self._try_boundary(text, boundary)
            if candidate is None:
                continue
            if best is None or len(candidate[0]) > len(best[0]):
                best = candidate

        return best

    def _try_boundary(self, text: str, boundary: str) -> Optional[Tuple[str, str]]:
        """
        Greedily accumulate boundary-separated parts while they fit the budget.

        Returns:
            (chunk, remaining), or None if the first part alone is too big or the
            boundary does not occur in the text
        """
        tail = boundary.rstrip()
        end = 0
        search_from = 0

        while True:
            pos = text.find(boundary, search_from)
            if pos == -1:
                # The last part runs to the end of the text, which is over budget
                break
            if not self._fits(pos + len(tail)):
                break
            end = pos
            search_from = pos + len(boundary)

        if end == 0:
            return None

        chunk = text[:end].rstrip() + tail
        if not chunk.strip():
            return None
        return chunk, text[end + len(boundary):].lstrip()

    def _force_split(self, text: str) -> Tuple[str, str]:
        """Hard split near the budget's character equivalent, on whitespace if possible."""
        char_limit = int(self.max_tokens * self.token_counter.chars_per_token * FORCE_SPLIT_MARGIN)
        char_limit = max(char_limit, 1)

        if len(text) <= char_limit:
            return text, ""

        # Find the last whitespace before the limit
        cut_point = char_limit
        while cut_point > 0 and text[cut_point] not in WHITESPACE:
            cut_point -= 1

        chunk = text[:cut_point].rstrip()
        if cut_point == 0 or not chunk:
            cut_point = char_limit  # No whitespace found, hard cut
            chunk = text[:cut_point]

        return chunk, text[cut_point:].lstrip()
