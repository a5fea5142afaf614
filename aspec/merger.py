"""
Merge strategies that turn per-chunk extractions into one payload.
"""

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional

from tqdm import tqdm

from .context import RunContext, ensure_context
from .data_models import CompletionOptions
from .errors import ChunkingError, ChunkProcessingError, ConfigurationError, ProviderError
from .llm_client import CompletionClient
from .models import Chunk, ChunkResult, MergeOutcome
from .processors import PayloadProcessor
from .prompts import (
    CHUNK_EXTRACTION_PROMPT,
    CONSOLIDATION_PROMPT,
    DEFAULT_CONSOLIDATION_INSTRUCTIONS,
    DEFAULT_MERGE_INSTRUCTIONS,
    MERGE_PROMPT,
    render_template,
)
from .specs import Spec

logger = logging.getLogger(__name__)

CONSOLIDATED_INDEX = -1


class MergeStrategy(Enum):
    INCREMENTAL = "incremental"
    TWO_PASS = "two-pass"
    TEMPLATE_DRIVEN = "template-driven"

    @classmethod
    def parse(cls, name) -> "MergeStrategy":
        """Look up a strategy by its CLI name, raising ConfigurationError if unknown."""
        if isinstance(name, cls):
            return name
        try:
            return cls((name or "").strip().lower())
        except ValueError:
            valid = ", ".join(s.value for s in cls)
            raise ConfigurationError(f"unknown merge strategy {name!r} (expected one of: {valid})")


@dataclass
class MergeOptions:
    strategy: MergeStrategy = MergeStrategy.INCREMENTAL
    instructions: str = ""  # Replaces the strategy's default instructions when non-empty
    max_workers: int = 1
    show_progress: bool = False


class Merger:
    """
    Extracts each chunk through the provider and merges the partial results.

    Strategies:
    - incremental: extract the first chunk, then fold every later chunk into
      the accumulated payload with one merge call each (n calls)
    - two-pass: extract every chunk independently, then consolidate all
      partial results with one more call (n + 1 calls)
    - template-driven: the two-pass call pattern, dispatched through its own
      hook so template-specific merging can be plugged in

    Any provider failure aborts the run with a ChunkProcessingError naming the
    chunk and phase. Nothing is checkpointed.
    """

    def __init__(
        self,
        spec: Spec,
        client: CompletionClient,
        options: Optional[MergeOptions] = None,
        context: Optional[RunContext] = None,
    ):
        self.spec = spec
        self.client = client
        self.options = options or MergeOptions()
        self.context = ensure_context(context, logger)
        self.processor = PayloadProcessor()

        self._strategies: Dict[MergeStrategy, Callable[[List[Chunk]], MergeOutcome]] = {
            MergeStrategy.INCREMENTAL: self._merge_incremental,
            MergeStrategy.TWO_PASS: self._merge_two_pass,
            MergeStrategy.TEMPLATE_DRIVEN: self._merge_by_template,
        }

    @property
    def strategy(self) -> MergeStrategy:
        return MergeStrategy.parse(self.options.strategy)

    def process_chunks(self, chunks: List[Chunk]) -> MergeOutcome:
        """
        Run the configured strategy over the chunks.

        Args:
            chunks: Chunks in document order

        Returns:
            MergeOutcome with the final payload and every per-call result
        """
        if not chunks:
            raise ChunkingError("no chunks to process")

        strategy = self.strategy
        if len(chunks) == 1:
            result = self._extract_chunk(chunks[0], total=1)
            return MergeOutcome(payload=result.payload, response=result.response, results=[result])

        self.context.logger.info(f"Processing {len(chunks)} chunks with {strategy.value} strategy")
        outcome = self._strategies[strategy](chunks)
        self.context.logger.info(
            f"Merged {len(chunks)} chunks with {strategy.value} strategy in {outcome.call_count} calls"
        )
        return outcome

    def _merge_incremental(self, chunks: List[Chunk]) -> MergeOutcome:
        total = len(chunks)
        first = self._extract_chunk(chunks[0], total)
        results = [first]
        accumulated = first

        remaining = tqdm(chunks[1:], desc="Merging chunks", disable=not self.options.show_progress)
        for chunk in remaining:
            self.context.logger.info(f"Merging chunk {chunk.index + 1}/{total} ({chunk.token_estimate} tokens)")
            prompt = render_template(
                MERGE_PROMPT,
                schema_title=self.spec.display_name,
                instructions=self._instructions(DEFAULT_MERGE_INSTRUCTIONS),
                previous=accumulated.payload,
                input=chunk.text,
                schema=self.spec.raw,
            )
            accumulated = self._call(prompt, chunk.index, chunk.text, "merge")
            results.append(accumulated)

        return MergeOutcome(payload=accumulated.payload, response=accumulated.response, results=results)

    def _merge_two_pass(self, chunks: List[Chunk]) -> MergeOutcome:
        partials = self._extract_all(chunks)
        consolidated = self._consolidate(partials)
        return MergeOutcome(
            payload=consolidated.payload,
            response=consolidated.response,
            results=partials + [consolidated],
        )

    def _merge_by_template(self, chunks: List[Chunk]) -> MergeOutcome:
        # Two-pass call pattern until template-specific merge rules exist
        self.context.logger.debug(f"Using template-driven merge for {self.spec.display_name}")
        return self._merge_two_pass(chunks)

    def _extract_all(self, chunks: List[Chunk]) -> List[ChunkResult]:
        """Phase one: extract every chunk independently, returned in chunk order."""
        total = len(chunks)
        workers = max(1, min(self.options.max_workers, total))
        progress = dict(total=total, desc="Extracting chunks", disable=not self.options.show_progress)

        if workers == 1:
            return [self._extract_chunk(chunk, total) for chunk in tqdm(chunks, **progress)]

        self.context.logger.info(f"Extracting {total} chunks with {workers} workers")
        # Set on the first failure so in-flight workers stop at their next cancellation check
        abort = self.context.child()
        results: List[Optional[ChunkResult]] = [None] * total
        executor = ThreadPoolExecutor(max_workers=workers)
        futures = {
            executor.submit(self._extract_chunk, chunk, total, abort): position
            for position, chunk in enumerate(chunks)
        }
        try:
            for future in tqdm(as_completed(futures), **progress):
                results[futures[future]] = future.result()
        except BaseException:
            abort.cancel()
            executor.shutdown(wait=False, cancel_futures=True)
            raise
        executor.shutdown(wait=True)
        return results

    def _extract_chunk(self, chunk: Chunk, total: int, context: Optional[RunContext] = None) -> ChunkResult:
        self.context.logger.info(f"Processing chunk {chunk.index + 1}/{total} ({chunk.token_estimate} tokens)")
        prompt = render_template(
            CHUNK_EXTRACTION_PROMPT,
            schema_title=self.spec.display_name,
            input=chunk.text,
            schema=self.spec.raw,
        )
        return self._call(prompt, chunk.index, chunk.text, "extract", context)

    def _consolidate(self, partials: List[ChunkResult]) -> ChunkResult:
        """Phase two: one call combining all partial results, listed in chunk order."""
        self.context.logger.info(f"Consolidating {len(partials)} partial results")
        listing = "".join(
            f"Result {position}:\n{result.payload}\n\n"
            for position, result in enumerate(partials, start=1)
        )
        prompt = render_template(
            CONSOLIDATION_PROMPT,
            instructions=self._instructions(DEFAULT_CONSOLIDATION_INSTRUCTIONS),
            results=listing,
            schema=self.spec.raw,
        )
        return self._call(prompt, CONSOLIDATED_INDEX, "consolidated", "consolidate")

    def _instructions(self, default: str) -> str:
        custom = self.options.instructions
        if custom and custom.strip():
            return custom
        return default

    def _call(
        self,
        prompt: str,
        chunk_index: int,
        text: str,
        phase: str,
        context: Optional[RunContext] = None,
    ) -> ChunkResult:
        if context is None:
            context = self.context
        context.check_cancelled(f"{phase} of chunk {chunk_index}")
        self.context.logger.debug(f"{phase} prompt for chunk {chunk_index}:\n{prompt}")

        try:
            response = self.client.complete(
                prompt, CompletionOptions(force_json=True), context=context
            )
        except ProviderError as e:
            self.context.logger.error(f"{phase} failed for chunk {chunk_index}: {e}")
            raise ChunkProcessingError(str(e), chunk_index=chunk_index, phase=phase) from e

        payload = self.processor.clean(response.content)
        return ChunkResult(index=chunk_index, text=text, payload=payload, response=response)
