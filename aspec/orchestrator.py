import logging
import time
from dataclasses import dataclass, field
from typing import List, Optional

from .chunker import SemanticChunker
from .config import ExtractionConfig
from .context import RunContext, ensure_context
from .data_models import CompletionOptions
from .errors import ConfigurationError, SchemaConformanceError
from .llm_client import CompletionClient
from .merger import Merger, MergeOptions, MergeStrategy
from .models import Chunk, ValidationOutcome
from .processors import PayloadProcessor
from .prompts import EXTRACTION_PROMPT, MERGED_RESULT_PROMPT, render_template
from .retry import RetryingExtractor
from .specs import Spec
from .stats import UsageStats
from .tokenizer import TokenCounter
from .validator import SchemaValidator

logger = logging.getLogger(__name__)


def build_extraction_prompt(spec: Spec, text: str, template: Optional[str] = None) -> str:
    """
    Build the single-request extraction prompt.

    Args:
        spec: Target schema
        text: Full input text
        template: Prompt template override (same placeholders as EXTRACTION_PROMPT)

    Returns:
        The rendered prompt, embedding the complete schema
    """
    return render_template(
        template or EXTRACTION_PROMPT,
        schema_title=spec.display_name,
        input=text,
        schema=spec.raw,
    )


@dataclass
class ExtractionReport:
    """Everything one extraction run produced."""

    chunks: List[Chunk]
    payload: str
    outcome: Optional[ValidationOutcome] = None  # None when validation is off
    usage: UsageStats = field(default_factory=UsageStats)
    strategy: Optional[MergeStrategy] = None  # None when the input fit in one request
    error: Optional[SchemaConformanceError] = None

    @property
    def chunked(self) -> bool:
        return len(self.chunks) > 1

    @property
    def valid(self) -> bool:
        return self.outcome is None or self.outcome.valid


class ExtractionPipeline:
    """
    Extracts schema-conformant JSON from text of any length.

    Input that fits the chunk budget goes to the provider in one request.
    Larger input is chunked, each chunk is extracted and the partial results
    are merged with the configured strategy. With validation on, the final
    payload is checked against the schema and repaired when retries remain.
    """

    def __init__(
        self,
        spec: Spec,
        client: CompletionClient,
        config: Optional[ExtractionConfig] = None,
        context: Optional[RunContext] = None,
    ):
        self.spec = spec
        self.client = client
        self.config = (config or ExtractionConfig()).validate_config()
        self.context = ensure_context(context, logger)
        self.token_counter = TokenCounter()
        self.processor = PayloadProcessor()
        # Compiled up front so a bad schema fails before any provider call
        self.validator: Optional[SchemaValidator] = SchemaValidator(spec) if self.config.validate else None

    def extract(self, text: str) -> ExtractionReport:
        """
        Run the extraction.

        Args:
            text: Source document text

        Returns:
            ExtractionReport with the chunk plan, final payload and usage

        Raises:
            ConfigurationError: For empty input
            ChunkProcessingError: When a provider call fails during chunk processing
            SchemaConformanceError: When strict and the final payload is invalid
        """
        if not text or not text.strip():
            raise ConfigurationError("input is empty")

        start = time.monotonic()
        estimate = self.token_counter.count_tokens(text)
        if estimate <= self.config.chunk_size:
            self.context.logger.info(
                f"Input fits in a single request ({estimate} tokens, budget {self.config.chunk_size})"
            )
            report = self._extract_single(text, estimate)
        else:
            self.context.logger.info(
                f"Input exceeds chunk size ({estimate} > {self.config.chunk_size} tokens), chunking"
            )
            report = self._extract_chunked(text)
        report.usage.wall_time = time.monotonic() - start

        if report.error is not None:
            if self.config.strict:
                raise report.error
            self.context.logger.warning(f"Final result does not conform to {self.spec.display_name}")
        return report

    def _extract_single(self, text: str, estimate: int) -> ExtractionReport:
        chunks = [Chunk(index=0, text=text, token_estimate=estimate)]
        prompt = build_extraction_prompt(self.spec, text, self.config.extraction_prompt)
        self.context.logger.debug(f"Extraction prompt:\n{prompt}")
        usage = UsageStats()

        if self.config.validate:
            extractor = RetryingExtractor(self.validator, self.client, self.context, self.processor)
            result = extractor.validate_and_retry(prompt, self.config.max_retries)
            usage.add_all(result.responses)
            return ExtractionReport(
                chunks=chunks,
                payload=result.payload,
                outcome=result.outcome,
                usage=usage,
                error=result.error,
            )

        self.context.check_cancelled("extraction")
        response = self.client.complete(prompt, CompletionOptions(force_json=True), context=self.context)
        usage.add(response)
        return ExtractionReport(chunks=chunks, payload=self.processor.clean(response.content), usage=usage)

    def _extract_chunked(self, text: str) -> ExtractionReport:
        chunker = SemanticChunker(self.config.chunk_size, self.token_counter, self.context)
        chunks = chunker.chunk_text(text)
        for chunk in chunks:
            self.context.logger.info(
                f"Chunk {chunk.index + 1}/{len(chunks)}: {chunk.token_estimate} tokens, {len(chunk)} chars"
            )

        strategy = MergeStrategy.parse(self.config.merge_strategy)
        options = MergeOptions(
            strategy=strategy,
            instructions=self.config.merge_instructions,
            max_workers=self.config.max_workers,
            show_progress=self.config.show_progress,
        )
        merged = Merger(self.spec, self.client, options, self.context).process_chunks(chunks)

        usage = UsageStats()
        usage.add_all(result.response for result in merged.results)
        report = ExtractionReport(chunks=chunks, payload=merged.payload, usage=usage, strategy=strategy)

        if not self.config.validate:
            return report

        outcome = self.validator.validate(merged.payload)
        report.outcome = outcome
        if outcome.valid:
            self.context.logger.info("Merged result is valid")
            return report

        self.context.logger.warning(f"Merged result failed validation with {len(outcome.findings)} findings")
        prompt = render_template(
            MERGED_RESULT_PROMPT,
            schema_title=self.spec.display_name,
            schema=self.spec.raw,
        )
        extractor = RetryingExtractor(self.validator, self.client, self.context, self.processor)
        result = extractor.repair_existing(prompt, merged.payload, outcome, self.config.max_retries)
        usage.add_all(result.responses)

        report.payload = result.payload
        report.outcome = result.outcome
        report.error = result.error
        return report
