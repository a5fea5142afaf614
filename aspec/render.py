"""
Two-step rendering: extract structured JSON, then verbalize it as Markdown.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Optional

from .context import RunContext, ensure_context
from .data_models import CompletionOptions
from .errors import ConfigurationError, SchemaConformanceError
from .llm_client import CompletionClient, StreamCallback
from .orchestrator import build_extraction_prompt
from .processors import PayloadProcessor
from .prompts import VERBALIZATION_PROMPT, render_template
from .retry import RetryingExtractor
from .specs import Spec
from .stats import UsageStats
from .validator import SchemaValidator

logger = logging.getLogger(__name__)


@dataclass
class RenderResult:
    json_payload: str
    markdown: str
    usage: UsageStats = field(default_factory=UsageStats)


class Renderer:
    """Turns raw input into Markdown by way of a schema-shaped extraction."""

    def __init__(
        self,
        spec: Spec,
        client: CompletionClient,
        context: Optional[RunContext] = None,
        extraction_prompt: Optional[str] = None,
        verbalization_prompt: Optional[str] = None,
    ):
        """
        Initialize the renderer.

        Args:
            spec: Target schema
            client: Completion provider
            context: Run context providing the logger and cancellation signal
            extraction_prompt: Extraction template override (default: EXTRACTION_PROMPT)
            verbalization_prompt: Markdown template override (default: VERBALIZATION_PROMPT)
        """
        self.spec = spec
        self.client = client
        self.extraction_prompt = extraction_prompt
        self.verbalization_prompt = verbalization_prompt or VERBALIZATION_PROMPT
        self.context = ensure_context(context, logger)
        self.processor = PayloadProcessor()

    def render(
        self,
        text: str,
        stream: bool = False,
        on_delta: Optional[StreamCallback] = None,
        validate: bool = False,
        max_retries: int = 2,
    ) -> RenderResult:
        """
        Extract the input into JSON and verbalize the JSON into Markdown.

        Args:
            text: Source input
            stream: Stream the Markdown step, passing each fragment to on_delta
            on_delta: Callback for streamed fragments, called in arrival order
            validate: Validate the extraction and run the repair loop
            max_retries: Repair attempts when validating

        Returns:
            RenderResult with the JSON payload, the Markdown and combined usage

        Raises:
            ConfigurationError: For empty input
            SchemaConformanceError: When validating and the extraction stays invalid
        """
        if not text or not text.strip():
            raise ConfigurationError("input is empty")

        start = time.monotonic()
        usage = UsageStats()
        log = self.context.logger

        log.info("Step 1: Extracting structured data...")
        payload = self._extract(text, validate, max_retries, usage)
        log.info("Step 1: Extraction completed")

        log.info("Step 2: Generating Markdown...")
        prompt = render_template(self.verbalization_prompt, json_data=self.processor.pretty_or_raw(payload))
        self.context.check_cancelled("verbalization")

        if stream:
            parts = []

            def collect(delta: str) -> None:
                parts.append(delta)
                if on_delta is not None:
                    on_delta(delta)

            response = self.client.complete_stream(prompt, collect, CompletionOptions(), context=self.context)
            markdown = "".join(parts) or response.content
        else:
            response = self.client.complete(prompt, CompletionOptions(), context=self.context)
            markdown = response.content
        usage.add(response)
        log.info("Step 2: Markdown generation completed")
        usage.wall_time = time.monotonic() - start

        return RenderResult(json_payload=payload, markdown=markdown, usage=usage)

    def _extract(self, text: str, validate: bool, max_retries: int, usage: UsageStats) -> str:
        prompt = build_extraction_prompt(self.spec, text, self.extraction_prompt)

        if not validate:
            self.context.check_cancelled("extraction")
            response = self.client.complete(prompt, CompletionOptions(force_json=True), context=self.context)
            usage.add(response)
            return self.processor.clean(response.content)

        extractor = RetryingExtractor(SchemaValidator(self.spec), self.client, self.context, self.processor)
        result = extractor.validate_and_retry(prompt, max_retries)
        usage.add_all(result.responses)
        if result.error is not None:
            raise SchemaConformanceError(
                f"failed to extract valid JSON: {result.outcome.format_errors()}",
                payload=result.payload,
                outcome=result.outcome,
            )
        return result.payload
