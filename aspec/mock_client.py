"""
Deterministic completion client for tests and offline runs.
"""

import logging
import re
from pathlib import Path
from typing import Dict, List, Optional, Union

from .data_models import CompletionOptions, CompletionResponse, TokenUsage
from .llm_client import CompletionClient

logger = logging.getLogger(__name__)

DEFAULT_RESPONSE = "Mock response"
MOCK_USAGE = TokenUsage(prompt_tokens=100, completion_tokens=50, total_tokens=150)


class MockClient(CompletionClient):
    """
    Completion client that answers from fixtures instead of a provider.

    Responses are served in this order of preference:
    1. Queued responses (consumed one per call, the last one repeats)
    2. The first loaded fixture or keyed response
    3. A fixed placeholder

    Every prompt and option set is recorded in `calls` for assertions.
    An item in the queue that is an Exception is raised instead of returned.
    """

    def __init__(self, model_name: str = "mock-model", responses: Optional[List[Union[str, Exception]]] = None):
        self.model_name = model_name
        self.responses: Dict[str, str] = {}
        self.queue: List[Union[str, Exception]] = list(responses or [])
        self.calls: List[dict] = []

    def load_fixture(self, fixture_path: Union[str, Path]) -> None:
        """Load a response fixture from disk, keyed by its file name."""
        fixture_path = Path(fixture_path)
        try:
            content = fixture_path.read_text(encoding="utf-8")
        except OSError as e:
            raise FileNotFoundError(f"failed to load mock fixture: {e}")
        self.responses[fixture_path.name] = content

    def set_response(self, key: str, response: str) -> None:
        self.responses[key] = response

    def queue_responses(self, *responses: Union[str, Exception]) -> None:
        self.queue.extend(responses)

    @property
    def call_count(self) -> int:
        return len(self.calls)

    def _next_response(self) -> str:
        if self.queue:
            item = self.queue[0] if len(self.queue) == 1 else self.queue.pop(0)
            if isinstance(item, Exception):
                raise item
            return item
        if self.responses:
            return next(iter(self.responses.values()))
        return DEFAULT_RESPONSE

    def _respond(self, prompt: str, options: CompletionOptions, stream: bool) -> CompletionResponse:
        self.calls.append({"prompt": prompt, "options": options, "stream": stream})
        content = self._next_response()
        return CompletionResponse(
            content=content,
            usage=TokenUsage(**vars(MOCK_USAGE)),
            duration=0.1,
            model=self.model_name,
        )

    def complete(self, prompt, options=None, context=None):
        options = options or CompletionOptions()
        if context is not None:
            context.check_cancelled("completion")
        return self._respond(prompt, options, stream=False)

    def complete_stream(self, prompt, on_delta, options=None, context=None):
        options = options or CompletionOptions()
        self._check_stream_options(options)
        if context is not None:
            context.check_cancelled("streamed completion")

        response = self._respond(prompt, options, stream=True)
        if on_delta is not None:
            # Word-sized fragments that concatenate back to the full content
            for fragment in re.findall(r"\S+|\s+", response.content):
                on_delta(fragment)
        return response
