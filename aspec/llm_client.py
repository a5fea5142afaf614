"""
Completion provider clients.

Every client implements the same capability interface, so the pipeline never
needs to know whether it holds a real provider or the mock one.
"""

import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Optional, Tuple

import openai
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from .config import DEFAULT_BASE_URL, DEFAULT_MODEL, get_api_key
from .context import RunContext
from .data_models import CompletionOptions, CompletionResponse, TokenUsage
from .errors import AspecError, ConfigurationError, ProviderError
from .prompts import DEFAULT_SYSTEM_PROMPT

logger = logging.getLogger(__name__)

StreamCallback = Callable[[str], None]

APP_TITLE = "aspec CLI"


class CompletionClient(ABC):
    """
    Interface for generative completion providers.

    Transient transport failures are retried inside the client; anything that
    still fails surfaces as a ProviderError.
    """

    model_name: str = ""
    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    transient_errors: Tuple[type, ...] = ()
    max_attempts: int = 3
    retry_wait = wait_exponential(multiplier=1, min=4, max=10)

    @classmethod
    def create(
        cls,
        provider: str,
        model_name: Optional[str] = None,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        system_prompt: Optional[str] = None,
    ) -> "CompletionClient":
        """
        Factory method to create a client for the named provider.

        Args:
            provider: One of 'openrouter', 'openai', 'gemini' or 'mock'
            model_name: Model to use (provider default if omitted)
            api_key: API key (read from the environment if omitted)
            base_url: Endpoint override for OpenAI-compatible providers
            system_prompt: System prompt override

        Returns:
            CompletionClient instance
        """
        provider = (provider or "").lower()
        if provider == "mock":
            from .mock_client import MockClient
            client = MockClient(model_name=model_name or "mock-model")
        elif provider == "gemini":
            client = GeminiClient(model_name=model_name or "gemini-2.5-pro", api_key=api_key)
        elif provider == "openai":
            client = OpenAIClient(model_name=model_name or "gpt-4o-mini", api_key=api_key,
                                  base_url=base_url, provider="openai")
        elif provider == "openrouter":
            client = OpenAIClient(model_name=model_name or DEFAULT_MODEL, api_key=api_key,
                                  base_url=base_url or DEFAULT_BASE_URL, provider="openrouter")
        else:
            raise ConfigurationError(f"Unsupported provider: {provider}")

        if system_prompt:
            client.set_system_prompt(system_prompt)
        return client

    def set_system_prompt(self, prompt: str) -> None:
        self.system_prompt = prompt

    @abstractmethod
    def complete(
        self,
        prompt: str,
        options: Optional[CompletionOptions] = None,
        context: Optional[RunContext] = None,
    ) -> CompletionResponse:
        """
        Run a single blocking completion.

        Args:
            prompt: User prompt
            options: Completion options (force_json for structured output)
            context: Run context whose cancellation signal is honoured

        Returns:
            The completion response
        """

    @abstractmethod
    def complete_stream(
        self,
        prompt: str,
        on_delta: Optional[StreamCallback],
        options: Optional[CompletionOptions] = None,
        context: Optional[RunContext] = None,
    ) -> CompletionResponse:
        """
        Run a streamed completion, passing each content fragment to on_delta in order.

        Streaming cannot be combined with force_json.
        """

    @staticmethod
    def _check_stream_options(options: CompletionOptions) -> None:
        if options.force_json:
            raise ProviderError("streaming is not compatible with JSON response format")

    def _call_with_retries(self, func: Callable[..., Any], *args, **kwargs) -> Any:
        """Call func, retrying only the client's transient error types."""
        retryer = Retrying(
            retry=retry_if_exception_type(self.transient_errors),
            stop=stop_after_attempt(self.max_attempts),
            wait=self.retry_wait,
            reraise=True,
        )
        return retryer(func, *args, **kwargs)


class OpenAIClient(CompletionClient):
    """
    Client for OpenAI-compatible chat completion endpoints (OpenAI, OpenRouter).
    """

    transient_errors = (openai.APIConnectionError, openai.APITimeoutError, openai.RateLimitError)

    def __init__(
        self,
        model_name: str = DEFAULT_MODEL,
        api_key: Optional[str] = None,
        base_url: Optional[str] = DEFAULT_BASE_URL,
        provider: str = "openrouter",
        timeout: float = 600.0,
    ):
        """
        Initialize the client.

        Args:
            model_name: Name of the model to use
            api_key: API key for the provider
            base_url: API endpoint (None for the OpenAI default)
            provider: 'openrouter' or 'openai', used to pick the API key variable
            timeout: Request timeout in seconds
        """
        self.model_name = model_name
        self.provider = provider
        self.api_key = api_key or get_api_key(provider)
        if not self.api_key:
            env_name = "OPENAI_API_KEY" if provider == "openai" else "OPENROUTER_API_KEY"
            raise ConfigurationError(f"{provider} API key not found. Set {env_name} environment variable")

        self.base_url = base_url
        self.client = openai.OpenAI(
            api_key=self.api_key,
            base_url=base_url,
            timeout=timeout,
            max_retries=0,  # Retries are handled by tenacity
            default_headers={"X-Title": APP_TITLE},
        )
        logger.debug(f"Created LLM client: model={model_name} base_url={base_url} provider={provider}")

    def _messages(self, prompt: str) -> list:
        return [
            {"role": "system", "content": self.system_prompt},
            {"role": "user", "content": prompt},
        ]

    def complete(self, prompt, options=None, context=None):
        options = options or CompletionOptions()
        if context is not None:
            context.check_cancelled("completion")

        start = time.monotonic()
        logger.debug(
            f"Starting LLM completion: model={self.model_name} force_json={options.force_json} "
            f"prompt_len={len(prompt)}"
        )

        request = {"model": self.model_name, "messages": self._messages(prompt)}
        if options.force_json:
            request["response_format"] = {"type": "json_object"}

        try:
            response = self._call_with_retries(self.client.chat.completions.create, **request)
        except openai.OpenAIError as e:
            logger.debug(f"LLM completion failed: {e}")
            raise ProviderError(f"OpenAI API error: {e}") from e

        if not response.choices:
            raise ProviderError("no completion choices returned")

        duration = time.monotonic() - start
        usage = _openai_usage(response.usage)
        result = CompletionResponse(
            content=response.choices[0].message.content or "",
            usage=usage,
            duration=duration,
            model=response.model or self.model_name,
        )

        logger.debug(
            f"LLM completion finished: duration_ms={int(duration * 1000)} "
            f"prompt_tokens={usage.prompt_tokens} completion_tokens={usage.completion_tokens} "
            f"total_tokens={usage.total_tokens} response_len={len(result.content)}"
        )
        return result

    def complete_stream(self, prompt, on_delta, options=None, context=None):
        options = options or CompletionOptions()
        self._check_stream_options(options)
        if context is not None:
            context.check_cancelled("streamed completion")

        start = time.monotonic()
        try:
            stream = self._call_with_retries(
                self.client.chat.completions.create,
                model=self.model_name,
                messages=self._messages(prompt),
                stream=True,
                stream_options={"include_usage": True},
            )
        except openai.OpenAIError as e:
            raise ProviderError(f"OpenAI stream error: {e}") from e

        parts = []
        usage = TokenUsage()
        model = self.model_name
        try:
            for event in stream:
                if context is not None:
                    context.check_cancelled("next stream fragment")
                if event.choices:
                    delta = event.choices[0].delta.content
                    if delta:
                        parts.append(delta)
                        if on_delta is not None:
                            on_delta(delta)
                if getattr(event, "usage", None):
                    usage = _openai_usage(event.usage)
                if event.model:
                    model = event.model
        except openai.OpenAIError as e:
            raise ProviderError(f"stream receive error: {e}") from e
        finally:
            close = getattr(stream, "close", None)
            if close is not None:
                close()

        return CompletionResponse(
            content="".join(parts),
            usage=usage,
            duration=time.monotonic() - start,
            model=model,
        )


def _openai_usage(usage) -> TokenUsage:
    if usage is None:
        return TokenUsage()
    return TokenUsage(
        prompt_tokens=usage.prompt_tokens or 0,
        completion_tokens=usage.completion_tokens or 0,
        total_tokens=usage.total_tokens or 0,
    )


class GeminiClient(CompletionClient):
    """
    Client for Google Gemini models.
    """

    def __init__(
        self,
        model_name: str = "gemini-2.5-pro",
        api_key: Optional[str] = None,
        temperature: float = 0.2,
        max_tokens: int = 65536,
    ):
        """
        Initialize the client.

        Args:
            model_name: Name of the Gemini model to use
            api_key: API key (default: GOOGLE_API_KEY)
            temperature: Temperature for generation (lower = more deterministic)
            max_tokens: Maximum tokens in the response
        """
        self.model_name = model_name
        self.api_key = api_key or get_api_key("gemini")
        if not self.api_key:
            raise ConfigurationError("Gemini API key not found. Set GOOGLE_API_KEY environment variable")

        self.temperature = temperature
        self.max_tokens = max_tokens
        self._init_client()

    def _init_client(self):
        """Initialize Google Gemini client."""
        try:
            import google.generativeai as genai
            from google.api_core import exceptions as google_exceptions
        except ImportError:
            raise ImportError(
                "google-generativeai package not installed. "
                "Install it with: pip install google-generativeai"
            )

        genai.configure(api_key=self.api_key)
        self.client = genai
        self.transient_errors = (
            google_exceptions.ResourceExhausted,
            google_exceptions.ServiceUnavailable,
            google_exceptions.DeadlineExceeded,
        )
        self._build_model()
        logger.info(f"Initialized Gemini client with model: {self.model_name}")

    def _build_model(self):
        self.model = self.client.GenerativeModel(
            model_name=self.model_name,
            system_instruction=self.system_prompt,
            generation_config={
                "max_output_tokens": self.max_tokens,
                "temperature": self.temperature,
            },
        )

    def set_system_prompt(self, prompt: str) -> None:
        self.system_prompt = prompt
        self._build_model()

    def complete(self, prompt, options=None, context=None):
        options = options or CompletionOptions()
        if context is not None:
            context.check_cancelled("completion")

        start = time.monotonic()
        generation_config = {"response_mime_type": "application/json"} if options.force_json else None

        try:
            response = self._call_with_retries(
                self.model.generate_content, prompt, generation_config=generation_config
            )
            content = response.text
        except Exception as e:
            logger.error(f"Error calling Gemini API: {str(e)}")
            raise ProviderError(f"Gemini API error: {e}") from e

        return CompletionResponse(
            content=content,
            usage=_gemini_usage(response),
            duration=time.monotonic() - start,
            model=self.model_name,
        )

    def complete_stream(self, prompt, on_delta, options=None, context=None):
        options = options or CompletionOptions()
        self._check_stream_options(options)
        if context is not None:
            context.check_cancelled("streamed completion")

        start = time.monotonic()
        try:
            response = self._call_with_retries(self.model.generate_content, prompt, stream=True)
        except Exception as e:
            raise ProviderError(f"Gemini stream error: {e}") from e

        parts = []
        try:
            for event in response:
                if context is not None:
                    context.check_cancelled("next stream fragment")
                delta = _gemini_text(event)
                if delta:
                    parts.append(delta)
                    if on_delta is not None:
                        on_delta(delta)
        except AspecError:
            raise
        except Exception as e:
            logger.error(f"Gemini stream failed after {len(parts)} fragments: {str(e)}")
            raise ProviderError(f"Gemini stream receive error: {e}") from e

        return CompletionResponse(
            content="".join(parts),
            usage=_gemini_usage(response),
            duration=time.monotonic() - start,
            model=self.model_name,
        )


def _gemini_text(event) -> str:
    # .text raises ValueError when a fragment carries no text parts
    try:
        return event.text
    except ValueError:
        return ""


def _gemini_usage(response) -> TokenUsage:
    metadata = getattr(response, "usage_metadata", None)
    if metadata is None:
        return TokenUsage()
    return TokenUsage(
        prompt_tokens=getattr(metadata, "prompt_token_count", 0) or 0,
        completion_tokens=getattr(metadata, "candidates_token_count", 0) or 0,
        total_tokens=getattr(metadata, "total_token_count", 0) or 0,
    )


def create_client(
    provider: str,
    model_name: Optional[str] = None,
    api_key: Optional[str] = None,
    base_url: Optional[str] = None,
    system_prompt: Optional[str] = None,
) -> CompletionClient:
    """Create a completion client for the named provider."""
    return CompletionClient.create(
        provider,
        model_name=model_name,
        api_key=api_key,
        base_url=base_url,
        system_prompt=system_prompt,
    )
