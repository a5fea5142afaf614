import os
from dataclasses import dataclass, field, replace
from typing import Optional

from dotenv import load_dotenv

from .errors import ConfigurationError

# Load environment variables from .env file
load_dotenv()

# Provider configuration
DEFAULT_MODEL = os.getenv("ASPEC_MODEL", "openai/gpt-4o-mini")
DEFAULT_BASE_URL = os.getenv("ASPEC_BASE_URL", "https://openrouter.ai/api/v1")
DEFAULT_PROVIDER = os.getenv("ASPEC_PROVIDER", "openrouter")
SYSTEM_PROMPT_FILE = os.getenv("ASPEC_SYSTEM_PROMPT_FILE", "")

# Prompt template overrides, read by ExtractionConfig.from_env
EXTRACTION_PROMPT_FILE_VAR = "ASPEC_EXTRACTION_PROMPT_FILE"
VERBALIZATION_PROMPT_FILE_VAR = "ASPEC_VERBALIZATION_PROMPT_FILE"

EXTRACTION_PLACEHOLDERS = ("schema_title", "input", "schema")
VERBALIZATION_PLACEHOLDERS = ("json_data",)

# Chunking and merge configuration
DEFAULT_CHUNK_SIZE = 20000  # Maximum estimated tokens per chunk
DEFAULT_MERGE_STRATEGY = "incremental"
DEFAULT_MAX_RETRIES = 2
DEFAULT_MAX_WORKERS = 1  # Phase-1 fan-out for two-pass strategies

KNOWN_PROVIDERS = ("openrouter", "openai", "gemini", "mock")


def get_api_key(provider: str) -> Optional[str]:
    """Return the API key for the given provider from the environment."""
    if provider == "gemini":
        return os.getenv("GOOGLE_API_KEY")
    if provider == "openai":
        return os.getenv("OPENAI_API_KEY")
    return os.getenv("OPENROUTER_API_KEY")


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}")


@dataclass
class ExtractionConfig:
    """Configuration consumed by the chunk/merge/validate core."""

    chunk_size: int = DEFAULT_CHUNK_SIZE
    merge_strategy: str = DEFAULT_MERGE_STRATEGY
    merge_instructions: str = ""
    max_retries: int = DEFAULT_MAX_RETRIES
    max_workers: int = DEFAULT_MAX_WORKERS
    validate: bool = False
    strict: bool = False
    show_progress: bool = False
    model: str = DEFAULT_MODEL
    provider: str = DEFAULT_PROVIDER
    base_url: str = DEFAULT_BASE_URL
    extraction_prompt: Optional[str] = field(default=None, repr=False)
    verbalization_prompt: Optional[str] = field(default=None, repr=False)

    @classmethod
    def from_env(cls, **overrides) -> "ExtractionConfig":
        """
        Build a config from ASPEC_* environment variables.

        Keyword arguments whose value is not None take precedence.
        """
        config = cls(
            chunk_size=_env_int("ASPEC_CHUNK_SIZE", DEFAULT_CHUNK_SIZE),
            merge_strategy=os.getenv("ASPEC_MERGE_STRATEGY", DEFAULT_MERGE_STRATEGY),
            max_retries=_env_int("ASPEC_MAX_RETRIES", DEFAULT_MAX_RETRIES),
            max_workers=_env_int("ASPEC_MAX_WORKERS", DEFAULT_MAX_WORKERS),
            model=os.getenv("ASPEC_MODEL", DEFAULT_MODEL),
            provider=os.getenv("ASPEC_PROVIDER", DEFAULT_PROVIDER),
            base_url=os.getenv("ASPEC_BASE_URL", DEFAULT_BASE_URL),
            extraction_prompt=load_prompt_template(
                os.getenv(EXTRACTION_PROMPT_FILE_VAR), "extraction prompt"
            ),
            verbalization_prompt=load_prompt_template(
                os.getenv(VERBALIZATION_PROMPT_FILE_VAR), "verbalization prompt"
            ),
        )
        overrides = {k: v for k, v in overrides.items() if v is not None}
        return replace(config, **overrides)

    def validate_config(self) -> "ExtractionConfig":
        """Fail fast on values the core cannot work with."""
        # Imported here to avoid a cycle: merger imports config through llm_client.
        from .merger import MergeStrategy

        if not isinstance(self.chunk_size, int) or self.chunk_size <= 0:
            raise ConfigurationError(f"chunk size must be a positive integer, got {self.chunk_size!r}")
        if self.max_retries < 0:
            raise ConfigurationError(f"max retries must be non-negative, got {self.max_retries}")
        if self.max_workers < 1:
            raise ConfigurationError(f"max workers must be at least 1, got {self.max_workers}")
        if self.provider not in KNOWN_PROVIDERS:
            raise ConfigurationError(
                f"unknown provider: {self.provider} (expected one of {', '.join(KNOWN_PROVIDERS)})"
            )
        MergeStrategy.parse(self.merge_strategy)
        _check_template(self.extraction_prompt, "extraction prompt", *EXTRACTION_PLACEHOLDERS)
        _check_template(self.verbalization_prompt, "verbalization prompt", *VERBALIZATION_PLACEHOLDERS)
        return self


def _read_prompt_file(path: str, kind: str) -> str:
    try:
        with open(path, "r", encoding="utf-8") as f:
            return f.read().strip()
    except OSError as e:
        raise ConfigurationError(f"failed to read {kind} file {path}: {e}")


def load_system_prompt(path: Optional[str] = None) -> Optional[str]:
    """Read a custom system prompt file if one is configured."""
    path = path or SYSTEM_PROMPT_FILE
    if not path:
        return None
    return _read_prompt_file(path, "system prompt")


def load_prompt_template(path: Optional[str], kind: str = "prompt template") -> Optional[str]:
    """Read a prompt template file, or return None when no path is set."""
    if not path:
        return None
    return _read_prompt_file(path, kind)


def _check_template(template: Optional[str], kind: str, *placeholders: str) -> None:
    if template is None:
        return
    try:
        template.format(**{name: "" for name in placeholders})
    except (KeyError, IndexError, ValueError) as e:
        raise ConfigurationError(
            f"{kind} template is invalid ({e!r}); available placeholders: "
            + ", ".join("{" + name + "}" for name in placeholders)
        )
