from dataclasses import dataclass, field


@dataclass
class TokenUsage:
    """Token counts reported by the provider for one call."""
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


@dataclass
class CompletionOptions:
    """Per-call options for a completion request."""
    force_json: bool = False


@dataclass
class CompletionResponse:
    """A single completion returned by a provider."""
    content: str
    usage: TokenUsage = field(default_factory=TokenUsage)
    duration: float = 0.0  # seconds
    model: str = ""

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "content": self.content,
            "usage": {
                "prompt_tokens": self.usage.prompt_tokens,
                "completion_tokens": self.usage.completion_tokens,
                "total_tokens": self.usage.total_tokens,
            },
            "duration": self.duration,
            "model": self.model,
        }
