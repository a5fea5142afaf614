"""
Usage aggregation and the stats block printed after a run.
"""

from dataclasses import dataclass
from typing import Iterable, Optional

from .data_models import CompletionResponse, TokenUsage

# Approximate USD per 1M tokens (prompt, completion)
MODEL_COSTS = {
    "openai/gpt-4o-mini": (0.15, 0.60),
    "openai/gpt-4o": (5.00, 15.00),
    "openai/gpt-3.5-turbo": (0.50, 1.50),
    "anthropic/claude-3-haiku": (0.25, 1.25),
    "anthropic/claude-3-sonnet": (3.00, 15.00),
    "anthropic/claude-3-opus": (15.00, 75.00),
}


@dataclass
class UsageStats:
    """
    Token usage, call count and timings for a run.

    provider_time sums the duration of every call, so it overstates the run
    when phase one runs in parallel; wall_time is set by whoever timed the run.
    """

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    calls: int = 0
    provider_time: float = 0.0  # seconds summed over provider calls
    wall_time: Optional[float] = None  # seconds from start to finish of the run
    model: str = ""

    def add(self, response: Optional[CompletionResponse]) -> "UsageStats":
        if response is None:
            return self
        self.prompt_tokens += response.usage.prompt_tokens
        self.completion_tokens += response.usage.completion_tokens
        self.total_tokens += response.usage.total_tokens
        self.calls += 1
        self.provider_time += response.duration
        if response.model:
            self.model = response.model
        return self

    def add_all(self, responses: Iterable[Optional[CompletionResponse]]) -> "UsageStats":
        for response in responses:
            self.add(response)
        return self

    @property
    def duration(self) -> float:
        """Wall-clock time when recorded, otherwise provider time."""
        return self.wall_time if self.wall_time is not None else self.provider_time

    @property
    def usage(self) -> TokenUsage:
        return TokenUsage(
            prompt_tokens=self.prompt_tokens,
            completion_tokens=self.completion_tokens,
            total_tokens=self.total_tokens,
        )

    def to_dict(self) -> dict:
        return {
            "model": self.model,
            "calls": self.calls,
            "duration": round(self.duration, 3),
            "provider_time": round(self.provider_time, 3),
            "prompt_tokens": self.prompt_tokens,
            "completion_tokens": self.completion_tokens,
            "total_tokens": self.total_tokens,
        }


def estimate_cost(model: str, usage: TokenUsage) -> float:
    """Rough cost in USD, or 0.0 for models without a known rate."""
    rates = MODEL_COSTS.get(model)
    if rates is None:
        return 0.0
    prompt_rate, completion_rate = rates
    return (usage.prompt_tokens / 1_000_000) * prompt_rate + (usage.completion_tokens / 1_000_000) * completion_rate


def format_stats(stats: UsageStats) -> str:
    lines = [
        "",
        "--- Stats ---",
        f"Model: {stats.model}",
        f"Calls: {stats.calls}",
        f"Duration: {stats.duration:.2f}s",
        f"Tokens: {stats.prompt_tokens} prompt + {stats.completion_tokens} completion = {stats.total_tokens} total",
    ]
    if stats.wall_time is not None:
        lines.insert(5, f"Provider time: {stats.provider_time:.2f}s")
    cost = estimate_cost(stats.model, stats.usage)
    if cost > 0:
        lines.append(f"Estimated cost: ${cost:.6f}")
    return "\n".join(lines) + "\n"
