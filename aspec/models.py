"""
Shared data models for the chunk, merge and validation pipeline.
"""

from typing import List, Optional
from dataclasses import dataclass, field

from .data_models import CompletionResponse


@dataclass
class Chunk:
    """An ordered fragment of the source document."""

    index: int
    text: str
    token_estimate: int

    def __len__(self) -> int:
        return len(self.text)


@dataclass
class ChunkResult:
    """Result of one provider call made for a chunk (index -1 for a consolidation)."""

    index: int
    text: str
    payload: str
    response: Optional[CompletionResponse] = None
    error: Optional[Exception] = None


@dataclass
class MergeOutcome:
    """Final merged payload plus the response of the terminal provider call."""

    payload: str
    response: Optional[CompletionResponse]
    results: List[ChunkResult] = field(default_factory=list)

    @property
    def call_count(self) -> int:
        return len(self.results)


@dataclass(frozen=True)
class ValidationFinding:
    """A single schema violation."""

    path: str
    message: str


ROOT_PATH = "root"


@dataclass
class ValidationOutcome:
    """Result of validating a payload against a schema."""

    valid: bool
    findings: List[ValidationFinding] = field(default_factory=list)

    def format_errors(self) -> str:
        """Render findings one per line, omitting the path for root-level findings."""
        if self.valid:
            return "No validation errors"

        messages = []
        for finding in self.findings:
            if finding.path and finding.path != ROOT_PATH:
                messages.append(f"  {finding.path}: {finding.message}")
            else:
                messages.append(f"  {finding.message}")

        return "Validation errors:\n" + "\n".join(messages)
