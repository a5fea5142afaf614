"""
Error taxonomy for the extraction pipeline.
"""

from typing import Optional


class AspecError(Exception):
    """Base class for all pipeline errors."""


class ConfigurationError(AspecError, ValueError):
    """Invalid configuration, raised before any provider call is made."""


class ChunkingError(AspecError):
    """Internal invariant violation inside the chunker."""


class ProviderError(AspecError):
    """Transport, auth, rate-limit or model failure from the completion provider."""


class ChunkProcessingError(ProviderError):
    """A provider failure annotated with the chunk index and phase it came from."""

    def __init__(self, message: str, chunk_index: int, phase: str):
        super().__init__(f"{phase} failed for chunk {chunk_index}: {message}")
        self.chunk_index = chunk_index
        self.phase = phase


class SchemaConformanceError(AspecError):
    """
    The payload still violates the schema after the repair loop.

    Carries the last payload and its validation outcome so callers can report
    both instead of discarding the attempted output.
    """

    def __init__(self, message: str, payload: Optional[str] = None, outcome=None):
        super().__init__(message)
        self.payload = payload
        self.outcome = outcome


class ExtractionCancelled(AspecError):
    """The caller cancelled the run; no merge state was committed."""
