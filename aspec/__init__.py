"""
aspec: Schema-Driven Extraction
===============================

Extracts schema-conformant JSON from unstructured documents with a generative
completion provider. Oversized input is split at semantic boundaries, each
chunk is extracted, partial results are merged with one of several strategies,
and the final payload is validated and repaired against the JSON Schema.
"""

__version__ = "0.1.0"

from .config import ExtractionConfig
from .errors import (
    AspecError,
    ChunkingError,
    ChunkProcessingError,
    ConfigurationError,
    ExtractionCancelled,
    ProviderError,
    SchemaConformanceError,
)
from .models import Chunk, ValidationOutcome
from .specs import Spec, load_spec


# Avoid importing provider SDKs until a pipeline is actually needed
def get_pipeline():
    from .orchestrator import ExtractionPipeline
    return ExtractionPipeline


def get_renderer():
    from .render import Renderer
    return Renderer


__all__ = [
    "AspecError",
    "Chunk",
    "ChunkingError",
    "ChunkProcessingError",
    "ConfigurationError",
    "ExtractionCancelled",
    "ExtractionConfig",
    "ProviderError",
    "SchemaConformanceError",
    "Spec",
    "ValidationOutcome",
    "get_pipeline",
    "get_renderer",
    "load_spec",
]
