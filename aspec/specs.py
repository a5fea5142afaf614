"""
Loading of artifact specs (JSON schemas) from local files.
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Union

from .errors import ConfigurationError

logger = logging.getLogger(__name__)


@dataclass
class Spec:
    """A JSON schema plus its raw text, as handed to prompts and the validator."""

    slug: str
    schema: Dict[str, Any]
    raw: str
    title: str = ""
    path: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def display_name(self) -> str:
        """Schema title, falling back to the slug."""
        return self.title or self.slug

    @classmethod
    def from_text(cls, raw: str, slug: str = "inline", path: str = "") -> "Spec":
        """
        Build a spec from raw schema text.

        Args:
            raw: JSON schema document
            slug: Short identifier for the spec
            path: Where the schema came from, if anywhere
        """
        try:
            schema = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"failed to parse schema {path or slug}: {e}")

        if not isinstance(schema, dict):
            raise ConfigurationError(f"schema {path or slug} must be a JSON object")

        return cls(
            slug=slug,
            schema=schema,
            raw=raw,
            title=str(schema.get("title", "") or ""),
            path=path,
            metadata={k: schema[k] for k in ("$id", "$schema", "description") if k in schema},
        )

    @classmethod
    def from_dict(cls, schema: Dict[str, Any], slug: str = "inline") -> "Spec":
        """Build a spec from an already-parsed schema."""
        return cls.from_text(json.dumps(schema, indent=2), slug=slug)


def load_spec(path: Union[str, Path]) -> Spec:
    """
    Load a spec from a local schema file.

    Args:
        path: Path to a JSON schema file

    Returns:
        The loaded Spec, with the file stem as slug
    """
    path = Path(path)
    logger.debug(f"Loading spec from file path: {path}")

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigurationError(f"failed to read spec file {path}: {e}")

    slug = path.name
    for suffix in (".schema.json", ".json"):
        if slug.endswith(suffix):
            slug = slug[: -len(suffix)]
            break

    return Spec.from_text(raw, slug=slug, path=str(path))
