"""
Normalisation and formatting of JSON payloads returned by the provider.
"""

import json
import logging
import re
from typing import Any, Optional

logger = logging.getLogger(__name__)

# ```json ... ``` fences some models wrap around JSON even in JSON mode
FENCE_PATTERN = re.compile(r"^\s*```(?:json|JSON)?\s*\n(.*?)\n?\s*```\s*$", re.DOTALL)


class PayloadProcessor:
    """
    Cleans raw provider content into a JSON payload string and formats output.

    Cleaning is conservative: content is only changed when it is wrapped in a
    Markdown code fence. Anything else is passed through untouched, so the
    validator still reports unparseable output as-is.
    """

    def clean(self, content: Optional[str]) -> str:
        """
        Strip a surrounding code fence from provider content.

        Args:
            content: Raw provider content

        Returns:
            The payload text
        """
        if content is None:
            return ""

        match = FENCE_PATTERN.match(content)
        if match:
            logger.debug("Stripped Markdown code fence from provider output")
            return match.group(1).strip()
        return content.strip()

    def parse(self, payload: str) -> Any:
        """Parse a payload, raising ValueError with the decoder message on failure."""
        try:
            return json.loads(payload)
        except json.JSONDecodeError as e:
            raise ValueError(f"failed to parse extracted JSON: {e}")

    def format(self, payload: str, compact: bool = False) -> str:
        """
        Format a payload for output.

        Args:
            payload: JSON payload text
            compact: Return the payload as produced instead of pretty-printing

        Returns:
            Output text
        """
        if compact:
            return payload
        return json.dumps(self.parse(payload), indent=2, ensure_ascii=False)

    def pretty_or_raw(self, payload: str) -> str:
        """Pretty-print when the payload parses, otherwise return it unchanged."""
        try:
            return self.format(payload)
        except ValueError:
            return payload
