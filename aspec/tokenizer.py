"""
Approximate token counting.
"""

CHARS_PER_TOKEN = 4.0  # GPT-style approximation
OVERHEAD_MULTIPLIER = 1.1  # Special tokens, formatting, etc.


class TokenCounter:
    """
    Deterministic, monotonic token estimate for a span of text.

    Counts by code point rather than by byte, so multi-byte characters weigh the
    same as ASCII. This is not meant to match any model's real tokenizer.
    """

    def __init__(self, chars_per_token: float = CHARS_PER_TOKEN, overhead: float = OVERHEAD_MULTIPLIER):
        if chars_per_token <= 0:
            raise ValueError("chars_per_token must be positive")
        self.chars_per_token = chars_per_token
        self.overhead = overhead

    def count_tokens(self, text: str) -> int:
        """
        Estimate the token count of the given text.

        Args:
            text: Text to estimate

        Returns:
            Non-negative token estimate
        """
        if not text:
            return 0
        return self.estimate_for_length(len(text))

    def estimate_for_length(self, char_count: int) -> int:
        """Token estimate for a text of the given number of code points."""
        if char_count <= 0:
            return 0

        token_estimate = int(char_count / self.chars_per_token)
        return int(token_estimate * self.overhead)
