"""
Tests for the token estimator.
"""

import sys
import unittest
from pathlib import Path

# Add the project root to the Python path
sys.path.append(str(Path(__file__).parent.parent))

from aspec.tokenizer import TokenCounter


class TestTokenCounter(unittest.TestCase):
    """Tests for the TokenCounter class."""

    def setUp(self):
        self.counter = TokenCounter()

    def test_empty_text_is_zero(self):
        self.assertEqual(self.counter.count_tokens(""), 0)

    def test_estimate_formula(self):
        """Four characters per token, truncated, then 10% overhead, truncated."""
        self.assertEqual(self.counter.count_tokens("abc"), 0)
        self.assertEqual(self.counter.count_tokens("a" * 40), 11)
        self.assertEqual(self.counter.count_tokens("a" * 48), 13)
        self.assertEqual(self.counter.count_tokens("a" * 100), 27)

    def test_counts_code_points_not_bytes(self):
        ascii_text = "abcd" * 10
        accented = "éèàü" * 10
        self.assertEqual(self.counter.count_tokens(ascii_text), self.counter.count_tokens(accented))

    def test_monotonic(self):
        previous = 0
        for n in range(0, 500, 7):
            estimate = self.counter.count_tokens("x" * n)
            self.assertGreaterEqual(estimate, previous)
            previous = estimate

    def test_estimate_for_length_matches_count(self):
        text = "The quick brown fox jumps over the lazy dog. " * 5
        self.assertEqual(self.counter.count_tokens(text), self.counter.estimate_for_length(len(text)))

    def test_invalid_ratio(self):
        with self.assertRaises(ValueError):
            TokenCounter(chars_per_token=0)


if __name__ == "__main__":
    unittest.main()
