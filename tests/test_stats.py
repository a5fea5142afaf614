"""
Tests for usage aggregation and the stats block.
"""

import sys
import unittest
from pathlib import Path

# Add the project root to the Python path
sys.path.append(str(Path(__file__).parent.parent))

from aspec.data_models import CompletionResponse, TokenUsage
from aspec.stats import UsageStats, estimate_cost, format_stats


def _response(prompt, completion, duration=0.5, model="openai/gpt-4o-mini"):
    return CompletionResponse(
        content="{}",
        usage=TokenUsage(prompt_tokens=prompt, completion_tokens=completion, total_tokens=prompt + completion),
        duration=duration,
        model=model,
    )


class TestUsageStats(unittest.TestCase):

    def test_aggregates_responses(self):
        stats = UsageStats().add_all([_response(100, 20), _response(300, 40, duration=1.5), None])

        self.assertEqual(stats.calls, 2)
        self.assertEqual(stats.prompt_tokens, 400)
        self.assertEqual(stats.completion_tokens, 60)
        self.assertEqual(stats.total_tokens, 460)
        self.assertAlmostEqual(stats.provider_time, 2.0)
        self.assertIsNone(stats.wall_time)
        self.assertAlmostEqual(stats.duration, 2.0)
        self.assertEqual(stats.model, "openai/gpt-4o-mini")
        self.assertEqual(stats.to_dict()["calls"], 2)

    def test_estimate_cost(self):
        usage = TokenUsage(prompt_tokens=1_000_000, completion_tokens=1_000_000, total_tokens=2_000_000)

        self.assertAlmostEqual(estimate_cost("openai/gpt-4o-mini", usage), 0.75)
        self.assertEqual(estimate_cost("unknown/model", usage), 0.0)

    def test_format_stats(self):
        text = format_stats(UsageStats().add(_response(1000, 500)))

        self.assertIn("--- Stats ---", text)
        self.assertIn("Model: openai/gpt-4o-mini", text)
        self.assertIn("Calls: 1", text)
        self.assertIn("Tokens: 1000 prompt + 500 completion = 1500 total", text)
        self.assertIn("Estimated cost: $0.000450", text)

    def test_wall_time_is_reported_separately_from_provider_time(self):
        # Two parallel calls of 1.5s each inside a 1.6s run
        stats = UsageStats().add_all([_response(10, 5, duration=1.5), _response(10, 5, duration=1.5)])
        stats.wall_time = 1.6

        text = format_stats(stats)

        self.assertIn("Duration: 1.60s", text)
        self.assertIn("Provider time: 3.00s", text)
        self.assertEqual(stats.to_dict()["duration"], 1.6)
        self.assertEqual(stats.to_dict()["provider_time"], 3.0)

    def test_format_stats_unknown_model_has_no_cost(self):
        text = format_stats(UsageStats().add(_response(10, 5, model="mock-model")))
        self.assertNotIn("Estimated cost", text)


if __name__ == "__main__":
    unittest.main()
