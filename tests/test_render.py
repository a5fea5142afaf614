"""
Tests for Markdown rendering.
"""

import json
import sys
import unittest
from pathlib import Path

# Add the project root to the Python path
sys.path.append(str(Path(__file__).parent.parent))

from aspec.errors import ConfigurationError, SchemaConformanceError
from aspec.mock_client import MockClient
from aspec.render import Renderer
from aspec.specs import load_spec

FIXTURES = Path(__file__).parent / "fixtures"

VALID = (FIXTURES / "invoice_response.json").read_text(encoding="utf-8").strip()
MARKDOWN = "# Invoice INV-1042\n\n- Analytical engine tuning: $1200.50\n"


class TestRenderer(unittest.TestCase):
    """Tests for the Renderer class."""

    def setUp(self):
        self.spec = load_spec(FIXTURES / "invoice.schema.json")
        self.client = MockClient()
        self.text = (FIXTURES / "invoice_input.txt").read_text(encoding="utf-8")

    def test_render(self):
        self.client.queue_responses(VALID, MARKDOWN)
        result = Renderer(self.spec, self.client).render(self.text)

        self.assertEqual(result.json_payload, VALID)
        self.assertEqual(result.markdown, MARKDOWN)
        self.assertEqual(result.usage.calls, 2)

        extract_call, verbalize_call = self.client.calls
        self.assertTrue(extract_call["options"].force_json)
        self.assertFalse(verbalize_call["options"].force_json)
        self.assertIn(json.dumps(json.loads(VALID), indent=2, ensure_ascii=False), verbalize_call["prompt"])

    def test_streamed_render(self):
        self.client.queue_responses(VALID, MARKDOWN)
        deltas = []

        result = Renderer(self.spec, self.client).render(self.text, stream=True, on_delta=deltas.append)

        self.assertGreater(len(deltas), 1)
        self.assertEqual("".join(deltas), MARKDOWN)
        self.assertEqual(result.markdown, MARKDOWN)
        self.assertTrue(self.client.calls[1]["stream"])

    def test_validated_render_repairs(self):
        self.client.queue_responses("{}", VALID, MARKDOWN)
        result = Renderer(self.spec, self.client).render(self.text, validate=True, max_retries=2)

        self.assertEqual(self.client.call_count, 3)
        self.assertEqual(result.json_payload, VALID)
        self.assertEqual(result.usage.calls, 3)

    def test_blank_input_is_rejected(self):
        with self.assertRaises(ConfigurationError):
            Renderer(self.spec, self.client).render(" \n\t ")
        self.assertEqual(self.client.call_count, 0)

    def test_template_overrides(self):
        self.client.queue_responses(VALID, MARKDOWN)
        renderer = Renderer(
            self.spec,
            self.client,
            extraction_prompt="Pull {schema_title} data:\n{input}\n{schema}",
            verbalization_prompt="Write a memo from:\n{json_data}",
        )

        result = renderer.render(self.text)

        self.assertEqual(result.markdown, MARKDOWN)
        self.assertTrue(self.client.calls[0]["prompt"].startswith("Pull Invoice data:"))
        self.assertTrue(self.client.calls[1]["prompt"].startswith("Write a memo from:"))
        self.assertIsNotNone(result.usage.wall_time)

    def test_invalid_extraction_stops_before_markdown(self):
        self.client.queue_responses("{}")

        with self.assertRaises(SchemaConformanceError):
            Renderer(self.spec, self.client).render(self.text, validate=True, max_retries=1)
        self.assertEqual(self.client.call_count, 2)


if __name__ == "__main__":
    unittest.main()
