"""
Tests for payload cleaning and formatting.
"""

import sys
import unittest
from pathlib import Path

# Add the project root to the Python path
sys.path.append(str(Path(__file__).parent.parent))

from aspec.processors import PayloadProcessor


class TestPayloadProcessor(unittest.TestCase):
    """Tests for the PayloadProcessor class."""

    def setUp(self):
        self.processor = PayloadProcessor()

    def test_clean_strips_code_fence(self):
        self.assertEqual(self.processor.clean('```json\n{"a": 1}\n```'), '{"a": 1}')
        self.assertEqual(self.processor.clean('  ```\n[1, 2]\n```  '), "[1, 2]")

    def test_clean_leaves_plain_json(self):
        self.assertEqual(self.processor.clean('  {"a": 1}\n'), '{"a": 1}')
        self.assertEqual(self.processor.clean(None), "")

    def test_format_pretty(self):
        self.assertEqual(self.processor.format('{"name":"Zoë","tags":[1]}'),
                         '{\n  "name": "Zoë",\n  "tags": [\n    1\n  ]\n}')

    def test_format_compact_is_unchanged(self):
        self.assertEqual(self.processor.format('{"a":1}', compact=True), '{"a":1}')

    def test_format_invalid_json(self):
        with self.assertRaises(ValueError) as ctx:
            self.processor.format("not json")
        self.assertIn("failed to parse extracted JSON", str(ctx.exception))

    def test_pretty_or_raw(self):
        self.assertEqual(self.processor.pretty_or_raw("not json"), "not json")
        self.assertEqual(self.processor.pretty_or_raw('{"a":1}'), '{\n  "a": 1\n}')


if __name__ == "__main__":
    unittest.main()
