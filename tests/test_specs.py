"""
Tests for loading specs from schema files.
"""

import sys
import tempfile
import unittest
from pathlib import Path

# Add the project root to the Python path
sys.path.append(str(Path(__file__).parent.parent))

from aspec.errors import ConfigurationError
from aspec.specs import Spec, load_spec

FIXTURES = Path(__file__).parent / "fixtures"


class TestLoadSpec(unittest.TestCase):

    def test_load_from_file(self):
        spec = load_spec(FIXTURES / "invoice.schema.json")

        self.assertEqual(spec.slug, "invoice")
        self.assertEqual(spec.title, "Invoice")
        self.assertEqual(spec.display_name, "Invoice")
        self.assertEqual(spec.schema["type"], "object")
        self.assertEqual(spec.raw, (FIXTURES / "invoice.schema.json").read_text(encoding="utf-8"))
        self.assertEqual(spec.metadata["$id"], "https://example.com/invoice.schema.json")
        self.assertTrue(spec.path.endswith("invoice.schema.json"))

    def test_plain_json_suffix(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "meeting-notes.json"
            path.write_text('{"type": "object"}', encoding="utf-8")
            spec = load_spec(path)

        self.assertEqual(spec.slug, "meeting-notes")
        self.assertEqual(spec.title, "")
        self.assertEqual(spec.display_name, "meeting-notes")

    def test_missing_file(self):
        with self.assertRaises(ConfigurationError):
            load_spec(FIXTURES / "does-not-exist.json")


class TestSpecFromText(unittest.TestCase):

    def test_invalid_json(self):
        with self.assertRaises(ConfigurationError):
            Spec.from_text("{oops")

    def test_non_object_schema(self):
        with self.assertRaises(ConfigurationError):
            Spec.from_text("[1, 2, 3]")

    def test_from_dict_keeps_raw_text(self):
        spec = Spec.from_dict({"title": "Note", "type": "object"}, slug="note")

        self.assertEqual(spec.display_name, "Note")
        self.assertIn('"title": "Note"', spec.raw)


if __name__ == "__main__":
    unittest.main()
