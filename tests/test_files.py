"""
Tests for input reading and output writing.
"""

import io
import sys
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

# Add the project root to the Python path
sys.path.append(str(Path(__file__).parent.parent))

from aspec.utils import generate_output_path, is_binary, read_input, write_output


class TestReadInput(unittest.TestCase):

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name)

    def tearDown(self):
        self._tmp.cleanup()

    def test_read_file(self):
        path = self.root / "notes.txt"
        path.write_text("Meeting notes", encoding="utf-8")

        self.assertEqual(read_input(str(path)), "Meeting notes")

    def test_read_stdin(self):
        with patch("sys.stdin", io.StringIO("from stdin\n")):
            self.assertEqual(read_input(None), "from stdin\n")

    def test_read_stdin_dash(self):
        with patch("sys.stdin", io.StringIO("dash")):
            self.assertEqual(read_input("-"), "dash")

    def test_missing_input(self):
        with self.assertRaises(FileNotFoundError):
            read_input(str(self.root / "missing.txt"))

    def test_read_directory_sorted_with_separators(self):
        (self.root / "b.md").write_text("second", encoding="utf-8")
        (self.root / "a.txt").write_text("first", encoding="utf-8")
        (self.root / "sub").mkdir()
        (self.root / "sub" / "c.txt").write_text("third", encoding="utf-8")
        (self.root / ".hidden").write_text("skip me", encoding="utf-8")
        (self.root / "logo.png").write_bytes(b"\x89PNG\r\n")

        content = read_input(str(self.root))

        self.assertEqual(
            content,
            "=== a.txt ===\nfirst\n\n=== b.md ===\nsecond\n\n=== sub/c.txt ===\nthird",
        )

    def test_binary_detection(self):
        (self.root / "data.unknownext").write_bytes(b"abc\x00def")
        (self.root / "plain.unknownext").write_bytes(b"just text")

        self.assertTrue(is_binary(self.root / "photo.JPG"))
        self.assertFalse(is_binary(self.root / "drawing.svg"))
        self.assertFalse(is_binary(self.root / "data.json"))
        self.assertTrue(is_binary(self.root / "data.unknownext"))
        self.assertFalse(is_binary(self.root / "plain.unknownext"))

    def test_binary_file_input_is_skipped(self):
        path = self.root / "scan.pdf"
        path.write_bytes(b"%PDF-1.7")

        self.assertEqual(read_input(str(path)), "")


class TestWriteOutput(unittest.TestCase):

    def test_write_creates_parent_directories(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "nested" / "dir" / "out.json"
            write_output('{"a": 1}\n', path)

            self.assertEqual(path.read_text(encoding="utf-8"), '{"a": 1}\n')

    def test_write_to_stdout(self):
        buffer = io.StringIO()
        with patch("sys.stdout", buffer):
            write_output("hello")
        self.assertEqual(buffer.getvalue(), "hello")

    def test_generate_output_path(self):
        self.assertEqual(generate_output_path(None, ".json"), "out.json")
        self.assertEqual(generate_output_path("", ".json"), "out.json")
        self.assertEqual(generate_output_path(str(Path("docs") / "report.md"), ".json"),
                         str(Path("docs") / "report.json"))


if __name__ == "__main__":
    unittest.main()
