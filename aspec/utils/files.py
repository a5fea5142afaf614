"""
Reading extraction input and writing results.
"""

import logging
import mimetypes
import os
import sys
from pathlib import Path
from typing import List, Optional, Union

logger = logging.getLogger(__name__)

BINARY_EXTENSIONS = {
    ".pdf", ".png", ".jpg", ".jpeg", ".gif", ".bmp", ".tiff", ".webp", ".ico",
    ".zip", ".tar", ".gz", ".rar", ".7z",
    ".exe", ".dll", ".so", ".dylib", ".bin", ".dat", ".db", ".sqlite",
    ".mp3", ".wav", ".mp4", ".avi", ".mov", ".mkv", ".webm",
    ".woff", ".woff2", ".ttf", ".otf", ".eot",
}
TEXT_EXTENSIONS = {".svg"}
TEXT_MIME_PREFIXES = (
    "text/",
    "application/json",
    "application/xml",
    "application/javascript",
    "application/x-yaml",
    "application/yaml",
    "application/toml",
    "application/x-sh",
)
SNIFF_BYTES = 512


def is_binary(path: Union[str, Path]) -> bool:
    """
    Guess whether a file is binary.

    Known extensions decide first, then the MIME type, then a null byte in
    the first 512 bytes.
    """
    path = Path(path)
    ext = path.suffix.lower()
    if ext in TEXT_EXTENSIONS:
        return False
    if ext in BINARY_EXTENSIONS:
        return True

    mime_type, _ = mimetypes.guess_type(path.name)
    if mime_type:
        return not mime_type.startswith(TEXT_MIME_PREFIXES)

    try:
        with open(path, "rb") as f:
            sample = f.read(SNIFF_BYTES)
    except OSError:
        return False
    return b"\x00" in sample


def read_input(source: Optional[str] = None) -> str:
    """
    Read extraction input from stdin, a file or a directory.

    Args:
        source: Path to a file or directory; None or '-' reads stdin

    Returns:
        Input text. Directory files are concatenated in sorted order, each
        preceded by a '=== relative/path ===' line.
    """
    if not source or source == "-":
        return sys.stdin.read()

    path = Path(source)
    if not path.exists():
        raise FileNotFoundError(f"input not found: {source}")
    if path.is_dir():
        return _read_directory(path)
    return _read_file(path)


def _read_file(path: Path) -> str:
    if is_binary(path):
        logger.warning(f"Skipping binary file: {path}")
        return ""
    return path.read_text(encoding="utf-8", errors="replace")


def _read_directory(root: Path) -> str:
    files: List[Path] = []
    for dirpath, dirnames, filenames in os.walk(root):
        for name in filenames:
            if name.startswith("."):
                continue
            file_path = Path(dirpath) / name
            if is_binary(file_path):
                logger.warning(f"Skipping binary file: {file_path}")
                continue
            files.append(file_path)

    files.sort(key=lambda p: p.as_posix())
    sections = []
    for file_path in files:
        rel_path = file_path.relative_to(root).as_posix()
        try:
            content = _read_file(file_path)
        except OSError as e:
            logger.warning(f"Failed to read file {file_path}: {e}")
            continue
        sections.append(f"=== {rel_path} ===\n{content}")

    logger.info(f"Read {len(sections)} files from {root}")
    return "\n\n".join(sections)


def write_output(content: str, path: Optional[Union[str, Path]] = None) -> None:
    """Write content to a file, creating parent directories, or to stdout when no path is given."""
    if not path:
        sys.stdout.write(content)
        sys.stdout.flush()
        return

    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    logger.info(f"Output written to {path}")


def generate_output_path(base_path: Optional[str], extension: str) -> str:
    """Swap the extension of base_path, or return 'out<extension>' when there is none."""
    if not base_path:
        return f"out{extension}"
    return str(Path(base_path).with_suffix(extension))
