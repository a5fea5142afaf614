from .files import generate_output_path, is_binary, read_input, write_output

__all__ = ["generate_output_path", "is_binary", "read_input", "write_output"]
