from .payload_processor import PayloadProcessor

__all__ = ["PayloadProcessor"]
