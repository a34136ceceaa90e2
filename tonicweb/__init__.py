"""Request context, content negotiation, response rendering, error collection and debug output for HTTP handlers."""

__version__ = "0.1.0"

__all__ = ["context", "debug", "errors", "fs", "messages", "negotiation", "rendering"]