"""Exceptions raised by the tool, prompt and resource catalogs."""


class EngineError(Exception):
    """Base error for the registration layer."""


class ToolError(EngineError):
    """Error in tool operations."""


class InvalidSignature(EngineError):
    """A function cannot be registered because of its signature."""
