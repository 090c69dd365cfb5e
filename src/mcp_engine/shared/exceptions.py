from mcp_engine.types import ErrorData


class McpError(Exception):
    """Exception carrying a structured JSON-RPC error.

    Raised wherever the engine has to report a protocol-level failure: a
    payload the codec cannot classify, a POST for an unknown SSE session, or a
    handler that wants to answer a request with a specific error code.

    Attributes:
        error: The ErrorData describing the failure (code, message and
               optional additional data)
    """

    error: ErrorData

    def __init__(self, error: ErrorData):
        """Initialize McpError with error data.

        Args:
            error: ErrorData object containing the error details
        """
        super().__init__(error.message)
        self.error = error
