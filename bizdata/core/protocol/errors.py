from enum import IntEnum


class ErrorCode(IntEnum):
    """The only error codes the dispatcher may put on the wire."""

    METHOD_NOT_FOUND = -32601
    INVALID_PARAMS = -32602
    INTERNAL_ERROR = -32603


class UnknownToolError(LookupError):
    def __init__(self, name: str):
        super().__init__(f"Unknown tool: {name}")
        self.name = name


class UnknownResourceError(LookupError):
    def __init__(self, uri: str):
        super().__init__(f"Unknown resource: {uri}")
        self.uri = uri


class ProtocolCallError(Exception):
    """Raised by the client when the dispatcher answered with an error envelope."""

    def __init__(self, code: int, message: str):
        super().__init__(f"[{code}] {message}")
        self.code = code
        self.message = message
