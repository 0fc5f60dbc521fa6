"""Exception types shared across matrixgate."""


class MatrixGateError(Exception):
    """Base class for matrixgate errors."""


class ConfigError(MatrixGateError):
    """Required configuration is missing or unusable."""


class MatrixRequestError(MatrixGateError):
    """A Matrix homeserver call returned an error response."""

    def __init__(self, operation: str, detail: str):
        super().__init__(f"{operation} failed: {detail}")
        self.operation = operation
        self.detail = detail
