from __future__ import annotations


class GatewayError(RuntimeError):
    kind = "GatewayError"
    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class AuthExchangeError(GatewayError):
    kind = "AuthExchangeError"

    def __init__(self, message: str, *, status_code: int = 500) -> None:
        super().__init__(message)
        self.status_code = status_code


class Unauthorized(GatewayError):
    kind = "Unauthorized"
    status_code = 401

    def __init__(self, message: str = "Unauthorized request.") -> None:
        super().__init__(message)


class MissingCredentials(GatewayError):
    kind = "MissingCredentials"

    def __init__(
        self,
        message: str = "No OAuth credentials found. Please run the authentication setup first.",
    ) -> None:
        super().__init__(message)


class UnknownOperation(GatewayError):
    kind = "UnknownOperation"
    status_code = 400

    def __init__(self, name: str) -> None:
        super().__init__(f"Unknown tool: {name}")
        self.name = name


class InvalidArguments(GatewayError):
    kind = "InvalidArguments"
    status_code = 400

    def __init__(self, name: str, detail: str) -> None:
        super().__init__(f"Invalid arguments for {name}: {detail}")
        self.name = name
        self.detail = detail


class BackendOperationError(GatewayError):
    kind = "BackendOperationError"

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code or 502
