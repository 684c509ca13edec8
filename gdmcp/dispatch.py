from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Callable

from pydantic import ValidationError

from auth.models import Grant

from .catalog import ToolRegistry
from .constants import LOGGER
from .drive_client import DriveClient
from .errors import (
    BackendOperationError,
    GatewayError,
    InvalidArguments,
    MissingCredentials,
    UnknownOperation,
)

ClientFactory = Callable[[Grant], DriveClient]


@dataclass(frozen=True)
class DispatchResult:
    """Success or error envelope for one tool invocation."""

    payload: Any = None
    error: str | None = None
    error_kind: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, payload: Any) -> "DispatchResult":
        return cls(payload=payload)

    @classmethod
    def failure(cls, error: Exception) -> "DispatchResult":
        if isinstance(error, GatewayError):
            return cls(error=error.message, error_kind=error.kind)
        return cls(error=str(error) or type(error).__name__, error_kind=BackendOperationError.kind)

    def to_tool_content(self) -> dict[str, Any]:
        if self.ok:
            return {"content": [{"type": "text", "text": json.dumps(self.payload, indent=2)}]}
        return {
            "content": [{"type": "text", "text": f"Error: {self.error}"}],
            "isError": True,
        }


class Dispatcher:
    def __init__(self, registry: ToolRegistry, client_factory: ClientFactory) -> None:
        self.registry = registry
        self._client_factory = client_factory

    def list_tools(self) -> list[dict[str, Any]]:
        return self.registry.describe()

    async def dispatch(
        self,
        name: str,
        arguments: dict[str, Any] | None,
        grant: Grant | None,
    ) -> DispatchResult:
        operation = self.registry.get(name)
        if operation is None:
            LOGGER.warning("Rejected unknown tool %r", name)
            return DispatchResult.failure(UnknownOperation(name))

        client: DriveClient | None = None
        try:
            if grant is None:
                raise MissingCredentials()
            client = self._client_factory(grant)

            try:
                args = operation.parse(arguments)
            except ValidationError as error:
                raise InvalidArguments(name, _summarize_validation_error(error)) from error

            payload = await operation.handler(client, args)
        except Exception as error:
            LOGGER.warning("Tool %s failed: %s", name, error)
            return DispatchResult.failure(error)
        finally:
            if client is not None:
                await _close_quietly(client)

        LOGGER.info("Tool %s completed", name)
        return DispatchResult.success(payload)


def _summarize_validation_error(error: ValidationError) -> str:
    problems = []
    for item in error.errors():
        location = ".".join(str(part) for part in item.get("loc", ())) or "arguments"
        problems.append(f"{location}: {item.get('msg')}")
    return "; ".join(problems)


async def _close_quietly(client: DriveClient) -> None:
    try:
        await client.aclose()
    except Exception as error:
        LOGGER.warning("Failed to close Google API client: %s", error)
