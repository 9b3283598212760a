"""Errors raised by ebay-fluent.

Every error is terminal for the call that raised it; nothing here is retried.
Transport failures are not represented: httpx exceptions reach the caller as-is.
"""

from __future__ import annotations

from typing import Any


class EbayError(Exception):
    """Base class for ebay-fluent errors.

    ``meta`` carries any structured payload worth logging alongside the message.
    """

    def __init__(self, message: str, meta: Any = None) -> None:
        super().__init__(message)
        self.meta = meta

    def to_dict(self) -> dict[str, Any]:
        """JSON-friendly representation for structured logs."""
        return {
            "message": str(self),
            "type": type(self).__name__,
            "meta": self.meta,
        }


class ConfigError(EbayError):
    """Raised when a settings or definitions file cannot be loaded."""


class MissingCredentialError(EbayError):
    """Raised when a required credential environment variable is unset."""

    def __init__(self, variable: str) -> None:
        super().__init__(f"Environment variable '{variable}' is not set", meta={"variable": variable})
        self.variable = variable


class InvalidEndpointError(EbayError):
    """Raised when no endpoint exists for a service/environment pair."""

    def __init__(self, service_name: Any, environment: str) -> None:
        super().__init__(
            f"No endpoint for service '{service_name}' in environment '{environment}'",
            meta={"serviceName": service_name, "environment": environment},
        )
        self.service_name = service_name
        self.environment = environment


class SettingError(EbayError):
    """Raised when a global setting is assigned on a Request instead of the client."""

    def __init__(self, setting: str) -> None:
        super().__init__(
            f'cannot configure "globals.{setting}" on a Request, '
            f"set it on the Ebay client instead"
        )
        self.setting = setting


class NoVerbError(EbayError):
    """Raised when a request is run without a verb."""

    def __init__(self, message: str = "no eBay API verb defined, please set one.") -> None:
        super().__init__(message)


class NoAuthTokenError(EbayError):
    """Raised when a request is run without an auth token."""

    def __init__(
        self,
        message: str = "no authToken present. Please set it with `Ebay.authToken(<token>)`.",
    ) -> None:
        super().__init__(message)


class NoResponseWrapperError(EbayError):
    """Raised when a response lacks the ``<Verb>Response`` root element."""

    def __init__(self, wrapper: str, found: list[str]) -> None:
        super().__init__(
            f"Response has no '{wrapper}' element (found: {', '.join(found) or 'nothing'})",
            meta={"expected": wrapper, "found": found},
        )
        self.wrapper = wrapper


class ApiError(EbayError):
    """Raised when the remote API acknowledges a call with ``Error`` or ``Failure``.

    ``errors`` is the remote ``Errors`` payload, always as a list. The message is
    the first error's ``LongMessage``, falling back to its ``ShortMessage``.
    """

    def __init__(self, errors: Any) -> None:
        if errors is None:
            errors = []
        elif not isinstance(errors, list):
            errors = [errors]
        self.errors: list[Any] = errors
        super().__init__(_error_message(errors), meta=errors)


def _error_message(errors: list[Any]) -> str:
    for error in errors:
        if isinstance(error, dict):
            message = error.get("LongMessage") or error.get("ShortMessage")
            if message:
                return str(message)
    return "eBay API call failed"
