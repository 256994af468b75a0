# src/llmgate/exceptions.py
"""
Custom exceptions for the LLMGate library.

This module defines a hierarchy of custom exception classes to provide
more specific error information and allow for targeted error handling
by applications embedding the gateway.

Cancellation is not represented here: ``asyncio.CancelledError`` is
always propagated unchanged.
"""

from typing import Any, List, Optional


class LLMGateError(Exception):
    """Base class for all LLMGate specific errors."""
    def __init__(self, message: str = "An unspecified error occurred in LLMGate."):
        super().__init__(message)


class ConfigError(LLMGateError):
    """Raised for errors related to configuration loading or validation."""
    def __init__(self, message: str = "Configuration error."):
        super().__init__(message)


class ValidationError(LLMGateError):
    """Raised when a component is constructed without required settings."""
    def __init__(self, message: str = "Validation error."):
        self.message = message
        super().__init__(message)


class HubClosedError(LLMGateError):
    """Raised when an event is recorded on a metrics collector that has been closed."""
    def __init__(self, message: str = "Metrics collector is closed."):
        super().__init__(message)


class DuplicateRegistrationError(LLMGateError):
    """Raised when a name is registered twice in a registry."""
    def __init__(self, kind: str, name: str):
        self.kind = kind
        self.name = name
        super().__init__(f"{kind} '{name}' is already registered")


class NotRegisteredError(LLMGateError):
    """Raised when a registry lookup or removal targets an unknown name."""
    def __init__(self, kind: str, name: str):
        self.kind = kind
        self.name = name
        super().__init__(f"{kind} '{name}' is not registered")


class ExtensionInitError(LLMGateError):
    """
    Raised when an extension fails to initialize.
    Halts registry initialization; the original error is kept as ``cause``.
    """
    def __init__(self, extension_name: str, cause: BaseException):
        self.extension_name = extension_name
        self.cause = cause
        super().__init__(f"failed to initialize extension '{extension_name}': {cause}")


class ExtensionShutdownError(LLMGateError):
    """Raised when an extension fails to shut down. Halts registry shutdown."""
    def __init__(self, extension_name: str, cause: BaseException):
        self.extension_name = extension_name
        self.cause = cause
        super().__init__(f"failed to shutdown extension '{extension_name}': {cause}")


class HookError(LLMGateError):
    """Raised when an extension hook returns an error. Halts the hook chain."""
    def __init__(self, extension_name: str, stage: str, cause: BaseException):
        self.extension_name = extension_name
        self.stage = stage
        self.cause = cause
        super().__init__(f"extension '{extension_name}' failed in {stage}: {cause}")


class ProviderError(LLMGateError):
    """Raised for errors originating from a provider (e.g., API errors, connection issues)."""
    def __init__(
        self,
        provider_name: str = "Unknown",
        message: str = "Provider error.",
        status_code: Optional[int] = None,
        payload: Optional[Any] = None,
    ):
        self.provider_name = provider_name
        self.status_code = status_code
        self.payload = payload
        super().__init__(f"Error with provider '{provider_name}': {message}")


class ProviderNotFoundError(ProviderError):
    """Raised when a request names a provider that is not configured."""
    def __init__(self, provider_name: str):
        super().__init__(provider_name, "provider not found")


class ProviderIncompatibleError(ProviderError):
    """Raised when a virtual provider selects a child that cannot serve chat completions."""
    def __init__(self, provider_name: str, message: str = "provider does not support chat completion"):
        super().__init__(provider_name, message)


class AllProvidersFailedError(ProviderError):
    """Raised by composite providers when every child attempt failed."""
    def __init__(self, provider_name: str, errors: Optional[List[BaseException]] = None, message: str = "all providers failed"):
        self.errors = list(errors or [])
        if self.errors:
            message = f"{message}, last error: {self.errors[-1]}"
        super().__init__(provider_name, message)


class APIError(LLMGateError):
    """Standardized HTTP API error produced by the transport layer."""
    def __init__(
        self,
        status_code: int,
        message: str = "",
        error_type: str = "",
        code: str = "",
        raw_body: str = "",
    ):
        self.status_code = status_code
        self.message = message
        self.error_type = error_type
        self.code = code
        self.raw_body = raw_body
        super().__init__(f"API error {status_code}: {message}")


class TransportError(LLMGateError):
    """Raised when an HTTP request cannot be completed (network failure, failed interceptor)."""
    def __init__(self, message: str = "Transport error.", cause: Optional[BaseException] = None):
        self.cause = cause
        super().__init__(message)
