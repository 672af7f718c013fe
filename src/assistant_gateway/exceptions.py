"""Custom exceptions for the assistant gateway."""

from typing import Any, Dict, List, Optional


class GatewayException(Exception):
    """Base exception for the assistant gateway."""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or "INTERNAL_ERROR"
        self.details = details or {}


class ConfigurationError(GatewayException):
    """Configuration is invalid and the request can never succeed as-is."""

    def __init__(self, message: str, missing: Optional[List[str]] = None, **kwargs):
        super().__init__(message, error_code="CONFIGURATION_ERROR", **kwargs)
        self.missing = list(missing or [])
        if self.missing:
            self.details["missing"] = self.missing


class ProviderExhaustedError(GatewayException):
    """No configured provider was reachable."""

    def __init__(self, attempted: List[str], **kwargs):
        listed = ", ".join(attempted) if attempted else "none configured"
        super().__init__(
            f"No LLM provider is available (tried: {listed})",
            error_code="PROVIDERS_EXHAUSTED",
            **kwargs,
        )
        self.attempted = list(attempted)
        self.details["attempted"] = self.attempted


class ToolCallError(GatewayException):
    """A tool server call failed."""

    def __init__(self, message: str, server: str, tool: str, **kwargs):
        super().__init__(message, error_code="TOOL_CALL_ERROR", **kwargs)
        self.server = server
        self.tool = tool
        self.details.update({"server": server, "tool": tool})


__all__ = [
    "GatewayException",
    "ConfigurationError",
    "ProviderExhaustedError",
    "ToolCallError",
]
