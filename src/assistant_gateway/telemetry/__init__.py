"""Telemetry module"""

from assistant_gateway.telemetry.logger import CredentialRedactor, TurnContext, get_logger, setup_logging

__all__ = ["CredentialRedactor", "TurnContext", "get_logger", "setup_logging"]
