"""Configuration module"""

from assistant_gateway.config.settings import CloudProviderSettings, Settings, get_settings

__all__ = ["CloudProviderSettings", "Settings", "get_settings"]
