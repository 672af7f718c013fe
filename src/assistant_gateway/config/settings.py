"""Settings configuration"""
import json
from functools import lru_cache
from typing import Annotated, Dict, List, Optional, Tuple

from pydantic import BaseModel, Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from assistant_gateway.exceptions import ConfigurationError
from assistant_gateway.providers.base import ProviderConfig, ProviderKind


class CloudProviderSettings(BaseModel):
    """Per-kind settings for a hosted provider, as entered by the user."""

    model: str
    api_key: Optional[SecretStr] = None
    endpoint_url: Optional[str] = None
    temperature: Optional[float] = None
    max_output_tokens: Optional[int] = None


class Settings(BaseSettings):
    """Gateway settings"""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore", case_sensitive=False,
        validate_assignment=True, populate_by_name=True
    )

    # Provider selection
    local_first: bool = Field(default=True, validation_alias="LOCAL_FIRST")
    local_provider: Optional[str] = Field(default="ollama", validation_alias="LOCAL_PROVIDER")
    local_model: str = Field(default="llama3.1", validation_alias="LOCAL_MODEL")
    local_endpoint_url: Optional[str] = Field(default=None, validation_alias="LOCAL_ENDPOINT_URL")
    cloud_providers: Dict[str, CloudProviderSettings] = Field(
        default_factory=dict, validation_alias="CLOUD_PROVIDERS"
    )
    default_cloud_provider: Optional[str] = Field(default=None, validation_alias="DEFAULT_CLOUD_PROVIDER")

    # Generation defaults
    temperature: float = Field(default=0.2, validation_alias="TEMPERATURE", ge=0.0, le=2.0)
    max_output_tokens: int = Field(default=2048, validation_alias="MAX_OUTPUT_TOKENS", ge=1)

    # Timeouts (seconds)
    probe_timeout: float = Field(default=5.0, validation_alias="PROBE_TIMEOUT", gt=0)
    chat_timeout: float = Field(default=30.0, validation_alias="CHAT_TIMEOUT", gt=0)
    tool_timeout: float = Field(default=30.0, validation_alias="TOOL_TIMEOUT", gt=0)

    # Retry policy
    max_retries: int = Field(default=3, validation_alias="MAX_RETRIES", ge=0)
    retry_base_delay: float = Field(default=1.0, validation_alias="RETRY_BASE_DELAY", ge=0)
    retry_max_delay: float = Field(default=10.0, validation_alias="RETRY_MAX_DELAY", ge=0)
    retry_backoff_factor: float = Field(default=2.0, validation_alias="RETRY_BACKOFF_FACTOR", ge=1.0)

    # Availability cache
    availability_success_ttl: float = Field(default=300.0, validation_alias="AVAILABILITY_SUCCESS_TTL")
    availability_failure_ttl: float = Field(default=30.0, validation_alias="AVAILABILITY_FAILURE_TTL")

    # Tool routing
    tool_servers: Dict[str, str] = Field(default_factory=dict, validation_alias="TOOL_SERVERS")
    docs_server: str = Field(default="microsoft-docs", validation_alias="DOCS_SERVER")
    docs_tool: str = Field(default="microsoft_docs_search", validation_alias="DOCS_TOOL")
    web_server: str = Field(default="fetch", validation_alias="WEB_SERVER")
    web_tool: str = Field(default="fetch", validation_alias="WEB_TOOL")
    web_search_url: str = Field(
        default="https://duckduckgo.com/html/?q={query}", validation_alias="WEB_SEARCH_URL"
    )
    graph_targets: Annotated[List[str], NoDecode] = Field(
        default=["external-lokka/Lokka-Microsoft", "lokka/microsoft_graph_query"],
        validation_alias="GRAPH_TARGETS",
    )
    auth_mode: str = Field(default="client-credentials", validation_alias="AUTH_MODE")

    # Conversation
    conversation_max_turns: int = Field(default=10, validation_alias="CONVERSATION_MAX_TURNS", ge=1)
    conversation_max_context_length: int = Field(
        default=8000, validation_alias="CONVERSATION_MAX_CONTEXT_LENGTH", ge=1
    )

    # Logging
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")
    log_format: str = Field(default="console", validation_alias="LOG_FORMAT")

    @field_validator("graph_targets", mode="before")
    @classmethod
    def parse_graph_targets(cls, v):
        if isinstance(v, str):
            # Handle JSON array format
            if v.startswith("["):
                try:
                    return json.loads(v)
                except (json.JSONDecodeError, ValueError):
                    pass
            # Handle comma-separated format
            return [target.strip() for target in v.split(",") if target.strip()]
        return v

    @field_validator("graph_targets")
    @classmethod
    def check_graph_targets(cls, v):
        for target in v:
            server, _, tool = target.partition("/")
            if not server or not tool:
                raise ValueError(f"graph target '{target}' must look like 'server/tool'")
        return v

    @field_validator("auth_mode")
    @classmethod
    def check_auth_mode(cls, v):
        allowed = {"client-credentials", "delegated", "interactive"}
        if v not in allowed:
            raise ValueError(f"auth_mode must be one of {sorted(allowed)}")
        return v

    # Properties
    @property
    def graph_routes(self) -> List[Tuple[str, str]]:
        """Graph tool targets as (server, tool) pairs, in preference order."""
        return [tuple(target.split("/", 1)) for target in self.graph_targets]

    @property
    def active_cloud_kind(self) -> Optional[str]:
        if self.default_cloud_provider:
            return self.default_cloud_provider
        if self.cloud_providers:
            return next(iter(self.cloud_providers))
        return None

    def local_provider_config(self) -> Optional[ProviderConfig]:
        if not self.local_provider:
            return None
        return ProviderConfig(
            kind=ProviderKind(self.local_provider),
            model=self.local_model,
            temperature=self.temperature,
            max_output_tokens=self.max_output_tokens,
            endpoint_url=self.local_endpoint_url,
        )

    def cloud_provider_config(self) -> Optional[ProviderConfig]:
        kind = self.active_cloud_kind
        if kind is None:
            return None
        entry = self.cloud_providers.get(kind)
        if entry is None:
            raise ConfigurationError(
                f"default cloud provider '{kind}' has no settings entry", missing=[kind]
            )
        return ProviderConfig(
            kind=ProviderKind(kind),
            model=entry.model,
            temperature=entry.temperature if entry.temperature is not None else self.temperature,
            max_output_tokens=entry.max_output_tokens or self.max_output_tokens,
            credential=entry.api_key,
            endpoint_url=entry.endpoint_url,
        )

    def provider_configs(self) -> Tuple[Optional[ProviderConfig], Optional[ProviderConfig]]:
        """(local, cloud) provider configs built from these settings."""
        return self.local_provider_config(), self.cloud_provider_config()


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
