"""
Azure OpenAI deployment provider.
"""

import re
from typing import Any, Dict, List

import httpx

from assistant_gateway.exceptions import ConfigurationError
from assistant_gateway.providers.base import ChatMessage
from assistant_gateway.providers.hosted import HostedProvider, RequestSpec, openai_style_messages

DEPLOYMENT_PATH_RE = re.compile(r"/openai/deployments/([^/?#]+)")

MISSING_DEPLOYMENT = "deployment path (/openai/deployments/<name>)"
MISSING_API_VERSION = "api-version query parameter"


class AzureOpenAIProvider(HostedProvider):
    """Provider for an Azure OpenAI deployment.

    ``endpoint_url`` is the full deployment URL, for example
    ``https://<resource>.openai.azure.com/openai/deployments/<name>/chat/completions?api-version=2024-02-01``.
    Requests are refused locally when the URL lacks the deployment path or
    the api-version parameter.
    """

    fallback_models = ["gpt-4o", "gpt-4o-mini", "gpt-4-turbo", "gpt-4", "gpt-35-turbo"]

    def missing_segments(self) -> List[str]:
        url = httpx.URL(self.config.endpoint_url or "")
        missing = []
        if not DEPLOYMENT_PATH_RE.search(url.path):
            missing.append(MISSING_DEPLOYMENT)
        if not url.params.get("api-version"):
            missing.append(MISSING_API_VERSION)
        return missing

    def validate_config(self) -> None:
        missing = self.missing_segments()
        if missing:
            raise ConfigurationError(
                f"Azure OpenAI endpoint URL is missing: {', '.join(missing)}",
                missing=missing,
                details={"provider": self.provider_id},
            )

    def _headers(self) -> Dict[str, str]:
        return {"api-key": self.config.api_key, "Content-Type": "application/json"}

    def _build_chat_request(self, messages: List[ChatMessage]) -> RequestSpec:
        url = httpx.URL(self.config.endpoint_url)
        path = url.path.rstrip("/")
        if not path.endswith("/chat/completions"):
            path = f"{path}/chat/completions"
        return RequestSpec(
            url=str(url.copy_with(path=path)),
            headers=self._headers(),
            payload={
                "messages": openai_style_messages(messages),
                "temperature": self.config.temperature,
                "max_tokens": self.config.max_output_tokens,
            },
        )

    def _parse_chat_response(self, data: Dict[str, Any]) -> str:
        return data["choices"][0]["message"]["content"] or ""

    def _build_models_request(self) -> RequestSpec:
        url = httpx.URL(self.config.endpoint_url)
        return RequestSpec(
            url=f"{url.scheme}://{url.netloc.decode('ascii')}/openai/models",
            headers=self._headers(),
            params={"api-version": url.params["api-version"]},
        )

    def _parse_models(self, data: Dict[str, Any]) -> List[str]:
        return sorted(model["id"] for model in data["data"] if "gpt" in model.get("id", ""))
