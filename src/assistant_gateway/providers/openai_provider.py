"""
OpenAI chat completions provider.
"""

from typing import Any, Dict, List

from assistant_gateway.providers.base import ChatMessage
from assistant_gateway.providers.hosted import HostedProvider, RequestSpec, openai_style_messages


class OpenAIProvider(HostedProvider):
    """Provider for the OpenAI chat completions API."""

    default_base_url = "https://api.openai.com"
    fallback_models = ["gpt-4o", "gpt-4o-mini", "gpt-4-turbo", "gpt-4", "gpt-3.5-turbo"]

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.config.api_key}",
            "Content-Type": "application/json",
        }

    def _build_chat_request(self, messages: List[ChatMessage]) -> RequestSpec:
        return RequestSpec(
            url=f"{self.base_url}/v1/chat/completions",
            headers=self._headers(),
            payload={
                "model": self.config.model,
                "messages": openai_style_messages(messages),
                "temperature": self.config.temperature,
                "max_tokens": self.config.max_output_tokens,
            },
        )

    def _parse_chat_response(self, data: Dict[str, Any]) -> str:
        return data["choices"][0]["message"]["content"] or ""

    def _build_models_request(self) -> RequestSpec:
        return RequestSpec(url=f"{self.base_url}/v1/models", headers=self._headers())

    def _parse_models(self, data: Dict[str, Any]) -> List[str]:
        return sorted(model["id"] for model in data["data"] if "gpt" in model.get("id", ""))
