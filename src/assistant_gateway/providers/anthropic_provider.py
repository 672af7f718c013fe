"""
Anthropic messages API provider.
"""

from typing import Any, Dict, List

from assistant_gateway.providers.base import ChatMessage
from assistant_gateway.providers.hosted import HostedProvider, RequestSpec

ANTHROPIC_VERSION = "2023-06-01"


class AnthropicProvider(HostedProvider):
    """Provider for the Anthropic messages API.

    System messages travel in the top-level ``system`` field rather than in
    the message list.
    """

    default_base_url = "https://api.anthropic.com"
    fallback_models = [
        "claude-3-5-sonnet-20241022",
        "claude-3-5-haiku-20241022",
        "claude-3-opus-20240229",
        "claude-3-haiku-20240307",
    ]

    def _headers(self) -> Dict[str, str]:
        return {
            "x-api-key": self.config.api_key,
            "anthropic-version": ANTHROPIC_VERSION,
            "Content-Type": "application/json",
        }

    def _build_chat_request(self, messages: List[ChatMessage]) -> RequestSpec:
        system = "\n\n".join(m.content for m in messages if m.role == "system")
        payload: Dict[str, Any] = {
            "model": self.config.model,
            "max_tokens": self.config.max_output_tokens,
            "temperature": self.config.temperature,
            "messages": [
                {"role": m.role, "content": m.content} for m in messages if m.role != "system"
            ],
        }
        if system:
            payload["system"] = system
        return RequestSpec(url=f"{self.base_url}/v1/messages", headers=self._headers(), payload=payload)

    def _parse_chat_response(self, data: Dict[str, Any]) -> str:
        blocks = data["content"]
        return "".join(block.get("text", "") for block in blocks if block.get("type") == "text")

    def _build_models_request(self) -> RequestSpec:
        return RequestSpec(url=f"{self.base_url}/v1/models", headers=self._headers())

    def _parse_models(self, data: Dict[str, Any]) -> List[str]:
        return [model["id"] for model in data["data"] if model.get("id", "").startswith("claude")]
