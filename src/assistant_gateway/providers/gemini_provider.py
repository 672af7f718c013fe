"""
Google Gemini generateContent provider.
"""

import re
from typing import Any, Dict, List

from assistant_gateway.providers.base import ChatMessage
from assistant_gateway.providers.hosted import HostedProvider, RequestSpec

_VERSION_RE = re.compile(r"\d+(?:\.\d+)?")


class GeminiProvider(HostedProvider):
    """Provider for the Gemini generative language API."""

    default_base_url = "https://generativelanguage.googleapis.com"
    fallback_models = ["gemini-1.5-pro", "gemini-1.5-flash", "gemini-1.0-pro"]

    def _build_chat_request(self, messages: List[ChatMessage]) -> RequestSpec:
        system = "\n\n".join(m.content for m in messages if m.role == "system")
        payload: Dict[str, Any] = {
            "contents": [
                {
                    "role": "model" if m.role == "assistant" else "user",
                    "parts": [{"text": m.content}],
                }
                for m in messages
                if m.role != "system"
            ],
            "generationConfig": {
                "temperature": self.config.temperature,
                "maxOutputTokens": self.config.max_output_tokens,
            },
        }
        if system:
            payload["systemInstruction"] = {"parts": [{"text": system}]}
        return RequestSpec(
            url=f"{self.base_url}/v1beta/models/{self.config.model}:generateContent",
            headers={"Content-Type": "application/json"},
            payload=payload,
            params={"key": self.config.api_key},
        )

    def _parse_chat_response(self, data: Dict[str, Any]) -> str:
        parts = data["candidates"][0]["content"]["parts"]
        return "".join(part.get("text", "") for part in parts)

    def _build_models_request(self) -> RequestSpec:
        return RequestSpec(
            url=f"{self.base_url}/v1beta/models",
            headers={"Content-Type": "application/json"},
            params={"key": self.config.api_key, "pageSize": 50},
        )

    def _parse_models(self, data: Dict[str, Any]) -> List[str]:
        names = [
            model["name"].replace("models/", "")
            for model in data["models"]
            if "gemini" in model.get("name", "")
            and "generateContent" in model.get("supportedGenerationMethods", [])
        ]
        # Newest version first
        return sorted(names, key=_version_of, reverse=True)


def _version_of(name: str) -> float:
    match = _VERSION_RE.search(name)
    return float(match.group(0)) if match else 0.0
