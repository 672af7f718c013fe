"""Resilience and orchestration layer between a chat front end, LLM providers and tool servers."""

__version__ = "1.0.0"


def get_version():
    return __version__


__all__ = ["__version__", "get_version"]
