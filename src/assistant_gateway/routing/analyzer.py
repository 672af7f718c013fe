"""
Query analyzer: decides which tools a user turn needs.

The primary path asks the active LLM for a JSON classification. Any failure on
that path (no provider, provider error, unparsable reply) falls back to the
keyword heuristics, so ``analyze`` always returns a ``QueryAnalysis``.
"""

import json
import logging
import re
from typing import Any, Dict, Optional

from assistant_gateway.providers.base import ChatMessage
from assistant_gateway.providers.prompts import build_analysis_prompt
from assistant_gateway.routing.heuristics import HeuristicRouter
from assistant_gateway.routing.models import QueryAnalysis

logger = logging.getLogger(__name__)

JSON_SPAN = re.compile(r"\{[\s\S]*\}")

# Older prompt revisions used camelCase keys; both spellings are accepted.
FIELD_ALIASES = {
    "needs_docs_tool": ("needs_docs_tool", "needsMicrosoftDocsMcp", "needsDocs"),
    "needs_graph_tool": ("needs_graph_tool", "needsLokkaMcp", "needsGraph"),
    "needs_web_tool": ("needs_web_tool", "needsFetchMcp", "needsWeb"),
    "endpoint": ("endpoint", "graphEndpoint"),
    "method": ("method", "graphMethod"),
    "params": ("params", "graphParams", "queryParams"),
    "documentation_query": ("documentation_query", "documentationQuery"),
    "confidence": ("confidence",),
    "reasoning": ("reasoning",),
}


class AnalysisParseError(ValueError):
    """The classification reply held no usable JSON object."""


def _lookup(data: Dict[str, Any], field: str) -> Any:
    for key in FIELD_ALIASES[field]:
        if key in data:
            return data[key]
    return None


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in ("true", "yes", "1")
    return False


def _as_text(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip() and value.strip().lower() != "null":
        return value.strip()
    return None


def parse_analysis(reply: str) -> QueryAnalysis:
    """Parse an LLM classification reply, coercing bad fields to safe defaults."""
    match = JSON_SPAN.search(reply or "")
    if not match:
        raise AnalysisParseError("no JSON object in analysis reply")
    try:
        data = json.loads(match.group(0))
    except json.JSONDecodeError as e:
        raise AnalysisParseError(f"analysis reply is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise AnalysisParseError("analysis reply is not a JSON object")

    params = _lookup(data, "params")
    needs_graph = _as_bool(_lookup(data, "needs_graph_tool"))
    endpoint = _as_text(_lookup(data, "endpoint"))

    return QueryAnalysis(
        needs_docs_tool=_as_bool(_lookup(data, "needs_docs_tool")),
        needs_graph_tool=needs_graph and endpoint is not None,
        needs_web_tool=_as_bool(_lookup(data, "needs_web_tool")),
        endpoint=endpoint,
        method=_lookup(data, "method"),
        params=params if isinstance(params, dict) and params else None,
        documentation_query=_as_text(_lookup(data, "documentation_query")),
        confidence=_lookup(data, "confidence"),
        reasoning=_as_text(_lookup(data, "reasoning")) or "",
        source="llm",
    )


class QueryAnalyzer:
    """LLM classification with a deterministic heuristic fallback."""

    def __init__(self, selector=None, heuristics: Optional[HeuristicRouter] = None):
        self.selector = selector
        self.heuristics = heuristics or HeuristicRouter()

    async def analyze(
        self,
        query: str,
        conversation_context: Optional[str] = None,
        heuristic_only: bool = False,
    ) -> QueryAnalysis:
        if heuristic_only or self.selector is None:
            return self.heuristics.analyze(query)

        messages = [
            ChatMessage(role="system", content=build_analysis_prompt(conversation_context)),
            ChatMessage(role="user", content=f'Analyze this query: "{query}"'),
        ]
        try:
            reply = await self.selector.chat(messages, process_directives=False)
            analysis = parse_analysis(reply)
        except Exception as e:
            logger.warning(
                "LLM query analysis failed, using heuristics",
                extra={"error": str(e), "error_type": type(e).__name__},
            )
            return self.heuristics.analyze(query)

        logger.info(
            "Query analyzed",
            extra={
                "docs": analysis.needs_docs_tool,
                "graph": analysis.needs_graph_tool,
                "web": analysis.needs_web_tool,
                "endpoint": analysis.endpoint,
                "confidence": analysis.confidence,
            },
        )
        return analysis
