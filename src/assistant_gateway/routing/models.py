"""Query analysis model."""

from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, Field, field_validator


class QueryAnalysis(BaseModel):
    """Which tools a user turn needs, and how to call the directory tool."""

    needs_docs_tool: bool = Field(default=False, description="Product documentation lookup")
    needs_graph_tool: bool = Field(default=False, description="Live directory data")
    needs_web_tool: bool = Field(default=False, description="General web lookup")
    endpoint: Optional[str] = Field(default=None, description="Directory endpoint path")
    method: str = Field(default="get", description="Lowercase HTTP method")
    params: Optional[Dict[str, Any]] = Field(default=None, description="Query parameters")
    documentation_query: Optional[str] = Field(default=None, description="Question for the docs tool")
    confidence: float = Field(default=0.5, description="Confidence in [0, 1]")
    reasoning: str = Field(default="", description="Short explanation")
    source: Literal["llm", "heuristic", "fallback"] = Field(default="heuristic")

    @field_validator("confidence", mode="before")
    @classmethod
    def clamp_confidence(cls, v):
        try:
            value = float(v)
        except (TypeError, ValueError):
            return 0.5
        if value != value:  # NaN
            return 0.5
        return min(max(value, 0.0), 1.0)

    @field_validator("method", mode="before")
    @classmethod
    def lower_method(cls, v):
        if not isinstance(v, str) or not v.strip():
            return "get"
        return v.strip().lower()

    @classmethod
    def empty(cls, reasoning: str) -> "QueryAnalysis":
        return cls(confidence=0.0, reasoning=reasoning, source="fallback")
