"""Closed set of tool result shapes.

Raw tool replies are converted with ``to_tool_result`` as soon as a call
returns, so everything downstream matches on these four types only.
"""

from dataclasses import dataclass, field
from typing import Any, Optional, Tuple, Union


@dataclass(frozen=True)
class NumberResult:
    value: Union[int, float]


@dataclass(frozen=True)
class TextResult:
    text: str


@dataclass(frozen=True)
class JsonResult:
    value: Any


@dataclass(frozen=True)
class ContentItem:
    type: str
    text: Optional[str] = None
    data: Any = None


@dataclass(frozen=True)
class ContentListResult:
    items: Tuple[ContentItem, ...] = field(default_factory=tuple)
    is_error: bool = False

    def first(self, item_type: str) -> Optional[ContentItem]:
        for item in self.items:
            if item.type == item_type:
                return item
        return None

    @property
    def text(self) -> str:
        return "\n".join(item.text for item in self.items if item.text)


ToolResult = Union[NumberResult, TextResult, JsonResult, ContentListResult]


def to_tool_result(raw: Any) -> ToolResult:
    """Convert a raw tool reply into a ToolResult."""
    if isinstance(raw, (NumberResult, TextResult, JsonResult, ContentListResult)):
        return raw
    if isinstance(raw, bool):
        return JsonResult(raw)
    if isinstance(raw, (int, float)):
        return NumberResult(raw)
    if isinstance(raw, str):
        return TextResult(raw)
    if isinstance(raw, dict) and isinstance(raw.get("content"), list):
        items = []
        for entry in raw["content"]:
            if not isinstance(entry, dict):
                items.append(ContentItem(type="text", text=str(entry)))
                continue
            entry_type = str(entry.get("type", "text"))
            text = entry.get("text")
            items.append(
                ContentItem(
                    type=entry_type,
                    text=text if isinstance(text, str) else None,
                    data=entry.get("json", entry.get("data")),
                )
            )
        return ContentListResult(items=tuple(items), is_error=bool(raw.get("isError")))
    return JsonResult(raw)
