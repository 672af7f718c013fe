"""Response normalizer.

Turns whatever a tool server returned into a ``NormalizedResult``. Shape
detection is an ordered list of ``(predicate, extractor)`` pairs; the first
predicate that matches decides how the payload is unwrapped. New tool server
quirks are handled by adding entries, not branches.
"""

import json
import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, List, Optional, Tuple, Union

from assistant_gateway.normalization import permissions, rendering
from assistant_gateway.tools.results import (
    ContentListResult,
    JsonResult,
    NumberResult,
    TextResult,
    ToolResult,
    to_tool_result,
)

logger = logging.getLogger(__name__)

RESULT_HEADER = re.compile(r"^Result for (?P<api>[^\n]*?) - (?P<method>\w+) (?P<path>[^\n]*?):\n\n(?P<payload>.*)$", re.S)
_NUMBER = re.compile(r"^-?\d+(?:\.\d+)?$")


class ResultKind(str, Enum):
    COUNT = "count"
    SCALAR = "scalar"
    COLLECTION = "collection"
    OBJECT = "object"
    PERMISSION_ERROR = "permission_error"
    UNRECOGNIZED = "unrecognized"


@dataclass(frozen=True)
class NormalizedResult:
    kind: ResultKind
    value: Any
    rendered_text: str


@dataclass(frozen=True)
class Extracted:
    """Canonical value pulled out of a tool reply."""

    value: Any
    recognized: bool = True


Extraction = Union[Extracted, NormalizedResult]
Sniffer = Tuple[Callable[[Any], bool], Callable[[Any], Extraction]]


def parse_number(text: str) -> Optional[Union[int, float]]:
    stripped = text.strip()
    if not _NUMBER.match(stripped):
        return None
    return int(stripped) if "." not in stripped else float(stripped)


class ResponseNormalizer:
    """Deterministic, stateless normalization of tool results."""

    def __init__(self, auth_mode: str = "client-credentials"):
        self.auth_mode = auth_mode
        self.result_sniffers: List[Sniffer] = [
            (self._is_number, self._extract_number),
            (self._is_json_content, self._extract_json_content),
            (self._is_text_content, lambda result: self._extract_text(result.first("text").text)),
            (lambda result: isinstance(result, TextResult), lambda result: self._extract_text(result.text)),
            (lambda result: isinstance(result, JsonResult), lambda result: Extracted(result.value)),
        ]
        self.text_sniffers: List[Sniffer] = [
            (permissions.is_permission_denial, self._permission_error),
            (permissions.is_argument_echo, self._argument_echo),
            (lambda text: RESULT_HEADER.match(text) is not None, self._extract_result_header),
            (_parses_as_json, lambda text: Extracted(json.loads(text))),
        ]

    def normalize(self, raw: Any) -> NormalizedResult:
        result = to_tool_result(raw)
        extraction = self._run(self.result_sniffers, result, default=Extracted(raw, recognized=False))
        if isinstance(extraction, NormalizedResult):
            return extraction
        return self.classify(extraction.value, recognized=extraction.recognized)

    def normalize_error(self, error: BaseException) -> NormalizedResult:
        """Normalize a failed tool call from its error text."""
        text = str(error)
        if permissions.is_permission_denial(text) or permissions.mentions_forbidden(text):
            return self._permission_error(text)
        return NormalizedResult(
            kind=ResultKind.UNRECOGNIZED,
            value=None,
            rendered_text=f"The query could not be completed: {text}",
        )

    def classify(self, value: Any, recognized: bool = True) -> NormalizedResult:
        """Classify a canonical value and render it."""
        if isinstance(value, bool):
            return NormalizedResult(ResultKind.SCALAR, value, f"Result: {'Yes' if value else 'No'}")
        if isinstance(value, (int, float)):
            return NormalizedResult(ResultKind.COUNT, value, rendering.render_count(value))
        if isinstance(value, str):
            number = parse_number(value)
            if number is not None:
                return NormalizedResult(ResultKind.COUNT, number, rendering.render_count(number))
            kind = ResultKind.SCALAR if recognized else ResultKind.UNRECOGNIZED
            return NormalizedResult(kind, value, value)
        if value is None:
            return NormalizedResult(ResultKind.UNRECOGNIZED, None, "No data returned.")
        if isinstance(value, list):
            if rendering.is_documentation_list(value):
                return NormalizedResult(ResultKind.COLLECTION, value, rendering.render_documentation(value))
            return NormalizedResult(ResultKind.COLLECTION, value, rendering.render_collection(value))
        if isinstance(value, dict):
            if isinstance(value.get("value"), list):
                return self.classify(value["value"])
            if set(value) == {"result"}:
                return self.classify(value["result"])
            return NormalizedResult(ResultKind.OBJECT, value, rendering.render_object(value))
        return NormalizedResult(ResultKind.UNRECOGNIZED, value, str(value))

    @staticmethod
    def _run(sniffers: List[Sniffer], subject: Any, default: Extraction) -> Extraction:
        for predicate, extractor in sniffers:
            if predicate(subject):
                return extractor(subject)
        return default

    @staticmethod
    def _is_number(result: ToolResult) -> bool:
        if isinstance(result, NumberResult):
            return True
        return isinstance(result, TextResult) and parse_number(result.text) is not None

    @staticmethod
    def _extract_number(result: ToolResult) -> Extraction:
        if isinstance(result, NumberResult):
            return Extracted(result.value)
        return Extracted(parse_number(result.text))

    @staticmethod
    def _is_json_content(result: ToolResult) -> bool:
        if not isinstance(result, ContentListResult):
            return False
        item = result.first("json")
        return item is not None and item.data is not None

    @staticmethod
    def _extract_json_content(result: ContentListResult) -> Extraction:
        return Extracted(result.first("json").data)

    @staticmethod
    def _is_text_content(result: ToolResult) -> bool:
        if not isinstance(result, ContentListResult):
            return False
        item = result.first("text")
        return item is not None and bool(item.text)

    def _extract_text(self, text: str) -> Extraction:
        return self._run(self.text_sniffers, text, default=Extracted(text, recognized=False))

    def _permission_error(self, text: str) -> NormalizedResult:
        entry = permissions.resource_for(text)
        return NormalizedResult(
            kind=ResultKind.PERMISSION_ERROR,
            value={"resource": entry.resource, "required_permissions": list(entry.permissions)},
            rendered_text=permissions.remediation_text(text, self.auth_mode),
        )

    def _argument_echo(self, text: str) -> NormalizedResult:
        return NormalizedResult(
            kind=ResultKind.PERMISSION_ERROR,
            value={"resource": "directory data", "echo": text[:500]},
            rendered_text=permissions.argument_echo_text(self.auth_mode),
        )

    @staticmethod
    def _extract_result_header(text: str) -> Extraction:
        payload = RESULT_HEADER.match(text).group("payload").strip()
        try:
            return Extracted(json.loads(payload))
        except json.JSONDecodeError:
            pass
        number = parse_number(payload)
        if number is not None:
            return Extracted(number)
        return Extracted(payload)


def _parses_as_json(text: str) -> bool:
    stripped = text.strip()
    if not stripped or stripped[0] not in "[{":
        return False
    try:
        json.loads(stripped)
    except json.JSONDecodeError:
        return False
    return True
