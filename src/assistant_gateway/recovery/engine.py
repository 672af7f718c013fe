"""Autonomous recovery for failed directory queries.

One routed call runs through a small state machine. The first failure is
classified, exactly one repair family for that class is tried, and the
outcome records which strategy (if any) produced the result. When every
repair fails the original error is reported, not the last repair's.
"""

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union

from assistant_gateway.exceptions import ToolCallError
from assistant_gateway.normalization.permissions import mentions_forbidden
from assistant_gateway.tools.graph import GraphToolRouter, build_graph_args
from assistant_gateway.tools.results import ContentListResult, to_tool_result

logger = logging.getLogger(__name__)


class FailureCategory(str, Enum):
    SYNTAX = "syntax"
    PERMISSION = "permission"
    UNKNOWN = "unknown"


class RecoveryStrategy(str, Enum):
    NONE = "none"
    SYNTAX_FIX = "syntax_fix"
    SIMPLIFY = "simplify"
    ALTERNATIVE_ENDPOINT = "alternative_endpoint"


STRATEGY_FOR_CATEGORY = {
    FailureCategory.SYNTAX: RecoveryStrategy.SYNTAX_FIX,
    FailureCategory.PERMISSION: RecoveryStrategy.SIMPLIFY,
    FailureCategory.UNKNOWN: RecoveryStrategy.ALTERNATIVE_ENDPOINT,
}

SYNTAX_SIGNATURES = ("unterminated string", "syntax", "parse error", "invalid filter", "could not parse")
PERMISSION_SIGNATURES = (
    "permission",
    "authorization_requestdenied",
    "access is denied",
    "accessdenied",
    "insufficient privileges",
)


@dataclass(frozen=True)
class Success:
    value: Any


@dataclass(frozen=True)
class Failed:
    error: BaseException


RecoveryAttempt = Union[Success, Failed]


@dataclass(frozen=True)
class ToolCallOutcome:
    server_name: str
    tool_name: str
    args: Dict[str, Any]
    raw_result: Any = None
    error: Optional[BaseException] = None
    attempts_made: int = 0
    strategy_used: Optional[RecoveryStrategy] = None
    strategies_attempted: Tuple[RecoveryStrategy, ...] = field(default_factory=tuple)
    note: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.error is None


def classify_failure(error: BaseException) -> FailureCategory:
    text = str(error).lower()
    if any(signature in text for signature in SYNTAX_SIGNATURES):
        return FailureCategory.SYNTAX
    if any(signature in text for signature in PERMISSION_SIGNATURES) or mentions_forbidden(text):
        return FailureCategory.PERMISSION
    return FailureCategory.UNKNOWN


_EQ_BARE = re.compile(r"\b(eq|ne)\s+(?!')([^\s()']+)")
_CONTAINS_BARE = re.compile(r"\bcontains\(\s*([^,()]+?)\s*,\s*(?!')([^)']+?)\s*\)")
_LITERALS = {"true", "false", "null"}
_NUMERIC = re.compile(r"^-?\d+(?:\.\d+)?$")


def repair_filter(text: str) -> str:
    """Quote bare identifiers after eq/ne and the second argument of contains()."""

    def quote_eq(match: re.Match) -> str:
        operator, operand = match.group(1), match.group(2)
        if operand.lower() in _LITERALS or _NUMERIC.match(operand):
            return match.group(0)
        return f"{operator} '{operand}'"

    repaired = _EQ_BARE.sub(quote_eq, text)
    repaired = _CONTAINS_BARE.sub(lambda m: f"contains({m.group(1)},'{m.group(2)}')", repaired)
    if repaired.count("'") % 2 == 1:
        repaired += "'"
    return repaired


def repair_params(params: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Repaired copy of ``params``, or None when nothing needed fixing."""
    if not params:
        return None
    repaired = {
        key: repair_filter(value) if isinstance(value, str) and key.lower() in ("$filter", "$search") else value
        for key, value in params.items()
    }
    return repaired if repaired != params else None


def simplify_endpoint(endpoint: str) -> str:
    return endpoint.split("?", 1)[0]


def alternative_endpoints(endpoint: str) -> List[str]:
    """Related endpoints to try for the same intent. `/me` is always included."""
    path = simplify_endpoint(endpoint)
    lowered = path.lower()
    if "auditlogs" in lowered or "signins" in lowered:
        candidates = ["/users"]
    elif "messages" in lowered or "mailfolders" in lowered:
        candidates = ["/me/mailFolders/inbox/messages", "/me/mailFolders"]
    elif "events" in lowered or "calendar" in lowered:
        candidates = ["/me/calendar/events", "/me/calendars"]
    elif "groups" in lowered or "memberof" in lowered:
        candidates = ["/me/memberOf", "/directoryObjects", "/groups/$count"]
    elif "users" in lowered:
        candidates = ["/me", "/directoryObjects", "/users/$count"]
    else:
        candidates = []
    if "/me" not in candidates:
        candidates.append("/me")

    seen = {path}
    ordered = []
    for candidate in candidates:
        if candidate not in seen:
            seen.add(candidate)
            ordered.append(candidate)
    return ordered


class RecoveryEngine:
    """Runs a directory query with classified, single-family recovery."""

    def __init__(self, router: GraphToolRouter):
        self.router = router

    async def run(
        self,
        endpoint: str,
        method: str = "get",
        params: Optional[Dict[str, Any]] = None,
    ) -> ToolCallOutcome:
        method = (method or "get").lower()
        try:
            server, tool = await self.router.resolve()
        except ToolCallError as e:
            return ToolCallOutcome(
                server_name=e.server,
                tool_name=e.tool,
                args=build_graph_args(endpoint, method, params),
                error=e,
                note="No directory tool server was available; no call was made.",
            )

        first = await self._attempt(server, tool, endpoint, method, params)
        if isinstance(first, Success):
            return ToolCallOutcome(
                server_name=server,
                tool_name=tool,
                args=build_graph_args(endpoint, method, params),
                raw_result=first.value,
                attempts_made=1,
                strategy_used=RecoveryStrategy.NONE,
            )

        category = classify_failure(first.error)
        strategy = STRATEGY_FOR_CATEGORY[category]
        candidates = self._plan(strategy, endpoint, params)
        logger.warning(
            "Directory query failed, attempting recovery",
            extra={
                "endpoint": endpoint,
                "category": category.value,
                "strategy": strategy.value,
                "candidates": len(candidates),
                "error": str(first.error)[:300],
            },
        )

        attempts = 1
        for candidate_endpoint, candidate_params in candidates:
            attempt = await self._attempt(server, tool, candidate_endpoint, method, candidate_params)
            attempts += 1
            if isinstance(attempt, Success):
                logger.info(
                    "Recovery succeeded",
                    extra={"strategy": strategy.value, "endpoint": candidate_endpoint, "attempts": attempts},
                )
                return ToolCallOutcome(
                    server_name=server,
                    tool_name=tool,
                    args=build_graph_args(candidate_endpoint, method, candidate_params),
                    raw_result=attempt.value,
                    attempts_made=attempts,
                    strategy_used=strategy,
                    strategies_attempted=(strategy,),
                    note=f"Recovered with {strategy.value} after: {first.error}",
                )

        attempted = (strategy,) if candidates else ()
        if candidates:
            note = f"Recovery strategies attempted: {strategy.value}. All failed."
        else:
            note = f"No {strategy.value} repair applied; the query was not retried."
        return ToolCallOutcome(
            server_name=server,
            tool_name=tool,
            args=build_graph_args(endpoint, method, params),
            error=first.error,
            attempts_made=attempts,
            strategies_attempted=attempted,
            note=note,
        )

    def _plan(
        self,
        strategy: RecoveryStrategy,
        endpoint: str,
        params: Optional[Dict[str, Any]],
    ) -> List[Tuple[str, Optional[Dict[str, Any]]]]:
        if strategy == RecoveryStrategy.SYNTAX_FIX:
            repaired_params = repair_params(params)
            repaired_endpoint = repair_filter(endpoint) if "?" in endpoint else endpoint
            if repaired_params is None and repaired_endpoint == endpoint:
                return []
            return [(repaired_endpoint, repaired_params if repaired_params is not None else params)]
        if strategy == RecoveryStrategy.SIMPLIFY:
            return [(simplify_endpoint(endpoint), None)]
        return [(candidate, None) for candidate in alternative_endpoints(endpoint)]

    async def _attempt(
        self,
        server: str,
        tool: str,
        endpoint: str,
        method: str,
        params: Optional[Dict[str, Any]],
    ) -> RecoveryAttempt:
        try:
            raw = await self.router.query(server, tool, endpoint, method, params)
        except Exception as e:
            return Failed(e)
        result = to_tool_result(raw)
        if isinstance(result, ContentListResult) and result.is_error:
            return Failed(ToolCallError(result.text or "Tool reported an error", server=server, tool=tool))
        return Success(raw)
