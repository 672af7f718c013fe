"""Embedded tool-call directives in model output.

A model may ask for live data by emitting either form:

    <execute_query>{"endpoint": "/users", "method": "get"}</execute_query>

    ```execute_query
    {"server": "fetch", "tool": "fetch", "args": {"url": "https://example.com"}}
    ```

Every directive block is replaced with a rendered result or an inline error
note. Blocks are handled independently: one failure never stops the others.
"""

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from assistant_gateway.exceptions import ToolCallError
from assistant_gateway.normalization.normalizer import ResponseNormalizer
from assistant_gateway.recovery.engine import RecoveryEngine
from assistant_gateway.tools.client import ToolServerClient
from assistant_gateway.tools.graph import call_tool_with_timeout

logger = logging.getLogger(__name__)

DIRECTIVE_PATTERN = re.compile(
    r"<execute_query>\s*(?P<tag>[\s\S]*?)\s*</execute_query>"
    r"|```execute_query[^\S\n]*\n(?P<fence>[\s\S]*?)\n?```"
)


@dataclass(frozen=True)
class Directive:
    start: int
    end: int
    body: str
    payload: Optional[Dict[str, Any]] = None
    error: Optional[str] = None

    @property
    def targets_endpoint(self) -> bool:
        return self.payload is not None and "endpoint" in self.payload


def _parse_body(body: str) -> Dict[str, Any]:
    try:
        payload = json.loads(body)
    except json.JSONDecodeError as e:
        raise ValueError(f"query block is not valid JSON ({e.msg})") from e
    if not isinstance(payload, dict):
        raise ValueError("query block must be a JSON object")
    if isinstance(payload.get("endpoint"), str) and payload["endpoint"].strip():
        params = payload.get("params")
        if params is None:
            params = payload.pop("queryParams", None)
        if params is not None and not isinstance(params, dict):
            raise ValueError("query block 'params' must be an object")
        payload["params"] = params
        method = payload.get("method")
        payload["method"] = method.strip().lower() if isinstance(method, str) and method.strip() else "get"
        return payload
    if isinstance(payload.get("server"), str) and isinstance(payload.get("tool"), str):
        args = payload.get("args", {})
        if not isinstance(args, dict):
            raise ValueError("query block 'args' must be an object")
        payload["args"] = args
        return payload
    raise ValueError("query block needs an 'endpoint', or a 'server' and 'tool'")


def find_directives(text: str) -> List[Directive]:
    """All directive blocks in ``text``, in order of appearance."""
    directives = []
    for match in DIRECTIVE_PATTERN.finditer(text or ""):
        body = match.group("tag") if match.group("tag") is not None else match.group("fence")
        try:
            directives.append(Directive(match.start(), match.end(), body, payload=_parse_body(body)))
        except ValueError as e:
            directives.append(Directive(match.start(), match.end(), body, error=str(e)))
    return directives


def has_directives(text: str) -> bool:
    return DIRECTIVE_PATTERN.search(text or "") is not None


def render_result(text: str) -> str:
    return f"**Query Result:**\n{text}"


def render_error(message: str) -> str:
    return f"**Query Error:** {message}"


class DirectiveExecutor:
    """Executes directive blocks and splices their results into the text."""

    def __init__(
        self,
        tool_client: ToolServerClient,
        recovery_engine: RecoveryEngine,
        normalizer: Optional[ResponseNormalizer] = None,
        timeout: float = 30.0,
    ):
        self.tool_client = tool_client
        self.recovery_engine = recovery_engine
        self.normalizer = normalizer or ResponseNormalizer()
        self.timeout = timeout

    async def execute_directives(self, text: str) -> str:
        directives = find_directives(text)
        if not directives:
            return text

        logger.info("Executing embedded directives", extra={"count": len(directives)})
        replacements = [await self._execute(directive) for directive in directives]

        pieces = []
        cursor = 0
        for directive, replacement in zip(directives, replacements):
            pieces.append(text[cursor:directive.start])
            pieces.append(replacement)
            cursor = directive.end
        pieces.append(text[cursor:])
        return "".join(pieces)

    async def _execute(self, directive: Directive) -> str:
        if directive.error is not None:
            logger.warning("Malformed directive", extra={"error": directive.error})
            return render_error(directive.error)

        payload = directive.payload
        if directive.targets_endpoint:
            outcome = await self.recovery_engine.run(payload["endpoint"], payload["method"], payload.get("params"))
            if outcome.succeeded:
                return render_result(self.normalizer.normalize(outcome.raw_result).rendered_text)
            return render_error(self.normalizer.normalize_error(outcome.error).rendered_text)

        server, tool = payload["server"], payload["tool"]
        try:
            raw = await call_tool_with_timeout(self.tool_client, server, tool, payload["args"], self.timeout)
        except ToolCallError as e:
            return render_error(self.normalizer.normalize_error(e).rendered_text)
        except Exception as e:
            logger.error(
                "Directive tool call failed",
                extra={"server": server, "tool": tool, "error": str(e)},
            )
            return render_error(f"{server}/{tool} failed: {e}")
        return render_result(self.normalizer.normalize(raw).rendered_text)
