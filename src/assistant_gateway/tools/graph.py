"""Directory (Microsoft Graph) queries over the tool server boundary."""

import asyncio
import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

from assistant_gateway.exceptions import ToolCallError
from assistant_gateway.tools.client import ToolServerClient

logger = logging.getLogger(__name__)


def stringify_params(params: Optional[Dict[str, Any]]) -> Optional[Dict[str, str]]:
    """Tool servers expect every query parameter as a string."""
    if not params:
        return None
    stringified = {}
    for key, value in params.items():
        if isinstance(value, bool):
            stringified[key] = "true" if value else "false"
        else:
            stringified[key] = value if isinstance(value, str) else str(value)
    return stringified


def build_graph_args(endpoint: str, method: str = "get", params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    args: Dict[str, Any] = {"apiType": "graph", "method": method.lower(), "path": endpoint}
    query_params = stringify_params(params)
    if query_params:
        args["queryParams"] = query_params
    return args


async def call_tool_with_timeout(
    client: ToolServerClient, server: str, tool: str, args: Dict[str, Any], timeout: float
) -> Any:
    try:
        return await asyncio.wait_for(client.call_tool(server, tool, args), timeout=timeout)
    except asyncio.TimeoutError as e:
        raise ToolCallError(f"Tool call timed out after {timeout}s", server=server, tool=tool) from e


class GraphToolRouter:
    """Picks the directory tool to use and sends queries to it.

    ``routes`` lists (server, tool) pairs in preference order. The first
    route whose server is currently available wins.
    """

    def __init__(
        self,
        client: ToolServerClient,
        routes: Sequence[Tuple[str, str]],
        timeout: float = 30.0,
    ):
        if not routes:
            raise ValueError("at least one graph route is required")
        self.client = client
        self.routes: List[Tuple[str, str]] = list(routes)
        self.timeout = timeout

    async def resolve(self) -> Tuple[str, str]:
        available = set(await self.client.get_available_servers())
        for server, tool in self.routes:
            if server in available:
                return server, tool
        server, tool = self.routes[0]
        raise ToolCallError(
            f"No directory tool server is available (looked for: {', '.join(s for s, _ in self.routes)})",
            server=server,
            tool=tool,
        )

    async def query(
        self,
        server: str,
        tool: str,
        endpoint: str,
        method: str = "get",
        params: Optional[Dict[str, Any]] = None,
    ) -> Any:
        args = build_graph_args(endpoint, method, params)
        logger.info(
            "Directory query",
            extra={"server": server, "tool": tool, "method": args["method"], "path": endpoint},
        )
        return await call_tool_with_timeout(self.client, server, tool, args, self.timeout)
