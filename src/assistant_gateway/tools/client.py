"""Tool server boundary.

``ToolServerClient`` is the protocol the gateway depends on.
``HttpToolServerClient`` implements it over streamable-HTTP JSON-RPC 2.0,
the transport spoken by MCP tool servers.
"""

import itertools
import json
import logging
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

import httpx

from assistant_gateway import __version__
from assistant_gateway.exceptions import ToolCallError

logger = logging.getLogger(__name__)

PROTOCOL_VERSION = "2024-11-05"
SESSION_HEADER = "Mcp-Session-Id"


@runtime_checkable
class ToolServerClient(Protocol):
    async def call_tool(self, server: str, tool: str, args: Dict[str, Any]) -> Any:
        ...

    async def list_tools(self, server: str) -> List[Dict[str, Any]]:
        ...

    async def get_available_servers(self) -> List[str]:
        ...


class HttpToolServerClient:
    """JSON-RPC client for tool servers reachable over HTTP.

    Each server gets one ``initialize`` handshake on first use. A session id
    returned by the server is echoed on every later request.
    """

    def __init__(
        self,
        servers: Dict[str, str],
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.servers = dict(servers)
        self.timeout = timeout
        self._client = client
        self._owns_client = client is None
        self._sessions: Dict[str, Optional[str]] = {}
        self._initialized: set = set()
        self._ids = itertools.count(1)

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.timeout)
            self._owns_client = True
        return self._client

    async def get_available_servers(self) -> List[str]:
        return list(self.servers)

    async def list_tools(self, server: str) -> List[Dict[str, Any]]:
        result = await self._call(server, "tools/list", {}, tool="tools/list")
        return list(result.get("tools", [])) if isinstance(result, dict) else []

    async def call_tool(self, server: str, tool: str, args: Dict[str, Any]) -> Any:
        logger.info("Calling tool", extra={"server": server, "tool": tool})
        return await self._call(server, "tools/call", {"name": tool, "arguments": args}, tool=tool)

    async def _call(self, server: str, method: str, params: Dict[str, Any], tool: str) -> Any:
        if server not in self._initialized:
            await self._initialize(server)
        return await self._rpc(server, method, params, tool)

    async def _initialize(self, server: str) -> None:
        await self._rpc(
            server,
            "initialize",
            {
                "protocolVersion": PROTOCOL_VERSION,
                "capabilities": {"tools": {}},
                "clientInfo": {"name": "assistant-gateway", "version": __version__},
            },
            tool="initialize",
        )
        self._initialized.add(server)
        logger.debug("Tool server initialized", extra={"server": server})

    async def _rpc(self, server: str, method: str, params: Dict[str, Any], tool: str) -> Any:
        url = self.servers.get(server)
        if url is None:
            raise ToolCallError(f"Unknown tool server '{server}'", server=server, tool=tool)

        request_id = next(self._ids)
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json, text/event-stream",
        }
        if self._sessions.get(server):
            headers[SESSION_HEADER] = self._sessions[server]

        try:
            response = await self._get_client().post(
                url,
                headers=headers,
                json={"jsonrpc": "2.0", "id": request_id, "method": method, "params": params},
                timeout=self.timeout,
            )
        except httpx.HTTPError as e:
            raise ToolCallError(
                f"Tool server '{server}' request failed: {type(e).__name__}: {e}",
                server=server,
                tool=tool,
            ) from e

        session_id = response.headers.get(SESSION_HEADER)
        if session_id and not self._sessions.get(server):
            self._sessions[server] = session_id

        if response.status_code >= 400:
            raise ToolCallError(
                f"HTTP {response.status_code}: {response.text[:500]}",
                server=server,
                tool=tool,
                details={"status_code": response.status_code},
            )

        message = self._decode(response, request_id)
        if message is None:
            raise ToolCallError("No JSON-RPC response received", server=server, tool=tool)
        if message.get("error"):
            error = message["error"]
            text = error.get("message", str(error)) if isinstance(error, dict) else str(error)
            raise ToolCallError(text, server=server, tool=tool, details={"rpc_error": error})
        return message.get("result")

    @staticmethod
    def _decode(response: httpx.Response, request_id: int) -> Optional[Dict[str, Any]]:
        content_type = response.headers.get("content-type", "")
        if "text/event-stream" not in content_type:
            try:
                return response.json()
            except ValueError:
                return None

        last: Optional[Dict[str, Any]] = None
        for line in response.text.splitlines():
            if not line.startswith("data: "):
                continue
            data = line[len("data: "):]
            if data == "[DONE]":
                break
            try:
                event = json.loads(data)
            except json.JSONDecodeError:
                logger.warning("Skipping unparsable event-stream line")
                continue
            if isinstance(event, dict) and event.get("jsonrpc"):
                last = event
                if event.get("id") == request_id:
                    return event
        return last

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client and not self._client.is_closed:
            await self._client.aclose()
