"""
Integration tests for toolset and scope gating in the MCP server.

Requests go through the full Starlette -> FastMCP -> ToolsetAuthMiddleware ->
tool handler pipeline, in-memory via httpx.ASGITransport. Each test builds
its own server with create_server() so the enabled toolsets (and, where
needed, the catalog) are explicit.

The ASGI lifespan has to be started by hand: it initializes the
StreamableHTTP session manager's task group, without which every /mcp
request fails.
"""

import asyncio
import json
import logging

import httpx
import pytest

from toolset_server.catalog import build_catalog, concrete
from toolset_server.discovery import EnabledToolsets
from toolset_server.server import JSONLogFormatter, ToolsetAuthMiddleware, create_server
from toolset_server.toolsets import (
    EmptyResolutionWarning,
    UnknownToolsetError,
    resolve_toolsets,
)

DISCOVERY_TOOLS = [
    "list_available_toolsets",
    "get_toolset_tools",
    "list_toolset_categories",
    "enable_toolset",
    "disable_toolset",
]
ALL_TOOLS = sorted(["get_server_context", *DISCOVERY_TOOLS])


@pytest.fixture
def scoped_catalog():
    """System toolsets only, with the discovery tools behind a scope."""
    return build_catalog(
        [
            concrete(
                "context", "Context", "Server context", "system",
                tools=["get_server_context"], default=True,
            ),
            concrete(
                "dynamic", "Dynamic Discovery", "Toolset discovery", "system",
                tools=DISCOVERY_TOOLS, scopes=["nextjs:devtools:read"],
            ),
        ]
    )


@pytest.fixture
async def mcp_client(make_auth_header):
    """
    Factory for authenticated MCP sessions against a given server.

        client, session_id, auth_header = await mcp_client(server, scopes=[...])

    Starts the ASGI lifespan of each app it creates and shuts them all down
    on teardown.
    """
    clients = []
    lifespans = []

    async def _start_app(server):
        app = server.http_app(transport="streamable-http")

        startup_complete = asyncio.Event()
        shutdown_triggered = asyncio.Event()

        async def receive():
            if not startup_complete.is_set():
                startup_complete.set()
                return {"type": "lifespan.startup"}
            await shutdown_triggered.wait()
            return {"type": "lifespan.shutdown"}

        async def send(message):
            pass

        scope = {"type": "lifespan", "asgi": {"version": "3.0"}}
        task = asyncio.create_task(app(scope, receive, send))
        lifespans.append((shutdown_triggered, task))

        await startup_complete.wait()
        await asyncio.sleep(0.1)  # let the task group initialize
        return app

    async def _create_mcp_client(server, sub: str = "test-user", scopes: list[str] | None = None):
        app = await _start_app(server)
        auth_header = make_auth_header(sub=sub, scopes=scopes or [])

        client = httpx.AsyncClient(transport=httpx.ASGITransport(app=app))
        clients.append(client)

        response = await client.post(
            "http://testserver/mcp",
            headers={
                "Content-Type": "application/json",
                "Accept": "application/json, text/event-stream",
                "Authorization": auth_header,
            },
            json={
                "jsonrpc": "2.0",
                "id": 1,
                "method": "initialize",
                "params": {
                    "protocolVersion": "2025-03-26",
                    "capabilities": {},
                    "clientInfo": {"name": "test-client", "version": "1.0"},
                },
            },
        )
        return client, response.headers.get("mcp-session-id"), auth_header

    yield _create_mcp_client

    for client in clients:
        await client.aclose()
    for shutdown_triggered, task in lifespans:
        shutdown_triggered.set()
        await task


# ---------------------------------------------------------------------------
# MCP protocol helpers
# ---------------------------------------------------------------------------


async def _post(client, session_id: str, auth_header: str, body: dict) -> dict:
    response = await client.post(
        "http://testserver/mcp",
        headers={
            "Content-Type": "application/json",
            "Accept": "application/json, text/event-stream",
            "Mcp-Session-Id": session_id,
            "Authorization": auth_header,
        },
        json=body,
    )
    return _parse_sse_response(response.text)


async def list_tool_names(client, session_id: str, auth_header: str) -> list[str]:
    data = await _post(
        client, session_id, auth_header,
        {"jsonrpc": "2.0", "id": 2, "method": "tools/list", "params": {}},
    )
    return sorted(t["name"] for t in data["result"]["tools"])


async def call_tool(
    client, session_id: str, auth_header: str, tool_name: str, arguments: dict | None = None
) -> dict:
    data = await _post(
        client, session_id, auth_header,
        {
            "jsonrpc": "2.0",
            "id": 3,
            "method": "tools/call",
            "params": {"name": tool_name, "arguments": arguments or {}},
        },
    )
    return data.get("result", {})


def _parse_sse_response(text: str) -> dict:
    """Extract the JSON-RPC message from a Streamable HTTP (SSE) response body."""
    for line in text.strip().split("\n"):
        if line.startswith("data: "):
            return json.loads(line[6:])
    return {}


# ---------------------------------------------------------------------------
# Server startup
# ---------------------------------------------------------------------------


class TestCreateServer:
    def test_unknown_toolsets_stop_startup(self):
        with pytest.raises(UnknownToolsetError) as exc_info:
            create_server("midnight_docs, bogus1, bogus2")
        assert exc_info.value.unknown == ("bogus1", "bogus2")

    async def test_ready_with_toolsets(self):
        app = create_server("default").http_app(transport="streamable-http")
        async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app)) as client:
            response = await client.get("http://testserver/ready")

        assert response.status_code == 200
        assert response.json()["status"] == "ready"

    async def test_not_ready_without_toolsets(self, small_catalog):
        with pytest.warns(EmptyResolutionWarning):
            server = create_server("nothing", small_catalog)

        app = server.http_app(transport="streamable-http")
        async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app)) as client:
            response = await client.get("http://testserver/ready")

        assert response.status_code == 503

    async def test_health(self):
        app = create_server("").http_app(transport="streamable-http")
        async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app)) as client:
            response = await client.get("http://testserver/health")

        assert response.json() == {"status": "healthy"}


# ---------------------------------------------------------------------------
# Gate decisions without HTTP
# ---------------------------------------------------------------------------


def _middleware(raw: str) -> ToolsetAuthMiddleware:
    return ToolsetAuthMiddleware(EnabledToolsets(resolve_toolsets(raw)))


class TestCheckTool:
    def test_enabled_toolset_without_scopes(self):
        middleware = _middleware("context")
        assert middleware.check_tool("get_server_context", []) is None

    def test_tool_outside_catalog(self):
        middleware = _middleware("all")
        assert middleware.check_tool("rm_rf", ["midnight:wallet"]) == "no_toolset_mapping"

    def test_disabled_toolset(self):
        middleware = _middleware("default")
        assert middleware.check_tool("midnight_wallet_balance", ["midnight:wallet"]) == "toolset_disabled"

    def test_insufficient_scope(self):
        middleware = _middleware("midnight_transactions")
        assert (
            middleware.check_tool("midnight_sign_transaction", ["midnight:wallet:read"])
            == "insufficient_scope"
        )

    def test_parent_scope_is_enough(self):
        middleware = _middleware("midnight_transactions")
        assert middleware.check_tool("midnight_sign_transaction", ["midnight:wallet"]) is None

    def test_reads_the_live_enabled_list(self):
        enabled = EnabledToolsets(resolve_toolsets("default"))
        middleware = ToolsetAuthMiddleware(enabled)

        enabled.enable("midnight_wallet")
        assert middleware.check_tool("midnight_wallet_balance", ["midnight:wallet"]) is None

        enabled.disable("midnight_wallet")
        assert middleware.check_tool("midnight_wallet_balance", ["midnight:wallet"]) == "toolset_disabled"


# ---------------------------------------------------------------------------
# tools/list
# ---------------------------------------------------------------------------


class TestToolListFiltering:
    async def test_default_toolsets_hide_discovery_tools(self, mcp_client):
        client, session_id, auth_header = await mcp_client(create_server(""), scopes=[])

        assert await list_tool_names(client, session_id, auth_header) == ["get_server_context"]

    async def test_all_toolsets_show_every_tool(self, mcp_client):
        client, session_id, auth_header = await mcp_client(create_server("all"), scopes=[])

        assert await list_tool_names(client, session_id, auth_header) == ALL_TOOLS

    async def test_missing_scope_hides_toolset(self, mcp_client, scoped_catalog):
        server = create_server("all", scoped_catalog)
        client, session_id, auth_header = await mcp_client(server, sub="dave", scopes=[])

        assert await list_tool_names(client, session_id, auth_header) == ["get_server_context"]

    async def test_parent_scope_reveals_toolset(self, mcp_client, scoped_catalog):
        server = create_server("all", scoped_catalog)
        client, session_id, auth_header = await mcp_client(
            server, sub="alice", scopes=["nextjs:devtools"]
        )

        assert await list_tool_names(client, session_id, auth_header) == ALL_TOOLS


# ---------------------------------------------------------------------------
# tools/call
# ---------------------------------------------------------------------------


class TestToolCallAuthorization:
    async def test_call_into_disabled_toolset_is_denied(self, mcp_client):
        client, session_id, auth_header = await mcp_client(create_server("context"))

        result = await call_tool(client, session_id, auth_header, "list_available_toolsets")

        assert result.get("isError") is True
        assert "toolset 'dynamic' is not enabled" in result["content"][0]["text"]

    async def test_call_without_scope_is_denied(self, mcp_client, scoped_catalog):
        server = create_server("all", scoped_catalog)
        client, session_id, auth_header = await mcp_client(server, scopes=["nextjs:docs"])

        result = await call_tool(client, session_id, auth_header, "list_toolset_categories")

        assert result.get("isError") is True
        error_text = result["content"][0]["text"]
        assert "nextjs:devtools:read" in error_text
        assert "nextjs:devtools" in error_text

    async def test_authorized_call_returns_toolset_tools(self, mcp_client):
        client, session_id, auth_header = await mcp_client(create_server("default,dynamic"))

        result = await call_tool(
            client, session_id, auth_header, "get_toolset_tools", {"toolset": "midnight_wallet"}
        )

        assert result.get("isError") is not True
        payload = json.loads(result["content"][0]["text"])
        assert payload["tools"] == ["midnight_wallet_balance", "midnight_transaction_history"]
        assert payload["enabled"] is False

    async def test_server_context_reports_resolution(self, mcp_client):
        client, session_id, auth_header = await mcp_client(create_server(""))

        result = await call_tool(client, session_id, auth_header, "get_server_context")

        payload = json.loads(result["content"][0]["text"])
        assert payload["used_default"] is True
        assert "context" in payload["enabled_toolsets"]
        assert "dynamic" not in payload["enabled_toolsets"]


# ---------------------------------------------------------------------------
# Runtime enable / disable
# ---------------------------------------------------------------------------


class TestRuntimeToolsets:
    async def test_enable_reveals_hidden_tool(self, mcp_client):
        client, session_id, auth_header = await mcp_client(create_server("dynamic"))
        assert "get_server_context" not in await list_tool_names(client, session_id, auth_header)

        result = await call_tool(client, session_id, auth_header, "enable_toolset", {"toolset": "context"})

        payload = json.loads(result["content"][0]["text"])
        assert payload["status"] == "enabled"
        assert payload["enabled"] == ["context"]
        assert payload["tools_count"] == 1
        assert await list_tool_names(client, session_id, auth_header) == ALL_TOOLS

    async def test_disable_denies_further_calls(self, mcp_client):
        client, session_id, auth_header = await mcp_client(create_server("all"))

        result = await call_tool(client, session_id, auth_header, "disable_toolset", {"toolset": "context"})
        assert json.loads(result["content"][0]["text"])["status"] == "disabled"

        result = await call_tool(client, session_id, auth_header, "get_server_context")

        assert result.get("isError") is True
        assert "toolset 'context' is not enabled" in result["content"][0]["text"]

    async def test_enable_already_enabled_toolset(self, mcp_client):
        client, session_id, auth_header = await mcp_client(create_server("default,dynamic"))

        result = await call_tool(client, session_id, auth_header, "enable_toolset", {"toolset": "default"})

        assert json.loads(result["content"][0]["text"])["status"] == "already_enabled"

    async def test_server_context_follows_changes(self, mcp_client):
        client, session_id, auth_header = await mcp_client(create_server("context,dynamic"))

        await call_tool(client, session_id, auth_header, "enable_toolset", {"toolset": "midnight_wallet"})
        result = await call_tool(client, session_id, auth_header, "get_server_context")

        payload = json.loads(result["content"][0]["text"])
        assert payload["requested_toolsets"] == ["context", "dynamic"]
        assert payload["enabled_toolsets"] == ["context", "dynamic", "midnight_wallet"]
        assert payload["required_scopes"] == ["midnight:wallet:read"]

    async def test_disable_everything_makes_server_not_ready(self, mcp_client):
        server = create_server("dynamic")
        client, session_id, auth_header = await mcp_client(server)

        await call_tool(client, session_id, auth_header, "disable_toolset", {"toolset": "all"})
        response = await client.get("http://testserver/ready")

        assert response.status_code == 503


def test_json_log_formatter_merges_structured_fields():
    record = logging.LogRecord("mcp-server", logging.INFO, __file__, 1, "Toolsets resolved", None, None)
    record.toolset_data = {"enabled": ["context"], "used_default": True}

    entry = json.loads(JSONLogFormatter().format(record))

    assert entry["message"] == "Toolsets resolved"
    assert entry["level"] == "INFO"
    assert entry["enabled"] == ["context"]
    assert entry["used_default"] is True
