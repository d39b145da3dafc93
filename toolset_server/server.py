"""
MCP server that exposes only the tools of the enabled toolsets.

The set of enabled toolsets is resolved when the server is created, from
MCP_TOOLSETS (see config.py and toolsets.resolve_toolsets). Unknown toolset
names stop startup with UnknownToolsetError. Afterwards the enable_toolset
and disable_toolset tools can change it (discovery.EnabledToolsets).

Per request, ToolsetAuthMiddleware then applies two gates to every tool:

    1. Toolset gate: the tool must belong to an enabled toolset
       (catalog.toolset_for_tool). Tools with no toolset are denied.
    2. Scope gate: the caller's JWT scopes must satisfy the scopes that
       toolset requires (scopes.has_required_scopes).

tools/list hides tools that fail either gate; tools/call rejects them with
PermissionError, which FastMCP reports as an isError tool result.

Running the server:
    MCP_TOOLSETS=default,dynamic python -m toolset_server.server

    MCP endpoint at /mcp (Streamable HTTP), health at /health, readiness
    at /ready.
"""

import json
import logging
import sys
import uuid
from typing import Sequence

from fastmcp import FastMCP
from fastmcp.server.dependencies import get_http_request
from fastmcp.server.middleware import CallNext, Middleware, MiddlewareContext
from fastmcp.tools.tool import Tool, ToolResult
from mcp.types import CallToolRequestParams, ListToolsRequest
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from toolset_server import discovery
from toolset_server.auth import AuthError, TokenInfo, validate_token
from toolset_server.catalog import CATALOG, Catalog
from toolset_server.config import settings
from toolset_server.scopes import accepted_scopes, has_required_scopes
from toolset_server.discovery import EnabledToolsets
from toolset_server.toolsets import resolve_toolsets

# ---------------------------------------------------------------------------
# Structured JSON Logging
# ---------------------------------------------------------------------------


class JSONLogFormatter(logging.Formatter):
    """
    One JSON object per log line.

    Structured fields passed as extra={"auth_data": {...}} or
    extra={"toolset_data": {...}} are merged into the object:

        {"timestamp": "...", "level": "INFO", "logger": "mcp-server",
         "message": "Tool call authorized", "subject": "alice",
         "tool": "get_toolset_tools", "toolset": "dynamic"}
    """

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key in ("auth_data", "toolset_data"):
            if hasattr(record, key):
                log_entry.update(getattr(record, key))
        return json.dumps(log_entry)


handler = logging.StreamHandler(sys.stdout)
handler.setFormatter(JSONLogFormatter())

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    handlers=[handler],
)
logger = logging.getLogger("mcp-server")


# ---------------------------------------------------------------------------
# Toolset & Scope Middleware
# ---------------------------------------------------------------------------


class ToolsetAuthMiddleware(Middleware):
    """
    Authenticates each MCP request and gates tools by toolset and scope.

    Attributes:
        enabled: Toolsets enabled on this server, read on every request
        catalog: Catalog used to map tools to toolsets and toolsets to scopes
    """

    def __init__(self, enabled: EnabledToolsets, catalog: Catalog = CATALOG):
        self.enabled = enabled
        self.catalog = catalog

    def _get_auth_header(self) -> str | None:
        """Authorization header of the current HTTP request (None on stdio)."""
        try:
            request = get_http_request()
            return request.headers.get("authorization")
        except RuntimeError:
            return None

    def _authenticate(self, request_id: str) -> TokenInfo:
        try:
            token_info = validate_token(self._get_auth_header())
        except AuthError as e:
            logger.warning(
                "Authentication failed",
                extra={
                    "auth_data": {
                        "request_id": request_id,
                        "decision": "rejected",
                        "reason": "authentication_failed",
                        "detail": e.message,
                    }
                },
            )
            raise

        logger.info(
            "Authentication successful",
            extra={
                "auth_data": {
                    "request_id": request_id,
                    "subject": token_info.subject,
                    "scopes": token_info.scopes,
                    "decision": "authenticated",
                }
            },
        )
        return token_info

    def check_tool(self, tool_name: str, token_scopes: Sequence[str]) -> str | None:
        """
        Decide whether a tool is usable with the given token scopes.

        Returns None if allowed, otherwise a short denial reason:
        "no_toolset_mapping", "toolset_disabled" or "insufficient_scope".
        """
        toolset_id = self.catalog.toolset_for_tool(tool_name)
        if toolset_id is None:
            return "no_toolset_mapping"
        if toolset_id not in self.enabled:
            return "toolset_disabled"
        if not has_required_scopes(token_scopes, self.catalog[toolset_id].required_scopes):
            return "insufficient_scope"
        return None

    async def on_list_tools(
        self,
        context: MiddlewareContext[ListToolsRequest],
        call_next: CallNext[ListToolsRequest, Sequence[Tool]],
    ) -> Sequence[Tool]:
        """Return only the tools the caller may use."""
        request_id = str(uuid.uuid4())[:8]
        token_info = self._authenticate(request_id)

        all_tools = await call_next(context)
        authorized_tools = [
            tool for tool in all_tools if self.check_tool(tool.name, token_info.scopes) is None
        ]

        logger.info(
            "Tool list filtered by toolset and scope",
            extra={
                "auth_data": {
                    "request_id": request_id,
                    "subject": token_info.subject,
                    "scopes": token_info.scopes,
                    "enabled_toolsets": list(self.enabled.toolsets),
                    "total_tools": len(all_tools),
                    "authorized_tools": [t.name for t in authorized_tools],
                    "decision": "filtered",
                }
            },
        )
        return authorized_tools

    async def on_call_tool(
        self,
        context: MiddlewareContext[CallToolRequestParams],
        call_next: CallNext[CallToolRequestParams, ToolResult],
    ) -> ToolResult:
        """Reject calls to tools outside the enabled toolsets or the token's scopes."""
        request_id = str(uuid.uuid4())[:8]
        tool_name = context.message.name
        token_info = self._authenticate(request_id)

        reason = self.check_tool(tool_name, token_info.scopes)
        toolset_id = self.catalog.toolset_for_tool(tool_name)
        log_data = {
            "request_id": request_id,
            "subject": token_info.subject,
            "tool": tool_name,
            "toolset": toolset_id,
        }

        if reason is not None:
            logger.warning(
                "Tool call denied",
                extra={"auth_data": {**log_data, "decision": "denied", "reason": reason}},
            )
            raise PermissionError(self._denial_message(tool_name, toolset_id, reason))

        logger.info(
            "Tool call authorized",
            extra={"auth_data": {**log_data, "decision": "allowed"}},
        )
        return await call_next(context)

    def _denial_message(self, tool_name: str, toolset_id: str | None, reason: str) -> str:
        if reason == "no_toolset_mapping":
            return f"Access denied: tool '{tool_name}' does not belong to any toolset"
        if reason == "toolset_disabled":
            return f"Access denied: toolset '{toolset_id}' is not enabled on this server"
        required = self.catalog[toolset_id].required_scopes
        parents = sorted(accepted_scopes(required) - required)
        message = f"Access denied: tool '{tool_name}' requires scope(s) {', '.join(sorted(required))}"
        if parents:
            message += f" (also granted by {', '.join(parents)})"
        return message


# ---------------------------------------------------------------------------
# Server factory
# ---------------------------------------------------------------------------


def create_server(toolsets: str | None = None, catalog: Catalog = CATALOG) -> FastMCP:
    """
    Build a FastMCP server for the given raw toolsets string.

    Raises:
        UnknownToolsetError: If the string names toolsets the catalog lacks
    """
    resolved = resolve_toolsets(toolsets, catalog)
    logger.info(
        "Toolsets resolved",
        extra={
            "toolset_data": {
                "requested": list(resolved.requested),
                "enabled": list(resolved.toolsets),
                "required_scopes": sorted(resolved.scopes),
                "used_default": resolved.used_default,
            }
        },
    )

    enabled = EnabledToolsets(resolved, catalog)

    server = FastMCP(
        name="toolset-server",
        instructions=(
            "MCP server exposing Midnight Network and Next.js tools grouped into "
            "toolsets. Use list_available_toolsets and get_toolset_tools to see "
            "what this session can do, and enable_toolset to switch more on."
        ),
        middleware=[ToolsetAuthMiddleware(enabled, catalog)],
    )

    # --- context toolset ---

    @server.tool(description="Show the toolsets enabled on this server and the scopes they need.")
    def get_server_context() -> dict:
        return discovery.server_context(resolved, enabled)

    # --- dynamic toolset ---

    @server.tool(
        description=(
            "List all toolsets this server can offer with their enabled status. "
            "Call get_toolset_tools with a toolset id to see its tools."
        )
    )
    def list_available_toolsets() -> dict:
        return discovery.list_available_toolsets(enabled, catalog)

    @server.tool(description="List the tools provided by a toolset.")
    def get_toolset_tools(toolset: str) -> dict:
        return discovery.get_toolset_tools(toolset, enabled, catalog)

    @server.tool(description="List toolset categories and the toolsets in each.")
    def list_toolset_categories() -> dict:
        return discovery.list_toolset_categories(catalog)

    @server.tool(
        description=(
            "Enable a toolset (or every toolset behind an alias such as 'all') "
            "on this server. Its tools appear in the next tools/list."
        )
    )
    def enable_toolset(toolset: str) -> dict:
        result = enabled.enable(toolset)
        _log_toolset_change("Toolset enabled", result, enabled)
        return result

    @server.tool(description="Disable a toolset (or every toolset behind an alias) on this server.")
    def disable_toolset(toolset: str) -> dict:
        result = enabled.disable(toolset)
        _log_toolset_change("Toolset disabled", result, enabled)
        return result

    # --- health routes (plain HTTP, no auth) ---

    @server.custom_route("/health", methods=["GET"])
    async def health_check(request: Request) -> Response:
        return JSONResponse({"status": "healthy"})

    @server.custom_route("/ready", methods=["GET"])
    async def readiness_check(request: Request) -> Response:
        """Not ready when no toolsets are enabled: the server would expose nothing."""
        if not enabled.toolsets:
            return JSONResponse(
                {"status": "not_ready", "reason": "no toolsets enabled"},
                status_code=503,
            )
        return JSONResponse({"status": "ready", "toolsets": list(enabled.toolsets)})

    return server


def _log_toolset_change(message: str, result: dict, enabled: EnabledToolsets) -> None:
    """Log a runtime toolset change; lookups that changed nothing are not logged."""
    if result.get("status") not in ("enabled", "disabled"):
        return
    logger.info(
        message,
        extra={
            "toolset_data": {
                "toolset": result["toolset"],
                "changed": result.get("enabled", result.get("disabled")),
                "enabled": list(enabled.toolsets),
            }
        },
    )


mcp = create_server(settings.toolsets)


if __name__ == "__main__":
    logger.info(
        "Starting MCP server on %s:%d (transport=streamable-http, auth=enabled)",
        settings.host,
        settings.port,
    )
    mcp.run(
        transport="streamable-http",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level,
    )
