"""Toolset resolution engine and scope-gated MCP server."""
