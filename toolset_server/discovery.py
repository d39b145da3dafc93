"""
Payloads for the toolset discovery tools.

An agent that lacks a tool for its task can ask the server which toolsets
exist, which are enabled in this session, and which tools a toolset holds,
then switch toolsets on or off with enable_toolset / disable_toolset.
These functions build the JSON-able answers from the catalog and the
server's enabled toolsets; server.py exposes them as MCP tools.
"""

import threading
from collections.abc import Container

from toolset_server.catalog import CATALOG, Catalog, ToolsetID, ToolsetMetadata
from toolset_server.toolsets import (
    ResolvedToolsets,
    UnknownToolsetError,
    contains_toolset,
    expand_toolsets,
    get_required_scopes_for_toolsets,
    remove_toolset,
    validate_toolsets,
)


class EnabledToolsets:
    """
    Concrete toolsets enabled on a running server.

    Seeded from the startup resolution and changed only through enable() and
    disable(). The list is replaced on every change, never mutated in place,
    so readers always see a complete snapshot.

    Attributes:
        toolsets: Enabled concrete toolset IDs, in the order they were enabled
        catalog: Catalog the IDs are looked up in
    """

    def __init__(self, resolved: ResolvedToolsets, catalog: Catalog = CATALOG):
        self.toolsets: list[ToolsetID] = list(resolved.toolsets)
        self.catalog = catalog
        self._lock = threading.Lock()

    def __contains__(self, toolset_id: object) -> bool:
        return contains_toolset(self.toolsets, toolset_id)

    @property
    def scopes(self) -> frozenset[str]:
        return get_required_scopes_for_toolsets(self.toolsets, self.catalog)

    def _members(self, toolset_id: ToolsetID) -> list[ToolsetID]:
        """Concrete toolsets behind an ID; raises UnknownToolsetError."""
        validate_toolsets([toolset_id], self.catalog).raise_for_unknown()
        members = expand_toolsets([toolset_id], self.catalog)
        validate_toolsets(members, self.catalog).raise_for_unknown()
        return members

    def enable(self, toolset_id: ToolsetID) -> dict:
        """
        Enable a toolset, or every member of an alias.

        Status is "enabled" when at least one toolset was added and
        "already_enabled" when all of them were on already. An unknown ID
        yields an "error" payload.
        """
        try:
            members = self._members(toolset_id)
        except UnknownToolsetError as e:
            return _not_found(toolset_id, e)

        with self._lock:
            added = [t for t in members if not contains_toolset(self.toolsets, t)]
            if not added:
                return {
                    "toolset": toolset_id,
                    "status": "already_enabled",
                    "message": f"Toolset '{toolset_id}' is already enabled",
                }
            self.toolsets = [*self.toolsets, *added]

        tools_count = sum(len(self.catalog[t].tools) for t in added)
        return {
            "toolset": toolset_id,
            "status": "enabled",
            "enabled": added,
            "tools_count": tools_count,
            "message": f"Toolset '{toolset_id}' enabled with {tools_count} tools",
        }

    def disable(self, toolset_id: ToolsetID) -> dict:
        """
        Disable a toolset, or every enabled member of an alias.

        Status is "disabled" when something was removed and "not_enabled"
        when none of the toolsets were on.
        """
        try:
            members = self._members(toolset_id)
        except UnknownToolsetError as e:
            return _not_found(toolset_id, e)

        with self._lock:
            removed = [t for t in members if contains_toolset(self.toolsets, t)]
            if not removed:
                return {
                    "toolset": toolset_id,
                    "status": "not_enabled",
                    "message": f"Toolset '{toolset_id}' is not enabled",
                }
            remaining = self.toolsets
            for t in removed:
                remaining = remove_toolset(remaining, t)
            self.toolsets = remaining

        return {
            "toolset": toolset_id,
            "status": "disabled",
            "disabled": removed,
            "message": f"Toolset '{toolset_id}' disabled",
        }


def _not_found(toolset_id: ToolsetID, error: UnknownToolsetError) -> dict:
    if error.unknown == (toolset_id,):
        return {"error": f"Toolset '{toolset_id}' not found"}
    return {"error": f"Toolset '{toolset_id}' expands to unknown toolsets: {', '.join(error.unknown)}"}


def _describe(meta: ToolsetMetadata) -> dict:
    return {
        "id": meta.id,
        "name": meta.display_name,
        "description": meta.description,
        "category": meta.category,
        "required_scopes": sorted(meta.required_scopes),
    }


def list_available_toolsets(enabled: Container[ToolsetID], catalog: Catalog = CATALOG) -> dict:
    """Every concrete toolset with its enabled status for this session."""
    toolsets = []
    for toolset_id in catalog.concrete_toolset_ids():
        entry = _describe(catalog[toolset_id])
        entry["enabled"] = toolset_id in enabled
        entry["default"] = catalog[toolset_id].default
        toolsets.append(entry)
    return {"toolsets": toolsets}


def get_toolset_tools(toolset_id: str, enabled: Container[ToolsetID], catalog: Catalog = CATALOG) -> dict:
    """
    Tools provided by a toolset.

    For an alias, reports the concrete toolsets it expands to instead. An
    unknown name yields an "error" payload rather than an exception so the
    agent gets a readable answer.
    """
    meta = catalog.get_toolset_metadata(toolset_id)
    if meta is None:
        return {"error": f"Toolset '{toolset_id}' not found"}

    payload = _describe(meta)
    if meta.is_special:
        payload["expands_to"] = expand_toolsets([toolset_id], catalog)
    else:
        payload["enabled"] = toolset_id in enabled
        payload["tools"] = list(meta.tools)
    return payload


def list_toolset_categories(catalog: Catalog = CATALOG) -> dict:
    """Categories with the toolsets in each, aliases marked separately."""
    categories = []
    for category, ids in catalog.get_toolsets_by_category().items():
        categories.append(
            {
                "category": category,
                "toolsets": list(ids),
                "special": [i for i in ids if catalog.is_special_toolset(i)],
            }
        )
    return {"categories": categories}


def server_context(resolved: ResolvedToolsets, enabled: EnabledToolsets | None = None) -> dict:
    """Startup resolution plus, when given, the toolsets enabled right now."""
    if enabled is None:
        toolsets, scopes = resolved.toolsets, resolved.scopes
    else:
        toolsets, scopes = enabled.toolsets, enabled.scopes
    return {
        "requested_toolsets": list(resolved.requested),
        "enabled_toolsets": list(toolsets),
        "required_scopes": sorted(scopes),
        "used_default": resolved.used_default,
    }
