"""
Static toolset catalog: every toolset this server knows about.

A toolset is a named group of MCP tools that an operator enables as a unit.
There are two kinds of entries, sharing one namespace of IDs:

- **Concrete** toolsets own tools directly (e.g. "midnight_wallet" owns
  midnight_wallet_balance and midnight_transaction_history).
- **Special** toolsets own no tools; they stand for a list of other toolset
  IDs (e.g. "default" stands for every concrete toolset marked as default).

The catalog is built once at import time and never mutated afterwards, so it
can be read from any number of concurrent requests without locking. Lookups
never raise for unknown IDs: they return None / False and leave it to
validate_toolsets() to report unknown names.

Each concrete toolset also declares the authorization scopes a token needs
to use its tools. Scopes follow the "<family>:<resource>[:<action>]" naming
used in scopes.py.
"""

import enum
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType

ToolsetID = str

SPECIAL_CATEGORY = "special"


class ToolsetKind(enum.Enum):
    CONCRETE = "concrete"
    SPECIAL = "special"


@dataclass(frozen=True)
class ToolsetMetadata:
    """
    Immutable description of one catalog entry.

    Attributes:
        id: Unique toolset identifier (case-sensitive)
        display_name: Short human-readable name for help output
        description: One-line description of what the toolset offers
        category: Grouping tag for help and discovery output
        kind: CONCRETE (owns tools) or SPECIAL (expands to other toolsets)
        required_scopes: Scopes a token needs for any tool in this toolset
        tools: Tool names owned by a concrete toolset, in display order
        members: Toolset IDs a special toolset expands to, in expansion order
        default: Whether a concrete toolset is enabled when none are requested
    """

    id: ToolsetID
    display_name: str
    description: str
    category: str
    kind: ToolsetKind = ToolsetKind.CONCRETE
    required_scopes: frozenset[str] = field(default_factory=frozenset)
    tools: tuple[str, ...] = ()
    members: tuple[ToolsetID, ...] = ()
    default: bool = False

    @property
    def is_special(self) -> bool:
        return self.kind is ToolsetKind.SPECIAL


def concrete(
    id: ToolsetID,
    display_name: str,
    description: str,
    category: str,
    tools: Iterable[str],
    scopes: Iterable[str] = (),
    default: bool = False,
) -> ToolsetMetadata:
    """Build metadata for a toolset that owns tools directly."""
    return ToolsetMetadata(
        id=id,
        display_name=display_name,
        description=description,
        category=category,
        kind=ToolsetKind.CONCRETE,
        required_scopes=frozenset(scopes),
        tools=tuple(tools),
        default=default,
    )


def special(
    id: ToolsetID,
    display_name: str,
    description: str,
    members: Iterable[ToolsetID],
    category: str = SPECIAL_CATEGORY,
) -> ToolsetMetadata:
    """Build metadata for an alias that expands to other toolsets."""
    return ToolsetMetadata(
        id=id,
        display_name=display_name,
        description=description,
        category=category,
        kind=ToolsetKind.SPECIAL,
        members=tuple(members),
    )


class Catalog(Mapping[ToolsetID, ToolsetMetadata]):
    """
    Read-only mapping of toolset ID -> ToolsetMetadata.

    Entries keep their declaration order, which is the order used for
    defaults, category listings and help output. Construction checks the
    structural invariants (unique IDs, concrete entries own tools, special
    entries own members, each tool belongs to one toolset) and raises
    ValueError when they don't hold. Member IDs of special entries are not
    checked: an alias pointing at an unknown ID is passed through by
    expansion and reported by validation.
    """

    def __init__(self, entries: Iterable[ToolsetMetadata]):
        toolsets: dict[ToolsetID, ToolsetMetadata] = {}
        tool_index: dict[str, ToolsetID] = {}

        for meta in entries:
            if meta.id in toolsets:
                raise ValueError(f"Duplicate toolset id '{meta.id}'")
            if meta.is_special and meta.tools:
                raise ValueError(f"Special toolset '{meta.id}' cannot own tools")
            if not meta.is_special and meta.members:
                raise ValueError(f"Concrete toolset '{meta.id}' cannot have members")

            for tool in meta.tools:
                owner = tool_index.get(tool)
                if owner is not None:
                    raise ValueError(
                        f"Tool '{tool}' is claimed by both '{owner}' and '{meta.id}'"
                    )
                tool_index[tool] = meta.id

            toolsets[meta.id] = meta

        self._toolsets = MappingProxyType(toolsets)
        self._tool_index = MappingProxyType(tool_index)
        self._hash = hash(tuple(toolsets.items()))

    # --- Mapping protocol ---

    def __getitem__(self, toolset_id: ToolsetID) -> ToolsetMetadata:
        return self._toolsets[toolset_id]

    def __iter__(self) -> Iterator[ToolsetID]:
        return iter(self._toolsets)

    def __len__(self) -> int:
        return len(self._toolsets)

    # Mapping defines __eq__ by contents, which drops the default __hash__.
    # Hashable so resolutions can be memoized per catalog.
    def __hash__(self) -> int:
        return self._hash

    def __repr__(self) -> str:
        return f"Catalog({list(self._toolsets)!r})"

    # --- Lookups ---

    def get_toolset_metadata(self, toolset_id: ToolsetID) -> ToolsetMetadata | None:
        return self._toolsets.get(toolset_id)

    def get_available_toolset_ids(self) -> frozenset[ToolsetID]:
        """All known IDs, concrete and special."""
        return frozenset(self._toolsets)

    def get_default_toolset_ids(self) -> tuple[ToolsetID, ...]:
        """Concrete toolsets enabled when the caller asks for none, in catalog order."""
        return tuple(
            meta.id
            for meta in self._toolsets.values()
            if not meta.is_special and meta.default
        )

    def get_toolsets_by_category(self) -> dict[str, tuple[ToolsetID, ...]]:
        """Category -> toolset IDs, both in first-declared order."""
        grouped: dict[str, list[ToolsetID]] = {}
        for meta in self._toolsets.values():
            grouped.setdefault(meta.category, []).append(meta.id)
        return {category: tuple(ids) for category, ids in grouped.items()}

    def is_special_toolset(self, toolset_id: ToolsetID) -> bool:
        meta = self._toolsets.get(toolset_id)
        return meta is not None and meta.is_special

    def concrete_toolset_ids(self) -> tuple[ToolsetID, ...]:
        return tuple(m.id for m in self._toolsets.values() if not m.is_special)

    def special_toolset_ids(self) -> tuple[ToolsetID, ...]:
        return tuple(m.id for m in self._toolsets.values() if m.is_special)

    def toolset_for_tool(self, tool_name: str) -> ToolsetID | None:
        """Reverse lookup: which concrete toolset owns this tool."""
        return self._tool_index.get(tool_name)


# ---------------------------------------------------------------------------
# Built-in toolsets
# ---------------------------------------------------------------------------

MIDNIGHT_TOOLSETS = (
    concrete(
        "midnight_docs",
        "Midnight Docs",
        "Midnight Network documentation tools - search docs, get examples, and reference information",
        "midnight",
        tools=["midnight_search_docs", "midnight_get_example", "midnight_list_examples"],
        scopes=["midnight:docs"],
        default=True,
    ),
    concrete(
        "midnight_contracts",
        "Midnight Contracts",
        "Compact smart contract tools - analysis, documentation, review, and compilation",
        "midnight",
        tools=["midnight_analyze_contract", "midnight_review_contract", "midnight_compile_contract"],
        scopes=["midnight:contracts:read"],
        default=True,
    ),
    concrete(
        "midnight_contract_management",
        "Midnight Contract Management",
        "Contract deployment and management - deploy, interact, and manage contracts",
        "midnight",
        tools=["midnight_deploy_contract", "midnight_call_contract"],
        scopes=["midnight:contracts:write"],
    ),
    concrete(
        "midnight_network",
        "Midnight Network",
        "Midnight Network status and information - network health, block info, transactions",
        "midnight",
        tools=["midnight_network_status", "midnight_get_block", "midnight_get_transaction"],
        scopes=["midnight:network:read"],
        default=True,
    ),
    concrete(
        "midnight_wallet",
        "Midnight Wallet",
        "Wallet tools - balance queries, transaction history, and wallet management",
        "midnight",
        tools=["midnight_wallet_balance", "midnight_transaction_history"],
        scopes=["midnight:wallet:read"],
    ),
    concrete(
        "midnight_transactions",
        "Midnight Transactions",
        "Transaction tools - sign, submit, and track transactions on Midnight Network",
        "midnight",
        tools=["midnight_sign_transaction", "midnight_submit_transaction"],
        scopes=["midnight:wallet:write"],
    ),
    concrete(
        "midnight_versions",
        "Midnight Versions",
        "Version management - check versions, breaking changes, migration guides",
        "midnight",
        tools=["midnight_check_versions", "midnight_breaking_changes"],
        scopes=["midnight:docs"],
        default=True,
    ),
)

NEXTJS_TOOLSETS = (
    concrete(
        "nextjs_status",
        "Next.js Status",
        "Next.js DevTools status - server status, health checks, and diagnostics",
        "nextjs",
        tools=["nextjs_server_status", "nextjs_diagnostics"],
        scopes=["nextjs:devtools:read"],
        default=True,
    ),
    concrete(
        "nextjs_browser",
        "Next.js Browser",
        "Browser automation - Playwright-based testing, screenshots, and interaction",
        "nextjs",
        tools=["nextjs_browser_eval", "nextjs_screenshot"],
        scopes=["nextjs:devtools:write"],
    ),
    concrete(
        "nextjs_migration",
        "Next.js Migration",
        "Next.js migration tools - upgrade guides, codemods, and compatibility checks",
        "nextjs",
        tools=["nextjs_upgrade_guide", "nextjs_run_codemod"],
        scopes=["nextjs:migration"],
    ),
    concrete(
        "nextjs_docs",
        "Next.js Docs",
        "Next.js documentation - API reference, guides, and examples",
        "nextjs",
        tools=["nextjs_search_docs"],
        scopes=["nextjs:docs"],
        default=True,
    ),
)

SYSTEM_TOOLSETS = (
    concrete(
        "context",
        "Context",
        "Context tools - session info, enabled toolsets, and server status",
        "system",
        tools=["get_server_context"],
        default=True,
    ),
    concrete(
        "dynamic",
        "Dynamic Discovery",
        "Toolset discovery - list toolsets and their tools, enable or disable them at runtime",
        "system",
        tools=[
            "list_available_toolsets",
            "get_toolset_tools",
            "list_toolset_categories",
            "enable_toolset",
            "disable_toolset",
        ],
    ),
)


def build_catalog(
    toolsets: Iterable[ToolsetMetadata] = MIDNIGHT_TOOLSETS + NEXTJS_TOOLSETS + SYSTEM_TOOLSETS,
) -> Catalog:
    """
    Assemble a catalog from concrete toolsets plus the "all" and "default" aliases.

    The aliases are derived from the concrete entries, so adding a toolset
    (or flipping its default flag) automatically updates what they expand to.
    """
    toolsets = tuple(toolsets)
    concrete_ids = [t.id for t in toolsets if not t.is_special]
    default_ids = [t.id for t in toolsets if not t.is_special and t.default]

    aliases = (
        special(
            "all",
            "All",
            "Special toolset that enables all available toolsets",
            members=concrete_ids,
        ),
        special(
            "default",
            "Default",
            "Special toolset that enables the default toolset configuration",
            members=default_ids,
        ),
    )
    return Catalog(aliases + toolsets)


# Built once at import time; read-only afterwards.
CATALOG = build_catalog()
