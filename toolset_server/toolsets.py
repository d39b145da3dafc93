"""
Toolset resolution: turn a raw "--toolsets" style string into concrete toolsets.

The pipeline is a chain of small pure functions over the static catalog:

    raw string
      -> parse_toolsets()        ["default", "midnight_wallet"]
      -> validate_toolsets()     reject names the catalog doesn't know
      -> expand_toolsets()       replace aliases with their members, dedupe
      -> get_required_scopes_for_toolsets()

resolve_toolsets() runs the whole chain and is what the server calls at
startup. The pieces are public so callers can validate or expand on their
own: expansion and scope aggregation never raise (unknown IDs are passed
through or skipped), validation is the single place where unknown names
become an error.

None of these functions keep state between calls. The same input against the
same catalog always gives the same output, in the same order.
"""

import functools
import logging
import warnings
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from toolset_server.catalog import CATALOG, Catalog, ToolsetID, ToolsetMetadata

logger = logging.getLogger(__name__)

DELIMITER = ","


class UnknownToolsetError(ValueError):
    """
    Raised when a caller names toolsets that are not in the catalog.

    Attributes:
        unknown: Every unrecognized ID, in the order first given
    """

    def __init__(self, unknown: Sequence[ToolsetID]):
        self.unknown = tuple(unknown)
        super().__init__(f"Unknown toolset(s): {', '.join(self.unknown)}")


class EmptyResolutionWarning(UserWarning):
    """A non-empty toolset request resolved to no concrete toolsets."""


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def parse_toolsets(raw: str | None) -> list[ToolsetID]:
    """
    Split a comma-separated string into toolset IDs.

    Whitespace around each piece is stripped and empty pieces are dropped.
    Order and duplicates are preserved. Empty input yields an empty list; it
    does not mean "all toolsets", the caller decides what an empty request
    falls back to.
    """
    if not raw:
        return []
    return [piece.strip() for piece in raw.split(DELIMITER) if piece.strip()]


# ---------------------------------------------------------------------------
# Expansion
# ---------------------------------------------------------------------------


def expand_toolsets(ids: Iterable[ToolsetID], catalog: Catalog = CATALOG) -> list[ToolsetID]:
    """
    Expand special toolsets into their members, depth-first and left to right.

    Each ID is emitted at most once, in the order it is first reached. An
    unknown ID is passed through unchanged so validation can report it later.
    A special toolset that lists itself, directly or through another alias,
    is visited once and the repeat is skipped.

    Uses an explicit stack instead of recursion; members are pushed in
    reverse so they pop in declaration order.
    """
    result: list[ToolsetID] = []
    seen: set[ToolsetID] = set()
    stack = list(reversed(list(ids)))

    while stack:
        toolset_id = stack.pop()
        if toolset_id in seen:
            continue
        seen.add(toolset_id)

        meta = catalog.get_toolset_metadata(toolset_id)
        if meta is not None and meta.is_special:
            stack.extend(reversed(meta.members))
        else:
            result.append(toolset_id)

    return result


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ToolsetValidation:
    """
    Outcome of validate_toolsets().

    Attributes:
        valid: Recognized IDs (concrete or special), input order, no repeats
        unknown: Unrecognized IDs, input order, no repeats
    """

    valid: tuple[ToolsetID, ...]
    unknown: tuple[ToolsetID, ...]

    @property
    def ok(self) -> bool:
        return not self.unknown

    def raise_for_unknown(self) -> None:
        if self.unknown:
            raise UnknownToolsetError(self.unknown)


def validate_toolsets(ids: Iterable[ToolsetID], catalog: Catalog = CATALOG) -> ToolsetValidation:
    """Check IDs against the catalog and collect every unknown one."""
    known = catalog.get_available_toolset_ids()
    valid: dict[ToolsetID, None] = {}
    unknown: dict[ToolsetID, None] = {}

    for toolset_id in ids:
        if toolset_id in known:
            valid[toolset_id] = None
        else:
            unknown[toolset_id] = None

    return ToolsetValidation(valid=tuple(valid), unknown=tuple(unknown))


# ---------------------------------------------------------------------------
# Scopes
# ---------------------------------------------------------------------------


def get_required_scopes_for_toolsets(
    ids: Iterable[ToolsetID], catalog: Catalog = CATALOG
) -> frozenset[str]:
    """
    Union of the scopes required by the given concrete toolsets.

    Expects already-expanded input: special and unknown IDs add nothing.
    """
    scopes: set[str] = set()
    for toolset_id in ids:
        meta = catalog.get_toolset_metadata(toolset_id)
        if meta is None or meta.is_special:
            continue
        scopes.update(meta.required_scopes)
    return frozenset(scopes)


# ---------------------------------------------------------------------------
# Set utilities
# ---------------------------------------------------------------------------


def contains_toolset(toolsets: Iterable[ToolsetID], toolset_id: ToolsetID) -> bool:
    return toolset_id in toolsets


def remove_toolset(toolsets: Iterable[ToolsetID], toolset_id: ToolsetID) -> list[ToolsetID]:
    """Return a new list without toolset_id. Removing an absent ID is a no-op."""
    return [t for t in toolsets if t != toolset_id]


# ---------------------------------------------------------------------------
# Help text
# ---------------------------------------------------------------------------


def generate_toolsets_help(catalog: Catalog = CATALOG) -> str:
    """
    Render operator-facing help for the toolsets option.

    Concrete toolsets are listed by category; aliases get their own section
    showing what they expand to. The output only depends on the catalog, so
    it is stable across runs.
    """
    lines = ["Comma-separated list of toolsets to enable (whitespace around names is ignored)."]
    if DEFAULT_TOOLSET in catalog:
        lines.append(f"When no toolsets are given, the '{DEFAULT_TOOLSET}' toolsets are enabled.")
    else:
        lines.append("When no toolsets are given, no toolsets are enabled.")
    lines += ["", "Available toolsets:"]

    for category, ids in catalog.get_toolsets_by_category().items():
        concrete_ids = [i for i in ids if not catalog.is_special_toolset(i)]
        if not concrete_ids:
            continue
        lines.append("")
        lines.append(f"  [{category}]")
        for toolset_id in concrete_ids:
            meta = catalog[toolset_id]
            default_mark = " (default)" if meta.default else ""
            lines.append(f"  - {meta.id}: {meta.display_name}{default_mark}")
            lines.append(f"      {meta.description}")
            if meta.required_scopes:
                lines.append(f"      scopes: {', '.join(sorted(meta.required_scopes))}")

    special_ids = catalog.special_toolset_ids()
    if special_ids:
        lines.append("")
        lines.append("Special toolsets:")
        for toolset_id in special_ids:
            meta = catalog[toolset_id]
            expands_to = ", ".join(expand_toolsets([toolset_id], catalog)) or "(nothing)"
            lines.append(f"  - {meta.id}: {meta.display_name}")
            lines.append(f"      {meta.description}")
            lines.append(f"      expands to: {expands_to}")

    lines += [
        "",
        "Examples:",
        "  - MCP_TOOLSETS=midnight_docs,midnight_contracts",
        "  - MCP_TOOLSETS=default,midnight_wallet",
        "  - MCP_TOOLSETS=all",
    ]
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# Full resolution
# ---------------------------------------------------------------------------

DEFAULT_TOOLSET = "default"


@dataclass(frozen=True)
class ResolvedToolsets:
    """
    Result of resolving a raw toolsets string.

    Attributes:
        requested: IDs as parsed from the raw string (may include aliases)
        toolsets: Concrete toolset IDs, deduplicated, in resolution order
        scopes: Scopes required by the resolved toolsets
        used_default: True when the request was empty and defaults were used
    """

    requested: tuple[ToolsetID, ...]
    toolsets: tuple[ToolsetID, ...]
    scopes: frozenset[str]
    used_default: bool = False

    def __contains__(self, toolset_id: object) -> bool:
        return toolset_id in self.toolsets


def resolve_toolsets(
    raw: str | None,
    catalog: Catalog = CATALOG,
    *,
    fallback_to_default: bool = True,
) -> ResolvedToolsets:
    """
    Parse, validate, expand and scope a raw toolsets string.

    Raises:
        UnknownToolsetError: If any requested name, or any member an alias
            expands to, is not in the catalog

    An empty request resolves to the "default" alias when fallback_to_default
    is set. A non-empty request that expands to nothing emits an
    EmptyResolutionWarning and is returned as-is.
    """
    requested = parse_toolsets(raw)
    validate_toolsets(requested, catalog).raise_for_unknown()

    used_default = False
    to_expand = requested
    if not requested and fallback_to_default and DEFAULT_TOOLSET in catalog:
        to_expand = [DEFAULT_TOOLSET]
        used_default = True

    toolsets = expand_toolsets(to_expand, catalog)
    # An alias may name an ID the catalog lacks; it must not reach the result.
    validate_toolsets(toolsets, catalog).raise_for_unknown()
    if requested and not toolsets:
        message = f"Toolsets {requested!r} resolved to no concrete toolsets"
        logger.warning(message)
        warnings.warn(message, EmptyResolutionWarning, stacklevel=2)

    return ResolvedToolsets(
        requested=tuple(requested),
        toolsets=tuple(toolsets),
        scopes=get_required_scopes_for_toolsets(toolsets, catalog),
        used_default=used_default,
    )


@functools.lru_cache(maxsize=128)
def resolve_cached(raw: str | None, catalog: Catalog = CATALOG) -> ResolvedToolsets:
    """
    resolve_toolsets() memoized per (raw string, catalog).

    Only the first call for a given input runs the pipeline, so an
    EmptyResolutionWarning is emitted once and repeat calls return the cached
    result silently. Unknown names are not cached and raise every time.
    """
    return resolve_toolsets(raw, catalog)


# ---------------------------------------------------------------------------
# Built-in catalog shortcuts
# ---------------------------------------------------------------------------


def get_toolset_metadata(toolset_id: ToolsetID, catalog: Catalog = CATALOG) -> ToolsetMetadata | None:
    return catalog.get_toolset_metadata(toolset_id)


def get_available_toolset_ids(catalog: Catalog = CATALOG) -> frozenset[ToolsetID]:
    return catalog.get_available_toolset_ids()


def get_default_toolset_ids(catalog: Catalog = CATALOG) -> tuple[ToolsetID, ...]:
    return catalog.get_default_toolset_ids()


def get_toolsets_by_category(catalog: Catalog = CATALOG) -> dict[str, tuple[ToolsetID, ...]]:
    return catalog.get_toolsets_by_category()


def is_special_toolset(toolset_id: ToolsetID, catalog: Catalog = CATALOG) -> bool:
    return catalog.is_special_toolset(toolset_id)
