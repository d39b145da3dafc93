"""
Authorization scopes and the hierarchy between them.

Scopes are plain strings of the form "<family>:<resource>[:<action>]". A
broader scope grants its narrower children:

    midnight:wallet        -> midnight:wallet:read, midnight:wallet:write
    midnight:wallet:write  -> midnight:wallet:read

so a token holding "midnight:wallet" can use any toolset that requires
"midnight:wallet:read". The hierarchy is one level deep per entry and is
expanded transitively by expand_granted_scopes().
"""

from collections.abc import Iterable

# Midnight Network
MIDNIGHT_NETWORK = "midnight:network"
MIDNIGHT_NETWORK_READ = "midnight:network:read"
MIDNIGHT_NETWORK_WRITE = "midnight:network:write"
MIDNIGHT_CONTRACTS = "midnight:contracts"
MIDNIGHT_CONTRACTS_READ = "midnight:contracts:read"
MIDNIGHT_CONTRACTS_WRITE = "midnight:contracts:write"
MIDNIGHT_WALLET = "midnight:wallet"
MIDNIGHT_WALLET_READ = "midnight:wallet:read"
MIDNIGHT_WALLET_WRITE = "midnight:wallet:write"
MIDNIGHT_DOCS = "midnight:docs"

# Next.js DevTools
NEXTJS_DEVTOOLS = "nextjs:devtools"
NEXTJS_DEVTOOLS_READ = "nextjs:devtools:read"
NEXTJS_DEVTOOLS_WRITE = "nextjs:devtools:write"
NEXTJS_MIGRATION = "nextjs:migration"
NEXTJS_DOCS = "nextjs:docs"

SCOPE_HIERARCHY: dict[str, tuple[str, ...]] = {
    MIDNIGHT_NETWORK: (MIDNIGHT_NETWORK_READ, MIDNIGHT_NETWORK_WRITE),
    MIDNIGHT_NETWORK_WRITE: (MIDNIGHT_NETWORK_READ,),
    MIDNIGHT_CONTRACTS: (MIDNIGHT_CONTRACTS_READ, MIDNIGHT_CONTRACTS_WRITE),
    MIDNIGHT_CONTRACTS_WRITE: (MIDNIGHT_CONTRACTS_READ,),
    MIDNIGHT_WALLET: (MIDNIGHT_WALLET_READ, MIDNIGHT_WALLET_WRITE),
    MIDNIGHT_WALLET_WRITE: (MIDNIGHT_WALLET_READ,),
    NEXTJS_DEVTOOLS: (NEXTJS_DEVTOOLS_READ, NEXTJS_DEVTOOLS_WRITE),
    NEXTJS_DEVTOOLS_WRITE: (NEXTJS_DEVTOOLS_READ,),
}


def expand_granted_scopes(granted: Iterable[str]) -> frozenset[str]:
    """Granted scopes plus every child scope they imply."""
    expanded: set[str] = set()
    pending = list(granted)
    while pending:
        scope = pending.pop()
        if scope in expanded:
            continue
        expanded.add(scope)
        pending.extend(SCOPE_HIERARCHY.get(scope, ()))
    return frozenset(expanded)


def accepted_scopes(required: Iterable[str]) -> frozenset[str]:
    """
    Required scopes plus every parent scope that would satisfy them.

    Useful for error messages: "requires midnight:wallet:read" is less helpful
    than listing all the scopes a token could hold instead.
    """
    accepted = set(required)
    changed = True
    while changed:
        changed = False
        for parent, children in SCOPE_HIERARCHY.items():
            if parent not in accepted and accepted.intersection(children):
                accepted.add(parent)
                changed = True
    return frozenset(accepted)


def has_required_scopes(granted: Iterable[str], required: Iterable[str]) -> bool:
    """
    True if every required scope is granted, directly or via a parent scope.

    No required scopes means no extra authorization is needed.
    """
    required = frozenset(required)
    if not required:
        return True
    return required <= expand_granted_scopes(granted)
