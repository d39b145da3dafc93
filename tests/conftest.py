"""
Shared test fixtures.

- make_token / make_auth_header: JWT factories signed with the server's
  configured secret, so validate_token() accepts them.
- small_catalog: a hand-built catalog with aliases, cycles and dangling
  members, for exercising the resolution engine independently of the
  built-in toolsets.

Engine tests (test_toolsets.py, test_catalog.py, test_scopes.py) are plain
unit tests. test_server.py drives the FastMCP ASGI app in-memory through
httpx.
"""

import datetime

import jwt
import pytest

from toolset_server.catalog import Catalog, concrete, special
from toolset_server.config import settings

TEST_SECRET = settings.jwt_secret_key
TEST_ALGORITHM = settings.jwt_algorithm


@pytest.fixture
def make_token():
    """
    Factory fixture returning signed JWT strings (without the "Bearer " prefix).

        token = make_token(sub="alice", scopes=["midnight:docs"])
    """

    def _make_token(
        sub: str = "test-user",
        scopes: list[str] | None = None,
        secret: str = TEST_SECRET,
        algorithm: str = TEST_ALGORITHM,
        exp_hours: float = 1.0,
        extra_claims: dict | None = None,
        include_exp: bool = True,
        include_sub: bool = True,
    ) -> str:
        """
        Args:
            scopes: Scope claim (None omits the claim entirely)
            exp_hours: Hours until expiration (negative = already expired)
            extra_claims: Additional claims merged into the payload last
        """
        now = datetime.datetime.now(datetime.timezone.utc)
        payload: dict = {}

        if include_sub:
            payload["sub"] = sub
        if scopes is not None:
            payload["scope"] = scopes
        if include_exp:
            payload["exp"] = now + datetime.timedelta(hours=exp_hours)
        payload["iat"] = now

        if extra_claims:
            payload.update(extra_claims)

        return jwt.encode(payload, secret, algorithm=algorithm)

    return _make_token


@pytest.fixture
def make_auth_header(make_token):
    """Like make_token, but returns a full "Bearer <token>" header value."""

    def _make_auth_header(**kwargs) -> str:
        return f"Bearer {make_token(**kwargs)}"

    return _make_auth_header


@pytest.fixture
def small_catalog() -> Catalog:
    """
    Catalog shaped to hit the interesting expansion paths:

        core      -> system, midnight-core
        loop      -> loop, midnight-write             (self cycle)
        outer     -> inner, system                    (mutual cycle)
        inner     -> outer, midnight-core
        dangling  -> ghost, system                    (unknown member)
        nothing   -> (no members)
    """
    return Catalog(
        [
            concrete("system", "System", "System tools", "system", tools=["sys_info"]),
            concrete(
                "midnight-core",
                "Midnight Core",
                "Read-only Midnight tools",
                "midnight",
                tools=["mn_status"],
                scopes=["read"],
            ),
            concrete(
                "midnight-write",
                "Midnight Write",
                "Midnight tools that modify state",
                "midnight",
                tools=["mn_submit"],
                scopes=["read", "write"],
            ),
            special("core", "Core", "System and core Midnight", members=["system", "midnight-core"]),
            special("loop", "Loop", "Lists itself", members=["loop", "midnight-write"]),
            special("outer", "Outer", "Mutually recursive", members=["inner", "system"]),
            special("inner", "Inner", "Mutually recursive", members=["outer", "midnight-core"]),
            special("dangling", "Dangling", "Points at an unknown id", members=["ghost", "system"]),
            special("nothing", "Nothing", "Expands to nothing", members=[]),
        ]
    )
