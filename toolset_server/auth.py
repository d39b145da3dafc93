"""
Bearer token validation for MCP requests.

Every tools/list and tools/call request carries an "Authorization: Bearer <jwt>"
header. This module turns that header into a TokenInfo (who is calling and
which scopes they hold) or raises AuthError. It does not decide what the
caller may do: the server middleware compares TokenInfo.scopes with the
scopes each enabled toolset requires (see scopes.has_required_scopes).

Expected JWT payload:
    {
        "sub": "agent-42",
        "scope": ["midnight:docs", "midnight:wallet:read"],
        "exp": 1738800000
    }

Tokens are signed with the shared secret from settings (HS256 by default);
scripts/generate_token.py mints matching tokens for local use.
"""

from dataclasses import dataclass

import jwt

from toolset_server.config import settings


class AuthError(Exception):
    """
    Token validation failed.

    One exception type covers every failure (missing header, bad scheme, bad
    signature, expiry, malformed claims) so clients learn nothing about which
    check tripped. The message is for server-side logs.

    Attributes:
        message: What went wrong
        status_code: HTTP status to report (401)
    """

    def __init__(self, message: str, status_code: int = 401):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


@dataclass(frozen=True)
class TokenInfo:
    """
    Claims extracted from a validated token.

    Attributes:
        subject: The "sub" claim, used for audit logging
        scopes: Scopes granted to the caller, as listed in the token
    """

    subject: str
    scopes: list[str]


def _split_bearer(authorization_header: str | None) -> str:
    if not authorization_header:
        raise AuthError("Missing Authorization header")

    # RFC 6750: scheme name is case-insensitive
    scheme, _, token = authorization_header.partition(" ")
    if scheme.lower() != "bearer" or not token:
        raise AuthError("Invalid Authorization header format, expected 'Bearer <token>'")
    return token


def _scopes_from_claims(payload: dict) -> list[str]:
    scopes = payload.get("scope", [])
    if not isinstance(scopes, list):
        raise AuthError("Invalid scope claim: must be a list")
    if not all(isinstance(s, str) for s in scopes):
        raise AuthError("Invalid scope claim: all entries must be strings")
    return scopes


def validate_token(
    authorization_header: str | None,
    secret: str | None = None,
    algorithm: str | None = None,
) -> TokenInfo:
    """
    Validate a Bearer token and return its subject and scopes.

    Args:
        authorization_header: Raw header value, "Bearer <jwt>"
        secret: Signing key; defaults to settings.jwt_secret_key
        algorithm: JWT algorithm; defaults to settings.jwt_algorithm

    Returns:
        TokenInfo for the caller. A token without a "scope" claim is valid
        and simply grants no scopes.

    Raises:
        AuthError: On any validation failure
    """
    token = _split_bearer(authorization_header)

    try:
        payload = jwt.decode(
            token,
            secret or settings.jwt_secret_key,
            algorithms=[algorithm or settings.jwt_algorithm],
            options={"require": ["exp", "sub"]},
        )
    except jwt.ExpiredSignatureError:
        raise AuthError("Token has expired")
    except jwt.InvalidTokenError as e:
        raise AuthError(f"Invalid token: {e}")

    return TokenInfo(subject=payload.get("sub", ""), scopes=_scopes_from_claims(payload))
