"""
CLI utility to mint JWT tokens for the toolset server.

Stands in for a real identity provider during local development. Scopes can
be given directly, or derived from toolsets: --toolsets resolves the names
the same way the server does and adds every scope those toolsets require.

Usage examples:

    # Token that can use the default toolsets
    python -m scripts.generate_token --sub alice --toolsets default

    # Default toolsets plus wallet reads
    python -m scripts.generate_token --sub alice --toolsets default,midnight_wallet

    # Explicit scopes
    python -m scripts.generate_token --sub ci-agent --scope midnight:docs nextjs:docs

    # Expired token (for testing rejection)
    python -m scripts.generate_token --sub alice --scope midnight:docs --exp-hours -1
"""

import argparse
import datetime

import jwt

from toolset_server.toolsets import UnknownToolsetError, resolve_toolsets


def generate_token(
    subject: str,
    scopes: list[str],
    secret: str,
    algorithm: str = "HS256",
    exp_hours: float = 8.0,
) -> str:
    """
    Generate a signed JWT token with the given claims.

    Args:
        subject: The "sub" claim
        scopes: Scopes to grant
        secret: Signing key (must match the server's MCP_JWT_SECRET_KEY)
        algorithm: JWT signing algorithm
        exp_hours: Hours until expiration (negative = already expired)
    """
    now = datetime.datetime.now(datetime.timezone.utc)
    payload = {
        "sub": subject,
        "scope": scopes,
        "iat": now,
        "exp": now + datetime.timedelta(hours=exp_hours),
    }
    return jwt.encode(payload, secret, algorithm=algorithm)


def scopes_for(toolsets: str | None, extra_scopes: list[str]) -> list[str]:
    """
    Explicit scopes followed by the scopes the toolsets require, without repeats.

    Raises:
        UnknownToolsetError: If toolsets names an unknown toolset
    """
    scopes = list(dict.fromkeys(extra_scopes))
    if toolsets:
        required = resolve_toolsets(toolsets, fallback_to_default=False).scopes
        scopes += sorted(s for s in required if s not in scopes)
    return scopes


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Generate JWT tokens for the toolset server.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  Scopes for the default toolsets:
    %(prog)s --sub alice --toolsets default

  Explicit scopes:
    %(prog)s --sub alice --scope midnight:docs midnight:wallet:read

  Expired token (for testing):
    %(prog)s --sub alice --scope midnight:docs --exp-hours -1
        """,
    )
    parser.add_argument("--sub", required=True, help="Subject claim (e.g. 'alice', 'ci-agent')")
    parser.add_argument(
        "--scope",
        nargs="+",
        default=[],
        help="Space-separated scopes (e.g. midnight:docs nextjs:docs)",
    )
    parser.add_argument(
        "--toolsets",
        help="Comma-separated toolsets; their required scopes are added to the token",
    )
    parser.add_argument(
        "--secret",
        default="dev-secret-change-me",
        help="JWT signing secret (must match server's MCP_JWT_SECRET_KEY)",
    )
    parser.add_argument("--algorithm", default="HS256", help="JWT signing algorithm (default: HS256)")
    parser.add_argument(
        "--exp-hours",
        type=float,
        default=8.0,
        help="Hours until token expires (negative = already expired, default: 8)",
    )

    args = parser.parse_args()

    try:
        scopes = scopes_for(args.toolsets, args.scope)
    except UnknownToolsetError as e:
        parser.error(f"{e} (run python -m scripts.toolsets_help for valid names)")

    token = generate_token(
        subject=args.sub,
        scopes=scopes,
        secret=args.secret,
        algorithm=args.algorithm,
        exp_hours=args.exp_hours,
    )

    exp_time = datetime.datetime.now(datetime.timezone.utc) + datetime.timedelta(
        hours=args.exp_hours
    )

    print(f"Subject:    {args.sub}")
    print(f"Scopes:     {scopes}")
    print(f"Expires:    {exp_time.isoformat()}")
    print(f"Algorithm:  {args.algorithm}")
    print()
    print(f"Token: {token}")

    print()
    print("Usage with curl (initialize MCP session):")
    print('  curl -X POST http://localhost:8080/mcp \\')
    print('    -H "Content-Type: application/json" \\')
    print('    -H "Accept: application/json, text/event-stream" \\')
    print(f'    -H "Authorization: Bearer {token}" \\')
    print(
        '    -d \'{"jsonrpc":"2.0","id":1,"method":"initialize",'
        '"params":{"protocolVersion":"2025-03-26","capabilities":{},'
        '"clientInfo":{"name":"test","version":"1.0"}}}\''
    )


if __name__ == "__main__":
    main()
