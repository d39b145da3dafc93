"""
Print the toolsets help text, or check a toolsets string.

    python -m scripts.toolsets_help
    python -m scripts.toolsets_help --check "default, midnight_wallet"
"""

import argparse
import sys

from toolset_server.toolsets import (
    UnknownToolsetError,
    generate_toolsets_help,
    resolve_cached,
)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Show or check toolset names.")
    parser.add_argument("--check", metavar="TOOLSETS", help="Resolve a comma-separated toolsets string")
    args = parser.parse_args(argv)

    if args.check is None:
        print(generate_toolsets_help())
        return 0

    try:
        resolved = resolve_cached(args.check)
    except UnknownToolsetError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1

    print(f"Toolsets: {', '.join(resolved.toolsets) or '(none)'}")
    print(f"Scopes:   {', '.join(sorted(resolved.scopes)) or '(none)'}")
    if resolved.used_default:
        print("(no toolsets given, defaults used)")
    return 0


if __name__ == "__main__":
    sys.exit(main())
