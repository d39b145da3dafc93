"""
Server configuration from environment variables (MCP_ prefix) or a .env file.

    MCP_HOST, MCP_PORT, MCP_LOG_LEVEL   network binding and log verbosity
    MCP_JWT_SECRET_KEY, MCP_JWT_ALGORITHM
                                        token verification
    MCP_TOOLSETS                        comma-separated toolsets to enable,
                                        e.g. "default,midnight_wallet" or "all"

MCP_TOOLSETS is kept as the raw string; toolsets.resolve_toolsets() parses and
validates it when the server starts. Leaving it empty enables the default
toolsets. Run scripts/toolsets_help.py for the list of valid names.
"""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Typed settings; each field reads MCP_<FIELD_NAME>."""

    # --- Server ---

    # "0.0.0.0" so the server is reachable from outside a container.
    host: str = "0.0.0.0"
    port: int = 8080
    log_level: str = "info"

    # --- Authentication ---

    # Local development default only; inject a real secret in production.
    jwt_secret_key: str = "dev-secret-change-me"
    jwt_algorithm: str = "HS256"

    # --- Toolsets ---

    # Raw comma-separated toolset IDs. Empty means "default".
    toolsets: str = ""

    model_config = {
        "env_prefix": "MCP_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
    }


# Singleton instance, read once at import time.
settings = Settings()
