from __future__ import annotations

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Central configuration loaded from environment / .env file."""

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    # Claude Code data directory used when no profiles are configured
    claude_dir: str = "~/.claude"

    # Explicit profiles as JSON: {"Work": "~/.claude-work", "Personal": "~/.claude"}
    # Empty = auto-discover ~/.claude* directories
    profiles: dict[str, str] = {}

    # Refresh loop
    refresh_interval_seconds: int = 60
    history_days: int = 7  # event log retention scanned per cycle

    # Quota table (tier id -> weekly token quota)
    plan_limits_file: str = "plan_limits.yaml"

    # Live usage API (optional, superseded by local estimate on any failure)
    oracle_enabled: bool = True
    oracle_url: str = "https://api.anthropic.com/api/oauth/usage"
    oracle_beta_header: str = "oauth-2025-04-20"
    oracle_timeout_seconds: float = 10.0
    token_expiry_buffer_seconds: int = 60

    # Retrying file reader (files may be rewritten while we read)
    file_read_attempts: int = 3
    file_read_delay_ms: int = 200

    # API
    api_host: str = "127.0.0.1"
    api_port: int = 8765

    # Logging
    log_level: str = "INFO"


settings = Settings()
