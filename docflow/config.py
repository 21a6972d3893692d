"""Runtime configuration — env-driven.

Centralized config using pydantic-settings.  Reads from a .env file and
DOCFLOW_* environment variables.
"""

from __future__ import annotations

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class DocflowConfig(BaseSettings):
    """DocFlow configuration with environment variable overrides.

    Examples
    --------
    Override via environment::

        export DOCFLOW_ENVIRONMENT=production
        export DOCFLOW_LOG_LEVEL=DEBUG
        export DOCFLOW_LEDGER_PATH=/data/ledger.db
        export DOCFLOW_GITHUB_TOKEN=ghp_...

    Or via .env file::

        DOCFLOW_GEMINI_API_KEY=...
        DOCFLOW_JIRA_BASE_URL=https://example.atlassian.net
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="DOCFLOW_",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Runtime environment
    environment: str = "development"
    log_level: str = "INFO"
    debug: bool = False

    # Ledger
    ledger_path: Path = Path(".docflow/ledger.db")
    ledger_create_if_missing: bool = True
    append_max_attempts: int = 3

    # Documentation target
    default_branch: str = "main"
    doc_file_path: str = "READLOG.md"
    revert_context_lines: int = 3

    # Outbound calls
    request_timeout_seconds: float = 30.0

    # GitHub
    github_token: str = ""
    github_api_url: str = "https://api.github.com"

    # Gemini (AI change producer); empty key disables AI
    gemini_api_key: str = ""
    gemini_api_url: str = "https://generativelanguage.googleapis.com/v1beta"
    gemini_models: list[str] = [
        "gemini-1.5-flash",
        "gemini-1.5-flash-latest",
        "gemini-1.5-pro",
    ]

    # Jira (optional ticket enrichment)
    jira_base_url: str = ""
    jira_email: str = ""
    jira_api_token: str = ""

    @property
    def is_production(self) -> bool:
        """Whether running in production mode."""
        return self.environment == "production"

    @property
    def ai_enabled(self) -> bool:
        return bool(self.gemini_api_key)

    @property
    def jira_enabled(self) -> bool:
        return bool(self.jira_base_url and self.jira_email and self.jira_api_token)
