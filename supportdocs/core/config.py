"""Application configuration with validation."""

import logging
import tempfile
from enum import Enum
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator
from typing import Dict, List

logger = logging.getLogger(__name__)


class Environment(str, Enum):
    """Application environment."""
    DEVELOPMENT = "development"
    PRODUCTION = "production"


class SandboxMode(str, Enum):
    """How the sandbox entry point is launched."""
    DOCKER = "docker"
    LOCAL = "local"


class Settings(BaseSettings):
    """
    Application settings with validation.

    A single instance is built by the worker and the API app and passed
    explicitly into every pipeline component. Nothing below the
    composition roots reads the environment on its own.
    """

    # Environment
    environment: Environment = Field(
        default=Environment.DEVELOPMENT,
        description="Application environment (development/production)"
    )

    # CORS Configuration
    cors_allowed_origins: str = Field(
        default="http://localhost:3000",
        description="Allowed CORS origins (comma-separated)"
    )

    # Database Configuration
    database_url: str = Field(
        default="sqlite:///./supportdocs.db",
        description="Database connection URL"
    )
    # Connection pool tuning (PostgreSQL only; ignored for SQLite).
    db_pool_size: int = Field(default=5, description="Number of persistent database connections")
    db_max_overflow: int = Field(default=10, description="Extra connections allowed during traffic bursts")
    db_pool_timeout: int = Field(default=30, description="Seconds to wait for a pooled connection")
    db_pool_recycle: int = Field(default=1800, description="Seconds before a connection is recycled")

    # Sandbox
    # SANDBOX_MODE=docker runs each entry point in a fresh container with the
    # staging directories mounted; SANDBOX_MODE=local runs
    # SANDBOX_LOCAL_COMMAND + [entry_point] as a plain subprocess.
    sandbox_mode: SandboxMode = Field(default=SandboxMode.DOCKER)
    sandbox_image: str = Field(
        default="supportdocs/analyzer:latest",
        description="Docker image holding the analysis entry point scripts"
    )
    sandbox_dockerfile_dir: str = Field(
        default="docker/analyzer",
        description="Build context used when the image is missing"
    )
    sandbox_network: str = Field(default="host")
    sandbox_local_command: List[str] = Field(
        default_factory=lambda: ["/bin/sh"],
        description="Command prefix for local mode; the entry point script path is appended"
    )
    sandbox_local_scripts_dir: str = Field(
        default="docker/analyzer",
        description="Directory holding <entry-point>.sh scripts in local mode"
    )
    analysis_base_dir: str = Field(
        default_factory=tempfile.gettempdir,
        description="Root under which per-invocation staging directories are created"
    )
    analysis_host_dir: str = Field(
        default="",
        description="Host path of analysis_base_dir when the worker itself runs in a container"
    )
    keep_analysis_output: bool = Field(
        default=False,
        description="Preserve staging directories after each run (debugging only)"
    )
    # Bytes of stdout/stderr kept for diagnostics.
    sandbox_capture_limit: int = Field(default=2000)

    # Per-entry-point wall-clock budgets in seconds.
    timeout_default: int = Field(default=300)
    timeout_analyze_codebase: int = Field(default=600)
    timeout_check_article_updates: int = Field(default=600)
    timeout_generate_all_recommendations: int = Field(default=600)

    # Generation capability credentials. CLAUDE_CODE_OAUTH_TOKEN wins when both are set.
    anthropic_api_key: str = Field(default="", description="API key for the generation capability")
    claude_code_oauth_token: str = Field(default="", description="OAuth token alternative to the API key")
    default_model: str = Field(default="claude-sonnet-4-5", description="Model used when a project sets none")

    # Source repository hosting
    github_api_url: str = Field(default="https://api.github.com")
    github_token: str = Field(default="", description="Fallback repository access token")
    github_app_jwt: str = Field(
        default="",
        description="Signed app credential used to issue per-installation tokens"
    )
    github_max_retries: int = Field(default=3)
    github_timeout: int = Field(default=30)
    token_expiry_buffer_seconds: int = Field(
        default=300,
        description="Re-issue cached repository tokens this close to expiry"
    )

    # Worker
    worker_concurrency: int = Field(default=2, description="Jobs executed in parallel")
    poll_interval: int = Field(default=10, description="Seconds between queue polls")
    sweep_interval: int = Field(
        default=7 * 24 * 60 * 60,
        description="Seconds between scheduled pull-request sweeps"
    )
    job_max_retries: int = Field(default=1, description="Automatic re-queues after a job crash")
    stale_running_grace_seconds: int = Field(
        default=120,
        description="Extra time past an entry point's timeout before a running entity is failed"
    )

    # Logging Configuration
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )
    log_format: str = Field(
        default="json",
        description="Log output format: 'json' for structured, 'text' for human-readable"
    )

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is one of the standard Python logging levels."""
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"Invalid log level. Must be one of: {valid_levels}")
        return v_upper

    @field_validator('worker_concurrency', 'github_max_retries')
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("Must be at least 1")
        return v

    def get_cors_origins(self) -> List[str]:
        """Parse CORS_ALLOWED_ORIGINS into a list. Wildcards are rejected."""
        origins = [origin.strip() for origin in self.cors_allowed_origins.split(',') if origin.strip()]
        if "*" in origins:
            raise ValueError(
                "Wildcard CORS (*) not allowed. "
                "Specify explicit origins in CORS_ALLOWED_ORIGINS"
            )
        return origins

    def timeout_for(self, entry_point: str) -> int:
        """Wall-clock budget for *entry_point* in seconds."""
        overrides: Dict[str, int] = {
            "analyze-codebase": self.timeout_analyze_codebase,
            "check-article-updates": self.timeout_check_article_updates,
            "generate-all-recommendations": self.timeout_generate_all_recommendations,
        }
        return overrides.get(entry_point, self.timeout_default)

    def generation_credentials(self) -> Dict[str, str]:
        """Environment entries that authenticate the generation capability.

        Returns an empty dict when nothing is configured; the sandbox
        executor turns that into a ConfigurationError before running.
        """
        if self.claude_code_oauth_token:
            return {"CLAUDE_CODE_OAUTH_TOKEN": self.claude_code_oauth_token}
        if self.anthropic_api_key:
            return {"ANTHROPIC_API_KEY": self.anthropic_api_key}
        return {}

    def validate_sandbox_config(self) -> List[str]:
        """Return startup warnings about missing sandbox credentials.

        Missing credentials are not fatal at startup; each job reports a
        ConfigurationError for itself when it needs them.
        """
        warnings: list[str] = []
        if not self.generation_credentials():
            warnings.append(
                "Neither CLAUDE_CODE_OAUTH_TOKEN nor ANTHROPIC_API_KEY is set. "
                "Every generation job will fail with a configuration error."
            )
        if not self.github_token:
            warnings.append(
                "GITHUB_TOKEN is not set. Projects without per-repository "
                "installation tokens cannot be analyzed."
            )
        return warnings

    # Environment variables are read case-insensitively.
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", case_sensitive=False)


# Global settings instance, used by the composition roots only.
settings = Settings()
