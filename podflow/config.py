"""Configuration loaded from environment (.env) and defaults."""

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

# Locate the project root .env file regardless of CWD
_THIS_DIR = Path(__file__).resolve().parent          # podflow/
_PROJECT_ROOT = _THIS_DIR.parent
_ENV_FILE = _PROJECT_ROOT / ".env"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=str(_ENV_FILE) if _ENV_FILE.exists() else ".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Data directory for the file-backed job store
    pod_data_dir: str = "./data"

    # Postgres job store (preferred when set)
    pod_database_url: str | None = None

    # Printify
    printify_api_key: str | None = None
    printify_base_url: str = "https://api.printify.com/v1"
    printify_shop_id: str | None = None

    # Content generator: openai | anthropic
    pod_llm_provider: str = "openai"
    openai_api_key: str | None = None
    pod_openai_model: str = "gpt-4o-mini"
    anthropic_api_key: str | None = None
    pod_anthropic_model: str = "claude-3-5-sonnet-20241022"

    # Image generation (fal.ai)
    fal_key: str | None = None
    pod_image_model: str = "fal-ai/nano-banana"
    pod_background_model: str = "fal-ai/bria/background/remove"

    # Bounded waits (seconds)
    pod_http_timeout: float = 60.0
    pod_item_timeout: float = 600.0
    pod_content_retry_delay: float = 2.0

    # Hard cap on items per job
    pod_max_items: int = 50

    # CORS origins (comma-separated). Defaults to localhost dev.
    cors_origins: str = "http://localhost:3000,http://127.0.0.1:3000"
    cors_origin_regex: str | None = None

    port: int = 8000

    @property
    def data_dir(self) -> Path:
        """Data directory as an absolute Path.

        Relative paths are resolved against the project root, not CWD.
        """
        p = Path(self.pod_data_dir)
        if not p.is_absolute():
            return (_PROJECT_ROOT / p).resolve()
        return p.resolve()

    @property
    def jobs_dir(self) -> Path:
        return self.data_dir / "jobs"

    @property
    def cors_origin_list(self) -> list[str]:
        """Parse comma-separated CORS origins into a list."""
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    def ensure_dirs(self) -> None:
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.jobs_dir.mkdir(parents=True, exist_ok=True)


def get_settings() -> Settings:
    settings = Settings()
    settings.ensure_dirs()
    return settings
