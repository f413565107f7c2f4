"""Configuration loaded from environment (.env) and defaults."""

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

# Locate the project root .env file — works regardless of CWD
_THIS_DIR = Path(__file__).resolve().parent          # tryon/
_PROJECT_ROOT = _THIS_DIR.parent
_ENV_FILE = _PROJECT_ROOT / ".env"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=str(_ENV_FILE) if _ENV_FILE.exists() else ".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Job store backend: file | postgres
    tryon_store: str = "file"

    # Data directory for the file-based job store
    tryon_data_dir: str = "./data"

    # Postgres DSN (only used when tryon_store=postgres)
    tryon_database_url: str | None = None

    # Generate callable, "module:function"
    tryon_generator: str = "tryon.jobs.worker:echo_generator"

    # Worker loop
    tryon_worker_idle_s: float = 1.0
    tryon_stalled_after_s: float = 300.0
    # Run one worker thread inside the API process (local development)
    tryon_embedded_worker: bool = False

    # Status polling (client side)
    tryon_api_url: str = "http://localhost:8000"
    tryon_poll_interval_s: float = 2.0
    tryon_progress_tick_s: float = 1.0
    tryon_progress_step: float = 10.0

    # CORS origins (comma-separated). Defaults to localhost dev.
    cors_origins: str = "http://localhost:3000,http://127.0.0.1:3000"
    cors_origin_regex: str | None = None

    # Server port
    port: int = 8000

    @property
    def data_dir(self) -> Path:
        """Get data directory as Path (OS-agnostic).

        Relative paths are resolved against the project root, not CWD.
        """
        p = Path(self.tryon_data_dir)
        if not p.is_absolute():
            return (_PROJECT_ROOT / p).resolve()
        return p.resolve()

    @property
    def cors_origin_list(self) -> list[str]:
        """Parse comma-separated CORS origins into a list."""
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]


def get_settings() -> Settings:
    return Settings()
