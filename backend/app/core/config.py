"""
Pydantic Settings: centralized configuration loaded from environment variables.
"""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # ── Database ──────────────────────────────
    POSTGRES_USER: str = "sample_user"
    POSTGRES_PASSWORD: str = "sample_pass"
    POSTGRES_SERVER: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_DB: str = "sample_automation"
    SQL_ECHO: bool = False

    @property
    def DATABASE_URL(self) -> str:
        """Async URL for app runtime (asyncpg)."""
        return f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}@{self.POSTGRES_SERVER}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"

    @property
    def DATABASE_URL_SYNC(self) -> str:
        """Sync URL for Alembic migrations (psycopg2)."""
        return f"postgresql://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}@{self.POSTGRES_SERVER}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"

    # ── Redis / Celery ────────────────────────
    CELERY_BROKER_URL: str = "redis://localhost:6379/0"
    CELERY_RESULT_BACKEND: str = "redis://localhost:6379/1"

    # ── CallID assignment service ─────────────
    CALLID_SERVICE_URL: str = "http://callid:5004"
    CALLID_TIMEOUT_SECONDS: float = 30.0

    # ── Uploads ───────────────────────────────
    UPLOAD_DIR: str = "/tmp/sample-automation/uploads"
    MAX_UPLOAD_FILES: int = 10
    MAX_UPLOAD_BYTES: int = 2 * 1024 * 1024 * 1024
    INSERT_CHUNK_SIZE: int = 1000

    # ── Extraction ────────────────────────────
    EXTRACT_DIR: str = "/tmp/sample-automation/extracts"
    STRATIFY_BATCH_COUNT: int = 20

    # ── Progress stream ───────────────────────
    PROGRESS_HEARTBEAT_SECONDS: float = 30.0

    # ── Application ───────────────────────────
    APP_ENV: str = "development"
    LOG_LEVEL: str = "INFO"

    model_config = {"env_file": ["../.env", ".env"], "extra": "ignore"}


settings = Settings()
