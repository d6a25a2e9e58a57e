from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    DATABASE_URL: str = "sqlite:///./reconciler.db"

    # Processing service (detector, processor, exporter, batch source)
    PROCESSOR_API_URL: str = "http://localhost:8000"
    PROCESSOR_TIMEOUT_SECONDS: float = 120.0

    # Where exported decision sets go: 'http' (processing service) or 's3'
    EXPORT_BACKEND: str = "http"
    S3_ENDPOINT: str = ""
    S3_ACCESS_KEY: str = ""
    S3_SECRET_KEY: str = ""
    S3_BUCKET: str = "reconciler-exports"

    MAX_UPLOAD_BYTES: int = 50 * 1024 * 1024  # 50MB

    # Wizard sessions nobody touched for this long are dropped
    SESSION_IDLE_TTL_SECONDS: float = 30 * 60  # idle / applied
    SESSION_ABANDON_TTL_SECONDS: float = 24 * 60 * 60  # mid-review
    CORS_ORIGINS: list[str] = ["http://localhost:3000"]
    LOG_LEVEL: str = "INFO"
    DEBUG: bool = False

    class Config:
        env_file = ".env"


@lru_cache()
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
