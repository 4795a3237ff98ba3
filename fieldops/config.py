from pydantic_settings import BaseSettings
from pydantic import field_validator
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Document store
    DATABASE_URL: str = "sqlite+aiosqlite:///./fieldops.db"

    @field_validator('DATABASE_URL', mode='before')
    @classmethod
    def convert_database_url(cls, v: str) -> str:
        """Convert postgresql:// to postgresql+asyncpg:// for async support."""
        if v and v.startswith('postgresql://'):
            return v.replace('postgresql://', 'postgresql+asyncpg://', 1)
        return v

    # CORS
    FRONTEND_URL: str = "http://localhost:8081"

    # Blob store
    BLOB_BACKEND: str = "local"  # local, firebase, memory
    BLOB_BUCKET: str = "fieldops.appspot.com"
    BLOB_PUBLIC_BASE_URL: str = "https://firebasestorage.googleapis.com"
    BLOB_LOCAL_ROOT: str = "./data/blobs"
    BLOB_AUTH_TOKEN: str | None = None
    UPLOAD_CHUNK_SIZE: int = 256 * 1024

    @field_validator('BLOB_BACKEND')
    @classmethod
    def validate_blob_backend(cls, v: str) -> str:
        v = v.lower()
        if v not in ("local", "firebase", "memory"):
            raise ValueError(f"Unsupported BLOB_BACKEND: {v}")
        return v

    # On-device state (persisted mirror stores) and exports
    STATE_DIR: str = "./data/state"
    EXPORT_DIR: str = "./data/exports"

    # QuickBooks
    QBO_COMPANY_ID: str | None = None
    QBO_SANDBOX: bool = False

    # Ticket defaults
    DEFAULT_INSPECTOR_NAME: str = ""

    # Environment
    ENVIRONMENT: str = "development"
    DEBUG: bool = True
    DOCS_ENABLED: bool = True

    @property
    def sqlalchemy_echo(self) -> bool:
        """Only echo SQL in development with DEBUG on."""
        return self.DEBUG and self.ENVIRONMENT == "development"

    class Config:
        env_file = ".env"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
