from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    DATABASE_URL: str = "postgresql+asyncpg://lembur:lembur_secret@db:5432/lembur"
    SECRET_KEY: str = "change-me-in-production"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60
    REFRESH_TOKEN_EXPIRE_MINUTES: int = 60 * 24

    CORS_ORIGINS: list[str] = ["http://localhost:3000", "http://localhost:9002"]

    # Kota Medan: WIB
    TIMEZONE: str = "Asia/Jakarta"

    # Penyimpanan foto lembur (dilayani sebagai static files)
    PHOTO_STORAGE_DIR: str = "storage"
    PHOTO_BASE_URL: str = "/media"
    PHOTO_UPLOAD_MAX_ATTEMPTS: int = 3
    PHOTO_UPLOAD_BACKOFF_SEC: float = 1.0

    # Validasi foto dengan AI; tanpa GEMINI_API_KEY default-nya mati
    PHOTO_GATE_ENABLED: bool | None = None
    PHOTO_MIN_CONFIDENCE: float = 0.70
    GEMINI_API_KEY: str = ""
    GEMINI_MODEL: str = "gemini-2.0-flash"
    GEMINI_API_URL: str = "https://generativelanguage.googleapis.com/v1beta"
    GEMINI_TIMEOUT_SEC: float = 20.0

    # Data URI foto ditampilkan sampai unggahan selesai atau TTL habis
    OPTIMISTIC_OVERLAY_TTL_SEC: float = 120.0

    FEED_QUEUE_SIZE: int = 100

    RUN_MIGRATIONS_ON_STARTUP: bool = True

    @model_validator(mode="after")
    def _default_photo_gate(self) -> "Settings":
        if self.PHOTO_GATE_ENABLED is None:
            self.PHOTO_GATE_ENABLED = bool(self.GEMINI_API_KEY)
        return self


settings = Settings()
