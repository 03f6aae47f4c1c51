from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Storage
    STORAGE_BACKEND: str = "local"  # local | object
    LOCAL_UPLOAD_ROOT: str = "./data/uploads"
    MAX_UPLOAD_BYTES: int = 25 * 1024 * 1024

    # Object Storage (S3 compatible)
    OBJECT_STORAGE_ENDPOINT: str | None = None
    OBJECT_STORAGE_BUCKET: str | None = None

    # Background notifier thread
    NOTIFIER_ENABLED: bool = True

    # DB bootstrap (dev only)
    AUTO_DB_BOOTSTRAP: bool = False
    ADMIN_EMAIL: str = "admin@example.com"
    ADMIN_PASSWORD: str = "admin1234!@"
    ADMIN_NAME: str = "Administrator"

    class Config:
        env_file = ".env"
        extra = "ignore"


settings = Settings()
