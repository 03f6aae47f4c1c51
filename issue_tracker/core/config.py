from pydantic import BaseModel
import os

class Settings(BaseModel):
    database_url: str = os.getenv("DATABASE_URL", "sqlite:///./issue_tracker.db")
    environment: str = os.getenv("ENVIRONMENT", "production").lower()
    jwt_secret: str = os.getenv("JWT_SECRET", "dev-secret")
    jwt_expires_min: int = int(os.getenv("JWT_EXPIRES_MIN", "60"))
    jwt_issuer: str = os.getenv("JWT_ISSUER", "issue-tracker")
    cors_origins: list[str] = [
        o.strip()
        for o in os.getenv("CORS_ORIGINS", "http://localhost:4200,http://127.0.0.1:4200").split(",")
        if o.strip()
    ]
    smtp_host: str = os.getenv("SMTP_HOST", "")
    smtp_port: int = int(os.getenv("SMTP_PORT", "25"))
    smtp_from: str = os.getenv("SMTP_FROM", "")
    app_base_url: str = os.getenv("APP_BASE_URL", "http://localhost:4200")

    @property
    def is_development(self) -> bool:
        return self.environment in ("development", "dev")

settings = Settings()
