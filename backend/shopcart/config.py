from pydantic_settings import BaseSettings
from typing import List

class Settings(BaseSettings):
    DATABASE_URL: str = "sqlite:///./dev.db"
    APP_HOST: str = "127.0.0.1"
    APP_PORT: int = 8000
    FRONTEND_ORIGINS: List[str] = ["http://localhost:3000"]
    LOG_LEVEL: str = "INFO"
    RESET_DB: bool = False
    ANON_COOKIE_NAME: str = "cart_uuid"
    PAYMENT_WEBHOOK_SECRET: str = "change-this-webhook-secret"
    PAYMENT_CURRENCY: str = "usd"
    PAYMENT_MOCK_DELAY_MS: int = 0
    SQLITE_BUSY_TIMEOUT_SECONDS: int = 30

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"

settings = Settings()
