# userauth/core/config.py
import os
from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict
DOTENV = os.path.join(os.path.dirname(os.path.dirname(os.path.dirname(__file__))), ".env")


class Settings(BaseSettings):
    APP_NAME: str = "User Accounts"

    SECRET_KEY: str
    SESSION_SECRET_KEY: Optional[str] = None
    ALGORITHM: str = "HS256"
    # token and the `token` cookie share one lifetime (3 days)
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 3 * 24 * 60
    PASSWORD_HASH_ROUNDS: int = 10

    DATABASE_URL: str = "sqlite:///./userauth.db"

    SMTP_SERVER: str = "localhost"
    SMTP_PORT: int = 587
    SMTP_USER: str = ""
    SMTP_PASSWORD: str = ""
    SMTP_TIMEOUT: int = 15
    EMAIL_FROM: str = "no-reply@localhost"

    USERS_PREFIX: str = "/users"
    CORS_ORIGINS: List[str] = ["http://localhost:5173", "http://localhost:5174"]
    ALLOWED_HOSTS: List[str] = ["*"]
    COOKIE_SECURE: bool = False
    SESSION_COOKIE: str = "session"
    SESSION_MAX_AGE: int = 60 * 60

    FRONTEND_URL: str = "http://localhost:5173"
    GOOGLE_CLIENT_ID: str = ""
    GOOGLE_CLIENT_SECRET: str = ""
    GOOGLE_REDIRECT_URI: str = "http://localhost:8000/users/auth/google/callback"

    LOG_LEVEL: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=DOTENV,
        env_ignore_empty=True,
        extra="ignore"
    )

    @property
    def session_secret(self) -> str:
        return self.SESSION_SECRET_KEY or self.SECRET_KEY


settings = Settings()
