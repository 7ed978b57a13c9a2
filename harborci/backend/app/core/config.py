# backend/app/core/config.py
from typing import Annotated, List, Optional
from pathlib import Path
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict
from pydantic import field_validator

# Locate the .env file relative to the project root
BASE_DIR = Path(__file__).resolve().parent.parent.parent.parent  # Goes to harborci root
ENV_FILE = BASE_DIR / ".env"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=str(ENV_FILE), extra="ignore")

    # Application
    PROJECT_NAME: str = "HarborCI"
    VERSION: str = "0.1.0"
    ENVIRONMENT: str = "development"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    BASE_URL: str = "http://localhost:8000"

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./harborci.db"
    DB_POOL_SIZE: int = 20
    DB_MAX_OVERFLOW: int = 10

    # Celery
    CELERY_BROKER_URL: str = "redis://localhost:6379/0"
    CELERY_RESULT_BACKEND: str = "redis://localhost:6379/1"
    WEBHOOK_PARTITIONS: int = 4
    WEBHOOK_RECOVERY_AGE_SECONDS: int = 300
    WEBHOOK_RECOVERY_INTERVAL_SECONDS: int = 60
    # A claim older than this belongs to a worker that died mid-event
    WEBHOOK_STALE_CLAIM_SECONDS: int = 900

    # Credential encryption
    MASTER_ENCRYPTION_KEY: Optional[str] = None
    ENCRYPTION_SALT: str = "harborci-credential-store"

    # CORS
    BACKEND_CORS_ORIGINS: Annotated[List[str], NoDecode] = []

    # GitHub
    GITHUB_WEBHOOK_SECRET: Optional[str] = None
    GITHUB_API_URL: str = "https://api.github.com"
    GITHUB_WEB_URL: str = "https://github.com"
    GITHUB_APP_NAME: str = "HarborCI"
    GITHUB_MAX_REPOS_PER_INSTALLATION: int = 1000

    # GitLab
    GITLAB_URL: str = "https://gitlab.com"
    GITLAB_CLIENT_ID: Optional[str] = None
    GITLAB_CLIENT_SECRET: Optional[str] = None
    GITLAB_SERVER_PEPPER: Optional[str] = None

    # Provider calls
    PROVIDER_TIMEOUT_SECONDS: float = 30.0

    # Management API (unset: open, for local development)
    API_TOKEN: Optional[str] = None

    # Webhooks
    MAX_WEBHOOK_BYTES: int = 10 * 1024 * 1024
    PULL_REQUEST_BUILD_ACTIONS: Annotated[List[str], NoDecode] = ["opened", "synchronize", "reopened"]

    # Setup flow
    SETUP_SESSION_TTL_MINUTES: int = 10
    SETUP_CALLBACK_WAIT_SECONDS: float = 30.0
    SETUP_CALLBACK_POLL_SECONDS: float = 0.25

    # Reconciliation
    SYNC_LEASE_SECONDS: int = 300

    @field_validator("BACKEND_CORS_ORIGINS", "PULL_REQUEST_BUILD_ACTIONS", mode="before")
    @classmethod
    def split_comma_list(cls, v):
        if isinstance(v, str):
            return [i.strip() for i in v.split(",") if i.strip()]
        return v


settings = Settings()
