"""
Configuration for the Legal AI Workspace
========================================

Environment variables:
- CASE_API_URL: Case.dev base URL (default: https://api.case.dev)
- CASE_API_KEY: Bearer token for Case.dev (vaults, OCR, voice, search, LLM)
- IS_DEV: true to seed a dev admin and allow credential-less requests
- DEFAULT_USER_ROLE: role for self-registered users (default: user)
- JWT_SECRET_KEY: signing key for access/refresh tokens
- JWT_ACCESS_TOKEN_EXPIRE_MINUTES, JWT_REFRESH_TOKEN_EXPIRE_DAYS: token lifetimes
- CHAT_MODEL: Default chat model (default: anthropic/claude-sonnet-4.5)
- RESEARCH_QUERY_MODEL: Model used to plan research queries
- RESEARCH_SYNTHESIS_MODEL: Model used to write the research report
- TABULAR_MODEL: Default model for tabular cell extraction
- REDIS_URL: Redis for background polling jobs
- DATABASE_URL: SQLAlchemy URL (default: sqlite:///./legal_workspace.db)
- SQL_ECHO: true to log SQL statements
"""

from typing import Optional, List
from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings from environment variables"""

    # Case.dev
    case_api_url: str = "https://api.case.dev"
    case_api_key: Optional[str] = None

    # Onboarding
    is_dev: bool = False
    default_user_role: str = "user"
    enable_signup_default: bool = True

    # Auth tokens
    jwt_secret_key: str = "dev-secret-key-change-in-production"
    jwt_access_token_expire_minutes: int = 60
    jwt_refresh_token_expire_days: int = 7

    # Models
    chat_model: str = "anthropic/claude-sonnet-4.5"
    research_query_model: str = "anthropic/claude-sonnet-4.5"
    research_synthesis_model: str = "google/gemini-3-pro-preview"
    tabular_model: str = "anthropic/claude-sonnet-4.5"

    # Timeouts (seconds)
    llm_timeout: int = 120
    casedev_timeout: int = 60

    # Database
    database_url: str = "sqlite:///./legal_workspace.db"
    sql_echo: bool = False
    db_connect_timeout: int = 5

    # Background jobs
    redis_url: str = "redis://localhost:6379/0"
    ocr_poll_max_attempts: int = 5

    # Service info
    service_version: str = "1.0.0"

    class Config:
        env_prefix = ""
        case_sensitive = False
        env_file = ".env"
        env_file_encoding = "utf-8"

    def validate_config(self) -> List[str]:
        """Validate configuration, return list of warnings"""
        warnings = []

        if not self.case_api_key:
            warnings.append("CASE_API_KEY not set - vault, OCR, voice, search and LLM calls will fail")

        if self.default_user_role not in ("admin", "user", "pending"):
            warnings.append(f"DEFAULT_USER_ROLE={self.default_user_role} is not a known role")

        if self.jwt_secret_key == "dev-secret-key-change-in-production" and not self.is_dev:
            warnings.append("JWT_SECRET_KEY is the built-in default - set a real signing key")

        if self.is_dev:
            warnings.append("IS_DEV=true - dev admin is seeded and unauthenticated requests act as admin")

        return warnings


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
