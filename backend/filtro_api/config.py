from pydantic_settings import BaseSettings
from pydantic import Field
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings."""

    # Database
    database_url: str = Field(..., env="DATABASE_URL")

    # Tokens
    jwt_secret_key: str = Field(..., env="JWT_SECRET_KEY")
    jwt_algorithm: str = Field(default="HS256", env="JWT_ALGORITHM")
    token_ttl_seconds: int = Field(default=3600, env="TOKEN_TTL_SECONDS")

    # Secret hashing cost (lower it only for tests)
    bcrypt_rounds: int = Field(default=12, env="BCRYPT_ROUNDS")

    # Webhook intake
    webhook_source: str = Field(default="filtroclientes", env="WEBHOOK_SOURCE")
    webhook_scope: str = Field(default="write", env="WEBHOOK_SCOPE")

    # HTTP
    cors_origins: list[str] = Field(default=["*"], env="CORS_ORIGINS")
    log_level: str = Field(default="info", env="LOG_LEVEL")

    class Config:
        env_file = ".env"
        case_sensitive = False


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
