"""
API configuration settings.
"""

from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


class APIConfig(BaseSettings):
    """API configuration settings."""

    # API Settings
    api_title: str = "Library Management API"
    api_version: str = "1.0.0"
    api_description: str = "Book catalog API secured with GitHub OAuth"

    # Server Settings
    host: str = "0.0.0.0"
    port: int = 3000
    environment: str = "development"
    debug: bool = False

    # Database Settings
    mongodb_url: str = "mongodb://localhost:27017"
    mongodb_database: str = "library"
    books_collection: str = "books"
    mongodb_timeout_ms: int = Field(default=5000, ge=1000, le=60000)

    # Session Settings
    session_cookie_name: str = "library_session"
    session_max_age: int = 24 * 60 * 60  # seconds

    # GitHub OAuth Settings
    github_client_id: str = ""
    github_client_secret: str = ""
    github_callback_url: Optional[str] = None
    github_authorize_url: str = "https://github.com/login/oauth/authorize"
    github_token_url: str = "https://github.com/login/oauth/access_token"
    github_user_url: str = "https://api.github.com/user"
    github_scope: str = "read:user"
    hostname: str = "cse340-two.onrender.com"

    # Documentation
    openapi_file: str = "swagger.json"

    # CORS Settings
    cors_origins: list = ["*"]
    cors_allow_credentials: bool = True
    cors_allow_methods: list = ["*"]
    cors_allow_headers: list = ["*"]

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"
    log_file: Optional[str] = None

    model_config = {
        "env_file": ".env",
        "extra": "ignore"  # Ignore extra fields from .env
    }

    @field_validator("port")
    @classmethod
    def validate_port(cls, v):
        """Ensure port is a valid TCP port."""
        if v < 1 or v > 65535:
            raise ValueError("port must be between 1 and 65535")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        """Ensure log level is valid."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"log_level must be one of: {valid_levels}")
        return v.upper()

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v):
        """Ensure log format is valid."""
        valid_formats = ["json", "console"]
        if v.lower() not in valid_formats:
            raise ValueError(f"log_format must be one of: {valid_formats}")
        return v.lower()

    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.environment.lower() == "production"

    def cookie_secure(self) -> bool:
        """Session cookies are HTTPS-only in production."""
        return self.is_production()

    def get_callback_url(self) -> str:
        """
        Resolve the GitHub OAuth callback URL.

        An explicit GITHUB_CALLBACK_URL always wins. Otherwise production
        builds an https URL from HOSTNAME and development points at localhost.
        """
        if self.github_callback_url:
            return self.github_callback_url
        if self.is_production():
            return f"https://{self.hostname}/auth/github/callback"
        return f"http://localhost:{self.port}/auth/github/callback"

    def get_openapi_path(self) -> Path:
        """Get the static OpenAPI document path as a Path object."""
        return Path(self.openapi_file)


# Global config instance
config = APIConfig()
