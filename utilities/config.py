"""
Configuration management using environment variables.
Handles database, token and logging settings with validation.
"""

from typing import Optional
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings
from pathlib import Path


class LibraryConfig(BaseSettings):
    """
    Configuration class for the library service.
    Uses pydantic BaseSettings for environment variable management.
    """

    # MongoDB Configuration
    mongodb_uri: str = Field(..., description="MongoDB connection string")
    mongodb_database: str = Field(default="library")
    mongodb_timeout_ms: int = Field(default=5000)

    # Token Configuration
    jwt_secret: str = Field(..., description="Secret used to sign access tokens")
    jwt_algorithm: str = Field(default="HS256")
    access_token_expire_minutes: int = Field(default=0)

    # Shared password accepted by login for every user
    login_password: str = Field(default="salainen")

    # Logging Configuration
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="json")
    log_file: Optional[str] = Field(default=None)

    # Development/Testing
    debug: bool = Field(default=False)

    @field_validator('mongodb_timeout_ms')
    @classmethod
    def validate_timeout(cls, v):
        """Ensure server selection timeout is reasonable."""
        if v < 100 or v > 120000:
            raise ValueError('mongodb_timeout_ms must be between 100 and 120000')
        return v

    @field_validator('access_token_expire_minutes')
    @classmethod
    def validate_expiry(cls, v):
        """Zero disables expiry; negative values make no sense."""
        if v < 0:
            raise ValueError('access_token_expire_minutes cannot be negative')
        return v

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v):
        """Ensure log level is valid."""
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if v.upper() not in valid_levels:
            raise ValueError(f'log_level must be one of: {valid_levels}')
        return v.upper()

    @field_validator('log_format')
    @classmethod
    def validate_log_format(cls, v):
        """Ensure log format is valid."""
        valid_formats = ['json', 'console']
        if v.lower() not in valid_formats:
            raise ValueError(f'log_format must be one of: {valid_formats}')
        return v.lower()

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore",
    }

    def get_log_file_path(self) -> Optional[Path]:
        """Get log file path as Path object."""
        if self.log_file:
            return Path(self.log_file)
        return None


# Global configuration instance
config = LibraryConfig()
