"""Tool configuration."""

import os
from functools import lru_cache
from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from SMIME_EXEC_* environment variables."""

    # External CMS tool and its certificate/key database
    program: str = "cmsutil"
    database_dir: str = "~/.pki/nssdb"

    # Completion wait: one bounded poll per interval, overall deadline per call.
    # timeout=None disables the deadline (wait indefinitely).
    poll_interval: float = 1.0
    timeout: Optional[float] = 300.0

    # Where Verify writes the signed content file (None = system default)
    temp_dir: Optional[str] = None

    # Flag spellings understood by the tool
    decrypt_flag: str = "-D"
    sign_flag: str = "-S"
    encrypt_flag: str = "-E"
    verify_flag: str = "-V"
    database_flag: str = "-d"
    password_flag: str = "-p"
    detached_flag: str = "-T"
    signer_flag: str = "-N"
    recipient_flag: str = "-r"
    content_flag: str = "-c"

    # Logging
    log_level: str = "WARNING"
    log_json: bool = False

    model_config = SettingsConfigDict(env_prefix="SMIME_EXEC_", env_file=".env", case_sensitive=False)

    @field_validator("database_dir")
    @classmethod
    def _expand_database_dir(cls, value: str) -> str:
        return os.path.expanduser(value)

    @field_validator("poll_interval")
    @classmethod
    def _check_poll_interval(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("poll_interval must be positive")
        return value

    @field_validator("timeout")
    @classmethod
    def _check_timeout(cls, value: Optional[float]) -> Optional[float]:
        if value is not None and value <= 0:
            raise ValueError("timeout must be positive (or unset to wait indefinitely)")
        return value


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
