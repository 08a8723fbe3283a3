"""Configuration management using Pydantic settings."""

from functools import lru_cache
from typing import List, Optional

from pydantic import Field, computed_field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

ENCRYPTION_KEY_HEX_LENGTH = 64


class Settings(BaseSettings):
    """Application configuration loaded from environment variables.

    The encryption key is the only value without a default: a process
    that cannot encrypt identity documents must not start.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Supabase Configuration (storage collaborator)
    supabase_url: Optional[str] = Field(default=None, validation_alias="SUPABASE_URL")
    supabase_key: Optional[str] = Field(default=None, validation_alias="SUPABASE_KEY")

    # Identity provider tokens
    jwt_secret: Optional[str] = Field(default=None, validation_alias="JWT_SECRET")
    jwt_audience: str = Field(default="authenticated", validation_alias="JWT_AUDIENCE")

    # Field-level encryption (AES-256-GCM, 32 bytes as hex)
    encryption_key: str = Field(..., validation_alias="ENCRYPTION_KEY")
    mask_visible_chars: int = Field(default=4, validation_alias="MASK_VISIBLE_CHARS")

    # Passenger policy
    minimum_passenger_age: int = Field(default=18, validation_alias="MINIMUM_PASSENGER_AGE")
    passport_warning_days: int = Field(default=30, validation_alias="PASSPORT_WARNING_DAYS")

    # Certificate expiry windows
    cert_critical_days: int = Field(default=7, validation_alias="CERT_CRITICAL_DAYS")
    cert_warning_days: int = Field(default=30, validation_alias="CERT_WARNING_DAYS")

    # Jurisdictions
    home_jurisdiction: str = Field(
        default="Bahamas Maritime Authority", validation_alias="HOME_JURISDICTION"
    )
    secondary_trigger_ports: str = Field(
        default="Fort Lauderdale,Port Everglades,Miami,West Palm Beach",
        validation_alias="SECONDARY_TRIGGER_PORTS",
    )

    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

    @field_validator("encryption_key")
    @classmethod
    def _check_encryption_key(cls, value: str) -> str:
        value = value.strip()
        if len(value) != ENCRYPTION_KEY_HEX_LENGTH:
            raise ValueError(
                f"ENCRYPTION_KEY must be 32 bytes ({ENCRYPTION_KEY_HEX_LENGTH} hex characters)"
            )
        try:
            bytes.fromhex(value)
        except ValueError as e:
            raise ValueError("ENCRYPTION_KEY must be hex encoded") from e
        return value

    @field_validator("cert_critical_days", "cert_warning_days", "passport_warning_days")
    @classmethod
    def _check_positive_window(cls, value: int) -> int:
        if value < 1:
            raise ValueError("expiry windows must be at least one day")
        return value

    @computed_field
    @property
    def trigger_ports(self) -> List[str]:
        """Ports that pull a sailing into the secondary jurisdiction."""
        return [p.strip() for p in self.secondary_trigger_ports.split(",") if p.strip()]


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
