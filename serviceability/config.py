"""Configuration management for the Serviceability API"""

from decimal import Decimal
from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings"""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",  # Ignore extra fields in environment
        populate_by_name=True,
    )

    # Database
    database_url: str = Field(default="sqlite:///./serviceability.db", alias="DATABASE_URL")

    # API Configuration - using simple string field
    api_keys_str: str = Field(default="dev-key-123,admin-key-456", alias="API_KEYS")
    admin_api_keys_str: str = Field(default="admin-key-456", alias="ADMIN_API_KEYS")
    rate_limit_per_minute: int = Field(default=600, alias="RATE_LIMIT_PER_MINUTE")

    # Resolution Configuration
    service_timezone: str = Field(default="Asia/Kolkata", alias="SERVICE_TIMEZONE")
    currency: str = Field(default="INR", alias="CURRENCY")
    currency_minor_units: int = Field(default=2, ge=0, le=4, alias="CURRENCY_MINOR_UNITS")
    hub_tie_epsilon_meters: float = Field(default=1.0, ge=0.0, alias="HUB_TIE_EPSILON_METERS")
    geofence_flat_fee: Decimal = Field(default=Decimal("0"), ge=0, alias="GEOFENCE_FLAT_FEE")
    max_fallback_distance_km: Optional[float] = Field(default=None, gt=0, alias="MAX_FALLBACK_DISTANCE_KM")

    # Catalog Configuration
    catalog_cache_ttl_seconds: int = Field(default=60, ge=0, alias="CATALOG_CACHE_TTL_SECONDS")

    # Logging Configuration
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_format: str = Field(default="json", alias="LOG_FORMAT")

    # Application Configuration
    app_name: str = "Serviceability API"
    app_version: str = "0.1.0"
    debug: bool = Field(default=False, alias="DEBUG")

    def get_api_keys(self) -> List[str]:
        """Parse comma-separated API keys"""
        return [key.strip() for key in self.api_keys_str.split(",") if key.strip()]

    def get_admin_api_keys(self) -> List[str]:
        """Admin keys; only those also listed in API_KEYS are usable"""
        return [key.strip() for key in self.admin_api_keys_str.split(",") if key.strip()]


# Global settings instance
settings = Settings()
