"""
Configuration management for the Lab Decision Engine
"""

from typing import Optional, List
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from pathlib import Path


class Settings(BaseSettings):
    """Main configuration class combining all settings"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application settings
    app_name: str = "Lab Decision Engine"
    app_version: str = "1.0.0"
    environment: str = "development"
    debug: bool = True

    # Database configuration
    database_url: str = "sqlite:///./lab_decision.db"
    database_pool_size: int = 5
    database_max_overflow: int = 10
    database_pool_timeout: int = 30
    database_echo: bool = False

    # Tenant scope applied by the service runner and console (None = unscoped)
    company_id: Optional[str] = None

    # Secret expected by the scheduled SLA trigger
    cron_secret: Optional[str] = None

    # SLA windows (calendar days unless sla_skip_weekends is set)
    sla_standard_days: int = 10
    sla_express_days: int = 5
    sla_attention_fraction: float = 0.2
    sla_skip_weekends: bool = False
    sla_express_due_soon_days: int = 2
    sla_sweep_interval_seconds: int = 86400
    sla_sweep_start_time: Optional[str] = None  # HH:MM, local time

    # Logging configuration
    log_level: str = "INFO"
    log_file: str = "logs/lab_decision.log"
    log_format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    # API configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8080
    api_cors_origins: List[str] = ["*"]
    api_cors_methods: List[str] = ["*"]
    api_cors_headers: List[str] = ["*"]

    # Health monitoring
    health_check_interval: int = 300

    @field_validator('environment')
    @classmethod
    def validate_environment(cls, v):
        if v not in ['development', 'testing', 'production']:
            raise ValueError('Environment must be development, testing, or production')
        return v

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v):
        v = v.upper()
        if v not in ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']:
            raise ValueError(f'Unknown log level: {v}')
        return v

    @field_validator('sla_standard_days', 'sla_express_days')
    @classmethod
    def validate_sla_window(cls, v):
        if v <= 0:
            raise ValueError('SLA windows must be at least one day')
        return v

    @field_validator('sla_attention_fraction')
    @classmethod
    def validate_attention_fraction(cls, v):
        if not 0 < v < 1:
            raise ValueError('sla_attention_fraction must be between 0 and 1')
        return v

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def is_development(self) -> bool:
        return self.environment == "development"

    def create_log_directory(self):
        """Create log directory if it doesn't exist"""
        log_dir = Path(self.log_file).parent
        log_dir.mkdir(parents=True, exist_ok=True)


# Global settings instance
settings = Settings()
