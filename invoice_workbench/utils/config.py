"""Configuration management using pydantic-settings."""

from functools import lru_cache
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class StorageConfig(BaseModel):
    """Key-value store configuration."""
    backend: str = "json"  # "json" or "memory"
    indent: Optional[int] = 2


class LoggingFilesConfig(BaseModel):
    """Log file paths."""
    invoice: str = "logs/invoice.log"
    inventory: str = "logs/inventory.log"
    storage: str = "logs/storage.log"
    error: str = "logs/error.log"


class LoggingConfig(BaseModel):
    """Logging configuration."""
    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    max_bytes: int = 10485760  # 10MB
    backup_count: int = 5
    files: LoggingFilesConfig = LoggingFilesConfig()


class SettingsDefaultsConfig(BaseModel):
    """Defaults used when no application settings have been stored yet."""
    currency_symbol: str = "$"
    decimal_precision: int = 2
    invoice_prefix: str = "INV-"
    default_tax_rate: float = 0
    default_discount_mode: str = "percentage"
    low_stock_warnings: bool = True
    auto_deduct_inventory: bool = False
    default_min_stock_level: int = 10


class APIConfig(BaseModel):
    """HTTP surface configuration."""
    title: str = "Invoice Workbench API"
    host: str = "127.0.0.1"


class YAMLConfig(BaseModel):
    """Configuration loaded from YAML file."""
    storage: StorageConfig = StorageConfig()
    logging: LoggingConfig = LoggingConfig()
    settings_defaults: SettingsDefaultsConfig = SettingsDefaultsConfig()
    api: APIConfig = APIConfig()


class Settings(BaseSettings):
    """Application settings from environment variables."""

    environment: str = Field(default="development", description="Environment (development/production)")
    log_level: Optional[str] = Field(default=None, description="Override log level")
    log_to_file: bool = Field(default=True, description="Write rotating log files next to console output")
    data_file: str = Field(default="data/workbench.json", description="Path of the JSON key-value store")
    config_file: Optional[str] = Field(default=None, description="Alternative YAML config path")
    port: int = Field(default=8000, description="Server port")

    model_config = SettingsConfigDict(
        env_prefix="WORKBENCH_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )


class AppConfig:
    """Combined application configuration."""

    def __init__(self):
        self.env = Settings()

        if self.env.config_file:
            config_path = Path(self.env.config_file)
        else:
            config_path = Path(__file__).parent.parent.parent / "config" / "config.yml"

        if config_path.exists():
            with open(config_path, "r") as f:
                yaml_data = yaml.safe_load(f) or {}
                self.yaml = YAMLConfig(**yaml_data)
        else:
            self.yaml = YAMLConfig()

        # Override log level if specified in env
        if self.env.log_level:
            self.yaml.logging.level = self.env.log_level

    @property
    def storage(self) -> StorageConfig:
        return self.yaml.storage

    @property
    def logging(self) -> LoggingConfig:
        return self.yaml.logging

    @property
    def settings_defaults(self) -> SettingsDefaultsConfig:
        return self.yaml.settings_defaults

    @property
    def api(self) -> APIConfig:
        return self.yaml.api

    @property
    def data_file(self) -> Path:
        return Path(self.env.data_file)

    @property
    def is_production(self) -> bool:
        return self.env.environment.lower() == "production"


@lru_cache()
def get_config() -> AppConfig:
    """Get cached configuration instance."""
    return AppConfig()
