"""
Pydantic-based configuration models for the party inventory core.

Every section is a BaseSettings model with its own environment prefix, so a
deployment can override a single value (e.g. PARTY_STORAGE_DATA_DIR) without
touching the rest.
"""

from enum import StrEnum

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

from ..logging.enhanced_logging_config import get_logger

logger = get_logger(__name__)


class QuantityReductionPolicy(StrEnum):
    """What happens when an item's quantity drops below what characters hold."""

    REJECT = "reject"
    RELEASE_MOST_RECENT = "release_most_recent"
    PROPORTIONAL = "proportional"


class StorageConfig(BaseSettings):
    """Document storage configuration."""

    data_dir: str = Field(default="data/inventory", description="Directory holding the JSON documents")
    pretty_print: bool = Field(default=True, description="Indent JSON documents on disk")
    max_key_length: int = Field(default=50, description="Maximum length of a sanitized storage key")
    io_timeout_seconds: float = Field(default=10.0, description="Upper bound for a single document load")
    enable_persistence: bool = Field(default=True, description="Write documents to disk")

    @field_validator("max_key_length")
    @classmethod
    def validate_max_key_length(cls, v: int) -> int:
        """Keep sanitized keys long enough to stay unique and short enough for any filesystem."""
        if not 8 <= v <= 255:
            logger.error("Invalid storage key length", max_key_length=v, valid_range="8-255")
            raise ValueError("max_key_length must be between 8 and 255")
        return v

    @field_validator("io_timeout_seconds")
    @classmethod
    def validate_io_timeout(cls, v: float) -> float:
        """Validate the I/O timeout is positive."""
        if v <= 0:
            raise ValueError("io_timeout_seconds must be greater than zero")
        return v

    model_config = {"env_prefix": "PARTY_STORAGE_", "case_sensitive": False, "extra": "ignore"}


class InventoryConfig(BaseSettings):
    """Inventory behaviour configuration."""

    default_group_id: str = Field(default="group_default", description="Group document used at startup")
    default_group_name: str = Field(default="Party Inventory", description="Display name of the default group")
    max_items: int = Field(default=500, description="Maximum number of distinct items per group")
    quantity_reduction_policy: QuantityReductionPolicy = Field(
        default=QuantityReductionPolicy.REJECT,
        description="How to reconcile claims when an item's quantity shrinks below the allocated total",
    )
    seed_sample_items: bool = Field(default=False, description="Create sample items for an empty group")
    autosave_interval_seconds: float = Field(default=300.0, description="Periodic full save; 0 disables")

    @field_validator("max_items")
    @classmethod
    def validate_max_items(cls, v: int) -> int:
        """Validate the capacity is at least one item."""
        if v < 1:
            raise ValueError("max_items must be at least 1")
        return v

    @field_validator("autosave_interval_seconds")
    @classmethod
    def validate_autosave_interval(cls, v: float) -> float:
        """Validate the autosave interval is not negative."""
        if v < 0:
            raise ValueError("autosave_interval_seconds cannot be negative")
        return v

    model_config = {"env_prefix": "PARTY_INVENTORY_", "case_sensitive": False, "extra": "ignore"}


class LoggingConfig(BaseSettings):
    """Logging configuration."""

    environment: str = Field(default="development", description="Logging environment")
    level: str = Field(default="INFO", description="Log level")
    log_base: str = Field(default="logs", description="Base log directory")
    disable_logging: bool = Field(default=False, description="Disable file logging")

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Validate logging environment."""
        valid_environments = ["development", "unit_test", "production"]
        if v not in valid_environments:
            logger.error("Invalid logging environment", environment=v, valid_environments=valid_environments)
            raise ValueError(f"Environment must be one of {valid_environments}, got '{v}'")
        return v

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"Log level must be one of {valid_levels}, got '{v}'")
        return v_upper

    model_config = {"env_prefix": "PARTY_LOGGING_", "case_sensitive": False, "extra": "ignore"}

    def to_legacy_dict(self) -> dict:
        """Dict shape consumed by setup_enhanced_logging()."""
        return {
            "environment": self.environment,
            "level": self.level,
            "log_base": self.log_base,
            "disable_logging": self.disable_logging,
        }


class AppConfig(BaseSettings):
    """
    Composite application configuration.

    Aggregates all section configs. Access via get_config().
    """

    storage: StorageConfig = Field(default_factory=StorageConfig)
    inventory: InventoryConfig = Field(default_factory=InventoryConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "case_sensitive": False, "extra": "ignore"}

    def to_legacy_dict(self) -> dict:
        """Dict form used to configure logging."""
        return {"logging": self.logging.to_legacy_dict()}
