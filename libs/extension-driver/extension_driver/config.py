"""Configuration management for the extension driver."""

from datetime import timedelta
from functools import lru_cache

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .models import (
    DELETION_CONFIRMATION_ANNOTATION,
    OPERATION_ANNOTATION,
    TIMESTAMP_ANNOTATION,
)


class WaitTimings(BaseModel):
    """Polling configuration for one extension kind."""

    interval_seconds: float = 5.0
    severe_threshold_seconds: float = 30.0
    timeout_seconds: float = 180.0

    @field_validator("interval_seconds", "timeout_seconds")
    @classmethod
    def validate_positive(cls, v: float) -> float:
        """Reject non-positive durations."""
        if v <= 0:
            raise ValueError("must be > 0")
        return v

    @property
    def interval(self) -> timedelta:
        return timedelta(seconds=self.interval_seconds)

    @property
    def severe_threshold(self) -> timedelta:
        return timedelta(seconds=self.severe_threshold_seconds)

    @property
    def timeout(self) -> timedelta:
        return timedelta(seconds=self.timeout_seconds)


class DriverSettings(BaseSettings):
    """Extension driver settings."""

    model_config = SettingsConfigDict(
        env_prefix="EXTENSION_DRIVER_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    # Extension API
    api_group: str = "extensions.gardener.cloud"
    api_version: str = "v1alpha1"

    # Annotation protocol
    operation_annotation: str = OPERATION_ANNOTATION
    timestamp_annotation: str = TIMESTAMP_ANNOTATION
    deletion_confirmation_annotation: str = DELETION_CONFIRMATION_ANNOTATION

    # Shoot state snapshots
    shoot_state_group: str = "core.gardener.cloud"
    shoot_state_version: str = "v1beta1"
    shoot_state_plural: str = "shootstates"

    # Wait timings
    default_timings: WaitTimings = Field(default_factory=WaitTimings)
    kind_timings: dict[str, WaitTimings] = Field(
        default_factory=lambda: {
            "Infrastructure": WaitTimings(timeout_seconds=600.0),
        }
    )

    @property
    def api_version_str(self) -> str:
        """Get the full apiVersion of extension resources."""
        return f"{self.api_group}/{self.api_version}"

    def timings_for(self, kind: str) -> WaitTimings:
        """Get the wait timings for a kind, falling back to the defaults."""
        return self.kind_timings.get(kind, self.default_timings)


@lru_cache
def get_settings() -> DriverSettings:
    """Get cached settings instance."""
    return DriverSettings()
