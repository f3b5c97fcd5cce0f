"""
Configuration Schemas.

Pydantic models defining the expected structure of each YAML config file.
Used by AppConfig to validate configuration at load time. If a YAML file
has missing keys, wrong types, or unknown fields, a clear ValidationError
is raised at startup instead of a cryptic KeyError deep in application code.

Each top-level class corresponds to one file in config/settings/:
    ApplicationSchema  → application.yaml
    DatabaseSchema     → database.yaml
    LoggingSchema      → logging.yaml
    FeaturesSchema     → features.yaml
    ModerationSchema   → moderation.yaml
    GeocoderSchema     → geocoder.yaml
    SpatialSchema      → spatial.yaml
    RealtimeSchema     → realtime.yaml
    ConcurrencySchema  → concurrency.yaml
"""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class _StrictBase(BaseModel):
    """Base with extra='forbid' so unknown YAML keys are caught immediately."""

    model_config = ConfigDict(extra="forbid")


# =============================================================================
# application.yaml
# =============================================================================


class TimeoutsSchema(_StrictBase):
    geocoder: float
    classifier: float
    persistence: float


class ApplicationSchema(_StrictBase):
    name: str
    version: str
    description: str
    environment: str
    debug: bool
    default_owner_id: str
    timeouts: TimeoutsSchema


# =============================================================================
# database.yaml
# =============================================================================


class RedisSchema(_StrictBase):
    host: str
    port: int
    db: int


class DatabaseSchema(_StrictBase):
    driver: str
    host: str
    port: int
    name: str
    user: str
    echo: bool
    redis: RedisSchema


# =============================================================================
# logging.yaml
# =============================================================================


class ConsoleHandlerSchema(_StrictBase):
    enabled: bool


class FileHandlerSchema(_StrictBase):
    enabled: bool
    path: str
    max_bytes: int
    backup_count: int


class HandlersSchema(_StrictBase):
    console: ConsoleHandlerSchema
    file: FileHandlerSchema


class LoggingSchema(_StrictBase):
    level: str
    format: str
    handlers: HandlersSchema


# =============================================================================
# features.yaml
# =============================================================================


class FeaturesSchema(_StrictBase):
    moderation_classifier_enabled: bool
    realtime_enabled: bool
    events_publish_enabled: bool


# =============================================================================
# moderation.yaml
# =============================================================================


class GibberishSchema(_StrictBase):
    min_letters: int
    min_vowel_ratio: float
    max_vowel_ratio: float


class ClassifierSchema(_StrictBase):
    model: str
    circuit_breaker_fail_max: int
    circuit_breaker_timeout: int


class ModerationSchema(_StrictBase):
    strategy: Literal["heuristic", "heuristic_classifier"]
    max_length: int = Field(gt=0)
    repeated_char_run: int
    symbol_run: int
    gibberish: GibberishSchema
    profanity: list[str]
    classifier: ClassifierSchema


# =============================================================================
# geocoder.yaml
# =============================================================================


class RecentSearchesSchema(_StrictBase):
    state_path: str
    storage_key: str
    max_stored: int
    max_displayed: int


class GeocoderSchema(_StrictBase):
    base_url: str
    user_agent: str
    suggestion_limit: int
    search_limit: int
    debounce_ms: int
    recenter_zoom: int
    circuit_breaker_fail_max: int
    circuit_breaker_timeout: int
    recent_searches: RecentSearchesSchema


# =============================================================================
# spatial.yaml
# =============================================================================


class SpatialSchema(_StrictBase):
    default_radius_km: float
    circle_point_count: int


# =============================================================================
# realtime.yaml
# =============================================================================


class ReconnectSchema(_StrictBase):
    max_attempts: int
    backoff_multiplier: float
    backoff_max: float


class RealtimeSchema(_StrictBase):
    feed: Literal["memory", "redis"]
    channel: str
    table: str
    reconnect: ReconnectSchema


# =============================================================================
# concurrency.yaml
# =============================================================================


class SemaphoresSchema(_StrictBase):
    geocoder: int
    classifier: int
    persistence: int


class ConcurrencySchema(_StrictBase):
    semaphores: SemaphoresSchema
