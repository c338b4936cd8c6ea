"""Session configuration and environment-backed defaults."""

from __future__ import annotations

from functools import lru_cache
from typing import Any, Callable, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

PaginationMode = Literal["pagination", "infinite"]
SearchMode = Literal["exact", "fuzzy", "regex", "contains"]
FilterType = Literal["string", "number", "boolean", "date", "select", "multiselect", "range"]


class ValidationRule(BaseModel):
    model_config = ConfigDict(frozen=True)

    rule: Callable[[str], bool]
    message: str


class FilterOption(BaseModel):
    model_config = ConfigDict(frozen=True)

    value: Any
    label: str


class FilterDefinition(BaseModel):
    """Declarative description of a filter; values are never coerced."""

    model_config = ConfigDict(frozen=True)

    key: str = Field(min_length=1)
    type: FilterType = "string"
    label: str
    options: tuple[FilterOption, ...] | None = None
    min: float | None = None
    max: float | None = None
    default: Any = Field(default=None)


class RealTimeConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    enabled: bool = False
    websocket_url: str | None = None
    reconnect_delay_ms: int = Field(default=3000, ge=0)
    max_reconnect_attempts: int = Field(default=5, ge=1, le=100)


class SearchConfig(BaseModel):
    """Immutable engine configuration.

    The engine keeps a reference to one instance and swaps it on update;
    use :meth:`evolve` to derive a changed copy.
    """

    model_config = ConfigDict(frozen=True)

    debounce_ms: int = Field(default=300, ge=0)
    mode: PaginationMode = "pagination"
    search_mode: SearchMode = "contains"

    enable_suggestions: bool = False
    enable_caching: bool = True
    enable_url_sync: bool = False
    enable_dev_tools: bool = False

    validation_rules: tuple[ValidationRule, ...] = ()
    min_length: int = Field(default=0, ge=0)
    max_length: int = Field(default=1000, ge=0)

    page_size: int = Field(default=20, ge=1, le=1000)
    max_pages: int = Field(default=100, ge=1)

    cache_size: int = Field(default=50, ge=1)
    cache_ttl_ms: int = Field(default=300_000, ge=0)

    max_suggestions: int = Field(default=10, ge=0)
    suggestion_debounce_ms: int = Field(default=150, ge=0)

    filters: tuple[FilterDefinition, ...] = ()
    realtime: RealTimeConfig = Field(default_factory=RealTimeConfig)

    @model_validator(mode="after")
    def _check_length_bounds(self) -> "SearchConfig":
        if self.min_length > self.max_length:
            raise ValueError("min_length must not exceed max_length")
        return self

    def evolve(self, **changes: Any) -> "SearchConfig":
        """Return a validated copy with ``changes`` applied."""

        unknown = set(changes) - set(type(self).model_fields)
        if unknown:
            raise ValueError(f"Unknown config fields: {', '.join(sorted(unknown))}")
        values = {name: getattr(self, name) for name in type(self).model_fields}
        values.update(changes)
        return type(self).model_validate(values)


class SearchSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="SEARCH_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
    )

    environment: Literal["dev", "staging", "prod"] = "dev"
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    engine: SearchConfig = Field(default_factory=SearchConfig)


@lru_cache
def get_settings() -> SearchSettings:
    """Return cached settings instance."""

    return SearchSettings()


__all__ = [
    "FilterDefinition",
    "FilterOption",
    "FilterType",
    "PaginationMode",
    "RealTimeConfig",
    "SearchConfig",
    "SearchMode",
    "SearchSettings",
    "ValidationRule",
    "get_settings",
]
