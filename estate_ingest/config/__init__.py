"""Configuration package exports."""

from .loader import ConfigLocator, ConfigRepository
from .models import (
    DEFAULT_FIELD_MAP,
    CsvFileFetchConfig,
    GlobalConfig,
    JsonApiFetchConfig,
    ManualFetchConfig,
    RetryPolicy,
    SourceConfig,
    SourceType,
)

__all__ = [
    "ConfigLocator",
    "ConfigRepository",
    "CsvFileFetchConfig",
    "DEFAULT_FIELD_MAP",
    "GlobalConfig",
    "JsonApiFetchConfig",
    "ManualFetchConfig",
    "RetryPolicy",
    "SourceConfig",
    "SourceType",
]
