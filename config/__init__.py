from .settings import (
    AppConfig,
    TemporalConfig,
    TLSSettings,
    BenchConfig,
    PrometheusSettings,
    WorkerConfig,
    LoggingConfig,
    get_config,
    reload_config,
)

__all__ = [
    "AppConfig",
    "TemporalConfig",
    "TLSSettings",
    "BenchConfig",
    "PrometheusSettings",
    "WorkerConfig",
    "LoggingConfig",
    "get_config",
    "reload_config",
]
