"""Configuration settings for the bench harness."""

from typing import Dict, Any, Optional, List
from dataclasses import dataclass, field
import os
from datetime import timedelta


@dataclass
class TemporalConfig:
    """Temporal server configuration."""
    host: str = "localhost:7233"
    namespace: str = "default"

    # Task queues
    bench_task_queue: str = "temporal-bench"
    target_task_queue: str = "temporal-basic"
    target_activity_task_queue: str = "temporal-basic-act"


@dataclass
class TLSSettings:
    """TLS material for the Temporal connection.

    Each item may be given either as a file path or as base64 encoded data,
    never both.
    """
    ca_cert_file: Optional[str] = None
    ca_cert_data: Optional[str] = None
    client_cert_file: Optional[str] = None
    client_cert_data: Optional[str] = None
    client_key_file: Optional[str] = None
    client_key_data: Optional[str] = None
    server_name: Optional[str] = None

    @property
    def enabled(self) -> bool:
        return any([
            self.ca_cert_file, self.ca_cert_data,
            self.client_cert_file, self.client_cert_data,
            self.client_key_file, self.client_key_data,
            self.server_name,
        ])


@dataclass
class BenchConfig:
    """Timing and sizing knobs of the bench driver and monitor."""
    # Driver stops this long before its activity deadline
    driver_safety_margin_seconds: int = 2

    # Monitor stops this long before its activity deadline
    monitor_deadline_margin_seconds: int = 5
    # Visibility queries look this far back before the run start
    monitor_scope_margin_seconds: int = 10
    monitor_poll_interval_seconds: float = 3.0
    closed_page_size: int = 1000

    heartbeat_timeout_seconds: int = 60

    # Options for every started target execution
    target_execution_timeout_minutes: int = 30
    target_task_timeout_seconds: int = 10

    # Used when the bench workflow itself was started without a timeout
    default_run_timeout_minutes: int = 24 * 60

    @property
    def driver_safety_margin(self) -> timedelta:
        return timedelta(seconds=self.driver_safety_margin_seconds)

    @property
    def monitor_deadline_margin(self) -> timedelta:
        return timedelta(seconds=self.monitor_deadline_margin_seconds)

    @property
    def monitor_scope_margin(self) -> timedelta:
        return timedelta(seconds=self.monitor_scope_margin_seconds)

    @property
    def heartbeat_timeout(self) -> timedelta:
        return timedelta(seconds=self.heartbeat_timeout_seconds)

    @property
    def target_execution_timeout(self) -> timedelta:
        return timedelta(minutes=self.target_execution_timeout_minutes)

    @property
    def target_task_timeout(self) -> timedelta:
        return timedelta(seconds=self.target_task_timeout_seconds)

    @property
    def default_run_timeout(self) -> timedelta:
        return timedelta(minutes=self.default_run_timeout_minutes)


@dataclass
class PrometheusSettings:
    """Prometheus server used to correlate a run with server side metrics."""
    endpoint: str = "http://localhost:9090"
    state_container: str = "cassandra"
    visibility_container: str = "cassandra"
    query_timeout_seconds: float = 10.0


@dataclass
class WorkerConfig:
    """Worker process configuration."""
    run_workers: List[str] = field(default_factory=lambda: ["bench", "basic", "basic-act"])
    max_concurrent_activities: int = 256
    max_concurrent_workflow_tasks: int = 256
    sticky_cache_size: int = 2048
    # Empty disables the SDK Prometheus endpoint
    metrics_listen_address: str = ""


@dataclass
class LoggingConfig:
    """Logging configuration."""
    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    file_path: Optional[str] = None


class AppConfig:
    """Main application configuration."""

    def __init__(self):
        self.temporal = TemporalConfig()
        self.tls = TLSSettings()
        self.bench = BenchConfig()
        self.prometheus = PrometheusSettings()
        self.worker = WorkerConfig()
        self.logging = LoggingConfig()

        # Load from environment variables
        self._load_from_env()

    def _load_from_env(self):
        """Load configuration from environment variables."""
        # Temporal configuration
        self.temporal.host = os.getenv("TEMPORAL_HOST", self.temporal.host)
        self.temporal.namespace = os.getenv("TEMPORAL_NAMESPACE", self.temporal.namespace)
        self.temporal.bench_task_queue = os.getenv("BENCH_TASK_QUEUE", self.temporal.bench_task_queue)
        self.temporal.target_task_queue = os.getenv("TARGET_TASK_QUEUE", self.temporal.target_task_queue)
        self.temporal.target_activity_task_queue = os.getenv(
            "TARGET_ACTIVITY_TASK_QUEUE", self.temporal.target_activity_task_queue
        )

        # TLS configuration
        self.tls.ca_cert_file = os.getenv("TLS_CA_CERT_FILE") or None
        self.tls.ca_cert_data = os.getenv("TLS_CA_CERT_DATA") or None
        self.tls.client_cert_file = os.getenv("TLS_CLIENT_CERT_FILE") or None
        self.tls.client_cert_data = os.getenv("TLS_CLIENT_CERT_DATA") or None
        self.tls.client_key_file = os.getenv("TLS_CLIENT_CERT_PRIVATE_KEY_FILE") or None
        self.tls.client_key_data = os.getenv("TLS_CLIENT_CERT_PRIVATE_KEY_DATA") or None
        self.tls.server_name = os.getenv("TLS_SERVER_NAME") or None

        # Bench configuration
        self.bench.default_run_timeout_minutes = int(
            os.getenv("BENCH_RUN_TIMEOUT_MINUTES", self.bench.default_run_timeout_minutes)
        )
        self.bench.monitor_poll_interval_seconds = float(
            os.getenv("MONITOR_POLL_INTERVAL_SECONDS", self.bench.monitor_poll_interval_seconds)
        )

        # Prometheus configuration
        self.prometheus.endpoint = os.getenv("PROMETHEUS_SERVER_ENDPOINT", self.prometheus.endpoint)
        self.prometheus.state_container = os.getenv("TEMPORAL_STATE_CONTAINER", self.prometheus.state_container)
        self.prometheus.visibility_container = os.getenv(
            "TEMPORAL_VISIBILITY_CONTAINER", self.prometheus.visibility_container
        )

        # Worker configuration
        run_workers_env = os.getenv("RUN_WORKERS")
        if run_workers_env:
            self.worker.run_workers = [w.strip() for w in run_workers_env.split(",") if w.strip()]
        self.worker.max_concurrent_activities = int(
            os.getenv("MAX_CONCURRENT_ACTIVITIES", self.worker.max_concurrent_activities)
        )
        self.worker.max_concurrent_workflow_tasks = int(
            os.getenv("MAX_CONCURRENT_WORKFLOWS", self.worker.max_concurrent_workflow_tasks)
        )
        self.worker.sticky_cache_size = int(os.getenv("STICKY_CACHE_SIZE", self.worker.sticky_cache_size))
        self.worker.metrics_listen_address = os.getenv("METRICS_LISTEN_ADDRESS", self.worker.metrics_listen_address)

        # Logging configuration
        self.logging.level = os.getenv("LOG_LEVEL", self.logging.level)
        self.logging.file_path = os.getenv("LOG_FILE_PATH") or None

    def validate(self) -> list:
        """Validate configuration and return list of errors."""
        errors = []

        pairs = [
            ("TLS_CA_CERT", self.tls.ca_cert_file, self.tls.ca_cert_data),
            ("TLS_CLIENT_CERT", self.tls.client_cert_file, self.tls.client_cert_data),
            ("TLS_CLIENT_CERT_PRIVATE_KEY", self.tls.client_key_file, self.tls.client_key_data),
        ]
        for name, file_value, data_value in pairs:
            if file_value and data_value:
                errors.append(f"{name}_FILE and {name}_DATA cannot both be set")

        has_cert = self.tls.client_cert_file or self.tls.client_cert_data
        has_key = self.tls.client_key_file or self.tls.client_key_data
        if bool(has_cert) != bool(has_key):
            errors.append("TLS client certificate and private key must be configured together")

        unknown = [w for w in self.worker.run_workers if w not in ("bench", "basic", "basic-act")]
        if unknown:
            errors.append(f"Unknown workers in RUN_WORKERS: {', '.join(unknown)}")

        if self.bench.monitor_poll_interval_seconds <= 0:
            errors.append("MONITOR_POLL_INTERVAL_SECONDS must be positive")

        return errors

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary (excluding TLS material)."""
        return {
            "temporal": {
                "host": self.temporal.host,
                "namespace": self.temporal.namespace,
                "bench_task_queue": self.temporal.bench_task_queue,
                "target_task_queue": self.temporal.target_task_queue,
                "target_activity_task_queue": self.temporal.target_activity_task_queue,
            },
            "tls": {"enabled": self.tls.enabled},
            "bench": {
                "default_run_timeout_minutes": self.bench.default_run_timeout_minutes,
                "monitor_poll_interval_seconds": self.bench.monitor_poll_interval_seconds,
                "heartbeat_timeout_seconds": self.bench.heartbeat_timeout_seconds,
            },
            "prometheus": {
                "endpoint": self.prometheus.endpoint,
                "state_container": self.prometheus.state_container,
                "visibility_container": self.prometheus.visibility_container,
            },
            "worker": {
                "run_workers": list(self.worker.run_workers),
                "max_concurrent_activities": self.worker.max_concurrent_activities,
                "max_concurrent_workflow_tasks": self.worker.max_concurrent_workflow_tasks,
                "metrics_listen_address": self.worker.metrics_listen_address,
            },
        }


# Global configuration instance
config = AppConfig()


def get_config() -> AppConfig:
    """Get the global configuration instance."""
    return config


def reload_config() -> AppConfig:
    """Reload configuration from environment variables."""
    global config
    config = AppConfig()
    return config
