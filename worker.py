#!/usr/bin/env python3
"""
Temporal Worker Service

Runs the bench workers selected by RUN_WORKERS:

  bench      bench-workflow with its driver and monitor activities
  basic      basic-workflow, the default workflow under test
  basic-act  basic-activity, executed on its own task queue
"""

import asyncio
import logging
import signal
import sys
from dataclasses import dataclass, field
from typing import Any, List, Optional

from temporalio.client import Client
from temporalio.runtime import PrometheusConfig, Runtime, TelemetryConfig
from temporalio.worker import Worker

from activities.basic_activities import basic_activity
from activities.bench_activities import BenchActivities
from config.settings import AppConfig, get_config
from utils.temporal_client import connect_client
from workflows.basic_workflow import BasicWorkflow
from workflows.bench_workflow import BenchWorkflow

logger = logging.getLogger(__name__)


def setup_logging(app_config: AppConfig):
    """Configure root logging from the logging section of the configuration."""
    handlers = [logging.StreamHandler(sys.stdout)]
    if app_config.logging.file_path:
        handlers.append(logging.FileHandler(app_config.logging.file_path))
    logging.basicConfig(
        level=getattr(logging, app_config.logging.level.upper(), logging.INFO),
        format=app_config.logging.format,
        handlers=handlers,
    )


@dataclass
class WorkerSpec:
    """Task queue and registrations of one worker."""
    name: str
    task_queue: str
    workflows: List[type] = field(default_factory=list)
    activities: List[Any] = field(default_factory=list)


def plan_workers(app_config: AppConfig, client: Optional[Client] = None) -> List[WorkerSpec]:
    """Resolve RUN_WORKERS into worker specs.

    Raises:
        ValueError: If a worker name is unknown
    """
    temporal = app_config.temporal
    specs = []
    for name in app_config.worker.run_workers:
        if name == "bench":
            bench_activities = BenchActivities(client, app_config)
            specs.append(WorkerSpec(
                name=name,
                task_queue=temporal.bench_task_queue,
                workflows=[BenchWorkflow],
                activities=[bench_activities.drive, bench_activities.monitor],
            ))
        elif name == "basic":
            specs.append(WorkerSpec(name=name, task_queue=temporal.target_task_queue, workflows=[BasicWorkflow]))
        elif name == "basic-act":
            specs.append(WorkerSpec(
                name=name,
                task_queue=temporal.target_activity_task_queue,
                activities=[basic_activity],
            ))
        else:
            raise ValueError(f"Unknown worker: {name}")
    return specs


def build_runtime(app_config: AppConfig) -> Optional[Runtime]:
    """SDK runtime exposing worker metrics for Prometheus, if configured."""
    address = app_config.worker.metrics_listen_address
    if not address:
        return None
    logger.info(f"Exposing SDK metrics on {address}")
    return Runtime(telemetry=TelemetryConfig(metrics=PrometheusConfig(bind_address=address)))


class TemporalWorkerService:
    """Temporal Worker Service with proper lifecycle management."""

    def __init__(self, app_config: Optional[AppConfig] = None):
        self.config = app_config or get_config()

        self.client: Optional[Client] = None
        self.workers: List[Worker] = []
        self.shutdown_event = asyncio.Event()
        self._running = False

        # Setup signal handlers for graceful shutdown
        self._setup_signal_handlers()

    def _setup_signal_handlers(self):
        """Setup signal handlers for graceful shutdown."""
        def signal_handler(signum, frame):
            logger.info(f"Received signal {signum}, initiating graceful shutdown...")
            self.shutdown_event.set()

        signal.signal(signal.SIGINT, signal_handler)
        signal.signal(signal.SIGTERM, signal_handler)

    async def initialize(self):
        """Initialize Temporal client and workers."""
        errors = self.config.validate()
        if errors:
            raise ValueError(f"Invalid configuration: {'; '.join(errors)}")

        try:
            logger.info("Initializing Temporal Worker Service...")
            self.client = await connect_client(self.config, runtime=build_runtime(self.config))
            logger.info("Successfully connected to Temporal server")

            worker_config = self.config.worker
            for spec in plan_workers(self.config, self.client):
                self.workers.append(Worker(
                    self.client,
                    task_queue=spec.task_queue,
                    workflows=spec.workflows,
                    activities=spec.activities,
                    max_concurrent_activities=worker_config.max_concurrent_activities,
                    max_concurrent_workflow_tasks=worker_config.max_concurrent_workflow_tasks,
                    max_cached_workflows=worker_config.sticky_cache_size,
                ))
                logger.info(
                    f"Worker {spec.name}: task queue {spec.task_queue}, "
                    f"{len(spec.workflows)} workflows, {len(spec.activities)} activities"
                )

        except Exception as e:
            logger.error(f"Failed to initialize Temporal Worker Service: {e}")
            raise

    async def start(self):
        """Run all workers until shutdown is requested."""
        if not self.workers:
            raise RuntimeError("Workers not initialized. Call initialize() first.")

        if self._running:
            logger.warning("Worker is already running")
            return

        self._running = True
        logger.info("Starting Temporal Worker Service...")

        try:
            worker_tasks = [asyncio.create_task(worker.run()) for worker in self.workers]
            logger.info("Temporal Worker Service started successfully")

            # Wait for shutdown signal
            await self.shutdown_event.wait()
            logger.info("Shutdown signal received, stopping workers...")

            await asyncio.gather(*(worker.shutdown() for worker in self.workers))
            await asyncio.gather(*worker_tasks, return_exceptions=True)

        except Exception as e:
            logger.error(f"Error running worker: {e}")
            raise
        finally:
            self._running = False

    async def shutdown(self):
        """Request a graceful shutdown of the worker service."""
        logger.info("Initiating graceful shutdown...")
        self.shutdown_event.set()


async def main():
    """Main entry point for the worker service."""
    app_config = get_config()
    setup_logging(app_config)

    worker_service = TemporalWorkerService(app_config)

    try:
        await worker_service.initialize()
        await worker_service.start()
    except KeyboardInterrupt:
        logger.info("Received keyboard interrupt")
    except Exception as e:
        logger.error(f"Worker service error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    # Handle command line arguments
    if len(sys.argv) > 1 and sys.argv[1] in ("--help", "-h"):
        print("Temporal Bench Worker Service")
        print("")
        print("Usage: python worker.py")
        print("")
        print("Environment Variables:")
        print("  TEMPORAL_HOST              Temporal server host (default: localhost:7233)")
        print("  TEMPORAL_NAMESPACE         Temporal namespace (default: default)")
        print("  RUN_WORKERS                Workers to run (default: bench,basic,basic-act)")
        print("  MAX_CONCURRENT_ACTIVITIES  Max concurrent activities (default: 256)")
        print("  MAX_CONCURRENT_WORKFLOWS   Max concurrent workflow tasks (default: 256)")
        print("  STICKY_CACHE_SIZE          Cached workflows per worker (default: 2048)")
        print("  METRICS_LISTEN_ADDRESS     SDK Prometheus endpoint, e.g. 0.0.0.0:9090")
        sys.exit(0)

    # Run the worker service
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\nShutdown complete.")
        sys.exit(0)
