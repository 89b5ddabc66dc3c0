import asyncio
import datetime
import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from args import CLIArgs
from observability import Metrics, get_service_commit, get_service_version
from tasks import TaskManager


class Beaconwatch:
    """Holds the state shared by all components of the application."""

    def __init__(self, cli_args: CLIArgs) -> None:
        logging.getLogger("beaconwatch-init").info(
            f"Starting beaconwatch {get_service_version()} (commit {get_service_commit()})",
        )
        self.shutdown_event = asyncio.Event()
        self.scheduler = AsyncIOScheduler(
            timezone=datetime.UTC,
            job_defaults=dict(
                coalesce=True,  # default value
                max_instances=1,  # default value
                misfire_grace_time=None,  # default is 1 second
            ),
        )

        self.cli_args = cli_args

        self.metrics = Metrics(
            addr=cli_args.metrics_address,
            port=cli_args.metrics_port,
        )

        self.task_manager = TaskManager(
            shutdown_event=self.shutdown_event, metrics=self.metrics
        )
