"""
Entry point for the message-publisher consumer workers.

Usage:
    message-publisher-worker {kafka|sns|sqs|all}
"""

import argparse
import asyncio
import logging
import signal
import sys
from typing import List, Optional

from .config import load_config, AppConfig
from .domain.ports import ConfigurationError
from .infra.aws_client import create_session
from .infra.sns_topic import SnsTopic
from .infra.sqs_queue import SqsQueue
from .telemetry.logger import setup_logging, MetricsLogger
from .workers import BaseWorker, KafkaWorker, SnsWorker, SqsWorker


logger = logging.getLogger(__name__)

WORKER_KINDS = ("kafka", "sns", "sqs")
HANDLED_SIGNALS = (signal.SIGTERM, signal.SIGINT)


def build_workers(kinds: List[str], config: AppConfig) -> List[BaseWorker]:
    """
    Construct the requested workers from configuration.

    Args:
        kinds: Subset of WORKER_KINDS
        config: Application configuration

    Returns:
        Workers in the order requested
    """
    session = create_session(config.aws)
    metrics = MetricsLogger()
    workers: List[BaseWorker] = []

    for kind in kinds:
        if kind == "kafka":
            workers.append(KafkaWorker(config.kafka, config.workers, metrics=metrics))

        elif kind == "sqs":
            queue = SqsQueue(config.sqs.queue_url, config.aws, session)
            workers.append(SqsWorker(queue, config.sqs, config.workers, metrics=metrics))

        elif kind == "sns":
            topic = SnsTopic(config.sns.topic_arn, config.aws, session)
            subscription_queue = None
            if config.sns.subscription_queue_url:
                subscription_queue = SqsQueue(config.sns.subscription_queue_url, config.aws, session)
            workers.append(SnsWorker(
                topic,
                config.sns,
                subscription_queue=subscription_queue,
                workers_config=config.workers,
                metrics=metrics
            ))

        else:
            raise ValueError(f"Unknown worker: {kind}")

    return workers


class WorkerRunner:
    """
    Runs a set of workers until they all stop.
    SIGINT and SIGTERM ask every worker to stop.
    """

    def __init__(self, workers: List[BaseWorker]):
        self.workers = workers

    def _setup_signal_handlers(self) -> None:
        """Setup signal handlers for graceful shutdown."""
        loop = asyncio.get_running_loop()

        def signal_handler(signum: int) -> None:
            logger.info(f"Received signal {signum}, shutting down gracefully")
            self.stop()

        for signum in HANDLED_SIGNALS:
            loop.add_signal_handler(signum, signal_handler, signum)

    def _remove_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for signum in HANDLED_SIGNALS:
            loop.remove_signal_handler(signum)

    def stop(self) -> None:
        for worker in self.workers:
            worker.stop()

    async def run(self) -> None:
        """
        Start every worker and wait for all of them.

        Raises:
            ConfigurationError: If a worker cannot start for lack of settings
            Exception: The first startup failure of any worker
        """
        self._setup_signal_handlers()

        pending = {asyncio.create_task(worker.start()) for worker in self.workers}
        first_error: Optional[BaseException] = None

        try:
            while pending:
                done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
                for task in done:
                    error = task.exception()
                    if error is None:
                        continue
                    logger.error(f"Worker failed: {error}")
                    if first_error is None:
                        first_error = error
                        # One failed worker takes the rest down with it
                        self.stop()
        finally:
            self._remove_signal_handlers()

        if first_error is not None:
            raise first_error


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="message-publisher-worker",
        description="Consume messages from Kafka, SNS or SQS"
    )
    parser.add_argument(
        "worker",
        choices=WORKER_KINDS + ("all",),
        help="Worker to run, or all of them"
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to config file (defaults to CONFIG_PATH or ./config.yml)"
    )
    return parser.parse_args(argv)


async def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point for the workers.

    Returns:
        Process exit code
    """
    args = parse_args(argv)
    config = load_config(args.config)

    setup_logging(
        level=config.logging.level,
        service_name=f"message-publisher-{args.worker}-worker",
        enable_json=config.logging.json_format,
        enable_correlation=config.logging.enable_correlation
    )

    kinds = list(WORKER_KINDS) if args.worker == "all" else [args.worker]

    try:
        runner = WorkerRunner(build_workers(kinds, config))
        await runner.run()

    except ConfigurationError as e:
        logger.error(f"Worker configuration error: {e}")
        return 1
    except Exception as e:
        logger.error(f"Failed to start worker: {e}")
        return 1

    return 0


def run() -> None:
    """Console script entry point."""
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
