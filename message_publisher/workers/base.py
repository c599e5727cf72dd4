"""
Polling loop shared by the Kafka, SNS and SQS workers.
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from collections import deque
from enum import Enum
from typing import Any, Deque, Dict, List, Optional

from ..domain.schema import utc_timestamp
from ..telemetry.logger import MetricsLogger
from .handlers import HandlerOutcome, MessageHandlers, ProcessingStatus


logger = logging.getLogger(__name__)


class WorkerState(Enum):
    """
    stopped -> starting -> polling <-> processing -> stopping -> stopped
    """
    STOPPED = "stopped"
    STARTING = "starting"
    POLLING = "polling"
    PROCESSING = "processing"
    STOPPING = "stopping"


class BaseWorker(ABC):
    """
    Runs poll/process cycles until stopped.

    Subclasses provide on_start(), poll(), handle() and on_stop(). A cycle
    never overlaps the next one. Errors raised by poll() or by one item are
    logged and counted; they never end the loop.
    """

    name = "worker"

    def __init__(
        self,
        handlers: MessageHandlers,
        poll_interval_seconds: float,
        status_interval_seconds: float = 30,
        history_size: int = 100,
        metrics: Optional[MetricsLogger] = None
    ):
        """
        Initialize worker.

        Args:
            handlers: Dispatch table for consumed envelopes
            poll_interval_seconds: Pause between cycles
            status_interval_seconds: Period of the status log line, 0 disables it
            history_size: Number of handled items kept for status()
            metrics: Metrics logger
        """
        self.handlers = handlers
        self.poll_interval_seconds = poll_interval_seconds
        self.status_interval_seconds = status_interval_seconds
        self.metrics = metrics or MetricsLogger()

        self._state = WorkerState.STOPPED
        self._stop_event = asyncio.Event()
        self._history: Deque[Dict[str, Any]] = deque(maxlen=history_size)

        self.received_count = 0
        self.processed_count = 0
        self.failed_count = 0
        self.skipped_count = 0
        self.cycle_count = 0
        self.started_at: Optional[str] = None

    @property
    def state(self) -> WorkerState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state not in (WorkerState.STOPPED, WorkerState.STOPPING)

    def _transition(self, state: WorkerState) -> None:
        # Once stop() was requested only the shutdown path may change state
        if self._stop_event.is_set() and state in (WorkerState.POLLING, WorkerState.PROCESSING):
            return
        self._state = state

    @abstractmethod
    async def on_start(self) -> None:
        """Open clients. Exceptions abort start()."""
        pass

    @abstractmethod
    async def poll(self) -> List[Any]:
        """Fetch the next batch of raw items, possibly empty."""
        pass

    @abstractmethod
    async def handle(self, item: Any) -> Optional[HandlerOutcome]:
        """
        Process one raw item.

        Returns:
            HandlerOutcome, or None when the item was skipped

        Raises:
            Exception: Any failure; the item is counted as failed
        """
        pass

    @abstractmethod
    async def on_stop(self) -> None:
        """Release clients."""
        pass

    async def status_details(self) -> Dict[str, Any]:
        """Extra fields for the periodic status line."""
        return {}

    async def start(self) -> None:
        """
        Run the worker until stop() is called.

        Raises:
            Exception: Whatever on_start() raised
        """
        if self._state is not WorkerState.STOPPED:
            logger.warning(f"{self.name} already running", extra={"component": self.name})
            return

        self._stop_event.clear()
        self._transition(WorkerState.STARTING)
        logger.info(f"Starting {self.name}", extra={"component": self.name})

        try:
            await self.on_start()
        except Exception as e:
            logger.error(f"Error starting {self.name}: {e}", extra={"component": self.name})
            self._state = WorkerState.STOPPED
            raise

        self.started_at = utc_timestamp()
        logger.info(f"{self.name} started", extra={"component": self.name})

        status_task: Optional[asyncio.Task] = None
        if self.status_interval_seconds > 0:
            status_task = asyncio.create_task(self._status_loop())

        try:
            while not self._stop_event.is_set():
                await self.run_cycle()
                if self._stop_event.is_set():
                    break
                await self._pause(self.poll_interval_seconds)

        finally:
            self._state = WorkerState.STOPPING
            if status_task is not None:
                status_task.cancel()
                try:
                    await status_task
                except asyncio.CancelledError:
                    pass

            try:
                await self.on_stop()
            except Exception as e:
                logger.error(f"Error stopping {self.name}: {e}", extra={"component": self.name})

            self._state = WorkerState.STOPPED
            logger.info(f"{self.name} stopped", extra={"component": self.name})

    def stop(self) -> None:
        """Ask the loop to finish the current cycle and shut down."""
        if self._state is WorkerState.STOPPED:
            return

        logger.info(f"Stopping {self.name}", extra={"component": self.name})
        self._stop_event.set()
        self._state = WorkerState.STOPPING

    async def run_cycle(self) -> None:
        """One poll followed by processing of whatever it returned."""
        self._transition(WorkerState.POLLING)
        try:
            batch = await self.poll()
            if batch:
                self.received_count += len(batch)
                logger.info(
                    f"{self.name} received {len(batch)} messages",
                    extra={"component": self.name, "batch_size": len(batch)}
                )
                self._transition(WorkerState.PROCESSING)
                await self.process_batch(batch)
            else:
                logger.debug(f"{self.name}: no messages", extra={"component": self.name})

        except Exception as e:
            logger.error(
                f"Error during {self.name} polling: {e}",
                extra={"component": self.name, "error": str(e)}
            )

        finally:
            self.cycle_count += 1
            self._transition(WorkerState.POLLING)

    async def process_batch(self, batch: List[Any]) -> None:
        """Handle items one after another."""
        for item in batch:
            await self.process_item(item)

    async def process_item(self, item: Any) -> Optional[HandlerOutcome]:
        """Handle one item, recording the result. Never raises."""
        start_time = time.time()
        try:
            outcome = await self.handle(item)

        except Exception as e:
            self.failed_count += 1
            duration_ms = (time.time() - start_time) * 1000
            item_id = self.describe_item(item)
            logger.error(
                f"Error processing {self.name} message: {e}",
                extra={"component": self.name, "error": str(e)}
            )
            self._history.append({
                "message_id": item_id,
                "message_type": None,
                "handler": None,
                "status": ProcessingStatus.FAILED.value,
                "error": str(e),
                "processed_at": utc_timestamp(),
            })
            self.metrics.log_message_processed(
                worker=self.name,
                message_id=item_id,
                message_type="unknown",
                success=False,
                duration_ms=duration_ms,
                error=str(e)
            )
            return None

        if outcome is None:
            self.skipped_count += 1
            return None

        self.processed_count += 1
        duration_ms = (time.time() - start_time) * 1000
        self._history.append({**outcome.to_dict(), "processed_at": utc_timestamp()})
        self.metrics.log_message_processed(
            worker=self.name,
            message_id=outcome.message_id,
            message_type=outcome.message_type.value,
            success=True,
            duration_ms=duration_ms
        )
        return outcome

    def describe_item(self, item: Any) -> str:
        """Identifier of a raw item for failure logs."""
        return "unknown"

    def status(self) -> Dict[str, Any]:
        return {
            "worker": self.name,
            "state": self._state.value,
            "started_at": self.started_at,
            "received": self.received_count,
            "processed": self.processed_count,
            "failed": self.failed_count,
            "skipped": self.skipped_count,
            "cycles": self.cycle_count,
            "recent": list(self._history),
        }

    async def log_status(self) -> None:
        status = self.status()
        status.pop("recent")
        status.pop("worker")
        try:
            status.update(await self.status_details())
        except Exception as e:
            logger.warning(f"Could not collect {self.name} status details: {e}")

        self.metrics.log_worker_status(self.name, status)

    async def _status_loop(self) -> None:
        while True:
            await asyncio.sleep(self.status_interval_seconds)
            await self.log_status()

    async def _pause(self, seconds: float) -> None:
        """Sleep between cycles, waking early on stop()."""
        if seconds <= 0:
            await asyncio.sleep(0)
            return
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass
