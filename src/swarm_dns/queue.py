"""Task queue that applies DNS writes with bounded, backed-off retries."""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Dict, List, Optional

from .errors import ProviderError
from .models import DNSTask, TaskKind, TaskStatus
from .providers import DNSProvider
from .scheduler import Ticker

logger = logging.getLogger(__name__)

DEFAULT_BASE_DELAY_SECONDS = 300.0
DEFAULT_PROCESS_INTERVAL_SECONDS = 5.0


class TaskQueue:
    """Holds DNS tasks and applies them to the provider one at a time.

    Each ``process()`` pass walks the tasks in insertion order:

    - FAILED tasks whose backoff has elapsed go back to PENDING.
    - PENDING tasks get exactly one provider write.
    - COMPLETED tasks, and FAILED tasks out of attempts, are removed.

    A failed task becomes eligible again ``base_delay * 2 ** (attempts - 1)``
    seconds after its failure, measured with ``clock``.
    """

    def __init__(
        self,
        provider: DNSProvider,
        *,
        base_delay: float = DEFAULT_BASE_DELAY_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._provider = provider
        self.base_delay = base_delay
        self._clock = clock
        self._tasks: Dict[str, DNSTask] = {}
        self._tasks_lock = threading.Lock()
        self._pass_lock = threading.Lock()
        self._ticker: Optional[Ticker] = None
        self.terminal_failures = 0

    def __len__(self) -> int:
        with self._tasks_lock:
            return len(self._tasks)

    def tasks(self) -> List[DNSTask]:
        """Snapshot of queued tasks in insertion order."""
        with self._tasks_lock:
            return list(self._tasks.values())

    def get(self, task_id: str) -> Optional[DNSTask]:
        with self._tasks_lock:
            return self._tasks.get(task_id)

    def find(self, name: str, record_type: str) -> Optional[DNSTask]:
        """Return the queued task for a record, if any.

        Args:
            name: Record name, compared case-insensitively
            record_type: DNS record type

        Returns:
            The first queued task writing that record, or None
        """
        name = name.lower()
        with self._tasks_lock:
            for task in self._tasks.values():
                if task.data.name.lower() == name and task.data.record_type == record_type:
                    return task
        return None

    def discard(self, task_id: str) -> bool:
        """Remove a task without running it. Returns False if it was not queued."""
        with self._tasks_lock:
            task = self._tasks.pop(task_id, None)
        if task is None:
            return False
        logger.info(f"Task removed from queue: {task.describe()} (id={task.id})")
        return True

    def add_task(self, task: DNSTask) -> None:
        task.status = TaskStatus.PENDING
        task.retry_at = None
        with self._tasks_lock:
            self._tasks[task.id] = task
        logger.info(f"Task added to queue: {task.describe()} (id={task.id})")

    def retry_delay(self, attempts: int) -> float:
        return self.base_delay * 2 ** max(attempts - 1, 0)

    # -------------------------------------------------------------------------
    # Processing
    # -------------------------------------------------------------------------

    def process(self) -> bool:
        """Run one pass. Returns False if another pass was already running."""
        if not self._pass_lock.acquire(blocking=False):
            logger.debug("Task processing already in progress, skipping pass")
            return False
        try:
            for task in self.tasks():
                if task.status is TaskStatus.FAILED and not task.exhausted:
                    self._release_if_due(task)
                if task.status is TaskStatus.PENDING:
                    self._run_task(task)
            self._sweep()
        finally:
            self._pass_lock.release()
        return True

    def _release_if_due(self, task: DNSTask) -> None:
        if task.retry_at is not None and self._clock() < task.retry_at:
            return
        task.status = TaskStatus.PENDING
        task.retry_at = None
        logger.info(
            f"Retrying task {task.describe()} (id={task.id}, attempt {task.attempts + 1}"
            f"/{task.max_attempts})"
        )

    def _run_task(self, task: DNSTask) -> None:
        task.status = TaskStatus.PROCESSING
        try:
            self._apply(task)
        except Exception as e:
            task.attempts += 1
            task.last_error = str(e)
            task.status = TaskStatus.FAILED
            if task.exhausted:
                logger.error(
                    f"Task {task.describe()} failed (attempt {task.attempts}"
                    f"/{task.max_attempts}): {e}"
                )
                return
            delay = self.retry_delay(task.attempts)
            task.retry_at = self._clock() + delay
            logger.warning(
                f"Task {task.describe()} failed (attempt {task.attempts}/{task.max_attempts}): "
                f"{e}; retrying in {delay:g}s"
            )
        else:
            task.status = TaskStatus.COMPLETED
            logger.info(f"Task completed successfully: {task.describe()} (id={task.id})")

    def _apply(self, task: DNSTask) -> None:
        data = task.data
        if task.kind is TaskKind.CREATE:
            self._provider.create_record(data.to_record())
            return
        if not data.record_id:
            raise ProviderError(f"{task.kind.value} task for {data.name} has no record id")
        if task.kind is TaskKind.UPDATE:
            self._provider.update_record(data.record_id, data.to_record())
        else:
            self._provider.delete_record(data.record_id, data.name)

    def _sweep(self) -> None:
        with self._tasks_lock:
            for task_id, task in list(self._tasks.items()):
                if task.status is TaskStatus.COMPLETED:
                    del self._tasks[task_id]
                elif task.status is TaskStatus.FAILED and task.exhausted:
                    del self._tasks[task_id]
                    self.terminal_failures += 1
                    logger.error(
                        f"Giving up on task {task.describe()} (id={task.id}, service="
                        f"{task.data.service_name}) after {task.attempts} attempt(s): "
                        f"{task.last_error}"
                    )

    # -------------------------------------------------------------------------
    # Periodic driver
    # -------------------------------------------------------------------------

    def start(self, interval: float = DEFAULT_PROCESS_INTERVAL_SECONDS) -> None:
        """Run ``process()`` every ``interval`` seconds until ``stop()``."""
        if self._ticker is not None and self._ticker.running:
            return
        self._ticker = Ticker(interval, self.process, name="task-queue")
        self._ticker.start()
        logger.info(f"Task processing started (every {interval:g}s)")

    def stop(self) -> None:
        """Stop scheduled passes. Queued tasks are kept."""
        if self._ticker is None:
            return
        self._ticker.stop()
        self._ticker = None
        logger.info("Task processing stopped")
