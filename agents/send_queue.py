"""
Analysis queue - serializes suite runs.

Tasks are processed FIFO by a single worker; at most one task is
"processing" at any time. Each run executes in its own asyncio.Task, which is
also its abort handle. Paused tasks stay in place and are skipped until
resumed. The queue lives in memory only.
"""

import asyncio
from typing import Any, Callable, List, Optional

from agents.analyzer import Analyzer
from config.settings import settings
from core import get_logger
from core.events import EventBus, QueueTaskFinished
from core.interfaces import ChatHost
from schemas import QueueTask, SuiteQueueStatus
from schemas.base import new_id

logger = get_logger(__name__)

QueueListener = Callable[[List[QueueTask]], Any]


class AnalysisQueue:
    """
    FIFO scheduler for analyzer runs.

    Usage:
        queue = AnalysisQueue(host, analyzer, bus)
        queue.enqueue(suite.id, suite.name, "manual")
        await queue.join()
    """

    def __init__(
        self,
        host: ChatHost,
        analyzer: Analyzer,
        bus: EventBus,
        default_snapshot: Optional[bool] = None,
    ):
        self.host = host
        self.analyzer = analyzer
        self.bus = bus
        self.default_snapshot = settings.DEFAULT_SNAPSHOT_MODE if default_snapshot is None else default_snapshot

        self._tasks: List[QueueTask] = []
        self._listeners: List[QueueListener] = []
        self._worker: Optional[asyncio.Task] = None
        self._runner: Optional[asyncio.Task] = None
        self._current_task_id: Optional[str] = None

    # ==================== Mutations ====================

    def enqueue(
        self,
        suite_id: str,
        suite_name: str = "",
        trigger_type: str = "manual",
        use_snapshot: Optional[bool] = None,
    ) -> QueueTask:
        """
        Add a task, snapshotting the current chat length and chat id.

        use_snapshot overrides the queue default for this task only.
        """
        task = QueueTask(
            id=new_id("task"),
            suite_id=suite_id,
            suite_name=suite_name,
            chat_length_snapshot=len(self.host.get_messages()),
            chat_id_snapshot=self.host.chat_id,
            use_snapshot=self.default_snapshot if use_snapshot is None else use_snapshot,
            trigger_type=trigger_type,
        )
        self._tasks.append(task)
        logger.info(
            "Task enqueued",
            task_id=task.id,
            suite_id=suite_id,
            trigger_type=trigger_type,
            chat_length=task.chat_length_snapshot,
            queue_length=len(self._tasks),
        )
        self._notify()
        self._try_process_next()
        return task

    def remove(self, task_id: str) -> bool:
        """Remove a task, aborting it first if it is running."""
        task = self._find(task_id)
        if task is None:
            return False
        if task.status == "processing":
            self.abort_current()
        self._tasks.remove(task)
        logger.info("Task removed", task_id=task_id)
        self._notify()
        self._try_process_next()
        return True

    def pause(self, task_id: str) -> bool:
        """Pause a pending task. A running task cannot be paused."""
        task = self._find(task_id)
        if task is None or task.status != "pending":
            return False
        task.status = "paused"
        logger.info("Task paused", task_id=task_id)
        self._notify()
        return True

    def resume(self, task_id: str) -> bool:
        task = self._find(task_id)
        if task is None or task.status != "paused":
            return False
        task.status = "pending"
        logger.info("Task resumed", task_id=task_id)
        self._notify()
        self._try_process_next()
        return True

    def abort_current(self) -> bool:
        """Cancel the running analysis. The worker moves on to the next task."""
        if self._runner is None or self._runner.done():
            return False
        logger.info("Aborting current task", task_id=self._current_task_id)
        self._runner.cancel()
        return True

    def abort_suite(self, suite_id: str) -> bool:
        """Abort the suite's running task or drop its queued one."""
        task = next((t for t in self._tasks if t.suite_id == suite_id), None)
        if task is None:
            return False
        return self.remove(task.id)

    def clear(self) -> None:
        """Abort the running task and drop everything queued."""
        self.abort_current()
        self._tasks = [t for t in self._tasks if t.status == "processing"]
        logger.info("Queue cleared")
        self._notify()

    # ==================== Queries ====================

    def get_tasks(self) -> List[QueueTask]:
        return [t.model_copy() for t in self._tasks]

    def get_length(self) -> int:
        return len(self._tasks)

    def is_processing(self) -> bool:
        return any(t.status == "processing" for t in self._tasks)

    def get_suite_status(self, suite_id: str) -> SuiteQueueStatus:
        """
        Where a suite sits in the queue.

        Pending position is 1-based among the active (pending or processing)
        tasks, so a task right behind the running one is position 2.
        """
        task = next((t for t in self._tasks if t.suite_id == suite_id), None)
        if task is None:
            return SuiteQueueStatus(status="idle")
        if task.status != "pending":
            return SuiteQueueStatus(status=task.status, task_id=task.id)

        active = [t for t in self._tasks if t.status in ("pending", "processing")]
        return SuiteQueueStatus(status="pending", position=active.index(task) + 1, task_id=task.id)

    # ==================== Listeners ====================

    def add_listener(self, listener: QueueListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: QueueListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self) -> None:
        snapshot = self.get_tasks()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception as e:
                logger.error("Queue listener failed", error=str(e))

    # ==================== Worker ====================

    def _find(self, task_id: str) -> Optional[QueueTask]:
        return next((t for t in self._tasks if t.id == task_id), None)

    def _next_pending(self) -> Optional[QueueTask]:
        return next((t for t in self._tasks if t.status == "pending"), None)

    def _try_process_next(self) -> None:
        if self._worker is not None and not self._worker.done():
            return
        if self._next_pending() is None:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("No running event loop, queue processing deferred")
            return
        self._worker = loop.create_task(self._drain())

    async def _drain(self) -> None:
        while True:
            task = self._next_pending()
            if task is None:
                return
            await self._process(task)

    async def _process(self, task: QueueTask) -> None:
        task.status = "processing"
        self._notify()

        if task.use_snapshot:
            chat_length = task.chat_length_snapshot
        else:
            chat_length = len(self.host.get_messages())

        runner = asyncio.ensure_future(
            self.analyzer.analyze(
                task.suite_id,
                chat_id=task.chat_id_snapshot,
                chat_length=chat_length,
                auto_assign=True,
            )
        )
        self._runner = runner
        self._current_task_id = task.id
        logger.info("Task started", task_id=task.id, suite_id=task.suite_id, chat_length=chat_length)

        try:
            await asyncio.wait({runner})
        except asyncio.CancelledError:
            runner.cancel()
            raise
        finally:
            self._runner = None
            self._current_task_id = None
            if task in self._tasks:
                self._tasks.remove(task)
            self._notify()

        self._finish(task, runner)

    def _finish(self, task: QueueTask, runner: asyncio.Task) -> None:
        event = QueueTaskFinished(task_id=task.id, suite_id=task.suite_id, suite_name=task.suite_name, status="aborted")
        if runner.cancelled():
            logger.info("Task aborted", task_id=task.id, suite_id=task.suite_id)
        elif runner.exception() is not None:
            error = runner.exception()
            logger.error("Task failed", task_id=task.id, suite_id=task.suite_id, error=str(error))
            event = QueueTaskFinished(
                task_id=task.id, suite_id=task.suite_id, suite_name=task.suite_name, status="failed", error=str(error)
            )
        else:
            result = runner.result()
            logger.info("Task finished", task_id=task.id, suite_id=task.suite_id, status=result.status)
            event = QueueTaskFinished(
                task_id=task.id,
                suite_id=task.suite_id,
                suite_name=task.suite_name,
                status=result.status,
                results_count=len(result.results),
                assigned_count=result.assigned,
                raw_response=result.raw_response,
                error=result.error,
            )
        self.bus.publish(event)

    async def join(self) -> None:
        """Wait until the worker has nothing left to run."""
        self._try_process_next()
        while self._worker is not None and not self._worker.done():
            await asyncio.wait({self._worker})
