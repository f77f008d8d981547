"""
=============================================================================
THREAD POOL
=============================================================================

Worker threads that serve accepted connections from a shared queue. Both
listeners (HTTP and HTTPS) submit into the same pool.

    ┌──────────────────┐     ┌──────────────────┐
    │  accept (:3000)  │     │  accept (:3001)  │
    └────────┬─────────┘     └────────┬─────────┘
             │ submit(conn)           │ submit(conn)
             ▼                        ▼
    ┌─────────────────────────────────────────────┐
    │   TASK QUEUE   [conn] [conn] [conn] ...     │
    └──────────────────────┬──────────────────────┘
                           │ get()
             ┌─────────────┼─────────────┐
             ▼             ▼             ▼
        ┌─────────┐   ┌─────────┐   ┌─────────┐
        │Worker-0 │   │Worker-1 │   │Worker-N │   (min_workers .. max_workers)
        └─────────┘   └─────────┘   └─────────┘

=============================================================================
SIZING
=============================================================================

One connection occupies one worker for its whole life, keep-alive idle
time included. The pool therefore starts with min_workers and adds a
worker whenever queued connections outnumber idle workers, up to
max_workers. With the defaults (8 → 64) at least 50 clients are served
at the same time.

When the queue is full, submit(block=False) returns False and the accept
loop answers 503 itself.

=============================================================================
SHUTDOWN
=============================================================================

Workers are daemon threads and exit on a "poison pill" (None in the
queue). shutdown(wait=False) only posts the pills: a process that is
exiting does not wait for kept-alive connections to go idle.

=============================================================================
"""

import threading
import queue
import time
import logging
from typing import Callable, Optional, Any
from dataclasses import dataclass, field
from enum import Enum


logger = logging.getLogger(__name__)


class WorkerState(Enum):
    IDLE = "idle"
    BUSY = "busy"
    STOPPED = "stopped"


@dataclass
class Task:
    """A deferred call: func(*args, **kwargs)."""

    func: Callable[..., Any]
    args: tuple = ()
    kwargs: dict = field(default_factory=dict)
    submitted_at: float = field(default_factory=time.time)


class Worker(threading.Thread):
    """
    Pulls tasks off the queue and runs them until it receives None.

    A task that raises is logged and counted; the worker keeps going.
    """

    def __init__(
        self,
        task_queue: queue.Queue,
        worker_id: int,
        idle_timeout: float = 60.0,
        on_busy: Optional[Callable[[], None]] = None
    ):
        # daemon=True: a worker stuck on a kept-alive connection must not
        # hold the process open after the server decides to exit.
        super().__init__(name=f"Worker-{worker_id}", daemon=True)

        self.task_queue = task_queue
        self.worker_id = worker_id
        self.idle_timeout = idle_timeout
        self.on_busy = on_busy

        self.state = WorkerState.IDLE
        self._shutdown = threading.Event()

        self.tasks_completed = 0
        self.tasks_failed = 0

    def run(self):
        logger.debug(f"Worker {self.worker_id} started")

        while not self._shutdown.is_set():
            try:
                task = self.task_queue.get(timeout=self.idle_timeout)
            except queue.Empty:
                continue

            try:
                if task is None:
                    break
                self.state = WorkerState.BUSY
                if self.on_busy is not None:
                    self.on_busy()
                self._execute_task(task)
            finally:
                self.task_queue.task_done()

        self.state = WorkerState.STOPPED
        logger.debug(f"Worker {self.worker_id} stopped")

    def _execute_task(self, task: Task):
        start_time = time.time()

        waited = start_time - task.submitted_at
        if waited > 1.0:
            logger.debug(f"Worker {self.worker_id} picked up a task queued for {waited:.2f}s")

        try:
            task.func(*task.args, **task.kwargs)
            self.tasks_completed += 1

        except Exception as e:
            elapsed = time.time() - start_time
            logger.exception(
                f"Worker {self.worker_id} task failed after {elapsed:.3f}s: {e}"
            )
            self.tasks_failed += 1

        finally:
            self.state = WorkerState.IDLE

    def shutdown(self):
        """Signal the worker to stop."""
        self._shutdown.set()


class ThreadPool:
    """
    Bounded, self-growing pool of daemon worker threads.

        pool = ThreadPool(min_workers=8, max_workers=64, queue_size=256)
        pool.start()

        if not pool.submit(server.handle_connection, args=(conn,), block=False):
            ...  # queue full, reject the connection

        pool.shutdown(wait=False)
    """

    def __init__(
        self,
        min_workers: int = 8,
        max_workers: int = 64,
        queue_size: int = 256,
        idle_timeout: float = 60.0
    ):
        """
        Args:
            min_workers: Workers created at start().
            max_workers: Upper bound when scaling up under load.
            queue_size: Connections that may wait for a worker.
            idle_timeout: How often idle workers wake up to check for shutdown.
        """
        self.min_workers = min_workers
        self.max_workers = max_workers
        self.queue_size = queue_size
        self.idle_timeout = idle_timeout

        self._task_queue: queue.Queue[Optional[Task]] = queue.Queue(maxsize=queue_size)

        self._workers: list[Worker] = []
        self._lock = threading.Lock()  # Protects _workers
        self._started = False
        self._shutdown = False
        self._next_worker_id = 0

    def start(self):
        """Start the minimum number of workers. Calling it twice is a no-op."""
        if self._started:
            return

        logger.debug(f"Starting thread pool with {self.min_workers} workers")

        with self._lock:
            for _ in range(self.min_workers):
                self._add_worker()

        self._started = True

    def _add_worker(self) -> Worker:
        """Create and start one worker. Caller holds _lock."""
        worker = Worker(
            task_queue=self._task_queue,
            worker_id=self._next_worker_id,
            idle_timeout=self.idle_timeout,
            on_busy=self._maybe_scale_up
        )
        self._next_worker_id += 1
        self._workers.append(worker)
        worker.start()
        return worker

    def submit(
        self,
        func: Callable[..., Any],
        args: tuple = (),
        kwargs: Optional[dict] = None,
        block: bool = True,
        queue_timeout: Optional[float] = None
    ) -> bool:
        """
        Queue func(*args, **kwargs) for a worker.

        Returns:
            True if queued, False if the queue was full (non-blocking or
            timed out).

        Raises:
            RuntimeError: If the pool is not started or is shutting down.
        """
        if not self._started:
            raise RuntimeError("Thread pool not started")

        if self._shutdown:
            raise RuntimeError("Thread pool is shutting down")

        task = Task(func=func, args=args, kwargs=kwargs or {})

        try:
            self._task_queue.put(task, block=block, timeout=queue_timeout)
        except queue.Full:
            return False

        self._maybe_scale_up()
        return True

    def _maybe_scale_up(self):
        """
        Add a worker while queued tasks outnumber idle workers.

        Runs after every submit() and whenever a worker picks up a task, so
        a worker that has dequeued but not yet marked itself busy is never
        counted as available for long.
        """
        if self._shutdown:
            return

        with self._lock:
            while len(self._workers) < self.max_workers:
                idle = sum(1 for w in self._workers if w.state == WorkerState.IDLE)
                if self._task_queue.qsize() <= idle:
                    break
                logger.debug(
                    f"Scaling up: {len(self._workers)} -> {len(self._workers) + 1} workers"
                )
                self._add_worker()

    def shutdown(self, wait: bool = True, timeout: float = 2.0):
        """
        Stop all workers.

        Args:
            wait: Join each worker (up to timeout seconds each). With
                  wait=False the pills are posted and this returns at once.
            timeout: Per-worker join timeout.
        """
        if not self._started:
            return

        logger.debug("Shutting down thread pool")
        self._shutdown = True

        with self._lock:
            workers = list(self._workers)

        for worker in workers:
            worker.shutdown()
            try:
                self._task_queue.put(None, block=False)
            except queue.Full:
                pass  # The shutdown event still stops the worker on its next wake-up

        if wait:
            for worker in workers:
                worker.join(timeout=timeout)

        with self._lock:
            self._workers.clear()
        self._started = False

    # =========================================================================
    # MONITORING
    # =========================================================================

    @property
    def worker_count(self) -> int:
        return len(self._workers)

    @property
    def busy_workers(self) -> int:
        return sum(1 for w in self._workers if w.state == WorkerState.BUSY)

    @property
    def idle_workers(self) -> int:
        return sum(1 for w in self._workers if w.state == WorkerState.IDLE)

    @property
    def stats(self) -> dict:
        """Worker and task counts."""
        return {
            "workers": {
                "total": len(self._workers),
                "busy": self.busy_workers,
                "idle": self.idle_workers,
            },
            "tasks": {
                "queued": self._task_queue.qsize(),
                "completed": sum(w.tasks_completed for w in self._workers),
                "failed": sum(w.tasks_failed for w in self._workers),
            },
        }
