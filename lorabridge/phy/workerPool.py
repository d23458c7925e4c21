"""
BoundedWorkerPool: fixed worker threads over a bounded task queue.

When the queue is full the OLDEST queued task is discarded to make room, so a
burst of radio traffic delays nothing beyond the newest queueSize frames.
"""

import threading
from collections import deque
from typing import Any, Callable, Deque, Dict, List, Optional, Tuple

from cotkit.logging import getLogger

Task = Tuple[Callable, tuple]


class BoundedWorkerPool:
    """
    Args:
        workers: Number of worker threads
        queueSize: Queued tasks kept before the oldest is discarded
        name: Thread name prefix
    """

    def __init__(self, workers: int = 2, queueSize: int = 100, name: str = 'pool'):
        if workers < 1:
            raise ValueError(f"workers must be >= 1, got {workers}")
        if queueSize < 1:
            raise ValueError(f"queueSize must be >= 1, got {queueSize}")
        self.workers = workers
        self.queueSize = queueSize
        self.name = name
        self.log = getLogger()

        self._tasks: Deque[Task] = deque()
        self._cond = threading.Condition()
        self._threads: List[threading.Thread] = []
        self._running = True

        self.submitted = 0
        self.completed = 0
        self.discarded = 0
        self.errors = 0

        for index in range(workers):
            thread = threading.Thread(target=self._workerLoop, name=f'{name}-{index}', daemon=True)
            self._threads.append(thread)
            thread.start()

    @property
    def running(self) -> bool:
        return self._running

    def submit(self, fn: Callable, *args) -> bool:
        """Queue fn(*args); False when the pool is shut down"""
        with self._cond:
            if not self._running:
                return False
            if len(self._tasks) >= self.queueSize:
                self._tasks.popleft()
                self.discarded += 1
                self.log.warning("Pool queue full, oldest task discarded", pool=self.name,
                                 discarded=self.discarded)
            self._tasks.append((fn, args))
            self.submitted += 1
            self._cond.notify()
        return True

    def shutdown(self, cancelPending: bool = True, timeout: Optional[float] = 0.5) -> int:
        """
        Stop accepting work and wait up to timeout for the workers to exit.

        Returns:
            Number of queued tasks cancelled
        """
        with self._cond:
            if not self._running and not self._threads:
                return 0
            self._running = False
            cancelled = 0
            if cancelPending:
                cancelled = len(self._tasks)
                self._tasks.clear()
            self._cond.notify_all()
            threads, self._threads = self._threads, []

        current = threading.current_thread()
        for thread in threads:
            if thread is not current:
                thread.join(timeout=timeout)
        if cancelled:
            self.log.info("Pool shut down with queued tasks cancelled", pool=self.name, cancelled=cancelled)
        return cancelled

    def pending(self) -> int:
        with self._cond:
            return len(self._tasks)

    def status(self) -> Dict[str, Any]:
        with self._cond:
            return {
                'running': self._running,
                'workers': self.workers,
                'queued': len(self._tasks),
                'submitted': self.submitted,
                'completed': self.completed,
                'discarded': self.discarded,
                'errors': self.errors
            }

    def _workerLoop(self) -> None:
        while True:
            with self._cond:
                while self._running and not self._tasks:
                    self._cond.wait()
                if not self._tasks:
                    return
                fn, args = self._tasks.popleft()

            try:
                fn(*args)
            except Exception as e:
                with self._cond:
                    self.errors += 1
                self.log.error("Pool task failed", pool=self.name, error=str(e), exc_info=True)
            finally:
                with self._cond:
                    self.completed += 1
