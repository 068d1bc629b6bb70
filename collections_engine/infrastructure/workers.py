"""Shared worker pool with a per-tenant cap on in-flight tasks"""

import os
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, Dict, Iterable, List, Optional, TypeVar

T = TypeVar("T")
R = TypeVar("R")


class TenantWorkerPool:
    """
    Fan per-customer work out across a bounded thread pool.

    The pool is sized to the available cores. Each tenant may have at most
    ``per_tenant_limit`` tasks in flight; the submitting thread waits for a
    slot, so a large tenant queues behind itself instead of filling the pool.
    """

    def __init__(self, max_workers: Optional[int] = None, per_tenant_limit: int = 4):
        if per_tenant_limit < 1:
            raise ValueError("per_tenant_limit must be at least 1")
        self.max_workers = max_workers or os.cpu_count() or 1
        self.per_tenant_limit = per_tenant_limit
        self._executor = ThreadPoolExecutor(
            max_workers=self.max_workers, thread_name_prefix="collections-worker"
        )
        self._limits: Dict[str, threading.BoundedSemaphore] = {}
        self._limits_lock = threading.Lock()

    def _limit_for(self, tenant_id: str) -> threading.BoundedSemaphore:
        with self._limits_lock:
            if tenant_id not in self._limits:
                self._limits[tenant_id] = threading.BoundedSemaphore(self.per_tenant_limit)
            return self._limits[tenant_id]

    def submit_all(
        self,
        tenant_id: str,
        fn: Callable[[T], R],
        items: Iterable[T],
        deadline: Optional[float] = None,
    ) -> List["Future[R]"]:
        """
        Submit ``fn(item)`` for each item, in order, honouring the tenant cap.

        Args:
            deadline: ``time.monotonic()`` value after which waiting for a slot
                gives up; already-submitted work is cancelled where possible

        Raises:
            TimeoutError: no slot freed up before the deadline
        """
        limit = self._limit_for(tenant_id)
        futures: List[Future] = []
        for item in items:
            if deadline is None:
                limit.acquire()
            elif not limit.acquire(timeout=max(0.0, deadline - time.monotonic())):
                for pending in futures:
                    pending.cancel()
                raise TimeoutError(f"Tenant {tenant_id} work did not start before deadline")
            try:
                future = self._executor.submit(fn, item)
            except BaseException:
                limit.release()
                raise
            future.add_done_callback(lambda _f: limit.release())
            futures.append(future)
        return futures

    def shutdown(self) -> None:
        self._executor.shutdown(wait=True, cancel_futures=True)
