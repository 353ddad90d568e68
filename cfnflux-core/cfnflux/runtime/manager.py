"""
Drives reconciles of ``CloudFormationStack`` resources: a deadline-ordered work queue, a bounded pool of workers, and
per-stack error backoff.
"""
import itertools
import logging
import queue
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta
from typing import Callable, Dict, Optional, Set, Tuple

from cfnflux import config
from cfnflux.controllers.reconciler import ReconcileResult
from cfnflux.utils.backoff import KeyedBackoff
from cfnflux.utils.sync import poll_condition

LOG = logging.getLogger(__name__)

Key = Tuple[str, str]
ReconcileFunc = Callable[[str, str], ReconcileResult]


class Manager:
    """
    Schedules reconciles of stack keys (namespace, name) at deadlines and runs them in a thread pool. At most one
    reconcile per key is in flight at any time: a key enqueued while it is being reconciled is reconciled again once
    the running reconcile finished.

    After a reconcile, the key is requeued after the returned ``requeue_after``. If the reconcile returned or raised
    an error, the key is requeued after its exponential backoff instead, which is reset by the next success.
    """

    POISON = (-1, -1, None)

    def __init__(
        self,
        reconcile: ReconcileFunc,
        concurrent: int = None,
        backoff: KeyedBackoff = None,
    ):
        self.reconcile = reconcile
        self.concurrent = concurrent or config.CONCURRENT
        self.backoff = backoff or KeyedBackoff()

        self._queue = queue.PriorityQueue()
        self._condition = threading.Condition()
        self._sequence = itertools.count()
        # the currently valid deadline of every queued key, older queue entries for a key are skipped
        self._deadlines: Dict[Key, float] = {}
        self._in_flight: Set[Key] = set()
        # keys enqueued while in flight, with the earliest requested deadline
        self._dirty: Dict[Key, float] = {}
        self._slots = threading.BoundedSemaphore(self.concurrent)
        self._executor: Optional[ThreadPoolExecutor] = None
        self._thread: Optional[threading.Thread] = None
        self._stopped = threading.Event()

    def enqueue(self, namespace: str, name: str, delay: float = 0) -> None:
        """Schedules a reconcile of the given stack after ``delay`` seconds, unless one is scheduled earlier."""
        key = (namespace, name)
        deadline = time.time() + max(delay, 0)
        with self._condition:
            if key in self._in_flight:
                self._dirty[key] = min(self._dirty.get(key, deadline), deadline)
                return
            current = self._deadlines.get(key)
            if current is not None and current <= deadline:
                return
            self._deadlines[key] = deadline
            self._queue.put((deadline, next(self._sequence), key))
            self._condition.notify()

    def pending(self) -> int:
        with self._condition:
            return len(self._deadlines) + len(self._in_flight)

    def start(self) -> "Manager":
        if self._thread:
            return self
        self._stopped.clear()
        self._executor = ThreadPoolExecutor(
            max_workers=self.concurrent, thread_name_prefix="reconcile"
        )
        self._thread = threading.Thread(target=self.run, name="manager", daemon=True)
        self._thread.start()
        LOG.info("Started manager with %d workers", self.concurrent)
        return self

    def close(self, wait: bool = True) -> None:
        """Terminates the run loop. Reconciles in flight are completed, queued reconciles are dropped."""
        self._stopped.set()
        with self._condition:
            self._queue.put(self.POISON)
            self._condition.notify()
        if self._thread:
            self._thread.join()
            self._thread = None
        if self._executor:
            self._executor.shutdown(wait=wait)
            self._executor = None
        LOG.info("Manager stopped")

    def wait_until_idle(self, timeout: float = None, interval: float = 0.05) -> bool:
        """
        Blocks until no reconcile is in flight and none is due right away. Reconciles scheduled for later do not
        count, so this returns once all immediate work is done.
        """

        def _idle():
            with self._condition:
                now = time.time()
                return not self._in_flight and all(d > now for d in self._deadlines.values())

        return poll_condition(_idle, timeout=timeout, interval=interval)

    def run(self):
        q = self._queue
        cond = self._condition

        while True:
            entry = q.get()

            if entry == self.POISON or self._stopped.is_set():
                break

            deadline, _, key = entry
            with cond:
                if self._deadlines.get(key) != deadline:
                    # superseded by an earlier deadline
                    continue

                # wait until the reconcile is due
                if deadline > time.time():
                    if not self._earlier_entry_queued(entry):
                        cond.wait(timeout=deadline - time.time())
                    if deadline > time.time():
                        # something with a potentially earlier deadline has arrived while waiting
                        q.put(entry)
                        continue

            # wait for a free worker, so that deadlines keep their order under load
            self._slots.acquire()
            with cond:
                if self._deadlines.get(key) != deadline:
                    self._slots.release()
                    continue
                del self._deadlines[key]
                self._in_flight.add(key)
            self._executor.submit(self._process, key)

    def _earlier_entry_queued(self, entry: Tuple[float, int, Key]) -> bool:
        with self._queue.mutex:
            return bool(self._queue.queue) and self._queue.queue[0] < entry

    def _process(self, key: Key):
        namespace, name = key
        try:
            result = self.reconcile(namespace, name)
        except Exception as e:
            LOG.exception("Reconcile of %s/%s raised an exception", namespace, name)
            result = ReconcileResult(error=e)
        finally:
            self._slots.release()

        delay = self._next_delay(key, result)
        with self._condition:
            self._in_flight.discard(key)
            dirty_deadline = self._dirty.pop(key, None)
            if self._stopped.is_set():
                return
            if dirty_deadline is not None:
                self.enqueue(namespace, name, dirty_deadline - time.time())
            if delay is not None:
                self.enqueue(namespace, name, delay)

    def _next_delay(self, key: Key, result: ReconcileResult) -> Optional[float]:
        if result.error is not None:
            delay = self.backoff.next_backoff(key)
            LOG.debug(
                "Reconcile of %s/%s failed (%s), retrying in %.3fs", key[0], key[1], result.error, delay
            )
            return delay

        self.backoff.forget(key)
        if result.requeue_after is None:
            return None
        if isinstance(result.requeue_after, timedelta):
            return result.requeue_after.total_seconds()
        return float(result.requeue_after)
