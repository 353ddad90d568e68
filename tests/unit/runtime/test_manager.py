import threading
import time
from datetime import timedelta

import pytest

from cfnflux.controllers.reconciler import ReconcileResult
from cfnflux.runtime.manager import Manager
from cfnflux.utils.backoff import KeyedBackoff
from cfnflux.utils.sync import poll_condition


class RecordingReconciler:
    """Returns the queued results per key in order, and an empty result once they are used up."""

    def __init__(self, results=None, delay: float = 0):
        self.results = {key: list(values) for key, values in (results or {}).items()}
        self.delay = delay
        self.calls = []
        self.running = 0
        self.max_running = 0
        self._mutex = threading.Lock()

    def __call__(self, namespace: str, name: str) -> ReconcileResult:
        key = (namespace, name)
        with self._mutex:
            self.calls.append(key)
            self.running += 1
            self.max_running = max(self.max_running, self.running)
        try:
            if self.delay:
                time.sleep(self.delay)
            with self._mutex:
                results = self.results.get(key)
                result = results.pop(0) if results else ReconcileResult()
            if isinstance(result, Exception):
                raise result
            return result
        finally:
            with self._mutex:
                self.running -= 1

    def count(self, key=("default", "my-stack")) -> int:
        with self._mutex:
            return self.calls.count(key)


@pytest.fixture
def manager_factory():
    managers = []

    def _create(reconcile, **kwargs) -> Manager:
        kwargs.setdefault("backoff", KeyedBackoff(initial_interval=0.01))
        manager = Manager(reconcile, **kwargs)
        managers.append(manager)
        return manager.start()

    yield _create

    for manager in managers:
        manager.close()


class TestManager:
    def test_reconcile_enqueued_key(self, manager_factory):
        reconciler = RecordingReconciler()
        manager = manager_factory(reconciler)

        manager.enqueue("default", "my-stack")

        assert poll_condition(lambda: reconciler.count() == 1, timeout=5, interval=0.01)
        assert manager.wait_until_idle(timeout=5)
        assert manager.pending() == 0

    def test_requeue_after(self, manager_factory):
        reconciler = RecordingReconciler(
            {("default", "my-stack"): [ReconcileResult(requeue_after=timedelta(milliseconds=50))]}
        )
        manager = manager_factory(reconciler)

        manager.enqueue("default", "my-stack")

        assert poll_condition(lambda: reconciler.count() == 2, timeout=5, interval=0.01)
        assert manager.wait_until_idle(timeout=5)
        # the second reconcile did not ask for a requeue
        time.sleep(0.1)
        assert reconciler.count() == 2

    def test_errors_are_retried_with_backoff(self, manager_factory):
        key = ("default", "my-stack")
        error = ReconcileResult(requeue_after=timedelta(hours=1), error=ValueError("failed"))
        reconciler = RecordingReconciler({key: [error, error]})
        backoff = KeyedBackoff(initial_interval=0.01)
        manager = manager_factory(reconciler, backoff=backoff)

        manager.enqueue(*key)

        # the backoff replaces the requested requeue of an hour
        assert poll_condition(lambda: reconciler.count() == 3, timeout=5, interval=0.01)
        assert manager.wait_until_idle(timeout=5)
        # the success resets the backoff
        assert backoff.failures(key) == 0

    def test_exceptions_are_retried(self, manager_factory):
        key = ("default", "my-stack")
        reconciler = RecordingReconciler({key: [RuntimeError("unexpected")]})
        manager = manager_factory(reconciler)

        manager.enqueue(*key)

        assert poll_condition(lambda: reconciler.count() == 2, timeout=5, interval=0.01)

    def test_one_reconcile_per_key_in_flight(self, manager_factory):
        reconciler = RecordingReconciler(delay=0.2)
        manager = manager_factory(reconciler, concurrent=4)

        manager.enqueue("default", "my-stack")
        assert poll_condition(lambda: reconciler.count() == 1, timeout=5, interval=0.01)
        # enqueued while in flight, reconciled again once the running reconcile finished
        manager.enqueue("default", "my-stack")
        manager.enqueue("default", "my-stack")

        assert poll_condition(lambda: reconciler.count() == 2, timeout=5, interval=0.01)
        assert manager.wait_until_idle(timeout=5)
        assert reconciler.count() == 2
        assert reconciler.max_running == 1

    def test_keys_are_reconciled_concurrently(self, manager_factory):
        reconciler = RecordingReconciler(delay=0.2)
        manager = manager_factory(reconciler, concurrent=2)

        manager.enqueue("default", "a")
        manager.enqueue("default", "b")

        assert poll_condition(lambda: len(reconciler.calls) == 2, timeout=5, interval=0.01)
        assert manager.wait_until_idle(timeout=5)
        assert reconciler.max_running == 2

    def test_concurrency_is_bounded(self, manager_factory):
        reconciler = RecordingReconciler(delay=0.05)
        manager = manager_factory(reconciler, concurrent=1)

        for name in ["a", "b", "c"]:
            manager.enqueue("default", name)

        assert poll_condition(lambda: len(reconciler.calls) == 3, timeout=5, interval=0.01)
        assert reconciler.max_running == 1

    def test_earlier_deadline_wins(self, manager_factory):
        reconciler = RecordingReconciler()
        manager = manager_factory(reconciler)

        manager.enqueue("default", "my-stack", delay=60)
        manager.enqueue("default", "my-stack")

        assert poll_condition(lambda: reconciler.count() == 1, timeout=5, interval=0.01)
        assert manager.wait_until_idle(timeout=5)
        assert manager.pending() == 0

    def test_delayed_reconcile(self, manager_factory):
        reconciler = RecordingReconciler()
        manager = manager_factory(reconciler)

        manager.enqueue("default", "my-stack", delay=60)

        assert manager.wait_until_idle(timeout=1)
        assert reconciler.count() == 0
        assert manager.pending() == 1

    def test_close_waits_for_reconciles_in_flight(self):
        reconciler = RecordingReconciler(
            {("default", "my-stack"): [ReconcileResult(requeue_after=timedelta(milliseconds=1))]}, delay=0.2
        )
        manager = Manager(reconciler).start()
        manager.enqueue("default", "my-stack")
        assert poll_condition(lambda: reconciler.running == 1, timeout=5, interval=0.01)

        manager.close(wait=True)

        assert reconciler.running == 0
        # no requeue after the manager was stopped
        time.sleep(0.05)
        assert reconciler.count() == 1
