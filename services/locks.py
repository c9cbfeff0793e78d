import threading
from contextlib import contextmanager

from services.errors import LockTimeout


class AdmissionLockRegistry:
    """
    In-process mutexes keyed by facility id and by member id.

    Serializes admissions inside a single process; rows locked with
    SELECT ... FOR UPDATE cover other processes on databases that support
    it. Different facilities never share a lock, and neither do different
    members. Callers that need both take the member lock first.
    """

    def __init__(self, timeout_seconds: float = 5.0):
        self.timeout_seconds = timeout_seconds
        self._guard = threading.Lock()
        self._locks = {}

    def _lock_for(self, key) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
            return lock

    @contextmanager
    def _hold(self, key, label, timeout_seconds):
        timeout = self.timeout_seconds if timeout_seconds is None else timeout_seconds
        lock = self._lock_for(key)
        if not lock.acquire(timeout=timeout):
            raise LockTimeout(f"Timed out waiting for {label}")
        try:
            yield
        finally:
            lock.release()

    def hold(self, facility_id, timeout_seconds=None):
        return self._hold(("facility", facility_id), f"facility {facility_id}", timeout_seconds)

    def hold_member(self, user_id, timeout_seconds=None):
        return self._hold(("member", user_id), f"member {user_id}", timeout_seconds)
