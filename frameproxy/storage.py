"""In-memory request log and server counters."""

import threading
import uuid
from collections import deque
from datetime import datetime, timezone


def _now():
    return datetime.now(timezone.utc)


class MemoryStorage:
    """Request accounting shared by every in-flight request.

    All mutation happens under one lock; the record is small enough that
    contention is not a concern.
    """

    def __init__(self, capacity=1000):
        self._lock = threading.Lock()
        self._logs = deque(maxlen=capacity)
        self._stats = {
            'totalRequests': 0,
            'activeConnections': 0,
            'dataTransferred': 0,
            'errors': 0,
            'updatedAt': _now(),
        }

    # --- request log ---

    def record_request(self, method, url, status, size, duration):
        entry = {
            'id': str(uuid.uuid4()),
            'method': method,
            'url': url,
            'status': status,
            'size': size,
            'duration': duration,
            'timestamp': _now().isoformat(),
        }
        with self._lock:
            self._logs.appendleft(entry)
        return dict(entry)

    def get_request_logs(self, limit=50):
        with self._lock:
            logs = list(self._logs)
        if limit is not None:
            logs = logs[:max(limit, 0)]
        return [dict(entry) for entry in logs]

    def clear_request_logs(self):
        with self._lock:
            self._logs.clear()

    # --- counters ---

    def _update(self, key, value=None, delta=None):
        with self._lock:
            if delta is not None:
                self._stats[key] += delta
            else:
                self._stats[key] = value
            self._stats['updatedAt'] = _now()

    def increment_request_count(self):
        self._update('totalRequests', delta=1)

    def increment_error_count(self):
        self._update('errors', delta=1)

    def set_active_connections(self, count):
        self._update('activeConnections', value=count)

    def adjust_active_connections(self, delta):
        self._update('activeConnections', delta=delta)

    def add_data_transferred(self, size):
        self._update('dataTransferred', delta=size)

    def get_server_stats(self):
        with self._lock:
            stats = dict(self._stats)
        stats['updatedAt'] = stats['updatedAt'].isoformat()
        return stats
