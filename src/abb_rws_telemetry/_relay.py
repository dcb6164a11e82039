import threading

class TelemetryRelay:
    """
    Single slot hand-off of the newest telemetry sample from the acquisition
    thread to the host.

    ``publish`` overwrites the slot, so a slow consumer never stalls the
    producer and nothing is buffered. ``latest`` peeks at the newest sample,
    ``take`` returns it only if it has not been taken yet.
    """
    def __init__(self):
        self._lock = threading.Lock()
        self._sample = None
        self._unread = False
        self._published = 0
        self._dropped = 0

    def publish(self, sample):
        with self._lock:
            if self._unread:
                self._dropped += 1
            self._sample = sample
            self._unread = True
            self._published += 1

    def latest(self):
        with self._lock:
            return self._sample

    def take(self):
        with self._lock:
            if not self._unread:
                return None
            self._unread = False
            return self._sample

    def clear(self):
        with self._lock:
            self._sample = None
            self._unread = False

    @property
    def published(self):
        with self._lock:
            return self._published

    @property
    def dropped(self):
        with self._lock:
            return self._dropped
