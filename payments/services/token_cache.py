import threading
import time


class TokenCache:
    """
    Holds the gateway bearer token until shortly before it expires.

    Safe to share between threads. Two concurrent refreshes both store a
    valid token; whichever lands last is kept.
    """

    def __init__(self, clock=time.monotonic, leeway=60):
        self._clock = clock
        self._leeway = leeway
        self._lock = threading.Lock()
        self._token = None
        self._expires_at = 0.0

    def get(self):
        with self._lock:
            if self._token and self._expires_at > self._clock() + self._leeway:
                return self._token
            return None

    def store(self, token, expires_in):
        with self._lock:
            self._token = token
            self._expires_at = self._clock() + float(expires_in)

    def is_expired(self):
        return self.get() is None

    def clear(self):
        with self._lock:
            self._token = None
            self._expires_at = 0.0
