"""
Source Gateway Base

Shared plumbing for every provider adapter: a sliding-window rate limiter,
a bounded request timeout and a linear-backoff retry policy. Adapters only
build requests and parse responses; they never see a raw ``requests``
exception.
"""

import logging
import threading
import time
from collections import deque
from datetime import datetime
from typing import Callable, Optional

import requests

from atlas_orbit.errors import FetchError, NetworkError, SourceHTTPError, SourceTimeoutError
from atlas_orbit.models import ParsedSeries

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0
DEFAULT_MAX_RETRIES = 3
DEFAULT_BACKOFF = 5.0
USER_AGENT = 'atlas-orbit-engine/1.0'


class RateLimiter:
    """
    Sliding-window limiter: at most ``max_requests`` grants in any
    ``window_seconds`` interval.

    ``acquire`` waits on a condition variable until the oldest grant leaves
    the window, so callers block without spinning. Safe to share between
    threads.
    """

    def __init__(self, max_requests: int = 10, window_seconds: float = 60.0,
                 clock: Callable[[], float] = time.monotonic):
        if max_requests < 1:
            raise ValueError("max_requests must be at least 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._grants = deque()
        self._condition = threading.Condition()

    def _prune(self, now: float) -> None:
        while self._grants and now - self._grants[0] >= self.window_seconds:
            self._grants.popleft()

    def try_acquire(self) -> bool:
        """Take a slot if one is free right now; never blocks."""
        with self._condition:
            now = self._clock()
            self._prune(now)
            if len(self._grants) < self.max_requests:
                self._grants.append(now)
                return True
            return False

    def acquire(self, timeout: Optional[float] = None) -> bool:
        """
        Block until a slot is free and take it.

        Args:
            timeout: Maximum seconds to wait; None waits indefinitely

        Returns:
            True once a slot was taken, False if ``timeout`` expired first
        """
        with self._condition:
            deadline = None if timeout is None else self._clock() + timeout
            while True:
                now = self._clock()
                self._prune(now)
                if len(self._grants) < self.max_requests:
                    self._grants.append(now)
                    return True

                wait = self._grants[0] + self.window_seconds - now
                if deadline is not None:
                    remaining = deadline - now
                    if remaining <= 0:
                        return False
                    wait = min(wait, remaining)
                self._condition.wait(wait)

    @property
    def in_window(self) -> int:
        with self._condition:
            self._prune(self._clock())
            return len(self._grants)


class SourceAdapter:
    """
    Base class for provider adapters.

    Subclasses set ``name`` and ``kind`` and implement ``fetch``. Network
    access goes through ``_get`` which applies the rate limit, the timeout
    and the retry policy and translates ``requests`` failures into the
    engine's FetchError hierarchy.

    Args:
        session: requests.Session to use (a new one by default)
        rate_limiter: Limiter for this provider (10 requests / 60 s by default)
        timeout: Per-request timeout in seconds
        max_retries: Total attempts for transient failures
        backoff: Linear backoff unit; attempt k waits k * backoff seconds
        sleep: Sleep function, replaceable in tests
    """

    name = 'source'
    kind = 'observer'

    def __init__(self, session: Optional[requests.Session] = None,
                 rate_limiter: Optional[RateLimiter] = None,
                 timeout: float = DEFAULT_TIMEOUT,
                 max_retries: int = DEFAULT_MAX_RETRIES,
                 backoff: float = DEFAULT_BACKOFF,
                 sleep: Callable[[float], None] = time.sleep):
        self.session = session or requests.Session()
        self.session.headers.setdefault('User-Agent', USER_AGENT)
        self.rate_limiter = rate_limiter or RateLimiter()
        self.timeout = timeout
        self.max_retries = max(1, max_retries)
        self.backoff = backoff
        self.sleep = sleep

    def fetch(self, start: datetime, end: datetime, step: str = '1d') -> ParsedSeries:
        raise NotImplementedError

    def _get(self, url: str, params: Optional[dict] = None) -> requests.Response:
        """GET with rate limit, timeout and linear-backoff retries."""
        for attempt in range(1, self.max_retries + 1):
            try:
                self.rate_limiter.acquire()
                return self._send(url, params)
            except FetchError as e:
                if not e.retryable or attempt == self.max_retries:
                    logger.error(f"{self.name}: giving up after attempt {attempt}: {e}")
                    raise
                delay = attempt * self.backoff
                logger.warning(f"{self.name}: attempt {attempt} failed ({e}), retrying in {delay:.0f}s")
                self.sleep(delay)

        # unreachable: the loop either returns or raises
        raise FetchError(f"{self.name}: no attempts made", source=self.name)

    def _send(self, url: str, params: Optional[dict]) -> requests.Response:
        try:
            response = self.session.get(url, params=params, timeout=self.timeout)
            response.raise_for_status()
            return response
        except requests.Timeout as e:
            raise SourceTimeoutError(f"{self.name} timed out after {self.timeout}s", source=self.name) from e
        except requests.HTTPError as e:
            status = e.response.status_code if e.response is not None else 0
            raise SourceHTTPError(f"{self.name} returned HTTP {status}", status, source=self.name) from e
        except requests.RequestException as e:
            raise NetworkError(f"{self.name} request failed: {e}", source=self.name) from e
