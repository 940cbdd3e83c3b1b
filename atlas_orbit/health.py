"""
Source Health Ledger

Tracks the outcome of every provider call. The ledger is the only writer of
SourceHealthRecord values; each update replaces the stored record with a new
immutable one under a lock.
"""

import logging
import threading
from collections import deque
from datetime import datetime
from typing import Dict, List, Optional

from atlas_orbit.models import SourceHealthRecord, utcnow

logger = logging.getLogger(__name__)

MAX_ERROR_HISTORY = 100


class HealthLedger:
    """
    Per-source success/failure bookkeeping and overall service status.

    Args:
        sources: Source names to register up front (reported healthy until
            their first call)
    """

    def __init__(self, sources: Optional[List[str]] = None):
        self._records: Dict[str, SourceHealthRecord] = {}
        self._error_history: Dict[str, deque] = {}
        self._lock = threading.Lock()
        for name in sources or []:
            self.register(name)

    def register(self, source: str) -> None:
        with self._lock:
            self._records.setdefault(source, SourceHealthRecord(source_name=source))

    def record_outcome(self, source: str, success: bool, error: Optional[str] = None,
                       latency_ms: Optional[float] = None,
                       now: Optional[datetime] = None) -> SourceHealthRecord:
        """
        Record one call outcome.

        Success resets the failure count; failure increments it and marks the
        source failed.

        Returns:
            The new record for ``source``
        """
        now = now or utcnow()
        with self._lock:
            current = self._records.get(source) or SourceHealthRecord(source_name=source)
            if success:
                record = current.model_copy(update={
                    'status': 'healthy',
                    'last_success': now,
                    'failure_count': 0,
                    'last_response_time_ms': latency_ms,
                })
            else:
                record = current.model_copy(update={
                    'status': 'failed',
                    'last_failure': now,
                    'failure_count': current.failure_count + 1,
                    'last_error': error,
                    'last_response_time_ms': latency_ms,
                })
                history = self._error_history.setdefault(source, deque(maxlen=MAX_ERROR_HISTORY))
                history.append({'timestamp': now.isoformat(), 'error': error})
            self._records[source] = record

        if not success:
            logger.warning(f"Source {source} failed ({record.failure_count} consecutive): {error}")
        return record

    def get(self, source: str) -> Optional[SourceHealthRecord]:
        with self._lock:
            return self._records.get(source)

    def records(self) -> List[SourceHealthRecord]:
        with self._lock:
            return [self._records[name] for name in sorted(self._records)]

    def get_error_history(self, source: str) -> List[dict]:
        """Most recent failures for ``source`` (oldest first, at most 100)."""
        with self._lock:
            return list(self._error_history.get(source, []))

    def overall_status(self, cache_available: bool) -> str:
        """
        'unhealthy' when no source is usable and the durable cache is down;
        'degraded' when any source or the durable cache is down;
        'healthy' otherwise.
        """
        records = self.records()
        failed = [r for r in records if r.status == 'failed']
        usable = [r for r in records if r.status != 'failed']

        if not cache_available and records and not usable:
            return 'unhealthy'
        if failed or not cache_available:
            return 'degraded'
        return 'healthy'

    @staticmethod
    def http_status(overall: str) -> int:
        return {'healthy': 200, 'degraded': 206}.get(overall, 503)
