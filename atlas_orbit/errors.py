"""
Error taxonomy for the orbit engine.

Gateway errors (FetchError and subclasses) are recovered inside the
reconciliation layer; only AllSourcesFailed, InvalidRequest and
InsufficientData are expected to reach the HTTP boundary.
"""

from typing import Dict, Optional


class OrbitEngineError(Exception):
    """Base class for every error raised by the engine."""


class FetchError(OrbitEngineError):
    """A provider call failed."""

    retryable = True

    def __init__(self, message: str, source: Optional[str] = None):
        super().__init__(message)
        self.source = source


class SourceTimeoutError(FetchError):
    """The provider did not answer within the request timeout."""


class NetworkError(FetchError):
    """Connection-level failure (DNS, refused, reset)."""


class SourceHTTPError(FetchError):
    """Provider answered with a non-2xx status."""

    def __init__(self, message: str, status_code: int, source: Optional[str] = None):
        super().__init__(message, source=source)
        self.status_code = status_code
        # 4xx means the request itself is wrong; 429 is throttling and worth another try
        self.retryable = status_code >= 500 or status_code == 429


class ParseError(FetchError):
    """Provider payload could not be understood."""

    retryable = False


class AllSourcesFailed(OrbitEngineError):
    """Every provider for a quantity failed."""

    def __init__(self, message: str, failures: Optional[Dict[str, str]] = None):
        super().__init__(message)
        self.failures = dict(failures or {})


class InvalidOrbit(OrbitEngineError):
    """Orbital elements are not usable by the hyperbolic model."""


class InsufficientData(OrbitEngineError):
    """Too few (or degenerate) samples for a fit."""


class InvalidRequest(OrbitEngineError):
    """A caller-supplied parameter is outside the accepted range."""
