"""
Utils package - helpers for the token requestor.

Contains helper modules for:
- Go duration and RFC 3339 timestamp codecs
- Clock and jitter abstractions
- Credential embedding into Secret payloads
- Kubernetes client configuration and object operations
"""

from .clock import Clock, FakeClock, RealClock, jitter, no_jitter
from .durations import format_rfc3339, parse_duration, parse_rfc3339

__all__ = [
    "Clock",
    "FakeClock",
    "RealClock",
    "jitter",
    "no_jitter",
    "format_rfc3339",
    "parse_duration",
    "parse_rfc3339",
]
