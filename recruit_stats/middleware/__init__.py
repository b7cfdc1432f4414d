"""HTTP middleware for cross-cutting concerns."""

from recruit_stats.middleware.cors import setup_cors
from recruit_stats.middleware.logging import LoggingMiddleware
from recruit_stats.middleware.request_id import RequestIDMiddleware

__all__ = [
    "RequestIDMiddleware",
    "LoggingMiddleware",
    "setup_cors",
]
