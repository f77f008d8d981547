"""
Middleware for the fixture pipeline.

    RequestLoggingMiddleware   access log line per request (first)
    RawBodyMiddleware          request.body = raw bytes (second)
"""

from .base import Middleware, MiddlewarePipeline, NextHandler
from .logging import RequestLoggingMiddleware, RequestLog
from .raw_body import RawBodyMiddleware

__all__ = [
    "Middleware",
    "MiddlewarePipeline",
    "NextHandler",
    "RequestLoggingMiddleware",
    "RequestLog",
    "RawBodyMiddleware",
]
