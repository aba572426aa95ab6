"""Throttling settings, the concurrency limiter and the edit scheduler."""

from .throttling import ThrottlingConfig
from .limiter import ConcurrencyLimiter
from .scheduler import ValidationScheduler
