"""Shared enums for the short-link service.

This module defines all status and state enums used across the codebase.
Using enums instead of string literals provides type safety and prevents typos.
"""

from enum import StrEnum

__all__ = ["CacheStatus", "HealthStatus", "RequestStatus", "ResolutionOutcome"]


class HealthStatus(StrEnum):
    """Health check status values."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


class RequestStatus(StrEnum):
    """Outcome labels for request metrics."""

    SUCCESS = "success"
    VALIDATION_ERROR = "validation_error"
    CONFLICT = "conflict"
    ERROR = "error"


class CacheStatus(StrEnum):
    """Cache lookup result labels."""

    HIT = "hit"
    MISS = "miss"
    STALE = "stale"


class ResolutionOutcome(StrEnum):
    """Result labels for resolution metrics."""

    REDIRECT = "redirect"
    NOT_FOUND = "not_found"
    STORE_ERROR = "store_error"
