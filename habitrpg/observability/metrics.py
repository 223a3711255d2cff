"""
Prometheus metrics definitions for the HabitRPG service.

This module defines all metrics collected by the application, organized by category:
- HTTP/API metrics: Request counts, latency, in-flight requests
- Gamification metrics: Completion outcomes, XP awarded, level-ups
- Profile metrics: Progress drift repaired on read
- Database metrics: Transaction retries
- Error metrics: Errors by type and component

Metrics are exposed at the /metrics endpoint for Prometheus scraping.
"""

import logging
from prometheus_client import Counter, Gauge, Histogram, Info

logger = logging.getLogger(__name__)

# =============================================================================
# HTTP/API Metrics
# =============================================================================

http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests received",
    ["method", "endpoint", "status"],
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency in seconds",
    ["method", "endpoint"],
    buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 2.0, 5.0, 10.0],
)

http_requests_in_progress = Gauge(
    "http_requests_in_progress",
    "Number of HTTP requests currently being processed",
    ["method", "endpoint"],
)

# =============================================================================
# Gamification Metrics
# =============================================================================

habit_completions_total = Counter(
    "habit_completions_total",
    "Habit completion attempts by outcome",
    ["outcome"],  # completed/not_found/already_completed/limit_reached/transient
)

xp_awarded_total = Counter(
    "xp_awarded_total",
    "Total XP awarded",
    ["difficulty"],
)

level_ups_total = Counter(
    "level_ups_total",
    "Total level-ups granted by habit completions",
)

# =============================================================================
# Profile Metrics
# =============================================================================

profile_reconciliations_total = Counter(
    "profile_reconciliations_total",
    "Stored progress fields repaired when a profile was read",
    ["field"],  # field: level/xp/total_xp
)

# =============================================================================
# Database Metrics
# =============================================================================

transaction_retries_total = Counter(
    "transaction_retries_total",
    "Transactions re-run after a serialization failure or deadlock",
    ["operation"],
)

# =============================================================================
# User Activity Metrics
# =============================================================================

user_registrations_total = Counter(
    "user_registrations_total",
    "Total user registrations",
)

# =============================================================================
# Error Metrics
# =============================================================================

errors_total = Counter(
    "errors_total",
    "Total errors by type and component",
    ["error_type", "component"],  # component: api/database/auth
)

# =============================================================================
# Application Info
# =============================================================================

app_info = Info(
    "app_info",
    "Application information",
)


def init_metrics():
    """
    Initialize metrics with application information.

    This should be called once at application startup to set
    static metadata about the application.
    """
    import os
    import sys
    from habitrpg import __version__
    from habitrpg.config import ENVIRONMENT

    app_info.info(
        {
            "version": os.getenv("GIT_COMMIT_SHA", __version__)[:7],
            "environment": ENVIRONMENT,
            "python_version": f"{sys.version_info.major}.{sys.version_info.minor}",
        }
    )

    logger.info("Prometheus metrics initialized")
