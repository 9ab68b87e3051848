"""
Telemetry Module
================

Error tracking for the Metrionix backend (Sentry). Logging itself is plain
stdlib logging configured in metrionix/main.py.

Usage:
    from metrionix.telemetry import init_sentry, capture_exception
"""

from metrionix.telemetry.sentry import (
    capture_exception,
    init_sentry,
    set_agency_context,
)

__all__ = [
    "init_sentry",
    "set_agency_context",
    "capture_exception",
]
