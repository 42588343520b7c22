"""
SupaSync health module.

Provides readiness, port conflict and liveness management for the local backend.
"""

from supasync.health.monitor import (
    HealthMonitor,
    RuntimeState,
    ServiceHealthStatus,
)

__all__ = ["HealthMonitor", "RuntimeState", "ServiceHealthStatus"]
