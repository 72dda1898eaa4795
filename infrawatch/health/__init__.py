"""Health subsystem — sources, probes, snapshot cache, checker."""

from .checker import HealthChecker, ServerNotFoundError
from .models import ServerStatus, ServiceStatus, StatusLevel, derive_status_level
