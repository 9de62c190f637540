"""
Health checks for liveness and readiness probes.
"""
from datetime import datetime, timezone
from typing import Dict, Any
import psutil
from .config import get_settings
from .logging import get_logger
from .services.monitor import KillmailMonitor

logger = get_logger()


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class HealthChecker:
    """
    Health checker for the killfeed service.

    Provides:
    - Liveness checks (is the service running?)
    - Readiness checks (is the feed delivering heartbeats?)
    """

    def __init__(self, monitor: KillmailMonitor, service_name: str = "killfeed", version: str = "0.1.0"):
        self.monitor = monitor
        self.service_name = service_name
        self.version = version
        self.settings = get_settings()

    def liveness(self) -> Dict[str, Any]:
        """
        Liveness check - basic health check.

        Returns:
            dict: Health status with service info and timestamp
        """
        return {
            "status": "ok",
            "service": self.service_name,
            "version": self.version,
            "timestamp": _timestamp(),
        }

    async def readiness(self) -> Dict[str, Any]:
        """
        Readiness check - comprehensive health check.

        Checks:
        - Feed heartbeat freshness
        - Queue identity backend
        - Memory availability

        Returns:
            dict: Readiness status with detailed check results
        """
        checks = {
            "feed": self._check_feed(),
            "identity": await self._check_identity(),
            "memory": self._check_memory(),
        }
        overall_status = "ready"
        if any(check["status"] == "error" for check in checks.values()):
            overall_status = "not_ready"

        return {
            "status": overall_status,
            "service": self.service_name,
            "version": self.version,
            "timestamp": _timestamp(),
            "checks": checks,
        }

    def _check_feed(self) -> Dict[str, Any]:
        """
        Check that the poll loop is running and heartbeats are fresh.

        Returns:
            dict: Feed health check result
        """
        if not self.monitor.running:
            if not self.settings.FEED_AUTOSTART:
                return {"status": "skipped", "message": "Feed not started"}
            return {"status": "error", "message": "Poll loop not running"}

        connection = self.monitor.connection
        stale_after = self.settings.HEARTBEAT_STALE_SECONDS
        since = connection.seconds_since_ping()
        if since is None:
            return {"status": "error", "message": "No heartbeat received yet"}

        return {
            "status": "ok" if connection.is_alive(stale_after) else "error",
            "seconds_since_ping": round(since, 2),
            "stale_after": stale_after,
        }

    async def _check_identity(self) -> Dict[str, Any]:
        """
        Check the queue identity backend.

        Returns:
            dict: Identity backend health check result
        """
        try:
            healthy = await self.monitor.identity.health_check()
        except Exception as e:
            logger.warning("identity_health_check_failed", error=str(e))
            return {"status": "error", "error": str(e)}

        return {
            "status": "ok" if healthy else "error",
            "backend": type(self.monitor.identity).__name__,
        }

    def _check_memory(self, threshold_mb: float = 50.0) -> Dict[str, Any]:
        """
        Check available memory.

        Args:
            threshold_mb: Minimum available memory in MB (default: 50.0)

        Returns:
            dict: Memory health check result
        """
        try:
            memory = psutil.virtual_memory()
            available_mb = memory.available / (1024**2)

            if available_mb < threshold_mb:
                status = "error"
            elif available_mb < threshold_mb * 2:
                status = "warning"
            else:
                status = "ok"

            return {
                "status": status,
                "available_mb": round(available_mb, 2),
                "total_mb": round(memory.total / (1024**2), 2),
                "used_percent": memory.percent,
            }

        except Exception as e:
            logger.warning("memory_health_check_failed", error=str(e))
            return {
                "status": "error",
                "error": str(e),
            }
