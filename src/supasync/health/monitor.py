"""
SupaSync Health & Lifecycle Monitor.

Verifies and repairs the containerized local backend: container runtime
readiness, port conflicts, liveness probes and forced restarts.
"""

from __future__ import annotations

import socket
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum, auto
from typing import TYPE_CHECKING

import httpx
import psutil

from supasync.core.errors import RuntimeUnavailable
from supasync.core.logging import OperationLogger, get_logger
from supasync.core.retry import RetryPolicy, Sleeper

if TYPE_CHECKING:
    from supasync.core.config import ProjectConfiguration
    from supasync.tools.docker import DockerClient
    from supasync.tools.postgres import PostgresClient
    from supasync.tools.supabase import SupabaseCli

logger = get_logger(__name__)

PortProbe = Callable[[int], bool]
ApiProbe = Callable[[str], bool]


class RuntimeState(Enum):
    """Lifecycle states of the local backend."""

    STOPPED = auto()
    STARTING = auto()
    RUNNING = auto()
    DEGRADED = auto()


@dataclass
class ServiceHealthStatus:
    """Point-in-time health of the local backend."""

    running: bool = False
    api_reachable: bool = False
    db_reachable: bool = False
    last_checked: datetime = field(default_factory=datetime.now)

    @property
    def healthy(self) -> bool:
        return self.running and self.api_reachable and self.db_reachable

    def to_dict(self) -> dict[str, object]:
        return {
            "running": self.running,
            "api_reachable": self.api_reachable,
            "db_reachable": self.db_reachable,
            "healthy": self.healthy,
            "last_checked": self.last_checked.isoformat(),
        }


def port_in_use(port: int, host: str = "127.0.0.1") -> bool:
    """Check whether anything listens on a local TCP port."""
    try:
        for conn in psutil.net_connections(kind="tcp"):
            if conn.status == psutil.CONN_LISTEN and conn.laddr and conn.laddr.port == port:
                return True
        return False
    except psutil.AccessDenied:
        # Listing sockets needs privileges on some platforms; fall back to a connect probe.
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
            sock.settimeout(1.0)
            return sock.connect_ex((host, port)) == 0


def api_responds(url: str, timeout: float = 5.0) -> bool:
    """True when the API answers with anything other than a server error."""
    try:
        response = httpx.get(f"{url.rstrip('/')}/health", timeout=timeout)
    except httpx.HTTPError as e:
        logger.debug("API probe failed", url=url, error=str(e))
        return False
    return response.status_code < 500


class HealthMonitor:
    """Manages the local backend runtime for one project."""

    def __init__(
        self,
        config: ProjectConfiguration,
        supabase: SupabaseCli,
        docker: DockerClient,
        postgres: PostgresClient,
        sleep: Sleeper = time.sleep,
        port_probe: PortProbe = port_in_use,
        api_probe: ApiProbe | None = None,
    ) -> None:
        self.config = config
        self.supabase = supabase
        self.docker = docker
        self.postgres = postgres
        self.sleep = sleep
        self.port_probe = port_probe
        self.api_probe = api_probe or (
            lambda url: api_responds(url, timeout=config.health.timeout_seconds)
        )
        self.state = RuntimeState.STOPPED

    @property
    def readiness_policy(self) -> RetryPolicy:
        health = self.config.health
        return RetryPolicy(max_attempts=health.max_attempts, delay=health.poll_interval_seconds)

    @property
    def port_recheck_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=1,
            delay=0,
            initial_delay=self.config.health.port_recheck_delay_seconds,
        )

    def ensure_running(self) -> None:
        """Make sure the container runtime is up, starting it if allowed."""
        if self.docker.is_running():
            logger.debug("Container runtime is running")
            return

        if not self.config.docker.auto_start:
            raise RuntimeUnavailable("Docker is not running and auto-start is disabled")

        logger.info("Docker is not running, attempting to start it")
        launched = self.docker.launch()
        if launched is None:
            raise RuntimeUnavailable("Docker is not running and cannot be started automatically")
        if launched.dry_run:
            return

        self.state = RuntimeState.STARTING
        policy = self.readiness_policy
        if not policy.wait_until(self.docker.is_running, sleep=self.sleep, description="docker ready"):
            self.state = RuntimeState.STOPPED
            raise RuntimeUnavailable(
                f"Docker failed to start after {policy.max_attempts} attempts"
            )
        logger.info("Docker is now running")

    def resolve_port_conflict(self, port: int) -> bool:
        """
        Free a port held by this project's own stale backend.

        Only the backend itself is stopped; other processes are never touched.
        Returns False (and degrades the runtime state) if the port stays busy.
        """
        if not self.port_probe(port):
            return True

        logger.info("Port is in use, stopping the local backend", port=port)
        self.supabase.stop()

        freed = self.port_recheck_policy.wait_until(
            lambda: not self.port_probe(port),
            sleep=self.sleep,
            description=f"port {port} free",
        )
        if not freed:
            self.state = RuntimeState.DEGRADED
            logger.warning(
                "Port is still in use; stop the process holding it manually",
                port=port,
            )
        return freed

    def resolve_ports(self) -> list[int]:
        """Resolve every configured port and return the ones still occupied."""
        unresolved = []
        for name, port in self.config.ports.as_dict().items():
            if not self.resolve_port_conflict(port):
                logger.warning("Unresolved port conflict", service=name, port=port)
                unresolved.append(port)
        return unresolved

    def check_health(self) -> ServiceHealthStatus:
        """Probe the API and database once; callers decide whether to retry."""
        status = ServiceHealthStatus()
        info = self.supabase.status_json()
        status.running = info is not None

        if info is not None:
            api_url = info.get("API_URL")
            db_url = info.get("DB_URL")
            status.api_reachable = bool(api_url) and self.api_probe(str(api_url))
            status.db_reachable = bool(db_url) and self.postgres.ping(str(db_url))

        if status.healthy:
            self.state = RuntimeState.RUNNING
        elif status.running:
            self.state = RuntimeState.DEGRADED
        else:
            self.state = RuntimeState.STOPPED

        logger.info("Health check", **status.to_dict())
        return status

    def is_backend_running(self) -> bool:
        return self.supabase.is_running()

    def start_backend(self) -> None:
        self.state = RuntimeState.STARTING
        result = self.supabase.start()
        if not result.success:
            self.state = RuntimeState.STOPPED
            raise RuntimeUnavailable(f"Failed to start the local backend: {result.stderr.strip()}")
        self.state = RuntimeState.RUNNING

    def stop_backend(self, no_backup: bool = False, ignore_errors: bool = True) -> None:
        result = self.supabase.stop(no_backup=no_backup)
        if not result.success and not ignore_errors:
            raise RuntimeUnavailable(f"Failed to stop the local backend: {result.stderr.strip()}")
        self.state = RuntimeState.STOPPED

    def force_restart(self) -> list[int]:
        """Stop, clean up containers, free ports, settle, start again."""
        with OperationLogger("force restart", logger, project=self.config.supabase.project_ref):
            self.stop_backend(no_backup=True, ignore_errors=True)
            if self.config.docker.cleanup_on_failure:
                self.docker.remove_project_containers()
            unresolved = self.resolve_ports()
            self.sleep(self.config.health.settle_delay_seconds)
            self.start_backend()
        return unresolved
