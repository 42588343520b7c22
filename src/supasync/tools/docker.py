"""
Container runtime operations.
"""

from __future__ import annotations

import sys

from supasync.core.logging import get_logger
from supasync.tools.base import CommandResult, CommandRunner

logger = get_logger(__name__)

SUPABASE_PROJECT_LABEL = "com.supabase.cli.project"


class DockerClient:
    """Wrapper over the docker CLI."""

    DOCKER = "docker"

    def __init__(self, runner: CommandRunner, platform: str | None = None) -> None:
        self.runner = runner
        self.platform = platform or sys.platform

    def is_running(self) -> bool:
        return self.runner.run([self.DOCKER, "info"], timeout=30).success

    def launch_command(self) -> list[str] | None:
        """Command that starts the container runtime on this platform, if known."""
        if self.platform == "darwin":
            return ["open", "-a", "Docker"]
        if self.platform.startswith("linux"):
            return ["systemctl", "start", "docker"]
        return None

    def launch(self) -> CommandResult | None:
        command = self.launch_command()
        if command is None:
            return None
        return self.runner.run(command, mutating=True)

    def project_containers(self) -> list[str]:
        result = self.runner.run(
            [
                self.DOCKER,
                "ps",
                "-a",
                "--filter",
                f"label={SUPABASE_PROJECT_LABEL}",
                "--format",
                "{{.Names}}",
            ]
        )
        return [name.strip() for name in result.stdout.splitlines() if name.strip()]

    def remove_project_containers(self) -> list[str]:
        """Stop and remove this project's containers, then prune stopped ones."""
        names = self.project_containers()
        if names:
            self.runner.run([self.DOCKER, "stop", *names], mutating=True)
            self.runner.run([self.DOCKER, "rm", *names], mutating=True)
        self.runner.run([self.DOCKER, "container", "prune", "-f"], mutating=True)
        logger.info("Docker containers cleaned up", removed=len(names))
        return names
