# environments/container.py
from __future__ import annotations

import posixpath
import shlex
import subprocess
from pathlib import Path
from typing import List, Mapping, Optional

from ..errors import TOOL_HINTS, ProvisioningError
from .base import CommandResult, Environment

CONTAINER_WORKDIR = "/workspace"


def _docker(args: List[str], docker: str = "docker") -> subprocess.CompletedProcess:
    return subprocess.run(
        [docker, *args],
        shell=False,
        text=True,
        capture_output=True,
    )


def check_docker_available(job: str, docker: str = "docker") -> None:
    """Check if Docker is available, raise a ProvisioningError with a hint if not."""
    try:
        proc = _docker(["--version"], docker)
    except FileNotFoundError:
        proc = None
    if proc is None or proc.returncode != 0:
        raise ProvisioningError(
            job=job,
            message="Docker is not available",
            details={"hint": TOOL_HINTS["docker"]},
        )


def resolve_image(job: str, image: str, docker: str = "docker") -> None:
    """Make sure `image` exists locally, pulling it if needed."""
    if _docker(["image", "inspect", image], docker).returncode == 0:
        return
    pulled = _docker(["pull", image], docker)
    if pulled.returncode != 0:
        raise ProvisioningError(
            job=job,
            message=f"cannot resolve image reference {image!r}",
            details={"stderr": (pulled.stderr or "").strip()[-500:]},
        )


def container_path(cwd: Optional[str]) -> str:
    return posixpath.normpath(posixpath.join(CONTAINER_WORKDIR, cwd or "."))


class ContainerEnvironment(Environment):
    """
    One long-lived container per job.

    The workspace is mounted at /workspace and every step runs through
    `docker exec`, so files written by one step are visible to the next.
    Removed on close().
    """

    kind = "container"

    def __init__(
        self,
        job: str,
        workspace: Path,
        image: str,
        *,
        container_env: Optional[Mapping[str, str]] = None,
        options: Optional[str] = None,
        default_shell: Optional[str] = None,
        default_workdir: Optional[str] = None,
        docker: str = "docker",
    ):
        super().__init__(workspace, default_shell or "sh", default_workdir)
        self.job = job
        self.image = image
        self.container_env = dict(container_env or {})
        self.options = options
        self.docker = docker
        self.container_id: Optional[str] = None

    def describe(self) -> str:
        return f"container ({self.image})"

    def start(self) -> "ContainerEnvironment":
        check_docker_available(self.job, self.docker)
        resolve_image(self.job, self.image, self.docker)

        cmd = ["run", "-d", "--rm"]
        cmd.extend(["-v", f"{self.workspace}:{CONTAINER_WORKDIR}"])
        cmd.extend(["-w", CONTAINER_WORKDIR])
        for key, value in self.container_env.items():
            cmd.extend(["-e", f"{key}={value}"])
        if self.options:
            cmd.extend(shlex.split(self.options))
        # Keep the container alive; steps are exec'd into it.
        cmd.extend(["--entrypoint", "tail", self.image, "-f", "/dev/null"])

        proc = _docker(cmd, self.docker)
        if proc.returncode != 0:
            raise ProvisioningError(
                job=self.job,
                message=f"failed to start container from {self.image!r}",
                details={"stderr": (proc.stderr or "").strip()[-500:]},
            )
        self.container_id = proc.stdout.strip()
        return self

    def map_path(self, host_path: Path) -> str:
        rel = Path(host_path).resolve().relative_to(self.workspace)
        return container_path(rel.as_posix())

    def execute(
        self,
        argv: List[str],
        *,
        env: Mapping[str, str],
        cwd: Optional[str] = None,
    ) -> CommandResult:
        if self.container_id is None:
            raise RuntimeError(f"[{self.job}] container not started")

        cmd = ["exec", "-i", "-w", container_path(cwd)]
        for key, value in env.items():
            cmd.extend(["-e", f"{key}={value}"])
        cmd.append(self.container_id)
        cmd.extend(argv)

        proc = _docker(cmd, self.docker)
        output = (proc.stdout or "") + (proc.stderr or "")
        return CommandResult(exit_code=proc.returncode, output=output)

    def close(self) -> None:
        if self.container_id is None:
            return
        _docker(["rm", "-f", self.container_id], self.docker)
        self.container_id = None
