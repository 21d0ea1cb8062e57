# environments/provision.py
from __future__ import annotations

from pathlib import Path
from typing import Iterable, Optional, Tuple, Union

from ..errors import ProvisioningError
from ..model import Defaults, JobSpec
from .base import Environment
from .container import ContainerEnvironment
from .host import HostEnvironment, host_family, label_family, satisfies


def resolve_run_defaults(job: JobSpec, defaults: Defaults) -> Tuple[Optional[str], Optional[str]]:
    """(shell, working-directory) with job-level defaults winning over pipeline-level ones."""
    shell = job.defaults.run.shell or defaults.run.shell
    workdir = job.defaults.run.working_directory or defaults.run.working_directory
    return shell, workdir


class Provisioner:
    """
    Turns a job's target descriptor into a live Environment.

    Args:
        workspace: directory the jobs operate on (mounted into containers)
        runner_labels: extra `runs-on` labels this host should satisfy
        docker: docker CLI executable
    """

    def __init__(
        self,
        workspace: Union[str, Path] = ".",
        *,
        runner_labels: Iterable[str] = (),
        docker: str = "docker",
        system: Optional[str] = None,
    ):
        self.workspace = Path(workspace).resolve()
        self.runner_labels = tuple(runner_labels)
        self.docker = docker
        self.family = host_family(system)

    def check_host(self, name: str, job: JobSpec) -> None:
        labels = job.labels
        if not labels or satisfies(labels, family=self.family, extra_labels=self.runner_labels):
            return
        wanted = sorted({label_family(label) for label in labels} - {None})
        if not wanted:
            raise ProvisioningError(
                job=name,
                message=f"no runner matches labels {list(labels)}",
                details={"hint": "Use a known OS label, 'self-hosted', or pass --runner-label."},
            )
        raise ProvisioningError(
            job=name,
            message=f"platform unavailable: job needs {', '.join(wanted)}, this host is {self.family or 'unknown'}",
            details={"labels": list(labels)},
        )

    def provision(self, name: str, job: JobSpec, defaults: Defaults) -> Environment:
        if not self.workspace.is_dir():
            raise ProvisioningError(job=name, message=f"workspace not found: {self.workspace}")

        self.check_host(name, job)
        shell, workdir = resolve_run_defaults(job, defaults)

        if job.container is not None:
            return ContainerEnvironment(
                name,
                self.workspace,
                job.container.image,
                container_env=job.container.env,
                options=job.container.options,
                default_shell=shell,
                default_workdir=workdir,
                docker=self.docker,
            ).start()

        return HostEnvironment(
            self.workspace,
            family=self.family,
            labels=job.labels,
            default_shell=shell,
            default_workdir=workdir,
        )
