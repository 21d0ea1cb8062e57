# environments/host.py
from __future__ import annotations

import os
import platform
import subprocess
from pathlib import Path
from typing import Iterable, List, Mapping, Optional

from .base import CommandResult, Environment

# ---------------------------------------------------------------------
# OS families
# ---------------------------------------------------------------------

LINUX = "linux"
MACOS = "macos"
WINDOWS = "windows"

# Label prefixes -> OS family (ubuntu-20.04, macos-11, windows-latest, ...)
_FAMILY_PREFIXES = {
    "ubuntu": LINUX,
    "linux": LINUX,
    "debian": LINUX,
    "fedora": LINUX,
    "centos": LINUX,
    "alpine": LINUX,
    "macos": MACOS,
    "osx": MACOS,
    "darwin": MACOS,
    "windows": WINDOWS,
    "win": WINDOWS,
}

# Labels every local host satisfies.
LOCAL_LABELS = frozenset({"self-hosted", "local"})

_SYSTEM_FAMILIES = {
    "Linux": LINUX,
    "Darwin": MACOS,
    "Windows": WINDOWS,
}


def label_family(label: str) -> Optional[str]:
    """Return the OS family a runner label names, or None if it names none."""
    head = label.strip().lower().split("-", 1)[0]
    return _FAMILY_PREFIXES.get(head)


def host_family(system: Optional[str] = None) -> Optional[str]:
    return _SYSTEM_FAMILIES.get(system or platform.system())


def default_host_shell(family: Optional[str]) -> str:
    return "pwsh" if family == WINDOWS else "bash"


def satisfies(labels: Iterable[str], *, family: Optional[str], extra_labels: Iterable[str] = ()) -> bool:
    """
    True if this host can run a job asking for `labels`.

    A local label (self-hosted/local) or one the operator declared is
    always satisfied. Otherwise at least one label must name an OS family
    and every such label must agree with the host's family.
    """
    labels = [label.strip().lower() for label in labels]
    extra = {label.strip().lower() for label in extra_labels}
    if any(label in LOCAL_LABELS or label in extra for label in labels):
        return True
    families = {label_family(label) for label in labels} - {None}
    return bool(families) and families == {family}


# ---------------------------------------------------------------------
# Environment
# ---------------------------------------------------------------------

class HostEnvironment(Environment):
    """Runs commands directly on this machine inside the workspace."""

    kind = "host"

    def __init__(
        self,
        workspace: Path,
        *,
        family: Optional[str],
        labels: Iterable[str] = (),
        default_shell: Optional[str] = None,
        default_workdir: Optional[str] = None,
    ):
        super().__init__(
            workspace,
            default_shell or default_host_shell(family),
            default_workdir,
        )
        self.family = family
        self.labels = tuple(labels)

    def describe(self) -> str:
        label = ", ".join(self.labels) or "local"
        return f"host ({label}; {self.family or 'unknown'})"

    def map_path(self, host_path: Path) -> str:
        return str(host_path)

    def execute(
        self,
        argv: List[str],
        *,
        env: Mapping[str, str],
        cwd: Optional[str] = None,
    ) -> CommandResult:
        workdir = (self.workspace / (cwd or ".")).resolve()
        if not workdir.is_dir():
            raise FileNotFoundError(f"working directory not found: {workdir}")

        full_env = os.environ.copy()
        full_env.update(env)

        proc = subprocess.run(
            argv,
            shell=False,
            cwd=str(workdir),
            env=full_env,
            text=True,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
        )
        return CommandResult(exit_code=proc.returncode, output=proc.stdout or "")
