# environments/base.py
from __future__ import annotations

import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import List, Mapping, Optional

from .. import shells

SCRIPTS_DIR = Path(".flowci") / "scripts"


@dataclass(frozen=True)
class CommandResult:
    """Exit status and combined stdout/stderr of one command."""
    exit_code: int
    output: str = ""

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


class Environment(ABC):
    """
    A provisioned execution surface for one job.

    Host and container environments expose the same capability: run an argv
    with a given set of variables inside a working directory relative to the
    workspace. Step logic never branches on which kind it got.
    """

    kind: str = "abstract"

    def __init__(self, workspace: Path, default_shell: str, default_workdir: Optional[str] = None):
        self.workspace = Path(workspace).resolve()
        self.default_shell = default_shell
        self.default_workdir = default_workdir

    @abstractmethod
    def execute(
        self,
        argv: List[str],
        *,
        env: Mapping[str, str],
        cwd: Optional[str] = None,
    ) -> CommandResult:
        """
        Run `argv` to completion.

        Raises:
          OSError: the command could not be started (missing binary or
                   working directory)
        """

    @abstractmethod
    def map_path(self, host_path: Path) -> str:
        """Translate a path under the host workspace into this environment's view."""

    def describe(self) -> str:
        return self.kind

    def close(self) -> None:
        pass

    def __enter__(self) -> "Environment":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Scripts
    # ------------------------------------------------------------------

    def run_script(
        self,
        script: str,
        *,
        env: Mapping[str, str],
        shell: Optional[str] = None,
        cwd: Optional[str] = None,
    ) -> CommandResult:
        """Run script text verbatim with `shell` (or this environment's default shell)."""
        shell = shell or self.default_shell
        if cwd is None:
            cwd = self.default_workdir

        if shells.is_builtin(shell):
            return self.execute(shells.builtin_argv(shell, script), env=env, cwd=cwd)

        # Custom template: hand the shell a file path in place of {0}.
        scripts_dir = self.workspace / SCRIPTS_DIR
        scripts_dir.mkdir(parents=True, exist_ok=True)
        script_path = scripts_dir / f"{uuid.uuid4().hex}.script"
        script_path.write_text(script, encoding="utf-8")
        try:
            argv = shells.template_argv(shell, self.map_path(script_path))
            return self.execute(argv, env=env, cwd=cwd)
        finally:
            script_path.unlink(missing_ok=True)
