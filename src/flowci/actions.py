# actions.py
from __future__ import annotations

import re
import shlex
import subprocess
from abc import ABC, abstractmethod
from typing import Dict, List, Mapping, Optional, Tuple

from .environments.base import CommandResult, Environment
from .environments.container import CONTAINER_WORKDIR, check_docker_available

# ---------------------------------------------------------------------
# Capability boundary
# ---------------------------------------------------------------------
# A named action (`uses: actions/checkout@v3`) is opaque to the engine. It
# gets the job's environment, its `with:` parameters and the accumulated
# variables, and reports a CommandResult. Nothing else is interpreted.


class Action(ABC):
    @abstractmethod
    def run(
        self,
        environment: Environment,
        params: Mapping[str, str],
        env: Mapping[str, str],
    ) -> CommandResult:
        ...


class UnknownActionError(LookupError):
    def __init__(self, uses: str):
        super().__init__(f"no implementation registered for action {uses!r}")
        self.uses = uses


def split_ref(uses: str) -> Tuple[str, Optional[str]]:
    """'actions/checkout@v3' -> ('actions/checkout', 'v3')"""
    if uses.startswith("docker://"):
        return uses, None
    name, sep, ref = uses.partition("@")
    return name.strip(), (ref.strip() if sep else None)


def input_env(params: Mapping[str, str]) -> Dict[str, str]:
    """`with:` parameters as INPUT_<NAME> variables (non-alphanumerics become '_')."""
    return {
        "INPUT_" + re.sub(r"[^A-Za-z0-9_]", "_", key).upper(): value
        for key, value in params.items()
    }


# ---------------------------------------------------------------------
# Built-in actions
# ---------------------------------------------------------------------

class CheckoutAction(Action):
    """
    Source already lives in the workspace; checkout only confirms it is a
    git work tree and brings submodules up when asked to.
    """

    def run(self, environment, params, env):
        probe = environment.execute(["git", "rev-parse", "--show-toplevel"], env=env)
        if not probe.ok:
            return probe

        submodules = (params.get("submodules") or "false").strip().lower()
        if submodules in ("true", "recursive"):
            argv = ["git", "submodule", "update", "--init"]
            if submodules == "recursive":
                argv.append("--recursive")
            sync = environment.execute(argv, env=env)
            return CommandResult(exit_code=sync.exit_code, output=probe.output + sync.output)
        return probe


class DockerAction(Action):
    """`uses: docker://image` runs the image once with the workspace mounted."""

    def __init__(self, image: str, docker: str = "docker"):
        self.image = image
        self.docker = docker

    def build_command(self, environment: Environment, params: Mapping[str, str], env: Mapping[str, str]) -> List[str]:
        cmd = [self.docker, "run", "--rm"]
        cmd.extend(["-v", f"{environment.workspace}:{CONTAINER_WORKDIR}"])
        cmd.extend(["-w", CONTAINER_WORKDIR])
        for key, value in {**env, **input_env(params)}.items():
            cmd.extend(["-e", f"{key}={value}"])
        entrypoint = params.get("entrypoint")
        if entrypoint:
            cmd.extend(["--entrypoint", entrypoint])
        cmd.append(self.image)
        cmd.extend(shlex.split(params.get("args") or ""))
        return cmd

    def run(self, environment, params, env):
        check_docker_available(f"docker://{self.image}", self.docker)
        proc = subprocess.run(
            self.build_command(environment, params, env),
            shell=False,
            text=True,
            capture_output=True,
        )
        return CommandResult(exit_code=proc.returncode, output=(proc.stdout or "") + (proc.stderr or ""))


class CommandAction(Action):
    """Binds an action id to a shell command; parameters arrive as INPUT_* variables."""

    def __init__(self, command: str, shell: Optional[str] = None):
        self.command = command
        self.shell = shell

    def run(self, environment, params, env):
        return environment.run_script(
            self.command,
            env={**env, **input_env(params)},
            shell=self.shell,
        )


# ---------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------

class ActionRegistry:
    def __init__(self, docker: str = "docker"):
        self._actions: Dict[str, Action] = {}
        self.docker = docker

    def register(self, name: str, action: Action) -> "ActionRegistry":
        self._actions[split_ref(name)[0]] = action
        return self

    def register_command(self, spec: str) -> "ActionRegistry":
        """Register from an 'ID=COMMAND' string."""
        name, sep, command = spec.partition("=")
        if not sep or not name.strip() or not command.strip():
            raise ValueError(f"expected ID=COMMAND, got {spec!r}")
        return self.register(name.strip(), CommandAction(command.strip()))

    def names(self) -> List[str]:
        return sorted(self._actions)

    def resolve(self, uses: str) -> Action:
        if uses.startswith("docker://"):
            image = uses[len("docker://"):]
            if not image:
                raise UnknownActionError(uses)
            return DockerAction(image, self.docker)
        name, _ref = split_ref(uses)
        try:
            return self._actions[name]
        except KeyError:
            raise UnknownActionError(uses) from None


def default_registry(docker: str = "docker") -> ActionRegistry:
    return ActionRegistry(docker).register("actions/checkout", CheckoutAction())
