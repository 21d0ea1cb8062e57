from __future__ import annotations

import subprocess

import pytest

from flowci.engine import Engine
from flowci.environments import container as container_mod
from flowci.environments.base import SCRIPTS_DIR
from flowci.environments.container import (
    CONTAINER_WORKDIR,
    ContainerEnvironment,
    check_docker_available,
    container_path,
    resolve_image,
)
from flowci.errors import ProvisioningError


class FakeDocker:
    """Stands in for subprocess.run; answers by docker subcommand."""

    def __init__(self, responses=None):
        self.calls = []
        self.responses = responses or {}

    def __call__(self, cmd, **kwargs):
        self.calls.append(list(cmd))
        resp = self.responses.get(cmd[1], (0, "", ""))
        if isinstance(resp, Exception):
            raise resp
        code, out, err = resp
        return subprocess.CompletedProcess(cmd, code, out, err)

    def subcommands(self):
        return [c[1] for c in self.calls]


@pytest.fixture
def docker(monkeypatch):
    fake = FakeDocker({"run": (0, "abc123\n", "")})
    monkeypatch.setattr(container_mod.subprocess, "run", fake)
    return fake


class TestContainerPath:
    def test_paths(self):
        assert container_path(None) == CONTAINER_WORKDIR
        assert container_path("sub/dir") == "/workspace/sub/dir"
        assert container_path("sub/") == "/workspace/sub"
        assert container_path("./a/../b") == "/workspace/b"


class TestPreflight:
    def test_docker_missing(self, monkeypatch):
        monkeypatch.setattr(container_mod.subprocess, "run", FakeDocker({"--version": FileNotFoundError()}))
        with pytest.raises(ProvisioningError) as exc_info:
            check_docker_available("build")
        assert exc_info.value.job == "build"
        assert "hint" in exc_info.value.details

    def test_docker_broken(self, monkeypatch):
        monkeypatch.setattr(container_mod.subprocess, "run", FakeDocker({"--version": (1, "", "")}))
        with pytest.raises(ProvisioningError):
            check_docker_available("build")

    def test_image_present_is_not_pulled(self, docker):
        resolve_image("build", "alpine:3.19")
        assert docker.subcommands() == ["image"]

    def test_image_pulled_when_missing(self, monkeypatch):
        fake = FakeDocker({"image": (1, "", "")})
        monkeypatch.setattr(container_mod.subprocess, "run", fake)
        resolve_image("build", "alpine:3.19")
        assert fake.calls[-1] == ["docker", "pull", "alpine:3.19"]

    def test_unresolvable_image(self, monkeypatch):
        fake = FakeDocker({"image": (1, "", ""), "pull": (1, "", "manifest unknown")})
        monkeypatch.setattr(container_mod.subprocess, "run", fake)
        with pytest.raises(ProvisioningError) as exc_info:
            resolve_image("build", "nope:0")
        assert "cannot resolve image reference" in exc_info.value.message
        assert exc_info.value.details["stderr"] == "manifest unknown"


class TestContainerEnvironment:
    def _start(self, tmp_path, **kwargs):
        return ContainerEnvironment("build", tmp_path, "alpine:3.19", **kwargs).start()

    def test_start_command(self, tmp_path, docker):
        env = self._start(tmp_path, container_env={"A": "1"}, options="--cpus 2")
        assert env.container_id == "abc123"
        run_cmd = docker.calls[-1]
        assert run_cmd[:4] == ["docker", "run", "-d", "--rm"]
        assert f"{tmp_path.resolve()}:{CONTAINER_WORKDIR}" in run_cmd
        assert run_cmd[run_cmd.index("-e") + 1] == "A=1"
        assert run_cmd[run_cmd.index("--cpus") + 1] == "2"
        assert run_cmd[-5:] == ["--entrypoint", "tail", "alpine:3.19", "-f", "/dev/null"]

    def test_start_failure(self, tmp_path, monkeypatch):
        monkeypatch.setattr(container_mod.subprocess, "run", FakeDocker({"run": (125, "", "bad option")}))
        with pytest.raises(ProvisioningError) as exc_info:
            self._start(tmp_path)
        assert "failed to start container" in exc_info.value.message

    def test_execute_in_container(self, tmp_path, docker):
        env = self._start(tmp_path)
        docker.responses["exec"] = (0, "hi\n", "")
        result = env.run_script("echo hi", env={"B": "2"}, cwd="sub")
        assert result.ok
        assert result.output == "hi\n"
        assert docker.calls[-1] == [
            "docker", "exec", "-i", "-w", "/workspace/sub", "-e", "B=2", "abc123",
            "sh", "-e", "-c", "echo hi",
        ]

    def test_exit_code_propagates(self, tmp_path, docker):
        env = self._start(tmp_path)
        docker.responses["exec"] = (2, "", "boom\n")
        result = env.run_script("false", env={})
        assert result.exit_code == 2
        assert result.output == "boom\n"

    def test_custom_shell_uses_container_path(self, tmp_path, docker):
        env = self._start(tmp_path)
        env.run_script("print 1", env={}, shell="perl {0}")
        argv = docker.calls[-1]
        assert argv[-2] == "perl"
        assert argv[-1].startswith(f"{CONTAINER_WORKDIR}/{SCRIPTS_DIR.as_posix()}/")

    def test_execute_before_start(self, tmp_path):
        env = ContainerEnvironment("build", tmp_path, "alpine:3.19")
        with pytest.raises(RuntimeError):
            env.execute(["true"], env={})

    def test_close_removes_container(self, tmp_path, docker):
        with self._start(tmp_path) as env:
            pass
        assert docker.calls[-1] == ["docker", "rm", "-f", "abc123"]
        assert env.container_id is None
        env.close()
        assert docker.subcommands().count("rm") == 1

    def test_workspace_maps_to_mount_point(self, tmp_path):
        env = ContainerEnvironment("build", tmp_path, "alpine:3.19")
        assert env.map_path(tmp_path) == CONTAINER_WORKDIR
        assert env.map_path(tmp_path / "src" / "main.c") == "/workspace/src/main.c"


class TestContainerJob:
    def test_workspace_variable_is_the_container_path(self, tmp_path, docker, make_spec, console):
        spec = make_spec("""\
            on: push
            jobs:
              build:
                container: alpine:3.19
                steps:
                  - run: cd "$FLOWCI_WORKSPACE"
        """)
        result = Engine(workspace=tmp_path, console=console).evaluate(spec, "push")
        assert result.jobs["build"].ok

        exec_cmd = next(c for c in docker.calls if c[1] == "exec")
        assert "FLOWCI_WORKSPACE=/workspace" in exec_cmd
        assert "FLOWCI_JOB=build" in exec_cmd
        assert docker.calls[-1] == ["docker", "rm", "-f", "abc123"]
