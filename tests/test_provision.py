from __future__ import annotations

import subprocess

import pytest

from flowci.environments import container as container_mod
from flowci.environments.container import ContainerEnvironment
from flowci.environments.host import LINUX, HostEnvironment
from flowci.environments.provision import Provisioner, resolve_run_defaults
from flowci.errors import ProvisioningError

WORKFLOW = """\
on: push
defaults:
  run:
    shell: sh
    working-directory: src
jobs:
  linux:
    runs-on: ubuntu-20.04
    steps:
      - run: make
  mac:
    runs-on: macos-11
    steps:
      - run: make
  odd:
    runs-on: gpu-box
    steps:
      - run: make
  mine:
    runs-on: self-hosted
    defaults:
      run:
        shell: bash
    steps:
      - run: make
  boxed:
    runs-on: ubuntu-20.04
    container: alpine:3.19
    steps:
      - run: make
  boxed-mac:
    runs-on: macos-11
    container: alpine:3.19
    steps:
      - run: make
"""


@pytest.fixture
def spec(make_spec):
    return make_spec(WORKFLOW)


class TestRunDefaults:
    def test_job_defaults_win(self, spec):
        assert resolve_run_defaults(spec.jobs["mine"], spec.defaults) == ("bash", "src")
        assert resolve_run_defaults(spec.jobs["linux"], spec.defaults) == ("sh", "src")


class TestProvisioner:
    def test_matching_host(self, tmp_path, spec):
        env = Provisioner(tmp_path, system="Linux").provision("linux", spec.jobs["linux"], spec.defaults)
        assert isinstance(env, HostEnvironment)
        assert env.family == LINUX
        assert env.default_shell == "sh"
        assert env.default_workdir == "src"

    def test_platform_unavailable(self, tmp_path, spec):
        with pytest.raises(ProvisioningError) as exc_info:
            Provisioner(tmp_path, system="Linux").provision("mac", spec.jobs["mac"], spec.defaults)
        assert exc_info.value.job == "mac"
        assert "platform unavailable" in exc_info.value.message

    def test_runner_label_override(self, tmp_path, spec):
        provisioner = Provisioner(tmp_path, system="Linux", runner_labels=["macos-11"])
        env = provisioner.provision("mac", spec.jobs["mac"], spec.defaults)
        assert isinstance(env, HostEnvironment)

    def test_unknown_label(self, tmp_path, spec):
        with pytest.raises(ProvisioningError) as exc_info:
            Provisioner(tmp_path, system="Linux").provision("odd", spec.jobs["odd"], spec.defaults)
        assert "no runner matches" in exc_info.value.message

    def test_self_hosted(self, tmp_path, spec):
        env = Provisioner(tmp_path, system="Windows").provision("mine", spec.jobs["mine"], spec.defaults)
        assert env.default_shell == "bash"

    def test_missing_workspace(self, tmp_path, spec):
        with pytest.raises(ProvisioningError) as exc_info:
            Provisioner(tmp_path / "gone", system="Linux").provision("linux", spec.jobs["linux"], spec.defaults)
        assert "workspace not found" in exc_info.value.message

    def test_container_job(self, tmp_path, spec, monkeypatch):
        calls = []

        def fake_run(cmd, **kwargs):
            calls.append(cmd)
            return subprocess.CompletedProcess(cmd, 0, "cid\n" if cmd[1] == "run" else "", "")

        monkeypatch.setattr(container_mod.subprocess, "run", fake_run)
        env = Provisioner(tmp_path, system="Linux").provision("boxed", spec.jobs["boxed"], spec.defaults)
        assert isinstance(env, ContainerEnvironment)
        assert env.container_id == "cid"
        assert env.default_shell == "sh"

    def test_container_host_mismatch_checked_first(self, tmp_path, spec, monkeypatch):
        calls = []
        monkeypatch.setattr(container_mod.subprocess, "run", lambda cmd, **kw: calls.append(cmd))
        with pytest.raises(ProvisioningError):
            Provisioner(tmp_path, system="Linux").provision("boxed-mac", spec.jobs["boxed-mac"], spec.defaults)
        assert calls == []
