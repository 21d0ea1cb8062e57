from __future__ import annotations

import threading

import pytest

from flowci.actions import Action, ActionRegistry, default_registry
from flowci.context import EnvChain
from flowci.environments.base import CommandResult
from flowci.executor import StepExecutor
from flowci.results import OUTPUT_TAIL, JobStatus

from tests.fakes import FakeEnvironment


class Exploding(Action):
    def run(self, environment, params, env):
        raise RuntimeError("kaboom")


class Unstartable(FakeEnvironment):
    def execute(self, argv, *, env, cwd=None):
        raise FileNotFoundError(2, "No such file or directory", argv[0])


class CancelsDuringStep(FakeEnvironment):
    def __init__(self, workspace, cancel):
        super().__init__(workspace)
        self.cancel = cancel

    def execute(self, argv, *, env, cwd=None):
        self.cancel.set()
        return super().execute(argv, env=env, cwd=cwd)


class Chatty(FakeEnvironment):
    def execute(self, argv, *, env, cwd=None):
        super().execute(argv, env=env, cwd=cwd)
        return CommandResult(exit_code=0, output="y" * (OUTPUT_TAIL * 2))


@pytest.fixture
def executor(console):
    return StepExecutor(console=console)


def _job(make_spec, steps: str, env: str = ""):
    spec = make_spec(f"""\
        on: push
        jobs:
          build:
            runs-on: self-hosted
{env}
            steps:
{steps}
    """)
    return spec.jobs["build"]


class TestFailFast:
    def test_all_steps_succeed(self, tmp_path, make_spec, executor):
        job = _job(make_spec, """\
              - run: echo one
              - run: echo two
              - run: echo three
        """)
        env = FakeEnvironment(tmp_path)
        result = executor.run_job("build", job, env, EnvChain())
        assert result.status is JobStatus.SUCCESS
        assert [o.index for o in result.outcomes] == [0, 1, 2]
        assert all(o.success for o in result.outcomes)
        assert result.outcomes[0].output == "ran: echo one\n"

    @pytest.mark.parametrize("failing", [0, 1, 2])
    def test_stops_at_first_failure(self, tmp_path, make_spec, executor, failing):
        lines = [
            f"              - run: {'exit 5' if i == failing else f'echo {i}'}"
            for i in range(3)
        ]
        job = _job(make_spec, "\n".join(lines) + "\n")
        env = FakeEnvironment(tmp_path)
        result = executor.run_job("build", job, env, EnvChain())

        assert result.status is JobStatus.FAILED
        assert result.failed_step == failing
        assert len(result.outcomes) == failing + 1
        assert len(env.calls) == failing + 1
        assert result.failure.exit_code == 5
        assert not result.failure.success
        assert all(o.success for o in result.outcomes[:-1])

    def test_outcome_names(self, tmp_path, make_spec, executor):
        job = _job(make_spec, """\
              - name: Build it
                run: make
              - run: exit 1
        """)
        result = executor.run_job("build", job, FakeEnvironment(tmp_path), EnvChain())
        assert [o.name for o in result.outcomes] == ["Build it", "Run exit 1"]

    def test_output_is_bounded(self, tmp_path, make_spec, executor):
        job = _job(make_spec, "              - run: yes\n")
        result = executor.run_job("build", job, Chatty(tmp_path), EnvChain())
        assert len(result.outcomes[0].output) == OUTPUT_TAIL


class TestVariables:
    def test_step_variables_accumulate(self, tmp_path, make_spec, executor):
        job = _job(
            make_spec,
            """\
              - run: echo a
                env:
                  A: "1"
              - run: echo b
                env:
                  B: "2"
                  JOBVAR: step
              - run: echo c
            """,
            env="""\
            env:
              JOBVAR: job
            """,
        )
        env = FakeEnvironment(tmp_path)
        result = executor.run_job("build", job, env, EnvChain({"CI": "true"}))
        assert result.ok

        seen = [c[1] for c in env.calls]
        assert seen[0] == {"CI": "true", "JOBVAR": "job", "A": "1"}
        assert seen[1] == {"CI": "true", "JOBVAR": "step", "A": "1", "B": "2"}
        assert seen[2] == seen[1]

    def test_base_env_untouched(self, tmp_path, make_spec, executor):
        job = _job(make_spec, """\
              - run: echo a
                env:
                  A: "1"
        """)
        base = EnvChain({"CI": "true"})
        executor.run_job("build", job, FakeEnvironment(tmp_path), base)
        assert base.to_dict() == {"CI": "true"}


class TestShellsAndDirs:
    def test_step_shell_and_workdir(self, tmp_path, make_spec, executor):
        job = _job(make_spec, """\
              - run: print(1)
                shell: python
                working-directory: tools
              - run: echo default
        """)
        env = FakeEnvironment(tmp_path, default_shell="sh", default_workdir="src")
        executor.run_job("build", job, env, EnvChain())
        (argv0, _e0, cwd0), (argv1, _e1, cwd1) = env.calls
        assert argv0 == ["python", "-c", "print(1)"]
        assert cwd0 == "tools"
        assert argv1[0] == "sh"
        assert cwd1 == "src"

    def test_command_that_cannot_start(self, tmp_path, make_spec, executor):
        job = _job(make_spec, "              - run: echo hi\n")
        result = executor.run_job("build", job, Unstartable(tmp_path), EnvChain())
        assert result.failed_step == 0
        assert result.failure.exit_code is None
        assert "could not start command" in result.failure.error


class TestActions:
    def test_unknown_action_fails_the_step(self, tmp_path, make_spec, executor):
        job = _job(make_spec, """\
              - uses: actions/checkout@v3
              - uses: apache/skywalking-eyes@main
              - run: echo never
        """)
        env = FakeEnvironment(tmp_path)
        result = executor.run_job("build", job, env, EnvChain())
        assert result.failed_step == 1
        assert len(result.outcomes) == 2
        assert "no implementation registered" in result.failure.error
        assert len(env.calls) == 1

    def test_action_exception_is_a_step_failure(self, tmp_path, make_spec, console):
        registry = ActionRegistry().register("acme/explode", Exploding())
        executor = StepExecutor(registry, console=console)
        job = _job(make_spec, "              - uses: acme/explode@v1\n")
        result = executor.run_job("build", job, FakeEnvironment(tmp_path), EnvChain())
        assert result.failed_step == 0
        assert "kaboom" in result.failure.error

    def test_action_receives_params(self, tmp_path, make_spec, console):
        registry = default_registry().register_command("acme/lint=make lint")
        executor = StepExecutor(registry, console=console)
        job = _job(make_spec, """\
              - uses: acme/lint@v1
                with:
                  level: high
        """)
        env = FakeEnvironment(tmp_path)
        assert executor.run_job("build", job, env, EnvChain()).ok
        assert env.calls[0][1]["INPUT_LEVEL"] == "high"


class TestCancellation:
    def test_cancelled_before_start(self, tmp_path, make_spec, executor):
        job = _job(make_spec, "              - run: echo hi\n")
        cancel = threading.Event()
        cancel.set()
        env = FakeEnvironment(tmp_path)
        result = executor.run_job("build", job, env, EnvChain(), cancel)
        assert result.status is JobStatus.CANCELLED
        assert result.outcomes == ()
        assert env.calls == []

    def test_running_step_finishes(self, tmp_path, make_spec, executor):
        job = _job(make_spec, """\
              - run: echo one
              - run: echo two
        """)
        cancel = threading.Event()
        env = CancelsDuringStep(tmp_path, cancel)
        result = executor.run_job("build", job, env, EnvChain(), cancel)
        assert result.status is JobStatus.CANCELLED
        assert len(result.outcomes) == 1
        assert result.outcomes[0].success

    def test_cancel_during_last_step(self, tmp_path, make_spec, executor):
        job = _job(make_spec, "              - run: echo only\n")
        cancel = threading.Event()
        result = executor.run_job("build", job, CancelsDuringStep(tmp_path, cancel), EnvChain(), cancel)
        assert result.ok
