# executor.py
from __future__ import annotations

import threading
import time
from typing import Mapping, Optional

from .actions import ActionRegistry, UnknownActionError, default_registry
from .context import EnvChain, RunContext
from .environments.base import CommandResult, Environment
from .errors import TOOL_HINTS, StepFailure
from .model import JobSpec, StepSpec
from .results import JobResult, StepOutcome, tail
from .ui.console import Console, get_console


class StepExecutor:
    """
    Runs one job's steps, in order, against its provisioned environment.

    The first failing step ends the job; later steps never start. A
    cancellation request is honoured between steps, never in the middle of
    one.
    """

    def __init__(self, actions: Optional[ActionRegistry] = None, console: Optional[Console] = None):
        self.actions = actions if actions is not None else default_registry()
        self.console = console

    @property
    def _console(self) -> Console:
        return self.console or get_console()

    # ------------------------------------------------------------------
    # Job
    # ------------------------------------------------------------------

    def run_job(
        self,
        name: str,
        job: JobSpec,
        environment: Environment,
        base_env: EnvChain,
        cancel: Optional[threading.Event] = None,
    ) -> JobResult:
        ctx = RunContext(job=name, environment=environment, env=base_env.extend(job.env))

        for index, step in enumerate(job.steps):
            if cancel is not None and cancel.is_set():
                return JobResult.cancelled(name, ctx.outcomes)

            self._console.print_step(name, index, step.display_name)
            started = time.monotonic()
            try:
                outcome = self._run_step(ctx, index, step)
            except StepFailure as e:
                outcome = StepOutcome(
                    index=index,
                    name=step.display_name,
                    success=False,
                    exit_code=e.exit_code,
                    output=e.output,
                    error=e.message or None,
                    duration=time.monotonic() - started,
                )
                ctx.record(outcome)
                hint = _hint_for(e)
                self._console.print_step_failure(name, step.display_name, e.message, e.exit_code, hint)
                return JobResult.failed(name, index, ctx.outcomes)

            ctx.record(outcome)

        return JobResult.succeeded(name, ctx.outcomes)

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def _run_step(self, ctx: RunContext, index: int, step: StepSpec) -> StepOutcome:
        """Run one step; raises StepFailure on any failure."""
        env = ctx.push_env(step.env)
        started = time.monotonic()

        if step.is_action:
            result = self._run_action(ctx, index, step, env)
        else:
            result = self._run_command(ctx, index, step, env)

        self._console.print_step_output(ctx.job, result.output)
        if not result.ok:
            raise StepFailure(
                job=ctx.job,
                step=step.display_name,
                index=index,
                exit_code=result.exit_code,
                message=f"exited with status {result.exit_code}",
                output=tail(result.output),
            )

        return StepOutcome(
            index=index,
            name=step.display_name,
            success=True,
            exit_code=result.exit_code,
            output=tail(result.output),
            duration=time.monotonic() - started,
        )

    def _run_command(self, ctx: RunContext, index: int, step: StepSpec, env: Mapping[str, str]) -> CommandResult:
        try:
            return ctx.environment.run_script(
                step.run or "",
                env=env,
                shell=step.shell,
                cwd=step.working_directory,
            )
        except OSError as e:
            raise StepFailure(
                job=ctx.job,
                step=step.display_name,
                index=index,
                exit_code=None,
                message=f"could not start command: {e}",
            ) from e

    def _run_action(self, ctx: RunContext, index: int, step: StepSpec, env: Mapping[str, str]) -> CommandResult:
        uses = step.uses or ""
        try:
            action = self.actions.resolve(uses)
        except UnknownActionError as e:
            raise StepFailure(
                job=ctx.job,
                step=step.display_name,
                index=index,
                exit_code=None,
                message=str(e),
            ) from e

        try:
            return action.run(ctx.environment, dict(step.with_), env)
        except Exception as e:
            # Whatever the action does is opaque; only its outcome matters.
            raise StepFailure(
                job=ctx.job,
                step=step.display_name,
                index=index,
                exit_code=None,
                message=f"action {uses!r} raised: {e}",
            ) from e


def _hint_for(failure: StepFailure) -> Optional[str]:
    if failure.exit_code is not None:
        return None
    for tool, hint in TOOL_HINTS.items():
        if f"'{tool}'" in failure.message:
            return hint
    return None
