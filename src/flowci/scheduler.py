# scheduler.py
from __future__ import annotations

import threading
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from typing import Dict, Optional

from .context import EnvChain
from .environments.base import Environment
from .environments.provision import Provisioner
from .errors import ProvisioningError
from .executor import StepExecutor
from .model import JobSpec, PipelineSpec
from .results import JobResult, StepOutcome
from .ui.console import Console, get_console

SETUP_STEP = "Set up job"


def _setup_failure(name: str, error: str) -> JobResult:
    # Provisioning counts as step 0 so a job failing at step i has i+1 outcomes.
    outcome = StepOutcome(index=0, name=SETUP_STEP, success=False, error=error)
    return JobResult.failed(name, 0, [outcome])


class JobScheduler:
    """
    Runs every job of an activated pipeline concurrently.

    Jobs are fully independent: each one gets its own environment and
    RunContext, and one job's failure never stops another. `run()` returns
    only after every job reached a terminal result.
    """

    def __init__(
        self,
        provisioner: Provisioner,
        executor: StepExecutor,
        *,
        max_workers: Optional[int] = None,
        console: Optional[Console] = None,
    ):
        self.provisioner = provisioner
        self.executor = executor
        self.max_workers = max_workers
        self.console = console

    @property
    def _console(self) -> Console:
        return self.console or get_console()

    def _run_one(
        self,
        name: str,
        job: JobSpec,
        spec: PipelineSpec,
        base_env: EnvChain,
        cancel: threading.Event,
    ) -> JobResult:
        if cancel.is_set():
            return JobResult.cancelled(name)

        try:
            environment = self.provisioner.provision(name, job, spec.defaults)
        except ProvisioningError as e:
            self._console.print_step_failure(name, SETUP_STEP, e.message, hint=e.details.get("hint"))
            return _setup_failure(name, str(e))

        try:
            self._console.print_job_start(name, environment.describe(), job.name)
            job_env = base_env.extend({
                "FLOWCI_JOB": name,
                "FLOWCI_WORKSPACE": environment.map_path(environment.workspace),
            })
            return self.executor.run_job(name, job, environment, job_env, cancel)
        finally:
            self._release(environment)

    def _release(self, environment: Environment) -> None:
        # The job already has its result; a failed teardown is only reported.
        try:
            environment.close()
        except Exception as e:
            self._console.print_exception(e)

    def run(
        self,
        spec: PipelineSpec,
        base_env: EnvChain,
        cancel: Optional[threading.Event] = None,
    ) -> Dict[str, JobResult]:
        cancel = cancel if cancel is not None else threading.Event()
        workers = self.max_workers or len(spec.jobs)
        finished: Dict[str, JobResult] = {}

        with ThreadPoolExecutor(max_workers=max(1, workers), thread_name_prefix="flowci-job") as pool:
            futures: Dict[Future, str] = {
                pool.submit(self._run_one, name, job, spec, base_env, cancel): name
                for name, job in spec.jobs.items()
            }

            try:
                for future in as_completed(futures):
                    name = futures[future]
                    try:
                        result = future.result()
                    except Exception as e:
                        # Contain anything unexpected to the job that raised it.
                        self._console.print_exception(e)
                        result = _setup_failure(name, f"internal error: {e}")
                    finished[name] = result
                    self._console.print_job_result(result)
            except KeyboardInterrupt:
                # Let running steps finish; nothing new starts.
                cancel.set()
                raise

        # Declared order, not completion order.
        return {name: finished[name] for name in spec.jobs}
