"""Console output formatting utilities for flowci."""

from __future__ import annotations

import sys
import threading
from typing import Iterable, Optional

from ..results import JobResult, JobStatus, PipelineResult


class Console:
    """Centralized console output formatting."""

    def __init__(self, debug: bool = False, verbose: bool = False):
        """
        Initialize console formatter.

        Args:
            debug: If True, show detailed output including stack traces
            verbose: If True, echo the output of every step, not just failures
        """
        self.debug = debug
        self.verbose = verbose
        # Jobs print from worker threads; keep each message's lines together.
        self._lock = threading.Lock()

    def _emit(self, *lines: str, err: bool = False) -> None:
        stream = sys.stderr if err else sys.stdout
        with self._lock:
            for line in lines:
                print(line, file=stream)

    def print_header(self, title: str) -> None:
        """Print a section header."""
        self._emit(f"\n{title}", "-" * len(title))

    def print_run_started(
        self,
        pipeline: str,
        workflow: str,
        event: str,
        job_count: int,
    ) -> None:
        """Print run start information."""
        self._emit(
            "\nRUN STARTED",
            f"Pipeline: {pipeline}",
            f"Workflow: {workflow}",
            f"Event: {event}",
            f"Jobs: {job_count}",
            "",
        )

    def print_not_activated(self, event: str, triggers: Iterable[str]) -> None:
        self._emit(f"NOT ACTIVATED: event '{event}' is not one of {sorted(triggers)}")

    def print_job_start(self, name: str, environment: str, title: Optional[str] = None) -> None:
        """Print job start message; `title` is the job's display name, if it has one."""
        label = f" ({title})" if title else ""
        self._emit(f"[{name}] JOB STARTED{label} on {environment}")

    def print_step(self, job: str, index: int, name: str) -> None:
        """Print step start message."""
        self._emit(f"[{job}] ▶ {index}: {name}")

    def print_step_output(self, job: str, output: str) -> None:
        if not self.verbose or not output:
            return
        self._emit(*(f"[{job}]   {line}" for line in output.rstrip().splitlines()))

    def print_step_failure(
        self,
        job: str,
        name: str,
        reason: str,
        exit_code: Optional[int] = None,
        hint: Optional[str] = None,
    ) -> None:
        """
        Print step failure message.

        Args:
            job: Job name
            name: Step name
            reason: Failure reason/error message
            exit_code: Optional exit code
            hint: Optional hint for user
        """
        lines = [f"[{job}] STEP FAILED: {name}"]
        if exit_code is not None:
            lines.append(f"[{job}] Exit code: {exit_code}")
        if hint:
            lines.append(f"[{job}] Hint: {hint}")
        if reason:
            if self.debug:
                lines.append(f"[{job}] Error details: {reason}")
            else:
                lines.append(f"[{job}] Error: {reason.splitlines()[0]}")
        self._emit(*lines)

    def print_job_result(self, result: JobResult) -> None:
        mark = {"success": "✓", "failed": "✗", "cancelled": "⊘"}[result.status.value]
        self._emit(f"[{result.name}] {mark} {result.describe()}")

    def print_results(self, result: PipelineResult) -> None:
        """Print final results summary."""
        lines = ["", "=" * 40, "RESULTS", "=" * 40]
        for name, job in result.jobs.items():
            status = job.describe().upper()
            lines.append(f"  {name}: {status} ({len(job.outcomes)} step(s))")
        lines.append(f"OVERALL: {result.overall.value.upper()}")
        self._emit(*lines)

    def print_failure_details(self, result: PipelineResult) -> None:
        """Per-job failure detail, written to stderr."""
        for job in result.failed_jobs():
            if job.status is JobStatus.CANCELLED:
                self._emit(f"\nJOB CANCELLED: {job.name}", err=True)
                continue
            failure = job.failure
            lines = [f"\nJOB FAILED: {job.name}"]
            if failure is not None:
                lines.append(f"Step {failure.index}: {failure.name}")
                if failure.exit_code is not None:
                    lines.append(f"Exit code: {failure.exit_code}")
                if failure.error:
                    lines.append(f"Error: {failure.error}")
                if failure.output:
                    lines.append("Output (tail):")
                    lines.extend(f"  {line}" for line in failure.output.rstrip().splitlines()[-20:])
            self._emit(*lines, err=True)

    def print_error(
        self,
        title: str,
        message: str,
        details: Optional[list[str]] = None,
        suggestion: Optional[str] = None,
    ) -> None:
        """
        Print structured error message.

        Args:
            title: Error title
            message: Main error message
            details: Optional list of detail lines
            suggestion: Optional suggestion for user
        """
        lines = [f"\nERROR: {title}", message]
        if details:
            lines.extend(f"  {detail}" for detail in details)
        if suggestion:
            lines.append(f"\n{suggestion}")
        self._emit(*lines, err=True)

    def print_exception(self, exc: Exception) -> None:
        """Print exception, with full traceback only in debug mode."""
        if self.debug:
            import traceback
            with self._lock:
                traceback.print_exception(type(exc), exc, exc.__traceback__)
        else:
            self._emit(f"Error: {exc}", err=True)

    def print_info(self, message: str) -> None:
        """Print informational message."""
        self._emit(message)

    def print_debug(self, message: str) -> None:
        """Print debug message (only if debug mode enabled)."""
        if self.debug:
            self._emit(f"[DEBUG] {message}", err=True)


# Global console instance (will be initialized by CLI)
_console: Optional[Console] = None


def get_console() -> Console:
    """Get the global console instance."""
    global _console
    if _console is None:
        _console = Console()
    return _console


def set_console(console: Console) -> None:
    """Set the global console instance."""
    global _console
    _console = console
