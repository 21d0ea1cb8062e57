# engine.py
from __future__ import annotations

import threading
from pathlib import Path
from typing import Iterable, Optional, Union

from .actions import ActionRegistry, default_registry
from .context import EnvChain
from .environments.provision import Provisioner
from .executor import StepExecutor
from .model import PipelineSpec, TriggerKind
from .results import PipelineResult, aggregate
from .scheduler import JobScheduler
from .triggers import matches, parse_event
from .ui.console import Console, get_console


class Engine:
    """
    Evaluates a pipeline against an incoming event.

    Args:
        workspace: directory the jobs run in
        actions: registry of named actions (defaults to the built-ins)
        runner_labels: extra `runs-on` labels this host satisfies
        max_workers: cap on concurrently running jobs (default: one per job)
        console: output sink (defaults to the global console)
    """

    def __init__(
        self,
        *,
        workspace: Union[str, Path] = ".",
        actions: Optional[ActionRegistry] = None,
        runner_labels: Iterable[str] = (),
        max_workers: Optional[int] = None,
        console: Optional[Console] = None,
        provisioner: Optional[Provisioner] = None,
    ):
        self.workspace = Path(workspace).resolve()
        self.console = console
        self.provisioner = provisioner or Provisioner(self.workspace, runner_labels=runner_labels)
        self.executor = StepExecutor(actions if actions is not None else default_registry(), console=console)
        self.scheduler = JobScheduler(
            self.provisioner,
            self.executor,
            max_workers=max_workers,
            console=console,
        )

    @property
    def _console(self) -> Console:
        return self.console or get_console()

    def base_env(self, spec: PipelineSpec, event: TriggerKind) -> EnvChain:
        builtins = EnvChain({
            "CI": "true",
            "FLOWCI": "true",
            "FLOWCI_EVENT_NAME": event.value,
        })
        return builtins.extend(spec.env)

    def evaluate(
        self,
        spec: PipelineSpec,
        event: Union[str, TriggerKind],
        *,
        cancel: Optional[threading.Event] = None,
    ) -> Optional[PipelineResult]:
        """
        Run the pipeline if `event` activates it.

        Returns None when the pipeline is not activated (no job runs);
        otherwise the aggregated PipelineResult.
        """
        if not matches(spec, event):
            self._console.print_not_activated(
                getattr(event, "value", event),
                (t.value for t in spec.triggers),
            )
            return None

        kind = parse_event(event)
        results = self.scheduler.run(spec, self.base_env(spec, kind), cancel)
        return aggregate(results, name=spec.name, event=kind.value)


def evaluate(
    spec: PipelineSpec,
    event: Union[str, TriggerKind],
    *,
    cancel: Optional[threading.Event] = None,
    **engine_options,
) -> Optional[PipelineResult]:
    """Convenience wrapper: Engine(**engine_options).evaluate(spec, event)."""
    return Engine(**engine_options).evaluate(spec, event, cancel=cancel)
