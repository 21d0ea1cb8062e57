from __future__ import annotations

import sys
import threading
from pathlib import Path

import click

from flowci.actions import default_registry
from flowci.engine import Engine
from flowci.errors import StructuralError
from flowci.git_facts.git import describe_repo
from flowci.loader import load_pipeline
from flowci.model import TriggerKind
from flowci.ui.console import Console, get_console, set_console

EXIT_FAILURE = 1
EXIT_STRUCTURAL = 2
EXIT_INTERRUPTED = 130

DEFAULT_WORKFLOWS = ("flowci.yml", "flowci.yaml")


def find_workflow_files(root: Path = Path(".")) -> list[Path]:
    """
    Find workflow files under `root`.

    Returns:
        flowci.yml / flowci.yaml if present, otherwise every
        .github/workflows/*.yml and *.yaml file
    """
    defaults = [root / name for name in DEFAULT_WORKFLOWS if (root / name).exists()]
    if defaults:
        return defaults

    workflows_dir = root / ".github" / "workflows"
    if not workflows_dir.is_dir():
        return []
    found = list(workflows_dir.glob("*.yml")) + list(workflows_dir.glob("*.yaml"))
    return sorted(found)


def discover_workflow(workflow_arg: str | None) -> Path:
    """
    Discover workflow file from argument or default.

    Raises:
        SystemExit: If workflow cannot be found or multiple workflows exist
    """
    console = get_console()

    if workflow_arg:
        workflow_path = Path(workflow_arg)
        if not workflow_path.exists():
            console.print_error(
                "Workflow file not found",
                f"Could not find workflow file: {workflow_arg}",
                suggestion="Create a workflow file or specify a different path:\n  flowci run --workflow ci.yml",
            )
            sys.exit(EXIT_FAILURE)
        return workflow_path

    workflow_files = find_workflow_files()

    if len(workflow_files) == 0:
        console.print_error(
            "No workflow file found",
            "Could not find any workflow files.",
            details=[
                "Looked for:",
                "  flowci.yml / flowci.yaml",
                "  .github/workflows/*.yml",
            ],
            suggestion="Specify a workflow explicitly:\n  flowci run --workflow ci.yml",
        )
        sys.exit(EXIT_FAILURE)

    if len(workflow_files) > 1:
        file_list = "\n".join(f"  {f}" for f in workflow_files)
        console.print_error(
            "Multiple workflow files found",
            "Found multiple workflow files. Please specify which one to use:",
            details=[file_list],
            suggestion=f"Specify a workflow explicitly:\n  flowci run --workflow {workflow_files[0]}",
        )
        sys.exit(EXIT_FAILURE)

    return workflow_files[0]


def _load_or_exit(workflow_path: Path):
    console = get_console()
    try:
        return load_pipeline(workflow_path)
    except StructuralError as e:
        console.print_error(
            "Invalid workflow",
            e.message,
            details=[f"at {e.location}"] if e.location else None,
        )
        sys.exit(EXIT_STRUCTURAL)


@click.group()
@click.option(
    "--debug",
    is_flag=True,
    default=False,
    help="Enable debug mode (show stack traces and detailed output)",
)
@click.option("--verbose", "-v", is_flag=True, default=False, help="Echo the output of every step")
def cli(debug, verbose):
    """flowci: run declarative CI workflows locally."""
    set_console(Console(debug=debug, verbose=verbose))


@cli.command()
@click.option("--workflow", default=None, help="Workflow file path (defaults to flowci.yml or .github/workflows/*.yml)")
@click.option(
    "--event",
    default=TriggerKind.PUSH.value,
    show_default=True,
    help="Incoming event kind (push, pull_request, workflow_dispatch)",
)
@click.option("--workspace", default=".", show_default=True, help="Directory the jobs run in")
@click.option("--workers", default=None, type=int, help="Max jobs running at once (default: all)")
@click.option("--runner-label", "runner_labels", multiple=True, help="Extra runs-on label this host satisfies")
@click.option("--action", "action_bindings", multiple=True, metavar="ID=COMMAND", help="Bind an action id to a shell command")
def run(workflow, event, workspace, workers, runner_labels, action_bindings):
    """Evaluate a workflow against an event and run the activated jobs."""
    console = get_console()
    workflow_path = discover_workflow(workflow)
    spec = _load_or_exit(workflow_path)

    actions = default_registry()
    for binding in action_bindings:
        try:
            actions.register_command(binding)
        except ValueError as e:
            raise click.BadParameter(str(e), param_hint="--action")

    cancel = threading.Event()
    try:
        engine = Engine(
            workspace=workspace,
            actions=actions,
            runner_labels=runner_labels,
            max_workers=workers,
        )
        console.print_debug(
            f"workspace={engine.workspace} workers={workers or len(spec.jobs)} "
            f"runner_labels={list(runner_labels)} actions={actions.names()}"
        )
        console.print_run_started(
            pipeline=spec.name or workflow_path.stem,
            workflow=f"{workflow_path.name} ({describe_repo(workspace)})",
            event=event,
            job_count=len(spec.jobs),
        )
        result = engine.evaluate(spec, event, cancel=cancel)
    except KeyboardInterrupt:
        cancel.set()
        console.print_info("\nInterrupted by user")
        sys.exit(EXIT_INTERRUPTED)
    except Exception as e:
        console.print_exception(e)
        sys.exit(EXIT_FAILURE)

    if result is None:
        return

    console.print_results(result)
    if not result.succeeded:
        console.print_failure_details(result)
        sys.exit(EXIT_FAILURE)


@cli.command()
@click.option("--workflow", default=None, help="Workflow file path (defaults to flowci.yml or .github/workflows/*.yml)")
def validate(workflow):
    """Check a workflow file for structural errors."""
    console = get_console()
    workflow_path = discover_workflow(workflow)
    spec = _load_or_exit(workflow_path)

    console.print_header(f"Valid: {workflow_path}")
    console.print_info(f"Pipeline: {spec.name or workflow_path.stem}")
    console.print_info(f"Triggers: {', '.join(sorted(t.value for t in spec.triggers))}")
    for name, job in spec.jobs.items():
        target = f"container {job.container.image}" if job.container else f"runs-on {', '.join(job.labels)}"
        title = f" ({job.name})" if job.name else ""
        console.print_info(f"  {name}{title}: {len(job.steps)} step(s), {target}")


@cli.command()
@click.option("--host", default="127.0.0.1", show_default=True)
@click.option("--port", default=8080, type=int, show_default=True)
@click.option("--workflow", default=None, help="Workflow file path (defaults to FLOWCI_WORKFLOW)")
def serve(host, port, workflow):
    """Serve the webhook API that evaluates the workflow on incoming events."""
    import uvicorn

    from flowci.cloud import settings
    from flowci.cloud.main import create_app

    workflow_path = discover_workflow(workflow or settings.WORKFLOW_PATH)
    spec = _load_or_exit(workflow_path)
    engine = Engine(
        workspace=settings.WORKSPACE,
        runner_labels=settings.RUNNER_LABELS,
        max_workers=settings.MAX_WORKERS,
    )
    app = create_app(spec, engine, settings.DATABASE_URL)
    uvicorn.run(app, host=host, port=port, log_level="info")


if __name__ == "__main__":
    cli()
