# errors.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional


# ----------------------------------------------------------------------
# Errors
# ----------------------------------------------------------------------

@dataclass
class StructuralError(Exception):
    """
    The workflow document is malformed.

    Raised before any job runs. `location` points at the offending spot,
    either a dotted field path (jobs.build.steps[0].run) or a
    "line N, column M" position in the source text.
    """
    message: str
    location: Optional[str] = None
    source: Optional[str] = None

    def __str__(self) -> str:
        where = ""
        if self.source:
            where = self.source
        if self.location:
            where = f"{where}: {self.location}" if where else self.location
        return f"{where}: {self.message}" if where else self.message


@dataclass
class ProvisioningError(Exception):
    """The execution environment for a job could not be established."""
    job: str
    message: str
    details: dict = field(default_factory=dict)

    def __str__(self) -> str:
        lines = [f"[{self.job}] provisioning failed: {self.message}"]
        for k, v in self.details.items():
            lines.append(f"{k}={v}")
        return "\n".join(lines)


@dataclass
class StepFailure(Exception):
    job: str
    step: str
    index: int
    exit_code: Optional[int]
    message: str = ""
    output: str = ""

    def __str__(self) -> str:
        exit_part = f"exit={self.exit_code}" if self.exit_code is not None else "did not run"
        text = f"[{self.job}] step {self.index} '{self.step}' failed ({exit_part})"
        if self.message:
            text += f": {self.message}"
        return text


TOOL_HINTS = {
    "docker": "Install Docker and ensure the daemon is running.",
    "git": "Install Git or fix PATH.",
    "bash": "Install bash or set defaults.run.shell to sh.",
    "pwsh": "Install PowerShell or choose another shell.",
    "python": "Install Python or fix PATH.",
}
