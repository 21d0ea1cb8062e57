# shells.py
from __future__ import annotations

import shlex
from typing import Dict, List, Tuple

# Built-in shells take the script text as their final argument.
BUILTIN_SHELLS: Dict[str, Tuple[str, ...]] = {
    "bash": ("bash", "--noprofile", "--norc", "-eo", "pipefail", "-c"),
    "sh": ("sh", "-e", "-c"),
    "python": ("python", "-c"),
    "pwsh": ("pwsh", "-NoLogo", "-NonInteractive", "-Command"),
    "powershell": ("powershell", "-NoLogo", "-NonInteractive", "-Command"),
    "cmd": ("cmd", "/D", "/E:ON", "/V:OFF", "/S", "/C"),
}

SCRIPT_PLACEHOLDER = "{0}"


def is_builtin(shell: str) -> bool:
    return shell in BUILTIN_SHELLS


def is_valid_shell(shell: str) -> bool:
    """A shell is either a built-in name or a custom template containing {0}."""
    return is_builtin(shell) or SCRIPT_PLACEHOLDER in shell


def builtin_argv(shell: str, script: str) -> List[str]:
    return [*BUILTIN_SHELLS[shell], script]


def template_argv(template: str, script_path: str) -> List[str]:
    """
    Expand a custom shell template such as "perl {0}" or "bash -x {0}".

    Every token containing {0} gets the script path substituted.
    """
    return [tok.replace(SCRIPT_PLACEHOLDER, script_path) for tok in shlex.split(template)]
