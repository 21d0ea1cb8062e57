# git.py
# Small, focused wrapper around the Git CLI.
# The CLI uses it to label a run with the repository and ref it ran on.

from __future__ import annotations

import subprocess
from pathlib import Path
from typing import Optional


def _git(args: list[str], cwd: Optional[str] = None) -> str:
    """
    Execute a git command and return its stdout as a clean string.

    Args:
        args: List of git arguments (e.g. ["status", "--porcelain"])
        cwd: Optional working directory in which to run the git command.

    Returns:
        Stdout from the git command with surrounding whitespace removed.

    Raises:
        subprocess.CalledProcessError: git exited non-zero
        FileNotFoundError: git is not installed
    """
    out = subprocess.check_output(
        ["git", *args],
        cwd=cwd,
        text=True,
        stderr=subprocess.DEVNULL,
    )
    return out.strip()


def get_remote_url(remote: str = "origin", cwd: Optional[str] = None) -> str:
    return _git(["remote", "get-url", remote], cwd=cwd)


def get_current_ref(cwd: Optional[str] = None) -> str:
    """
    Current branch name, or the commit SHA when HEAD is detached.
    """
    ref = _git(["rev-parse", "--abbrev-ref", "HEAD"], cwd=cwd)
    if ref == "HEAD":
        return _git(["rev-parse", "HEAD"], cwd=cwd)
    return ref


def describe_repo(cwd: Optional[str] = None) -> str:
    """Best-effort label for display: `<repo>@<ref>`, or the directory name outside a checkout."""
    try:
        url = get_remote_url("origin", cwd=cwd)
        name = url.rstrip("/").split("/")[-1].replace(".git", "")
    except (subprocess.CalledProcessError, FileNotFoundError):
        name = Path(cwd or ".").resolve().name
    try:
        return f"{name}@{get_current_ref(cwd=cwd)}"
    except (subprocess.CalledProcessError, FileNotFoundError):
        return name
