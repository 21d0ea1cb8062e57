from __future__ import annotations
import os

# Unset: discover flowci.yml or .github/workflows/*.yml like `flowci run`.
WORKFLOW_PATH = os.environ.get("FLOWCI_WORKFLOW") or None
WORKSPACE = os.environ.get("FLOWCI_WORKSPACE", ".")
DATABASE_URL = os.environ.get("FLOWCI_DATABASE_URL", "sqlite:///.flowci/runs.db")
MAX_WORKERS = int(os.environ["FLOWCI_MAX_WORKERS"]) if os.environ.get("FLOWCI_MAX_WORKERS") else None
RUNNER_LABELS = [label.strip() for label in os.environ.get("FLOWCI_RUNNER_LABELS", "").split(",") if label.strip()]
