# triggers.py
from __future__ import annotations

from typing import Optional, Union

from .model import PipelineSpec, TriggerKind

SUPPORTED_EVENTS = frozenset(kind.value for kind in TriggerKind)


def parse_event(kind: Union[str, TriggerKind, None]) -> Optional[TriggerKind]:
    """Return the TriggerKind for an incoming event name, or None if unsupported."""
    if isinstance(kind, TriggerKind):
        return kind
    if not isinstance(kind, str) or kind not in SUPPORTED_EVENTS:
        return None
    return TriggerKind(kind)


def matches(spec: PipelineSpec, event: Union[str, TriggerKind, None]) -> bool:
    """
    Decide whether `event` activates the pipeline.

    Exact membership in the declared trigger set. Unknown event kinds
    never activate anything and are not an error.
    """
    kind = parse_event(event)
    return kind is not None and kind in spec.triggers
