# context.py
from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING, Dict, Iterator, List, Mapping, Optional

from .results import StepOutcome

if TYPE_CHECKING:
    from .environments.base import Environment


class EnvChain(Mapping[str, str]):
    """
    Immutable environment-variable mapping.

    `extend()` never touches the receiver: it returns a new layer holding the
    merged view. Earlier layers stay exactly as they were, so a step's
    variables cannot leak back into what earlier steps (or other jobs) saw.
    """

    __slots__ = ("_vars", "_parent", "_depth")

    def __init__(self, base: Optional[Mapping[str, str]] = None, *, _parent: Optional["EnvChain"] = None):
        merged: Dict[str, str] = dict(_parent._vars) if _parent is not None else {}
        merged.update(base or {})
        self._vars = MappingProxyType(merged)
        self._parent = _parent
        self._depth = 0 if _parent is None else _parent._depth + 1

    def extend(self, overrides: Optional[Mapping[str, str]]) -> "EnvChain":
        if not overrides:
            return self
        return EnvChain(overrides, _parent=self)

    @property
    def parent(self) -> Optional["EnvChain"]:
        return self._parent

    @property
    def depth(self) -> int:
        return self._depth

    def __getitem__(self, key: str) -> str:
        return self._vars[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._vars)

    def __len__(self) -> int:
        return len(self._vars)

    def to_dict(self) -> Dict[str, str]:
        return dict(self._vars)

    def __repr__(self) -> str:
        return f"EnvChain(depth={self._depth}, vars={dict(self._vars)!r})"


@dataclass
class RunContext:
    """
    Mutable state of one job execution.

    Owned by the executor thread running that job; never shared.
    """
    job: str
    environment: "Environment"
    env: EnvChain
    outcomes: List[StepOutcome] = field(default_factory=list)

    def push_env(self, overrides: Optional[Mapping[str, str]]) -> EnvChain:
        self.env = self.env.extend(overrides)
        return self.env

    def record(self, outcome: StepOutcome) -> None:
        self.outcomes.append(outcome)
