# loader.py
from __future__ import annotations

import re
from pathlib import Path
from typing import Any, Optional, Sequence, Union

import yaml
from pydantic import ValidationError
from yaml.constructor import ConstructorError

from .errors import StructuralError
from .model import PipelineSpec

# ----------------------------------------------------------------------
# YAML flavour
# ----------------------------------------------------------------------
# YAML 1.1 turns `on`, `off`, `yes` and `no` into booleans, which would
# swallow the `on:` trigger key. Only true/false are booleans here.

_BOOL_TAG = "tag:yaml.org,2002:bool"
_MERGE_TAG = "tag:yaml.org,2002:merge"


class WorkflowYAMLLoader(yaml.SafeLoader):
    """SafeLoader without yes/no/on/off booleans and with duplicate-key checks."""

    def construct_mapping(self, node, deep=False):
        if isinstance(node, yaml.MappingNode):
            seen = {}
            for key_node, _value_node in node.value:
                if not isinstance(key_node, yaml.ScalarNode) or key_node.tag == _MERGE_TAG:
                    continue
                if key_node.value in seen:
                    raise ConstructorError(
                        "while constructing a mapping",
                        node.start_mark,
                        f"found duplicate key {key_node.value!r}",
                        key_node.start_mark,
                    )
                seen[key_node.value] = key_node.start_mark
        return super().construct_mapping(node, deep=deep)


WorkflowYAMLLoader.yaml_implicit_resolvers = {
    first: [(tag, regexp) for tag, regexp in resolvers if tag != _BOOL_TAG]
    for first, resolvers in yaml.SafeLoader.yaml_implicit_resolvers.items()
}
WorkflowYAMLLoader.add_implicit_resolver(
    _BOOL_TAG,
    re.compile(r"^(?:true|True|TRUE|false|False|FALSE)$"),
    list("tTfF"),
)


# ----------------------------------------------------------------------
# Helpers
# ----------------------------------------------------------------------

def _format_loc(loc: Sequence[Union[str, int]]) -> str:
    out = ""
    for part in loc:
        if isinstance(part, int):
            out += f"[{part}]"
        else:
            out += f".{part}" if out else str(part)
    return out


def _structural_from_validation(err: ValidationError, source: Optional[str]) -> StructuralError:
    problems = []
    first_loc = None
    for item in err.errors():
        loc = _format_loc(item.get("loc", ()))
        if first_loc is None:
            first_loc = loc or None
        msg = item.get("msg", "invalid value")
        problems.append(f"{loc}: {msg}" if loc else msg)
    return StructuralError(
        message="; ".join(problems),
        location=first_loc,
        source=source,
    )


# ----------------------------------------------------------------------
# Public API
# ----------------------------------------------------------------------

def pipeline_from_mapping(data: Any, *, source: Optional[str] = None) -> PipelineSpec:
    """
    Validate an already-parsed document and build a PipelineSpec.

    Raises:
      StructuralError: unknown field, bad trigger kind, empty step list, ...
    """
    if not isinstance(data, dict):
        raise StructuralError(
            message=f"expected a mapping at the top level, got {type(data).__name__}",
            source=source,
        )

    # Documents parsed by a plain YAML 1.1 loader carry `on:` as True.
    if any(k is True for k in data) and "on" not in data:
        data = {("on" if k is True else k): v for k, v in data.items()}

    try:
        return PipelineSpec.model_validate(data)
    except ValidationError as e:
        raise _structural_from_validation(e, source) from None


def parse_pipeline(text: str, *, source: Optional[str] = None) -> PipelineSpec:
    """Parse workflow YAML text into a PipelineSpec. Nothing partial is returned on failure."""
    try:
        data = yaml.load(text, Loader=WorkflowYAMLLoader)
    except yaml.MarkedYAMLError as e:
        mark = e.problem_mark or e.context_mark
        location = f"line {mark.line + 1}, column {mark.column + 1}" if mark else None
        problem = e.problem or e.context or "malformed YAML"
        raise StructuralError(message=problem, location=location, source=source) from None
    except yaml.YAMLError as e:
        raise StructuralError(message=str(e), source=source) from None

    return pipeline_from_mapping(data, source=source)


def load_pipeline(path: Union[str, Path]) -> PipelineSpec:
    """
    Load a workflow from a YAML file path.

    Returns:
      PipelineSpec

    Raises:
      FileNotFoundError: the file does not exist
      StructuralError: the document is malformed
    """
    wf_path = Path(path).expanduser().resolve()
    if not wf_path.exists():
        raise FileNotFoundError(f"Workflow file not found: {wf_path}")
    text = wf_path.read_text(encoding="utf-8")
    return parse_pipeline(text, source=str(wf_path))
