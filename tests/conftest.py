from __future__ import annotations

import textwrap

import pytest

from flowci.engine import Engine
from flowci.loader import parse_pipeline
from flowci.ui.console import Console

from tests.fakes import FakeProvisioner


@pytest.fixture
def console() -> Console:
    return Console()


@pytest.fixture
def make_spec():
    def _make(text: str):
        return parse_pipeline(textwrap.dedent(text))
    return _make


@pytest.fixture
def fake_engine(tmp_path, console):
    """Factory for an Engine whose jobs run in FakeEnvironments."""
    def _make(**kwargs):
        provisioner = FakeProvisioner(tmp_path, **kwargs)
        engine = Engine(workspace=tmp_path, provisioner=provisioner, console=console)
        return engine, provisioner
    return _make
