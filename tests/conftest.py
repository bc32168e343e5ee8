"""Shared pytest fixtures for the startset test suite."""

from __future__ import annotations

from pathlib import Path
from typing import Callable, Iterator

import pytest

from startset.config import Settings, override_settings
from startset.engine import ExecutionEngine
from startset.layout import ScriptLayout
from startset.models import PayloadClass
from startset.processors import ProcessorSet
from startset.security.access import AccessValidator
from tests.doubles import FakeNetwork, StubProcessor, trusted_owner


# ---------------------------------------------------------------------------
# Settings / layout
# ---------------------------------------------------------------------------


@pytest.fixture
def script_root(tmp_path: Path) -> Path:
    return tmp_path / "ManagedScripts"


@pytest.fixture
def settings(script_root: Path) -> Iterator[Settings]:
    s = Settings(
        paths={"script_root": str(script_root)},
        preferences={"wait_for_network": False, "script_timeout": 30},
        logging={"level": "debug", "format": "console"},
    )
    override_settings(s)
    yield s
    override_settings(None)


@pytest.fixture
def layout(settings: Settings) -> ScriptLayout:
    lay = ScriptLayout(settings.paths.script_root)
    lay.ensure()
    return lay


@pytest.fixture
def make_script(layout: ScriptLayout) -> Callable[..., Path]:
    def _make(payload_class: PayloadClass, name: str, content: str = "echo hello\n") -> Path:
        directory = layout.payload_dir(payload_class)
        directory.mkdir(parents=True, exist_ok=True)
        path = directory / name
        path.write_text(content, encoding="utf-8")
        return path

    return _make


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


@pytest.fixture
def stub_processor() -> StubProcessor:
    return StubProcessor()


@pytest.fixture
def fake_network() -> FakeNetwork:
    return FakeNetwork(connected=True)


@pytest.fixture
def engine(
    settings: Settings,
    layout: ScriptLayout,
    stub_processor: StubProcessor,
    fake_network: FakeNetwork,
) -> ExecutionEngine:
    return ExecutionEngine(
        settings,
        processors=ProcessorSet([stub_processor]),
        access=AccessValidator(owner_resolver=trusted_owner),
        network=fake_network,
    )
