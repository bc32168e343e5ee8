"""Unit tests — StartSetService (wiring, lifecycle, preference reload)."""

from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from startset.config import Settings
from startset.engine import ExecutionEngine
from startset.triggers.boot import BootTriggerSource
from startset.triggers.logon import LogonTriggerSource
from startset.triggers.markers import MarkerTriggerSource
from startset.triggers.service import StartSetService


def _quiet_service(settings: Settings, engine: ExecutionEngine, **kwargs) -> StartSetService:
    options = {"boot": False, "logon": False, "markers": False, "watch_preferences": False}
    options.update(kwargs)
    return StartSetService(settings, engine, **options)


@pytest.mark.unit
class TestWiring:
    def test_all_sources_by_default(self, settings: Settings, engine: ExecutionEngine) -> None:
        service = StartSetService(settings, engine)
        kinds = [type(s) for s in service.sources]
        assert kinds == [BootTriggerSource, LogonTriggerSource, MarkerTriggerSource]

    def test_sources_can_be_disabled(self, settings: Settings, engine: ExecutionEngine) -> None:
        service = _quiet_service(settings, engine, markers=True)
        assert [type(s) for s in service.sources] == [MarkerTriggerSource]


@pytest.mark.unit
class TestLifecycle:
    async def test_start_and_stop(self, settings: Settings, engine: ExecutionEngine) -> None:
        service = _quiet_service(settings, engine)
        await service.start()
        assert service.dispatcher.is_running
        await service.stop()
        assert not service.dispatcher.is_running

    async def test_stop_is_idempotent(self, settings: Settings, engine: ExecutionEngine) -> None:
        service = _quiet_service(settings, engine)
        await service.start()
        await service.stop()
        await service.stop()

    async def test_run_returns_after_request_stop(
        self, settings: Settings, engine: ExecutionEngine
    ) -> None:
        service = _quiet_service(settings, engine)
        task = asyncio.create_task(service.run())
        await asyncio.sleep(0.1)
        service.request_stop()
        await asyncio.wait_for(task, timeout=5)
        assert not service.dispatcher.is_running

    async def test_marker_source_stops_with_service(
        self, settings: Settings, engine: ExecutionEngine, layout
    ) -> None:
        service = _quiet_service(settings, engine, markers=True)
        await service.start()
        (source,) = service.sources
        assert source.is_running
        await asyncio.wait_for(service.stop(), timeout=5)
        assert not source.is_running


@pytest.mark.unit
class TestReloadPreferences:
    def _write(self, path: Path, text: str) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text)
        return path

    def test_reload_pushes_into_engine(
        self, settings: Settings, engine: ExecutionEngine, tmp_path: Path
    ) -> None:
        config = self._write(
            tmp_path / "config.yaml",
            f"paths:\n  script_root: {settings.paths.script_root}\n"
            "preferences:\n  script_timeout: 77\n  overrides: [again.ps1]\n",
        )
        service = _quiet_service(settings, engine)
        assert service.reload_preferences(config) is True
        assert engine.settings.preferences.script_timeout == 77
        assert engine.settings.preferences.is_overridden("again.ps1")

    def test_bad_file_keeps_previous_settings(
        self, settings: Settings, engine: ExecutionEngine, tmp_path: Path
    ) -> None:
        config = self._write(tmp_path / "config.yaml", "preferences: [broken\n")
        service = _quiet_service(settings, engine)
        assert service.reload_preferences(config) is False
        assert engine.settings is settings

    def test_invalid_value_keeps_previous_settings(
        self, settings: Settings, engine: ExecutionEngine, tmp_path: Path
    ) -> None:
        config = self._write(tmp_path / "config.yaml", "preferences:\n  network_timeout: -5\n")
        service = _quiet_service(settings, engine)
        assert service.reload_preferences(config) is False
        assert engine.settings is settings
