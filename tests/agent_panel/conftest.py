"""Pytest configuration and shared fixtures for agent_panel tests."""

from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from agent_panel.core.aerospace_client import AeroSpaceClient
from agent_panel.core.circuit_breaker import CircuitBreaker
from agent_panel.core.config import Config, DataPaths
from agent_panel.services.activation import ActivationOrchestrator
from agent_panel.services.chrome_tabs import ChromeTabCapture, ChromeTabStore
from agent_panel.services.close import CloseOrchestrator
from agent_panel.services.focus_stack import FocusHistoryStore, FocusStack
from agent_panel.services.launchers import BrowserLauncher, EditorLauncher
from agent_panel.services.project_manager import ProjectManager
from agent_panel.services.screen import AppleScriptWindowPositioner, SystemProfilerScreenMetrics
from agent_panel.services.window_locator import LocatorTimeouts, WindowLocator
from agent_panel.services.window_positions import WindowPositionRecorder, WindowPositionStore

from tests.agent_panel.fixtures.mock_aerospace import FakeClock, MockAeroSpace


@pytest.fixture
def config_data() -> dict:
    """Parsed config.toml contents with two projects."""
    return {
        "chrome": {"pinned_tabs": ["https://mail.example.com"]},
        "project": [
            {"name": "Demo", "path": "/tmp/demo", "color": "teal"},
            {"name": "API Server", "path": "/srv/api", "remote": "dev@build-box",
             "chrome_default_tabs": ["https://api.example.com/docs"]},
        ],
    }


@pytest.fixture
def config(config_data: dict) -> Config:
    return Config.from_dict(config_data)


@pytest.fixture
def data_paths(tmp_path: Path) -> DataPaths:
    return DataPaths(tmp_path / "data")


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def wall_clock():
    """Controllable timezone-aware wall clock for focus entries."""
    class WallClock:
        def __init__(self):
            self.now = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)

        def __call__(self) -> datetime:
            return self.now

        def advance(self, **kwargs) -> None:
            self.now += timedelta(**kwargs)

    return WallClock()


@pytest.fixture
def aerospace() -> MockAeroSpace:
    """In-memory AeroSpace with a Terminal window focused on workspace 1."""
    mock = MockAeroSpace(workspaces=("1", "2"), focused_workspace="1")
    mock.add_window("com.apple.Terminal", "1", "zsh", window_id=10, focused=True)
    return mock


@pytest.fixture
def breaker(fake_clock: FakeClock) -> CircuitBreaker:
    return CircuitBreaker(cooldown_seconds=30.0, clock=fake_clock)


@pytest.fixture
def client(aerospace: MockAeroSpace, breaker: CircuitBreaker) -> AeroSpaceClient:
    return AeroSpaceClient(aerospace, breaker)


@pytest.fixture
def focus_stack(data_paths: DataPaths, wall_clock) -> FocusStack:
    return FocusStack(store=FocusHistoryStore(data_paths.focus_history_file), clock=wall_clock)


@pytest.fixture
def position_store(data_paths: DataPaths) -> WindowPositionStore:
    return WindowPositionStore(data_paths.window_layouts_file)


@pytest.fixture
def tab_store(data_paths: DataPaths) -> ChromeTabStore:
    return ChromeTabStore(data_paths.chrome_tabs_dir)


@pytest.fixture
def manager(
    config, client, aerospace, data_paths, focus_stack, position_store, tab_store, fake_clock, wall_clock,
) -> ProjectManager:
    """ProjectManager wired to the in-memory AeroSpace with a fake clock."""
    locator = WindowLocator(client, LocatorTimeouts(), clock=fake_clock, sleep=fake_clock.sleep)
    screen = SystemProfilerScreenMetrics(aerospace)
    positioner = AppleScriptWindowPositioner(aerospace)
    activation = ActivationOrchestrator(
        config,
        client,
        locator,
        editor_launcher=EditorLauncher(aerospace, data_paths),
        browser_launcher=BrowserLauncher(aerospace, config.chrome, tab_store),
        focus_stack=focus_stack,
        screen=screen,
        positioner=positioner,
        position_store=position_store,
        clock=fake_clock,
        sleep=fake_clock.sleep,
        now=wall_clock,
    )
    closer = CloseOrchestrator(
        config,
        client,
        aerospace,
        focus_stack,
        positions=WindowPositionRecorder(position_store, screen, positioner, config.layout),
        tab_capture=ChromeTabCapture(aerospace),
        tab_store=tab_store,
        now=wall_clock,
    )
    return ProjectManager(config, client, activation, closer, focus_stack)
