"""Close, exit and focus-restore scenarios against the in-memory AeroSpace."""

import json

import pytest

from agent_panel.errors import ApError, CircuitOpenError, CommandTimeoutError, ErrorCode
from agent_panel.models.focus import FocusEntry, FocusKind
from agent_panel.models.geometry import DisplayMode, Rect
from agent_panel.services.chrome_tabs import ChromeTabSnapshot

from tests.agent_panel.fixtures.mock_aerospace import FINDER, TERMINAL, VSCODE


class TestClose:
    """Closing a project workspace."""

    @pytest.mark.asyncio
    async def test_close_restores_previous_window(self, manager, aerospace):
        activated = await manager.activate("demo")

        result = await manager.close("demo")

        assert result.closed_window_ids == sorted([activated.editor_window_id, activated.browser_window_id])
        assert aerospace.windows_in("ap-demo") == []
        assert result.restored_focus.window_id == 10
        assert result.fallback_workspace is None
        assert aerospace.focused_window_id == 10
        assert aerospace.focused_workspace == "1"
        assert result.warnings == []

    @pytest.mark.asyncio
    async def test_close_uses_fresh_listing(self, manager, aerospace):
        """Windows added after activation are closed too."""
        await manager.activate("demo")
        stray = aerospace.add_window(FINDER, "ap-demo", "Downloads")

        result = await manager.close("demo")

        assert stray.window_id in result.closed_window_ids
        assert aerospace.windows_in("ap-demo") == []

    @pytest.mark.asyncio
    async def test_window_close_failure_is_a_warning(self, manager, aerospace):
        activated = await manager.activate("demo")
        aerospace.failing_closes.add(activated.editor_window_id)

        result = await manager.close("demo")

        assert result.closed_window_ids == [activated.browser_window_id]
        assert [w.code for w in result.warnings] == [ErrorCode.COMMAND_FAILED]
        assert [w.window_id for w in aerospace.windows_in("ap-demo")] == [activated.editor_window_id]
        assert result.restored_focus.window_id == 10

    @pytest.mark.asyncio
    async def test_close_empty_workspace(self, manager, aerospace):
        result = await manager.close("demo")

        assert result.closed_window_ids == []
        assert aerospace.aerospace_calls("close") == []

    @pytest.mark.asyncio
    async def test_close_unknown_project(self, manager):
        with pytest.raises(ApError) as exc_info:
            await manager.close("ghost")
        assert exc_info.value.code == ErrorCode.PROJECT_NOT_FOUND


class TestFocusRestore:
    """Focus history and fallback workspace selection."""

    @pytest.mark.asyncio
    async def test_closed_window_falls_back_to_occupied_workspace(self, manager, aerospace, focus_stack):
        await manager.activate("demo")
        del aerospace.windows[10]
        aerospace.add_window(FINDER, "2", "Downloads")

        result = await manager.close("demo")

        assert result.restored_focus is None
        assert result.fallback_workspace == "2"
        assert aerospace.focused_workspace == "2"
        assert len(focus_stack) == 0

    @pytest.mark.asyncio
    async def test_fallback_to_first_non_project_workspace(self, manager, aerospace):
        await manager.activate("demo")
        del aerospace.windows[10]

        result = await manager.close("demo")

        assert result.fallback_workspace == "1"

    @pytest.mark.asyncio
    async def test_fallback_to_configured_workspace(self, manager, aerospace):
        await manager.activate("demo")
        del aerospace.windows[10]
        aerospace.workspaces = ["ap-demo"]

        result = await manager.close("demo")

        assert result.fallback_workspace == "1"
        assert aerospace.focused_workspace == "1"

    @pytest.mark.asyncio
    async def test_failed_fallback_focus_is_a_warning(self, manager, aerospace):
        aerospace.failing_commands["summon-workspace"] = 1

        result = await manager.closer.restore_focus()

        assert result.fallback_workspace == "1"
        assert [w.code for w in result.warnings] == [ErrorCode.WORKSPACE_NOT_FOCUSED]
        assert result.warnings[0].context["cause"] == "commandFailed"

    @pytest.mark.asyncio
    async def test_app_entries_reactivate_the_app(self, manager, aerospace, focus_stack, wall_clock):
        focus_stack.push(FocusEntry(FocusKind.APP, FINDER, "2", wall_clock()))

        entry = await manager.focus_stack_pop()

        assert entry.kind is FocusKind.APP
        assert ("-b", FINDER) in aerospace.calls_to("open")

    @pytest.mark.asyncio
    async def test_stale_entries_are_skipped(self, manager, aerospace, focus_stack, wall_clock):
        focus_stack.push(FocusEntry(FocusKind.WINDOW, TERMINAL, "1", wall_clock(), window_id=10))
        focus_stack.push(FocusEntry(FocusKind.WINDOW, TERMINAL, "2", wall_clock(), window_id=999))

        entry = await manager.focus_stack_pop()

        assert entry.window_id == 10
        assert len(focus_stack) == 0

    @pytest.mark.asyncio
    async def test_expired_entries_are_ignored(self, manager, focus_stack, wall_clock):
        focus_stack.push(FocusEntry(FocusKind.WINDOW, TERMINAL, "1", wall_clock(), window_id=10))
        wall_clock.advance(days=8)

        assert await manager.focus_stack_pop() is None

    @pytest.mark.asyncio
    async def test_history_survives_between_invocations(self, manager, data_paths, config):
        from agent_panel.services.project_manager import open_focus_stack

        await manager.activate("demo")

        reopened = open_focus_stack(config, data_paths)
        assert [e.window_id for e in reopened.entries()] == [10]

    @pytest.mark.parametrize("content", ["{broken", json.dumps({"version": 1, "stack": [1]})])
    def test_corrupt_history_starts_empty(self, config, data_paths, content):
        from agent_panel.services.project_manager import open_focus_stack

        data_paths.focus_history_file.parent.mkdir(parents=True)
        data_paths.focus_history_file.write_text(content)

        assert len(open_focus_stack(config, data_paths)) == 0

    @pytest.mark.asyncio
    async def test_unresponsive_aerospace_keeps_history(self, manager, aerospace, focus_stack, wall_clock):
        """Focus that cannot be checked is kept for the next attempt."""
        focus_stack.push(FocusEntry(FocusKind.WINDOW, TERMINAL, "1", wall_clock(), window_id=10))
        aerospace.timeout_commands.add("list-windows")
        with pytest.raises(CommandTimeoutError):
            await manager.client.list_windows("1")

        with pytest.raises(CircuitOpenError):
            await manager.focus_stack_pop()

        assert len(focus_stack) == 1
        assert [e.window_id for e in focus_stack.entries()] == [10]

    @pytest.mark.asyncio
    async def test_timeout_while_refocusing_keeps_history(self, manager, aerospace, focus_stack, wall_clock):
        focus_stack.push(FocusEntry(FocusKind.WINDOW, TERMINAL, "1", wall_clock(), window_id=10))
        aerospace.timeout_commands.add("focus")

        with pytest.raises(CommandTimeoutError):
            await manager.focus_stack_pop()

        assert len(focus_stack) == 1


class TestExitAndMove:
    """Leaving a project and moving windows into one."""

    @pytest.mark.asyncio
    async def test_exit_keeps_project_windows(self, manager, aerospace):
        activated = await manager.activate("demo")

        result = await manager.exit_to_non_project()

        assert result.restored_focus.window_id == 10
        assert aerospace.focused_workspace == "1"
        assert activated.editor_window_id in aerospace.windows
        assert activated.browser_window_id in aerospace.windows

    @pytest.mark.asyncio
    async def test_exit_without_active_project(self, manager):
        with pytest.raises(ApError) as exc_info:
            await manager.exit_to_non_project()
        assert exc_info.value.code == ErrorCode.WORKSPACE_NOT_FOCUSED

    @pytest.mark.asyncio
    async def test_move_window_to_project(self, manager, aerospace):
        await manager.move_window_to_project(10, "api-server")
        assert aerospace.windows[10].workspace == "ap-api-server"

    @pytest.mark.asyncio
    async def test_move_missing_window(self, manager):
        with pytest.raises(ApError) as exc_info:
            await manager.move_window_to_project(999, "demo")
        assert exc_info.value.code == ErrorCode.MOVE_FAILED

    @pytest.mark.asyncio
    async def test_project_statuses(self, manager):
        await manager.activate("demo")

        statuses = await manager.project_statuses()

        assert [(s.project.id, s.is_open, s.is_active) for s in statuses] == [
            ("demo", True, True),
            ("api-server", False, False),
        ]

    @pytest.mark.asyncio
    async def test_focus_history_most_recent_first(self, manager, focus_stack, wall_clock):
        focus_stack.push(FocusEntry(FocusKind.APP, FINDER, "2", wall_clock()))
        focus_stack.push(FocusEntry(FocusKind.WINDOW, TERMINAL, "1", wall_clock(), window_id=10))

        assert [e.kind for e in manager.focus_history()] == [FocusKind.WINDOW, FocusKind.APP]


class TestSavedState:
    """Browser tabs and window frames saved on close and exit."""

    @pytest.mark.asyncio
    async def test_close_saves_tabs_for_next_launch(self, manager, aerospace, tab_store, wall_clock):
        await manager.activate("api-server")
        aerospace.chrome_tabs["AP:api-server"] = [
            "https://api.example.com/docs",
            "https://ci.example.com/builds/42",
        ]

        result = await manager.close("api-server")

        assert result.warnings == []
        snapshot = tab_store.load("api-server")
        assert snapshot.urls == ["https://api.example.com/docs", "https://ci.example.com/builds/42"]
        assert snapshot.captured_at == wall_clock()

        await manager.activate("api-server")

        chrome_launches = [args for args in aerospace.calls_to("open") if "Google Chrome" in args]
        assert len(chrome_launches) == 2
        assert chrome_launches[-1][-2:] == ("https://api.example.com/docs", "https://ci.example.com/builds/42")
        assert "https://mail.example.com" not in chrome_launches[-1]

    @pytest.mark.asyncio
    async def test_close_without_browser_window_clears_snapshot(self, manager, tab_store, wall_clock):
        tab_store.save("demo", ChromeTabSnapshot(urls=["https://old.example.com"], captured_at=wall_clock()))

        await manager.close("demo")

        assert tab_store.load("demo") is None

    @pytest.mark.asyncio
    async def test_failed_tab_capture_keeps_snapshot(self, manager, aerospace, tab_store, wall_clock):
        await manager.activate("demo")
        tab_store.save("demo", ChromeTabSnapshot(urls=["https://old.example.com"], captured_at=wall_clock()))
        aerospace.osascript_fails = True

        result = await manager.close("demo")

        assert [w.code for w in result.warnings] == [ErrorCode.COMMAND_FAILED]
        assert tab_store.load("demo").urls == ["https://old.example.com"]
        assert aerospace.windows_in("ap-demo") == []

    @pytest.mark.asyncio
    async def test_close_saves_frames_for_next_activation(self, manager, aerospace, position_store):
        await manager.activate("demo")
        aerospace.frames[(VSCODE, "AP:demo")] = (100, 60, 1600, 900)

        await manager.close("demo")

        saved = position_store.load("demo", DisplayMode.WIDE)
        assert saved.editor == Rect(100, 60, 1600, 900)
        assert saved.browser is not None

        calls_before = len(aerospace.calls_to("osascript"))
        result = await manager.activate("demo")

        assert result.layout_applied
        scripts = [args[1] for args in aerospace.calls_to("osascript")[calls_before:]]
        editor_script = next(s for s in scripts if f'"{VSCODE}"' in s)
        assert "{100, 60}" in editor_script
        assert "{1600, 900}" in editor_script

    @pytest.mark.asyncio
    async def test_unreadable_frames_are_not_saved(self, manager, aerospace, position_store):
        await manager.activate("demo")
        aerospace.frames.clear()

        result = await manager.close("demo")

        assert result.warnings == []
        assert position_store.load("demo", DisplayMode.WIDE) is None

    @pytest.mark.asyncio
    async def test_corrupt_layouts_file_is_a_warning(self, manager, data_paths):
        await manager.activate("demo")
        data_paths.window_layouts_file.write_text("{broken")

        result = await manager.close("demo")

        assert [w.code for w in result.warnings] == [ErrorCode.STATE_LOAD_FAILED]
        assert result.closed_window_ids
        assert data_paths.window_layouts_file.read_text() == "{broken"

    @pytest.mark.asyncio
    async def test_exit_saves_frames(self, manager, aerospace, position_store):
        await manager.activate("demo")
        aerospace.frames[(VSCODE, "AP:demo")] = (10, 40, 1200, 1000)

        result = await manager.exit_to_non_project()

        assert result.warnings == []
        assert position_store.load("demo", DisplayMode.WIDE).editor == Rect(10, 40, 1200, 1000)
