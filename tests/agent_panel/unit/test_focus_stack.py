"""Unit tests for the focus stack and its JSON persistence."""

import json
from datetime import datetime, timedelta, timezone

import pytest

from agent_panel.errors import ApError, ErrorCode
from agent_panel.models.focus import FocusEntry, FocusKind
from agent_panel.services.focus_stack import FocusHistoryStore, FocusStack

NOW = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)


def window_entry(window_id: int, captured_at: datetime = NOW, workspace: str = "1") -> FocusEntry:
    return FocusEntry(FocusKind.WINDOW, "com.apple.Terminal", workspace, captured_at, window_id=window_id)


def app_entry(bundle_id: str, captured_at: datetime = NOW) -> FocusEntry:
    return FocusEntry(FocusKind.APP, bundle_id, "2", captured_at)


class Clock:
    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


class TestFocusEntry:
    """Tests for entry validation and serialization."""

    def test_window_entries_need_an_id(self):
        with pytest.raises(ValueError):
            FocusEntry(FocusKind.WINDOW, "com.apple.Terminal", "1", NOW)

    def test_identity(self):
        assert window_entry(10).identity == 10
        assert app_entry("com.apple.finder").identity == "com.apple.finder"

    def test_naive_timestamps_are_read_as_utc(self):
        entry = FocusEntry.from_dict({
            "kind": "app",
            "app_bundle_id": "com.apple.finder",
            "workspace": "2",
            "captured_at": "2026-03-01T09:00:00",
        })
        assert entry.captured_at == NOW


class TestFocusStack:
    """Tests for bounds, pruning and ordering."""

    def test_lifo_order(self):
        stack = FocusStack(clock=Clock())
        stack.push(window_entry(1))
        stack.push(window_entry(2))

        assert stack.peek().window_id == 2
        assert stack.peek_and_pop().window_id == 2
        assert stack.peek_and_pop().window_id == 1
        assert stack.peek_and_pop() is None

    def test_depth_is_bounded(self):
        stack = FocusStack(max_depth=3, clock=Clock())
        for window_id in range(1, 6):
            stack.push(window_entry(window_id))

        assert len(stack) == 3
        assert [e.window_id for e in stack.entries()] == [3, 4, 5]

    def test_duplicate_top_is_skipped(self):
        stack = FocusStack(clock=Clock())

        assert stack.push(window_entry(1))
        assert not stack.push(window_entry(1, workspace="3"))
        assert stack.push(app_entry("com.apple.finder"))
        assert not stack.push(app_entry("com.apple.finder"))
        assert stack.push(window_entry(1))
        assert len(stack) == 3

    def test_stale_entries_are_pruned_on_access(self):
        clock = Clock()
        stack = FocusStack(max_age=timedelta(days=7), clock=clock)
        stack.push(window_entry(1, captured_at=NOW - timedelta(days=8)))
        stack.push(window_entry(2, captured_at=NOW - timedelta(days=1)))

        assert stack.peek().window_id == 2
        assert len(stack) == 1

        clock.now = NOW + timedelta(days=7)
        assert stack.peek_and_pop() is None

    def test_prune_returns_removed_count(self):
        stack = FocusStack(
            max_age=timedelta(hours=1),
            clock=Clock(),
            entries=[window_entry(1, NOW - timedelta(hours=2)), window_entry(2, NOW)],
        )

        assert stack.prune() == 1
        assert stack.prune(now=NOW + timedelta(hours=2)) == 1
        assert len(stack) == 0

    def test_initial_entries_respect_depth(self):
        stack = FocusStack(max_depth=2, clock=Clock(), entries=[window_entry(i) for i in range(1, 5)])
        assert [e.window_id for e in stack.entries()] == [3, 4]

    @pytest.mark.parametrize("kwargs", [{"max_depth": 0}, {"max_age": timedelta(0)}])
    def test_invalid_bounds(self, kwargs):
        with pytest.raises(ValueError):
            FocusStack(**kwargs)

    @pytest.mark.asyncio
    async def test_pop_first_valid_discards_invalid_entries(self):
        stack = FocusStack(clock=Clock())
        for window_id in (1, 2, 3):
            stack.push(window_entry(window_id))

        checked = []

        async def is_valid(entry: FocusEntry) -> bool:
            checked.append(entry.window_id)
            return entry.window_id == 1

        restored = await stack.pop_first_valid(is_valid)

        assert restored.window_id == 1
        assert checked == [3, 2, 1]
        assert len(stack) == 0

    @pytest.mark.asyncio
    async def test_pop_first_valid_on_empty_stack(self):
        async def never(entry):
            raise AssertionError("validator should not run")

        assert await FocusStack(clock=Clock()).pop_first_valid(never) is None

    @pytest.mark.asyncio
    async def test_entry_stays_when_validator_raises(self, tmp_path):
        """An entry that could not be judged is kept, in memory and on disk."""
        store = FocusHistoryStore(tmp_path / "focus-history.json")
        stack = FocusStack(store=store, clock=Clock())
        stack.push(window_entry(1))
        stack.push(window_entry(2))

        async def unreachable(entry: FocusEntry) -> bool:
            raise ApError(ErrorCode.COMMAND_FAILED, "window manager unresponsive")

        with pytest.raises(ApError):
            await stack.pop_first_valid(unreachable)

        assert [e.window_id for e in stack.entries()] == [1, 2]
        assert [e.window_id for e in store.load()] == [1, 2]

    @pytest.mark.asyncio
    async def test_judged_entries_are_removed_from_disk(self, tmp_path):
        store = FocusHistoryStore(tmp_path / "focus-history.json")
        stack = FocusStack(store=store, clock=Clock())
        for window_id in (1, 2, 3):
            stack.push(window_entry(window_id))

        async def is_valid(entry: FocusEntry) -> bool:
            return entry.window_id == 2

        restored = await stack.pop_first_valid(is_valid)

        assert restored.window_id == 2
        assert [e.window_id for e in store.load()] == [1]

    def test_clear(self):
        stack = FocusStack(clock=Clock())
        stack.push(window_entry(1))
        stack.clear()
        assert stack.peek() is None


class TestFocusHistoryStore:
    """Tests for the versioned history file."""

    def test_missing_file_loads_empty(self, tmp_path):
        assert FocusHistoryStore(tmp_path / "missing.json").load() == []

    def test_stack_survives_reopen(self, tmp_path):
        store = FocusHistoryStore(tmp_path / "state" / "focus-history.json")
        stack = FocusStack(store=store, clock=Clock())
        stack.push(window_entry(10))
        stack.push(app_entry("com.apple.finder"))

        reopened = FocusStack.open(store, clock=Clock())

        assert reopened.entries() == stack.entries()
        data = json.loads(store.path.read_text())
        assert data["version"] == 1
        assert [item["kind"] for item in data["stack"]] == ["window", "app"]

    def test_pop_is_persisted(self, tmp_path):
        store = FocusHistoryStore(tmp_path / "focus-history.json")
        stack = FocusStack(store=store, clock=Clock())
        stack.push(window_entry(10))
        stack.push(window_entry(11))

        stack.peek_and_pop()

        assert [e.window_id for e in store.load()] == [10]

    def test_no_temp_files_left_behind(self, tmp_path):
        store = FocusHistoryStore(tmp_path / "focus-history.json")
        store.save([window_entry(1)])
        assert [p.name for p in tmp_path.iterdir()] == ["focus-history.json"]

    @pytest.mark.parametrize("content", [
        "{not json",
        json.dumps({"version": 99, "stack": []}),
        json.dumps([1, 2, 3]),
        json.dumps({"version": 1, "stack": [{"kind": "window", "workspace": "1"}]}),
        json.dumps({"version": 1, "stack": [{"kind": "tab", "app_bundle_id": "x", "workspace": "1",
                                             "captured_at": "2026-03-01T09:00:00+00:00"}]}),
        json.dumps({"version": 1, "stack": [1]}),
        json.dumps({"version": 1, "stack": ["window"]}),
        json.dumps({"version": 1, "stack": {"kind": "window"}}),
        json.dumps({"version": 1, "stack": "window"}),
    ])
    def test_corrupt_history_is_state_load_failed(self, tmp_path, content):
        path = tmp_path / "focus-history.json"
        path.write_text(content)

        with pytest.raises(ApError) as exc_info:
            FocusHistoryStore(path).load()

        assert exc_info.value.code == ErrorCode.STATE_LOAD_FAILED

    def test_unwritable_location_is_state_save_failed(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("")
        store = FocusHistoryStore(blocker / "focus-history.json")

        with pytest.raises(ApError) as exc_info:
            store.save([window_entry(1)])

        assert exc_info.value.code == ErrorCode.STATE_SAVE_FAILED
