"""
Unit Tests for the Autosave Row Editor
Tests for: debounce collapsing, per-row keys, in-flight saves, error handling
"""
import asyncio
from typing import Any, Dict, List, Optional, Tuple

import pytest

from vb100.client.autosave import DebouncedScheduler, RowEditor
from vb100.core.exceptions import LockedPeriodError, TransientStoreError, ValidationError

WINDOW = 0.05


class FakeResultsClient:
    """Records calls instead of talking HTTP"""

    def __init__(self, rows: Optional[List[Dict[str, Any]]] = None, locked: bool = False,
                 delay: float = 0.0, error: Optional[Exception] = None):
        self.rows = rows or []
        self.locked = locked
        self.delay = delay
        self.error = error
        self.calls: List[Tuple[str, Dict[str, Any]]] = []
        self.completed: List[Tuple[str, Dict[str, Any]]] = []
        self.snapshots = 0

    async def get_period(self, year: int, month: int, product_id: Optional[str] = None) -> Dict[str, Any]:
        return {
            "meta": {"year": year, "month": month, "locked": self.locked, "snapshotAt": None},
            "rows": [dict(row) for row in self.rows],
        }

    async def upsert_row(self, year: int, month: int, product_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        self.calls.append((product_id, dict(fields)))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        self.completed.append((product_id, dict(fields)))
        return {"productId": product_id, **fields, "grade": "A+", "updatedAt": "2025-06-01T00:00:00Z"}

    async def take_snapshot(self, year: int, month: int) -> Dict[str, Any]:
        self.snapshots += 1
        return {"year": year, "month": month, "locked": True, "snapshotAt": "2025-06-30T00:00:00Z"}


async def _settle(seconds: float = WINDOW * 3) -> None:
    await asyncio.sleep(seconds)


class TestDebounce:
    """Test collapsing of rapid edits"""

    @pytest.mark.asyncio
    async def test_rapid_edits_collapse_into_one_call(self):
        client = FakeResultsClient()
        editor = RowEditor(client, 2025, 6, quiet_window=WINDOW)
        await editor.load()

        editor.edit("P1", "certMiss", "1")
        editor.edit("P1", "certMiss", "12")
        editor.edit("P1", "fps", 4)
        await _settle()

        assert client.calls == [("P1", {"certMiss": "12", "fps": 4})]

    @pytest.mark.asyncio
    async def test_rows_debounce_independently(self):
        client = FakeResultsClient()
        editor = RowEditor(client, 2025, 6, quiet_window=WINDOW)
        await editor.load()

        editor.edit("P1", "fps", 1)
        editor.edit("P2", "fps", 2)
        editor.edit("P1", "certMiss", 3)
        await _settle()

        assert sorted(client.calls) == [("P1", {"fps": 1, "certMiss": 3}), ("P2", {"fps": 2})]

    @pytest.mark.asyncio
    async def test_nothing_sent_before_window(self):
        client = FakeResultsClient()
        editor = RowEditor(client, 2025, 6, quiet_window=1.0)
        await editor.load()

        editor.edit("P1", "fps", 1)
        await asyncio.sleep(0.05)

        assert client.calls == []
        assert editor.pending == {"P1": {"fps": 1}}
        await editor.aclose()

    @pytest.mark.asyncio
    async def test_in_flight_save_not_cancelled(self):
        client = FakeResultsClient(delay=WINDOW * 2)
        editor = RowEditor(client, 2025, 6, quiet_window=WINDOW)
        await editor.load()

        editor.edit("P1", "fps", 1)
        await asyncio.sleep(WINDOW * 1.5)  # first save has started
        editor.edit("P1", "fps", 2)
        await editor.flush()

        assert client.completed == [("P1", {"fps": 1}), ("P1", {"fps": 2})]


class TestLocalState:
    """Test optimistic local updates"""

    @pytest.mark.asyncio
    async def test_edit_updates_row_immediately(self):
        client = FakeResultsClient(rows=[{"productId": "P1", "fps": 0}])
        editor = RowEditor(client, 2025, 6, quiet_window=WINDOW)
        await editor.load()

        assert editor.edit(" p1 ", "fps", 5) is True
        assert editor.rows["P1"]["fps"] == 5
        await editor.aclose()

    @pytest.mark.asyncio
    async def test_server_grade_applied(self):
        client = FakeResultsClient()
        editor = RowEditor(client, 2025, 6, quiet_window=WINDOW)
        await editor.load()

        editor.edit("P1", "certMiss", 3)
        await editor.flush()

        assert editor.rows["P1"]["grade"] == "A+"
        assert editor.rows["P1"]["certMiss"] == 3

    @pytest.mark.asyncio
    async def test_unknown_field_rejected(self):
        editor = RowEditor(FakeResultsClient(), 2025, 6, quiet_window=WINDOW)
        await editor.load()

        with pytest.raises(ValidationError):
            editor.edit("P1", "grade", "A")

    @pytest.mark.asyncio
    async def test_reload_replaces_rows(self):
        client = FakeResultsClient(rows=[{"productId": "P1", "fps": 0}])
        editor = RowEditor(client, 2025, 6, quiet_window=WINDOW)
        await editor.load()
        editor.rows["P1"]["fps"] = 99

        await editor.reload()

        assert editor.rows["P1"]["fps"] == 0


class TestLocking:
    """Test editor behavior around locked periods"""

    @pytest.mark.asyncio
    async def test_locked_period_ignores_edits(self):
        client = FakeResultsClient(locked=True)
        editor = RowEditor(client, 2025, 6, quiet_window=WINDOW)
        await editor.load()

        assert editor.edit("P1", "fps", 1) is False
        await _settle()

        assert client.calls == []
        assert "P1" not in editor.rows

    @pytest.mark.asyncio
    async def test_snapshot_flushes_first(self):
        client = FakeResultsClient()
        editor = RowEditor(client, 2025, 6, quiet_window=10.0)
        await editor.load()

        editor.edit("P1", "fps", 1)
        meta = await editor.snapshot()

        assert client.calls == [("P1", {"fps": 1})]
        assert client.snapshots == 1
        assert meta["locked"] is True
        assert editor.locked is True
        assert editor.edit("P1", "fps", 2) is False

    @pytest.mark.asyncio
    async def test_locked_response_flips_editor(self):
        errors = []
        client = FakeResultsClient(error=LockedPeriodError(2025, 6))
        editor = RowEditor(client, 2025, 6, quiet_window=WINDOW, on_error=lambda pid, e: errors.append((pid, e)))
        await editor.load()

        editor.edit("P1", "fps", 1)
        await editor.flush()

        assert editor.locked is True
        assert len(errors) == 1
        assert errors[0][0] == "P1"
        assert isinstance(errors[0][1], LockedPeriodError)


class TestErrors:
    """Test failure reporting"""

    @pytest.mark.asyncio
    async def test_failure_reported_not_raised(self):
        errors = []
        client = FakeResultsClient(error=TransientStoreError())
        editor = RowEditor(client, 2025, 6, quiet_window=WINDOW, on_error=lambda pid, e: errors.append(e))
        await editor.load()

        editor.edit("P1", "fps", 1)
        await _settle()

        assert len(errors) == 1
        assert isinstance(errors[0], TransientStoreError)
        # optimistic value stays
        assert editor.rows["P1"]["fps"] == 1
        assert editor.locked is False

    @pytest.mark.asyncio
    async def test_default_error_handler_logs(self):
        client = FakeResultsClient(error=TransientStoreError())
        editor = RowEditor(client, 2025, 6, quiet_window=WINDOW)
        await editor.load()

        editor.edit("P1", "fps", 1)
        await editor.flush()

        assert len(client.calls) == 1

    @pytest.mark.asyncio
    async def test_async_error_callback(self):
        seen = asyncio.Event()

        async def on_error(pid, error):
            seen.set()

        editor = RowEditor(FakeResultsClient(error=TransientStoreError()), 2025, 6,
                           quiet_window=WINDOW, on_error=on_error)
        await editor.load()
        editor.edit("P1", "fps", 1)
        await editor.flush()

        assert seen.is_set()


class TestDebouncedScheduler:
    """Test the keyed scheduler directly"""

    @pytest.mark.asyncio
    async def test_latest_action_wins(self):
        fired = []
        scheduler = DebouncedScheduler(WINDOW)

        async def action(value):
            fired.append(value)

        scheduler.schedule("k", lambda: action(1))
        scheduler.schedule("k", lambda: action(2))
        await _settle()

        assert fired == [2]
        assert scheduler.pending_keys == set()
        assert scheduler.in_flight == 0

    @pytest.mark.asyncio
    async def test_flush_runs_immediately(self):
        fired = []
        scheduler = DebouncedScheduler(10.0)

        async def action():
            fired.append("a")

        scheduler.schedule("k", action)
        await scheduler.flush()

        assert fired == ["a"]

    @pytest.mark.asyncio
    async def test_failing_callback_does_not_escape(self):
        def broken(key, error):
            raise RuntimeError("boom")

        scheduler = DebouncedScheduler(WINDOW, on_error=broken)

        async def action():
            raise TransientStoreError()

        scheduler.schedule("k", action)
        await scheduler.flush()

        assert scheduler.in_flight == 0
