"""
Autosave Row Editor - debounced per-row saving of result edits

Every edit updates the local row straight away and is queued for its row.
When a row has been quiet for the configured window, everything queued for
it goes out in one PUT .../row call. Rows debounce independently: editing
row B never delays or cancels row A's save.

Once a save has started it is never cancelled. Failures go to the on_error
callback and are not rolled back locally; call reload() to resync.
"""

import asyncio
import inspect
from typing import Any, Awaitable, Callable, Dict, Optional, Set

from vb100.client.results_client import ResultsClient
from vb100.core.config import settings
from vb100.core.exceptions import LockedPeriodError, ValidationError
from vb100.core.logging_config import logger


EDITABLE_FIELDS = frozenset({
    "productName",
    "vmName",
    "stage",
    "original",
    "certMiss",
    "fps",
    "cfnPreview",
    "cfnFinal",
    "privateFlag",
    "invResFlag",
})

ErrorCallback = Callable[[str, Exception], Any]


class DebouncedScheduler:
    """
    Keyed debounce of async actions.

    schedule(key, action) (re)starts the quiet window for `key` only. When the
    window elapses the latest action for the key runs as an in-flight task;
    in-flight tasks for the same key run one after another, in order.
    """

    def __init__(self, delay: float, on_error: Optional[ErrorCallback] = None):
        self.delay = delay
        self._on_error = on_error
        self._actions: Dict[str, Callable[[], Awaitable[Any]]] = {}
        self._pending: Dict[str, asyncio.Task] = {}
        self._running: Dict[str, asyncio.Task] = {}
        self._in_flight: Set[asyncio.Task] = set()

    @property
    def pending_keys(self) -> Set[str]:
        return set(self._pending)

    @property
    def in_flight(self) -> int:
        return len(self._in_flight)

    def schedule(self, key: str, action: Callable[[], Awaitable[Any]]) -> None:
        existing = self._pending.get(key)
        if existing and not existing.done():
            existing.cancel()

        self._actions[key] = action
        self._pending[key] = asyncio.create_task(self._debounced(key))

    async def _debounced(self, key: str) -> None:
        try:
            await asyncio.sleep(self.delay)
        except asyncio.CancelledError:
            logger.debug(f"[Autosave] Save of {key} rescheduled")
            return

        if self._pending.get(key) is asyncio.current_task():
            del self._pending[key]
        self._start(key)

    def _start(self, key: str) -> Optional[asyncio.Task]:
        action = self._actions.pop(key, None)
        if action is None:
            return None

        previous = self._running.get(key)
        task = asyncio.create_task(self._run(key, action, previous))
        self._running[key] = task
        self._in_flight.add(task)
        task.add_done_callback(lambda t, k=key: self._finished(k, t))
        return task

    def _finished(self, key: str, task: asyncio.Task) -> None:
        self._in_flight.discard(task)
        if self._running.get(key) is task:
            del self._running[key]

    async def _run(self, key: str, action: Callable[[], Awaitable[Any]],
                   previous: Optional[asyncio.Task]) -> None:
        if previous is not None and not previous.done():
            await asyncio.wait({previous})
        try:
            await action()
        except Exception as e:
            await self._report(key, e)

    async def _report(self, key: str, error: Exception) -> None:
        if self._on_error is None:
            logger.warning(f"[Autosave] Save of {key} failed: {type(error).__name__}: {error}")
            return
        try:
            result = self._on_error(key, error)
            if inspect.isawaitable(result):
                await result
        except Exception as callback_error:
            logger.error(f"[Autosave] on_error callback failed for {key}: {callback_error}")

    async def flush(self) -> None:
        """Start every pending action now and wait for all in-flight ones"""
        for key, task in list(self._pending.items()):
            task.cancel()
            del self._pending[key]
            self._start(key)

        while self._in_flight:
            await asyncio.gather(*list(self._in_flight), return_exceptions=True)


class RowEditor:
    """
    Editable, autosaving view of one results period.

    Rows are kept as camelCase dicts keyed by upper-cased product id, the
    same shape the API returns.
    """

    def __init__(
        self,
        client: ResultsClient,
        year: int,
        month: int,
        quiet_window: Optional[float] = None,
        on_error: Optional[ErrorCallback] = None,
    ):
        self.client = client
        self.year = year
        self.month = month
        self.meta: Dict[str, Any] = {}
        self.rows: Dict[str, Dict[str, Any]] = {}
        self._pending_fields: Dict[str, Dict[str, Any]] = {}
        self._on_error = on_error
        self._scheduler = DebouncedScheduler(
            quiet_window if quiet_window is not None else settings.autosave_quiet_window,
            on_error=self._handle_error,
        )

    @property
    def locked(self) -> bool:
        return bool(self.meta.get("locked"))

    @property
    def pending(self) -> Dict[str, Dict[str, Any]]:
        """Queued, not yet sent changes per product id"""
        return {pid: dict(fields) for pid, fields in self._pending_fields.items()}

    async def load(self) -> Dict[str, Any]:
        data = await self.client.get_period(self.year, self.month)
        self.meta = data.get("meta", {})
        self.rows = {row["productId"]: row for row in data.get("rows", [])}
        logger.debug(f"[Autosave] Loaded {self.year}-{self.month:02d}: {len(self.rows)} rows")
        return data

    async def reload(self) -> Dict[str, Any]:
        """Re-fetch the period, replacing local rows with the server's copy"""
        return await self.load()

    def edit(self, product_id: str, field: str, value: Any) -> bool:
        """
        Change one field of one row.

        Returns False (and does nothing) when the period is locked.
        """
        if self.locked:
            return False
        if field not in EDITABLE_FIELDS:
            raise ValidationError(f"Unknown field '{field}'", field=field)

        pid = product_id.strip().upper()
        if not pid:
            raise ValidationError("productId is required", field="productId")

        row = self.rows.setdefault(pid, {"productId": pid})
        row[field] = value
        self._pending_fields.setdefault(pid, {})[field] = value

        self._scheduler.schedule(pid, lambda: self._send(pid))
        return True

    async def _send(self, pid: str) -> None:
        fields = self._pending_fields.pop(pid, None)
        if not fields:
            return
        saved = await self.client.upsert_row(self.year, self.month, pid, fields)

        # Local values may have moved on since the send; only take server-computed fields
        row = self.rows.get(pid)
        if row is not None and isinstance(saved, dict):
            for key in ("grade", "updatedAt"):
                if key in saved:
                    row[key] = saved[key]

    async def _handle_error(self, pid: str, error: Exception) -> None:
        if isinstance(error, LockedPeriodError):
            self.meta["locked"] = True
            self._pending_fields.clear()
            logger.info(f"[Autosave] {self.year}-{self.month:02d} is locked; editing disabled")

        if self._on_error is None:
            logger.warning(f"[Autosave] Save of {pid} failed: {type(error).__name__}: {error}")
            return
        result = self._on_error(pid, error)
        if inspect.isawaitable(result):
            await result

    async def flush(self) -> None:
        """Send all queued changes now and wait until every save has finished"""
        await self._scheduler.flush()

    async def snapshot(self) -> Dict[str, Any]:
        """Save everything queued, then lock the period"""
        await self.flush()
        self.meta = await self.client.take_snapshot(self.year, self.month)
        return self.meta

    async def aclose(self) -> None:
        await self.flush()
