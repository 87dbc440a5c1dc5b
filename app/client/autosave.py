"""Debounced autosave for a single form instance.

Everything here runs on one asyncio loop. Edits are applied to the local
state immediately; persistence is deferred until the user has been idle for
``delay`` seconds. Re-arming the timer only suppresses saves that have not
started yet; a save already in flight is left to finish. Saves run one at a
time and each takes its snapshot when its turn comes, so the last save to
reach the backend always carries the latest state.
"""

import asyncio
import copy
import logging
from typing import Any

from app.client.api import FormApiError, ProgressBackend
from app.modules.forms.schemas import TOTAL_STEPS


logger = logging.getLogger("app.client.autosave")

DEFAULT_DELAY = 0.5


class AutosaveCoordinator:
    def __init__(self, backend: ProgressBackend, delay: float = DEFAULT_DELAY):
        self.backend = backend
        self.delay = delay
        self.form_data: dict[str, dict[str, Any]] = {}
        self.current_step = 1
        self.last_error: Exception | None = None
        self._mounted = False
        self._dirty = False
        self._timer: asyncio.TimerHandle | None = None
        self._in_flight: set[asyncio.Task] = set()
        self._save_lock = asyncio.Lock()

    @property
    def pending(self) -> bool:
        return self._timer is not None

    async def mount(self) -> bool:
        """Restore saved progress once; returns True if something was found."""
        if self._mounted:
            return False
        self._mounted = True

        snapshot = await self.backend.load_progress()
        if snapshot is None:
            self.current_step = 1
            self.form_data = {}
            return False

        self.current_step = snapshot.current_step
        self.form_data = copy.deepcopy(snapshot.form_data)
        return True

    def update(self, step_key: str, data: dict[str, Any]) -> None:
        self.form_data[step_key] = data
        self._dirty = True
        self._schedule()

    def set_step(self, step: int) -> None:
        if not 1 <= step <= TOTAL_STEPS:
            raise ValueError(f"step must be between 1 and {TOTAL_STEPS}")
        if step != self.current_step:
            self.current_step = step
            self._dirty = True
            self._schedule()

    def _schedule(self) -> None:
        self._cancel_timer()
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self.delay, self._fire)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _fire(self) -> None:
        self._timer = None
        task = asyncio.ensure_future(self._background_save())
        self._in_flight.add(task)
        task.add_done_callback(self._in_flight.discard)

    async def _background_save(self) -> None:
        try:
            await self._save()
        except FormApiError as exc:
            self.last_error = exc
            logger.warning("Autosave failed: %s", exc)

    async def _save(self) -> None:
        async with self._save_lock:
            step, data = self.current_step, copy.deepcopy(self.form_data)
            self._dirty = False
            try:
                await self.backend.save_progress(step, data)
            except FormApiError:
                self._dirty = True
                raise
            self.last_error = None

    async def flush(self) -> None:
        """Save the current state now, dropping any pending timer."""
        self._cancel_timer()
        await self._save()

    async def close(self) -> None:
        """Tear down: cancel the timer and make a best-effort final save."""
        self._cancel_timer()
        if self._dirty:
            try:
                await self._save()
            except FormApiError as exc:
                self.last_error = exc
                logger.warning("Final flush on close failed: %s", exc)
        await self.drain()

    async def drain(self) -> None:
        """Drop the pending timer and wait for saves that already started."""
        self._cancel_timer()
        if self._in_flight:
            await asyncio.gather(*self._in_flight, return_exceptions=True)

    def reset(self) -> None:
        self._cancel_timer()
        self.form_data = {}
        self.current_step = 1
        self._dirty = False
