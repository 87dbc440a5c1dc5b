"""Tests for the debounced autosave coordinator."""

import asyncio

import pytest

from app.client.autosave import AutosaveCoordinator
from app.modules.forms.service import ProgressSnapshot


DELAY = 0.1


@pytest.fixture
def coordinator(backend) -> AutosaveCoordinator:
    return AutosaveCoordinator(backend, delay=DELAY)


@pytest.mark.unit
async def test_edits_are_visible_immediately(coordinator, backend):
    coordinator.update("step1", {"fullName": "Ada"})

    assert coordinator.form_data == {"step1": {"fullName": "Ada"}}
    assert coordinator.pending
    assert backend.saved == []


@pytest.mark.unit
async def test_burst_of_edits_is_saved_once_with_latest_state(coordinator, backend):
    coordinator.update("step1", {"fullName": "A"})
    coordinator.update("step1", {"fullName": "Ad"})
    coordinator.update("step1", {"fullName": "Ada"})

    await asyncio.sleep(DELAY * 3)

    assert backend.saved == [(1, {"step1": {"fullName": "Ada"}})]
    assert not coordinator.pending


@pytest.mark.unit
async def test_each_edit_restarts_the_timer(coordinator, backend):
    coordinator.update("step1", {"fullName": "A"})
    await asyncio.sleep(DELAY * 0.6)
    coordinator.update("step1", {"fullName": "Ada"})
    await asyncio.sleep(DELAY * 0.6)

    assert backend.saved == []

    await asyncio.sleep(DELAY * 2)
    assert len(backend.saved) == 1


@pytest.mark.unit
async def test_edit_during_in_flight_save_does_not_cancel_it(backend_factory):
    backend = backend_factory(save_delay=DELAY * 2)
    coordinator = AutosaveCoordinator(backend, delay=DELAY)

    coordinator.update("step1", {"fullName": "A"})
    await asyncio.sleep(DELAY * 1.5)
    coordinator.update("step1", {"fullName": "Ada"})

    await asyncio.sleep(DELAY * 6)

    assert [data["step1"]["fullName"] for _, data in backend.saved] == ["A", "Ada"]


@pytest.mark.unit
async def test_flush_waits_for_slower_in_flight_save(backend_factory):
    backend = backend_factory(save_delay=DELAY * 3)
    coordinator = AutosaveCoordinator(backend, delay=DELAY)

    coordinator.update("step1", {"fullName": "A"})
    await asyncio.sleep(DELAY * 1.5)
    backend.save_delay = 0
    coordinator.update("step1", {"fullName": "Ada"})

    await coordinator.flush()

    assert backend.snapshot.form_data == {"step1": {"fullName": "Ada"}}
    assert [data["step1"]["fullName"] for _, data in backend.saved] == ["A", "Ada"]


@pytest.mark.unit
async def test_drain_waits_for_in_flight_save(backend_factory):
    backend = backend_factory(save_delay=DELAY * 2)
    coordinator = AutosaveCoordinator(backend, delay=DELAY)

    coordinator.update("step1", {"fullName": "Ada"})
    await asyncio.sleep(DELAY * 1.5)
    coordinator.update("step1", {"fullName": "Ada L"})

    await coordinator.drain()

    assert backend.saved == [(1, {"step1": {"fullName": "Ada"}})]
    assert not coordinator.pending


@pytest.mark.unit
async def test_flush_saves_immediately(coordinator, backend):
    coordinator.update("step2", {"company": "AE"})

    await coordinator.flush()

    assert backend.saved == [(1, {"step2": {"company": "AE"}})]
    assert not coordinator.pending
    await asyncio.sleep(DELAY * 2)
    assert len(backend.saved) == 1


@pytest.mark.unit
async def test_close_flushes_unsaved_edits(coordinator, backend):
    coordinator.update("step1", {"fullName": "Ada"})

    await coordinator.close()

    assert backend.saved == [(1, {"step1": {"fullName": "Ada"}})]
    await asyncio.sleep(DELAY * 2)
    assert len(backend.saved) == 1


@pytest.mark.unit
async def test_close_without_edits_does_not_save(coordinator, backend):
    await coordinator.close()

    assert backend.saved == []


@pytest.mark.unit
async def test_background_failure_is_recorded(coordinator, backend):
    backend.fail = True
    coordinator.update("step1", {"fullName": "Ada"})

    await asyncio.sleep(DELAY * 3)

    assert coordinator.last_error is not None
    assert backend.saved == []

    backend.fail = False
    await coordinator.close()
    assert backend.saved == [(1, {"step1": {"fullName": "Ada"}})]
    assert coordinator.last_error is None


@pytest.mark.unit
async def test_mount_restores_saved_progress_once(backend_factory):
    snapshot = ProgressSnapshot(current_step=3, form_data={"step1": {"fullName": "Ada"}})
    backend = backend_factory(snapshot=snapshot)
    coordinator = AutosaveCoordinator(backend, delay=DELAY)

    assert await coordinator.mount() is True
    assert await coordinator.mount() is False

    assert backend.loads == 1
    assert coordinator.current_step == 3
    assert coordinator.form_data == {"step1": {"fullName": "Ada"}}


@pytest.mark.unit
async def test_mount_without_progress_starts_fresh(coordinator, backend):
    assert await coordinator.mount() is False

    assert coordinator.current_step == 1
    assert coordinator.form_data == {}


@pytest.mark.unit
async def test_step_change_is_autosaved(coordinator, backend):
    coordinator.set_step(2)

    await asyncio.sleep(DELAY * 3)

    assert backend.saved == [(2, {})]


@pytest.mark.unit
async def test_set_step_rejects_unknown_step(coordinator):
    with pytest.raises(ValueError):
        coordinator.set_step(5)
