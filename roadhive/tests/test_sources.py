"""
GPS and simulation position sources.
"""

import asyncio
import random

import pytest

from roadhive.app.schemas.load import Coordinates
from roadhive.app.tracking.sources import (
    GeolocationError, GeolocationErrorCode, GpsSource, SimulationSource,
)
from roadhive.tests.factories import MUMBAI

PICKUP = Coordinates(**MUMBAI)


class FakeWatcher:
    """Stands in for the device location watch."""

    def __init__(self, fail_immediately: GeolocationError = None):
        self.watches = {}
        self.cleared = []
        self._next = 0
        self.fail_immediately = fail_immediately

    def watch_position(self, on_position, on_error):
        self._next += 1
        self.watches[self._next] = (on_position, on_error)
        if self.fail_immediately is not None:
            on_error(self.fail_immediately)
        return self._next

    def clear_watch(self, handle):
        self.cleared.append(handle)
        self.watches.pop(handle, None)

    def push(self, handle, fix):
        on_position, _ = self.watches.get(handle) or self._stale(handle)
        on_position(fix)

    def fail(self, handle, error):
        _, on_error = self.watches.get(handle) or self._stale(handle)
        on_error(error)

    def _stale(self, handle):
        # Platforms may still deliver to a cleared handle
        return self._kept[handle]

    def keep_callbacks(self):
        self._kept = dict(self.watches)


class Recorder:
    def __init__(self):
        self.fixes = []
        self.errors = []

    def on_fix(self, fix):
        self.fixes.append(fix)

    def on_error(self, error):
        self.errors.append(error)


def test_gps_forwards_fixes():
    watcher, recorder = FakeWatcher(), Recorder()
    source = GpsSource(watcher)

    source.start(recorder.on_fix, recorder.on_error)
    watcher.push(1, PICKUP)

    assert source.running
    assert recorder.fixes == [PICKUP]


def test_gps_without_watcher_reports_unsupported():
    recorder = Recorder()
    source = GpsSource(None)

    source.start(recorder.on_fix, recorder.on_error)

    assert not source.running
    assert [e.code for e in recorder.errors] == [GeolocationErrorCode.UNSUPPORTED]


def test_gps_error_is_terminal():
    watcher, recorder = FakeWatcher(), Recorder()
    source = GpsSource(watcher)
    source.start(recorder.on_fix, recorder.on_error)
    watcher.keep_callbacks()

    watcher.fail(1, GeolocationError(GeolocationErrorCode.PERMISSION_DENIED, "User denied Geolocation"))
    watcher.push(1, PICKUP)

    assert not source.running
    assert watcher.cleared == [1]
    assert recorder.fixes == []
    assert recorder.errors[0].message == "User denied Geolocation"


def test_gps_error_during_registration_clears_the_watch():
    watcher = FakeWatcher(fail_immediately=GeolocationError(GeolocationErrorCode.TIMEOUT))
    recorder = Recorder()
    source = GpsSource(watcher)

    source.start(recorder.on_fix, recorder.on_error)

    assert not source.running
    assert watcher.cleared == [1]
    assert [e.code for e in recorder.errors] == [GeolocationErrorCode.TIMEOUT]


def test_gps_wraps_foreign_errors():
    watcher, recorder = FakeWatcher(), Recorder()
    source = GpsSource(watcher)
    source.start(recorder.on_fix, recorder.on_error)

    watcher.fail(1, RuntimeError("sensor glitch"))

    assert recorder.errors[0].code == GeolocationErrorCode.POSITION_UNAVAILABLE


def test_no_fix_after_gps_stop(mocker):
    watcher = FakeWatcher()
    on_fix, on_error = mocker.Mock(), mocker.Mock()
    source = GpsSource(watcher)
    source.start(on_fix, on_error)
    watcher.keep_callbacks()

    source.stop()
    watcher.push(1, PICKUP)
    watcher.fail(1, GeolocationError(GeolocationErrorCode.TIMEOUT))

    assert watcher.cleared == [1]
    on_fix.assert_not_called()
    on_error.assert_not_called()


def test_gps_restarts_with_a_new_watch():
    watcher, recorder = FakeWatcher(), Recorder()
    source = GpsSource(watcher)
    source.start(recorder.on_fix, recorder.on_error)
    source.start(recorder.on_fix, recorder.on_error)
    assert len(watcher.watches) == 1

    source.stop()
    source.start(recorder.on_fix, recorder.on_error)
    watcher.push(2, PICKUP)

    assert recorder.fixes == [PICKUP]


def test_simulation_perturbs_last_position():
    last = Coordinates(lat=20.0, lng=73.0)
    source = SimulationSource(lambda: last, pickup=PICKUP, rng=random.Random(7))

    for _ in range(50):
        fix = source.next_fix()
        assert 0 <= fix.lat - last.lat <= 0.001
        assert 0 <= fix.lng - last.lng <= 0.001
        assert fix.heading == 45.0
        assert 40 / 3.6 <= fix.speed <= 90 / 3.6
        assert fix.timestamp is not None


def test_simulation_seeds_from_pickup():
    source = SimulationSource(lambda: None, pickup=PICKUP, rng=random.Random(1))

    fix = source.next_fix()

    assert abs(fix.lat - PICKUP.lat) <= 0.001
    assert abs(fix.lng - PICKUP.lng) <= 0.001


def test_simulation_without_any_position_emits_nothing():
    source = SimulationSource(lambda: None, pickup=None)

    assert source.next_fix() is None


@pytest.mark.asyncio
async def test_simulation_ticks_on_its_interval():
    recorder = Recorder()
    position = {"current": PICKUP}

    def on_fix(fix):
        position["current"] = fix
        recorder.on_fix(fix)

    source = SimulationSource(lambda: position["current"], pickup=PICKUP, interval=0.01)
    source.start(on_fix)
    await asyncio.sleep(0.1)
    source.stop()

    assert len(recorder.fixes) >= 2
    # Each tick builds on the previous one
    assert recorder.fixes[-1].lat >= recorder.fixes[0].lat


@pytest.mark.asyncio
async def test_no_fix_after_simulation_stop():
    recorder = Recorder()
    source = SimulationSource(lambda: None, pickup=PICKUP, interval=0.01)

    source.start(recorder.on_fix)
    await asyncio.sleep(0.05)
    source.stop()
    count = len(recorder.fixes)
    await asyncio.sleep(0.05)

    assert not source.running
    assert len(recorder.fixes) == count


@pytest.mark.asyncio
async def test_simulation_start_is_idempotent_and_restartable():
    recorder = Recorder()
    source = SimulationSource(lambda: None, pickup=PICKUP, interval=0.01)

    source.start(recorder.on_fix)
    first_task = source._task
    source.start(recorder.on_fix)
    assert source._task is first_task

    source.stop()
    source.start(recorder.on_fix)
    await asyncio.sleep(0.05)
    source.stop()

    assert recorder.fixes
