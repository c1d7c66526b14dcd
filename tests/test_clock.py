"""
Tests for the playback clock registry.
"""

import pytest

from recordroom.server.replay import ClockState, PlaybackClockRegistry


class TestClockUpdate:
    """Tests for direct clock updates."""

    def test_read_absent(self):
        assert PlaybackClockRegistry().read("rec-1") is None

    def test_update_and_read(self):
        clocks = PlaybackClockRegistry()
        clocks.update("rec-1", relative_ms=500, base_epoch_ms=10_000, mode="play", speed=2.0)

        state = clocks.read("rec-1")
        assert state.relative_ms == 500
        assert state.absolute_epoch_ms == 10_500
        assert state.speed == 2.0
        assert len(clocks) == 1

    def test_explicit_absolute_wins(self):
        clocks = PlaybackClockRegistry()
        state = clocks.update("rec-1", relative_ms=500, base_epoch_ms=10_000, absolute_epoch_ms=99_000)
        assert state.absolute_epoch_ms == 99_000

    def test_no_base_no_absolute(self):
        state = PlaybackClockRegistry().update("rec-1", relative_ms=500)
        assert state.absolute_epoch_ms == 0

    def test_normalization(self):
        state = PlaybackClockRegistry().update(
            "rec-1", relative_ms=-5, base_epoch_ms=-1, absolute_epoch_ms=-1, mode="  ", speed=0
        )
        assert state.relative_ms == 0
        assert state.base_epoch_ms == 0
        assert state.absolute_epoch_ms == 0
        assert state.mode == "play"
        assert state.speed == 1.0

    def test_last_write_wins(self):
        clocks = PlaybackClockRegistry()
        clocks.update("rec-1", relative_ms=900)
        clocks.update("rec-1", relative_ms=100)
        assert clocks.read("rec-1").relative_ms == 100

    def test_records_are_independent(self):
        clocks = PlaybackClockRegistry()
        clocks.update("rec-1", relative_ms=1)
        clocks.update("rec-2", relative_ms=2)
        clocks.update("rec-1", relative_ms=3)
        assert clocks.read("rec-1").relative_ms == 3
        assert clocks.read("rec-2").relative_ms == 2

    def test_snapshot_lists_every_clock(self):
        clocks = PlaybackClockRegistry()
        clocks.update("rec-1", relative_ms=250, base_epoch_ms=1_000, mode="pause")
        clocks.update("rec-2", relative_ms=5)

        by_record = {c["recordId"]: c for c in clocks.snapshot()}
        assert set(by_record) == {"rec-1", "rec-2"}
        assert by_record["rec-1"]["tMs"] == 250
        assert by_record["rec-1"]["absEpochMs"] == 1_250
        assert by_record["rec-1"]["mode"] == "pause"

    def test_snapshots_are_immutable(self):
        state = PlaybackClockRegistry().update("rec-1", relative_ms=1)
        with pytest.raises(Exception):
            state.relative_ms = 2


class TestClockState:
    """Tests for cutoff computation."""

    def test_cutoff_prefers_absolute(self):
        state = ClockState(record_id="r", relative_ms=50, absolute_epoch_ms=7_000)
        assert state.cutoff_ms(baseline_ms=1_000) == 7_000

    def test_cutoff_from_baseline(self):
        state = ClockState(record_id="r", relative_ms=50)
        assert state.cutoff_ms(baseline_ms=1_000) == 1_050

    def test_paused(self):
        assert ClockState(record_id="r", mode="PAUSE").is_paused
        assert not ClockState(record_id="r", mode="seek").is_paused


class TestSyncMessage:
    """Tests for clock-channel messages."""

    def test_full_message(self):
        clocks = PlaybackClockRegistry()
        state = clocks.apply_sync_message({
            "type": "clock",
            "recordId": "rec-1",
            "tMs": 250,
            "baseEpochMs": 1_000,
            "mode": "play",
            "speed": 1.5,
        })
        assert state.absolute_epoch_ms == 1_250
        assert clocks.read("rec-1").speed == 1.5

    def test_other_types_ignored(self):
        clocks = PlaybackClockRegistry()
        assert clocks.apply_sync_message({"type": "hello", "recordId": "rec-1"}) is None
        assert clocks.read("rec-1") is None

    @pytest.mark.parametrize("record_id", [None, "", "  ", 12])
    def test_missing_record_dropped(self, record_id):
        clocks = PlaybackClockRegistry()
        assert clocks.apply_sync_message({"type": "clock", "recordId": record_id, "tMs": 1}) is None
        assert len(clocks) == 0

    def test_garbage_numbers_default(self):
        state = PlaybackClockRegistry().apply_sync_message({
            "type": "clock",
            "recordId": "rec-1",
            "tMs": "abc",
            "speed": "fast",
        })
        assert state.relative_ms == 0
        assert state.speed == 1.0

    def test_float_times_accepted(self):
        state = PlaybackClockRegistry().apply_sync_message({
            "type": "clock", "recordId": "rec-1", "tMs": 120.7, "absEpochMs": "5000",
        })
        assert state.relative_ms == 120
        assert state.absolute_epoch_ms == 5_000

    def test_overwrites_whole_clock(self):
        clocks = PlaybackClockRegistry()
        clocks.apply_sync_message({"type": "clock", "recordId": "rec-1", "tMs": 10, "baseEpochMs": 1_000, "mode": "pause"})
        clocks.apply_sync_message({"type": "clock", "recordId": "rec-1", "tMs": 20})

        state = clocks.read("rec-1")
        assert state.base_epoch_ms == 0
        assert state.absolute_epoch_ms == 0
        assert state.mode == "play"
