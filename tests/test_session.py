"""
Tests for the session context: loading, settings updates and presets.
"""

from __future__ import annotations

import asyncio

import pytest

from wigglegram.exceptions import ImageDecodeFailure, MalformedContainer
from wigglegram.presets import Preset
from wigglegram.scheduler import SchedulerState
from wigglegram.session import WiggleSession
from wigglegram.types import ActiveFrame, AlignmentMode, AlignmentSettings, PlaybackSettings


@pytest.fixture
def session():
    s = WiggleSession(alignment=AlignmentSettings(offset_pixels=8))
    yield s
    s.close()


class TestLoad:
    def test_first_load(self, session, mpo_bytes):
        assert not session.visible
        result = asyncio.run(session.load_bytes(mpo_bytes))
        assert session.visible
        assert session.status == ""
        assert session.pair.is_complete
        assert (result.width, result.height) == (64, 48)
        assert result.warnings == []
        # Without a running loop a still frame is drawn.
        assert session.surface.size == (56, 48)

    def test_load_resets_to_left(self, session, mpo_bytes):
        asyncio.run(session.load_bytes(mpo_bytes))
        session.scheduler.tick()
        assert session.state.active_frame is ActiveFrame.RIGHT
        asyncio.run(session.load_bytes(mpo_bytes))
        assert session.state.active_frame is ActiveFrame.LEFT
        assert session.state.ticks == 0

    def test_load_from_path(self, session, mpo_bytes, tmp_dir):
        path = tmp_dir / "pair.mpo"
        path.write_bytes(mpo_bytes)
        asyncio.run(session.load_file(path))
        assert session.visible

    def test_size_mismatch_warns(self, session, left_jpeg):
        from tests.conftest import jpeg_bytes, make_view

        wide = jpeg_bytes(make_view(8, size=(80, 48)))
        result = asyncio.run(session.load_bytes(left_jpeg + wide))
        assert result.width == 64
        assert len(result.warnings) == 1

    def test_load_inside_loop_starts_animation(self, session, mpo_bytes):
        async def scenario():
            await session.load_bytes(mpo_bytes)
            assert session.scheduler.state is SchedulerState.RUNNING
            session.close()
            assert session.scheduler.state is SchedulerState.STOPPED

        asyncio.run(scenario())


class TestLoadFailure:
    def test_first_load_failure_stays_hidden(self, session):
        with pytest.raises(MalformedContainer):
            asyncio.run(session.load_bytes(b"\x00" * 64))
        assert not session.visible
        assert session.pair is None
        assert session.status == "Failed to load file."

    def test_empty_input(self, session):
        with pytest.raises(MalformedContainer, match="empty"):
            asyncio.run(session.load_bytes(b""))

    def test_failure_keeps_previous_pair(self, session, mpo_bytes, left_jpeg):
        asyncio.run(session.load_bytes(mpo_bytes))
        previous = session.pair
        with pytest.raises(ImageDecodeFailure):
            asyncio.run(session.load_bytes(left_jpeg + b"\xff\xd8\x00\x01\x02"))
        assert session.pair is previous
        assert session.visible

    def test_missing_file(self, session, tmp_dir):
        with pytest.raises(OSError):
            asyncio.run(session.load_file(tmp_dir / "nope.mpo"))
        assert session.pair is None


class TestSettings:
    def test_update_replaces_snapshots(self, session):
        before = session.alignment
        session.update_settings(offset=12, mode=AlignmentMode.PAD)
        assert session.alignment is not before
        assert session.alignment == AlignmentSettings(12, AlignmentMode.PAD)
        assert before == AlignmentSettings(8, AlignmentMode.CROP)

    def test_partial_update_keeps_other_fields(self, session):
        session.update_settings(mode=AlignmentMode.PAD)
        assert session.alignment.offset_pixels == 8
        session.update_settings(speed=3)
        assert session.playback == PlaybackSettings(3)
        assert session.alignment.mode is AlignmentMode.PAD

    def test_invalid_values_change_nothing(self, session):
        alignment, playback = session.alignment, session.playback
        with pytest.raises(ValueError):
            session.update_settings(speed=0, offset=4)
        with pytest.raises(ValueError):
            session.update_settings(speed=2, offset=-1)
        assert session.alignment is alignment
        assert session.playback is playback

    def test_infinite_speed_keeps_animation_running(self, session, mpo_bytes):
        async def scenario():
            await session.load_bytes(mpo_bytes)
            playback = session.playback
            with pytest.raises(ValueError):
                session.update_settings(speed=float("inf"))
            assert session.playback is playback
            await asyncio.sleep(0.01)
            state = session.scheduler.state
            session.close()
            return state

        assert asyncio.run(scenario()) is SchedulerState.RUNNING

    def test_update_redraws_still_frame(self, session, mpo_bytes):
        asyncio.run(session.load_bytes(mpo_bytes))
        session.update_settings(mode=AlignmentMode.PAD)
        assert session.surface.size == (72, 48)

    def test_apply_preset_forces_crop(self, session):
        session.update_settings(mode=AlignmentMode.PAD)
        session.apply_preset(Preset(name="street", speed=10, offset=96))
        assert session.alignment == AlignmentSettings(96, AlignmentMode.CROP)
        assert session.playback.speed_factor == 10

    def test_closed_session_does_not_redraw(self, session, mpo_bytes):
        asyncio.run(session.load_bytes(mpo_bytes))
        session.close()
        session.update_settings(mode=AlignmentMode.PAD)
        assert session.surface.size == (56, 48)
