"""Tests for the composition session."""

from pathlib import Path

import pytest

from clipstitch.errors import ExportBusyError, ExportCancelledError, MissingTrackError, SessionBusyError
from clipstitch.export import ExportController, ExportState
from clipstitch.instructions import tiles
from clipstitch.session import CompositionSession
from clipstitch.settings import normalize_settings


def _touch(tmp_path, *names):
    paths = []
    for name in names:
        p = tmp_path / name
        p.write_bytes(b"segment")
        paths.append(p)
    return paths


class TestClipList:
    def test_add_clip_requires_existing_file(self, tmp_path, small_settings):
        session = CompositionSession(small_settings)
        with pytest.raises(FileNotFoundError, match="Segment not found"):
            session.add_clip(tmp_path / "missing.mov")

    def test_add_preserves_order(self, tmp_path, small_settings):
        session = CompositionSession(small_settings)
        for p in _touch(tmp_path, "a.mov", "b.mov", "c.mov"):
            session.add_clip(p)
        assert [c.path.name for c in session.clips] == ["a.mov", "b.mov", "c.mov"]

    def test_delete_last_removes_file(self, tmp_path, small_settings):
        session = CompositionSession(small_settings)
        a, b = _touch(tmp_path, "a.mov", "b.mov")
        session.add_clip(a)
        session.add_clip(b)
        removed = session.delete_last_clip()
        assert removed.path == b
        assert not b.exists()
        assert a.exists()
        assert [c.path for c in session.clips] == [a]

    def test_delete_last_on_empty_session(self, small_settings):
        assert CompositionSession(small_settings).delete_last_clip() is None

    def test_new_segment_path_in_scratch(self, small_settings):
        session = CompositionSession(small_settings)
        p1 = session.new_segment_path()
        p2 = session.new_segment_path()
        assert p1 != p2
        assert p1.suffix == ".mov"
        assert p1.parent == Path(small_settings["session"]["scratch_dir"])
        assert p1.parent.is_dir()

    def test_output_path_named_by_session_id(self, small_settings):
        a = CompositionSession(small_settings)
        b = CompositionSession(small_settings)
        assert a.output_path.name == f"{a.session_id}.mp4"
        assert a.output_path != b.output_path


class TestBuild:
    @pytest.mark.asyncio
    async def test_delete_last_retiles(self, tmp_path, small_settings, fake_probe, meta):
        probe = fake_probe({"a.mov": meta(2.0), "b.mov": meta(3.5), "c.mov": meta(1.25)})
        session = CompositionSession(small_settings, probe=probe)
        for p in _touch(tmp_path, "a.mov", "b.mov", "c.mov"):
            session.add_clip(p)

        before = await session.build()
        assert before.duration == 6.75

        session.delete_last_clip()
        assert session.composition is None
        after = await session.build()

        assert before.duration - after.duration == 1.25
        assert len(after.instructions) == 2
        assert tiles(after.instructions, after.duration)
        assert [i.start for i in after.instructions] == [0.0, 2.0]

    @pytest.mark.asyncio
    async def test_failed_build_is_atomic(self, tmp_path, small_settings, fake_probe, meta):
        probe = fake_probe({"a.mov": meta(1.0), "b.mov": meta(1.0), "k.mov": meta(1.0, audio=False)})
        session = CompositionSession(small_settings, probe=probe)
        clips = [session.add_clip(p) for p in _touch(tmp_path, "a.mov", "b.mov", "k.mov")]

        with pytest.raises(MissingTrackError) as exc_info:
            await session.build()
        assert exc_info.value.clip.id == clips[2].id
        assert session.composition is None
        # Nothing from the clips before k was committed to the session.
        assert all(c.duration is None for c in session.clips)
        assert session.recorded_duration() == 0.0

    @pytest.mark.asyncio
    async def test_recorded_and_remaining_duration(self, tmp_path, fake_probe, meta):
        settings = normalize_settings({
            "session": {"scratch_dir": str(tmp_path), "max_duration": 10},
        })
        probe = fake_probe({"a.mov": meta(3.0), "b.mov": meta(4.0)})
        session = CompositionSession(settings, probe=probe)
        for p in _touch(tmp_path, "a.mov", "b.mov"):
            session.add_clip(p)
        assert session.remaining_duration() == 10
        await session.build()
        assert session.recorded_duration() == 7.0
        assert session.remaining_duration() == 3.0

    def test_remaining_is_none_without_limit(self, small_settings):
        assert CompositionSession(small_settings).remaining_duration() is None


class TestSessionExport:
    @pytest.mark.asyncio
    async def test_clip_list_locked_while_exporting(
        self, tmp_path, small_settings, fake_probe, meta, fake_spawn,
    ):
        probe = fake_probe({"a.mov": meta(1.0), "b.mov": meta(1.0)})
        controller = ExportController(
            small_settings, spawn=fake_spawn(lines=["out_time_us=100000"], hang=True),
        )
        session = CompositionSession(small_settings, probe=probe, controller=controller)
        a, b = _touch(tmp_path, "a.mov", "b.mov")
        session.add_clip(a)

        job = await session.export()
        assert session.is_exporting
        with pytest.raises(SessionBusyError):
            session.add_clip(b)
        with pytest.raises(SessionBusyError):
            session.delete_last_clip()
        with pytest.raises(ExportBusyError):
            await session.export()

        assert session.cancel_export()
        with pytest.raises(ExportCancelledError):
            await job.wait()
        assert session.export_state is ExportState.CANCELLED
        assert not session.output_path.exists()

        # Unlocked again after the terminal state.
        session.add_clip(b)
        assert len(session.clips) == 2

    @pytest.mark.asyncio
    async def test_discard_cancels_and_cleans_up(
        self, tmp_path, small_settings, fake_probe, meta, fake_spawn,
    ):
        probe = fake_probe({"a.mov": meta(1.0), "b.mov": meta(1.0)})
        controller = ExportController(
            small_settings, spawn=fake_spawn(lines=["out_time_us=100000"], hang=True),
        )
        session = CompositionSession(small_settings, probe=probe, controller=controller)
        a, b = _touch(tmp_path, "a.mov", "b.mov")
        session.add_clip(a)
        session.add_clip(b)

        job = await session.export()
        await session.discard()

        assert job.state is ExportState.CANCELLED
        assert not a.exists() and not b.exists()
        assert session.clips == ()
        assert session.composition is None
        assert not session.output_path.exists()

    @pytest.mark.asyncio
    async def test_end_to_end_with_real_ffmpeg(self, make_clip, small_settings):
        session = CompositionSession(small_settings)
        session.add_clip(make_clip("a.mp4", duration=1.0, color="red"))
        session.add_clip(make_clip("b.mp4", duration=1.5, color="green"))

        job = await session.export()
        output = await job.wait()

        assert output == session.output_path
        assert output.exists() and output.stat().st_size > 0
        assert session.composition is not None
        assert session.export_state is ExportState.COMPLETED
