"""Tests for the moviepy preview clip."""

import pytest

from clipstitch.clips import Clip
from clipstitch.composition import compose
from clipstitch.preview import build_preview_clip


class TestBuildPreviewClip:
    @pytest.mark.asyncio
    async def test_canvas_size_and_duration(self, make_clip, small_settings):
        a = make_clip("a.mp4", duration=1.0, size=(320, 240), color="red")
        b = make_clip("b.mp4", duration=2.0, size=(320, 240), color="blue")
        comp = await compose([Clip.from_path(a), Clip.from_path(b)], small_settings)

        preview = build_preview_clip(comp)
        try:
            assert tuple(preview.size) == (180, 320)
            assert preview.duration == pytest.approx(comp.duration)
            frame = preview.get_frame(0.5)
            assert frame.shape == (320, 180, 3)
        finally:
            preview.close()

    @pytest.mark.asyncio
    async def test_layers_start_at_instruction_offsets(self, make_clip, small_settings):
        a = make_clip("a.mp4", duration=1.0)
        b = make_clip("b.mp4", duration=1.0)
        comp = await compose([Clip.from_path(a), Clip.from_path(b)], small_settings)

        preview = build_preview_clip(comp)
        try:
            starts = [layer.start for layer in preview.clips]
            assert starts == [inst.start for inst in comp.instructions]
        finally:
            preview.close()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("display_rotation", [0, 90])
    async def test_matches_export_orientation(self, make_clip, small_settings, display_rotation):
        # Red top / blue bottom stored frame lands red-right, as in the export.
        a = make_clip(
            "a.mov", duration=1.0, size=(320, 240), color="red",
            bottom_color="blue", display_rotation=display_rotation,
        )
        comp = await compose([Clip.from_path(a)], small_settings)

        preview = build_preview_clip(comp)
        try:
            frame = preview.get_frame(0.5)
        finally:
            preview.close()
        assert frame.shape == (320, 180, 3)
        right = frame[160, 150]
        left = frame[160, 30]
        assert right[0] > 150 and right[2] < 100
        assert left[2] > 150 and left[0] < 100
